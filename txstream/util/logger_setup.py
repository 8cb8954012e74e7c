#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides the logging setup for the txstream components.

All components log to children of the 'main' logger ('main.driver',
'main.websocket', ...). The 'main' logger gets two sinks:

- a file that is rotated every hour: <label>_logs/<label>_rolling.log
- the console, with the name of the thread

Both sinks use the same level, which can be set with a directive
in the environment (TXSTREAM_LOG=debug). Records are handed to the
sinks by a QueueListener thread, so writing the log file never blocks
the event loop.

Created on Sat Oct 17 11:05:39 2026

@author_ dhaneor
"""
import logging
import os
import queue

from logging.handlers import QueueHandler, QueueListener, TimedRotatingFileHandler
from typing import Mapping

from txstream import config as cnf

FILE_FORMAT = (
    "%(asctime)s - %(name)s.%(funcName)s.%(lineno)d  - [%(levelname)s]: %(message)s"
)
CONSOLE_FORMAT = (
    "%(asctime)s - %(threadName)s - %(name)s.%(funcName)s.%(lineno)d"
    "  - [%(levelname)s]: %(message)s"
)


def level_from_env(
    environ: Mapping[str, str] = os.environ,
    default: str = cnf.DEFAULT_LOG_LEVEL,
) -> int:
    """Translate the level directive from the environment.

    Unknown directives fall back to the default level.
    """
    directive = environ.get(cnf.LOG_ENV_VAR, "").strip() or default
    level = logging.getLevelName(directive.upper())

    if not isinstance(level, int):
        level = logging.getLevelName(default.upper())

    return level


def setup_logging(
    label: str = cnf.LOG_LABEL,
    level: int | None = None,
    log_dir: str | None = None,
) -> QueueListener:
    """Configure the 'main' logger with a rotating file and the console.

    Parameters
    ----------
    label : str, optional
        name for the log directory and file, by default 'txstream'
    level : int | None, optional
        log level, by default the level from the environment
    log_dir : str | None, optional
        directory for the log files, by default <label>_logs

    Returns
    -------
    QueueListener
        the (started) listener, stop it before exiting to flush the
        remaining records
    """
    level = level if level is not None else level_from_env()
    log_dir = log_dir or os.environ.get(cnf.LOG_DIR_ENV_VAR) or f"{label}_logs"
    os.makedirs(log_dir, exist_ok=True)

    file_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, f"{label}_rolling.log"),
        when="H",
        encoding="utf-8",
        delay=True,
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    file_handler.setLevel(level)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
    console_handler.setLevel(level)

    log_queue: queue.SimpleQueue = queue.SimpleQueue()
    listener = QueueListener(
        log_queue, file_handler, console_handler, respect_handler_level=True
    )

    logger = logging.getLogger("main")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if isinstance(handler, QueueHandler):
            logger.removeHandler(handler)

    logger.addHandler(QueueHandler(log_queue))

    listener.start()
    logger.debug("logging to %s and console (level: %s)", log_dir, level)
    return listener
