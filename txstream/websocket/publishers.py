#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides publishers that hand events over to downstream consumers.

The lifecycle driver does not do any work on the events. If something
should be done with them, a publisher passes them on by message passing.
Publishers must never block the driver: an event that cannot be handed
over right away is dropped (and logged).

Created on Mon Nov 28 13:32:20 2022

@author dhaneor
"""
import asyncio
import json
import logging
from abc import abstractmethod
from typing import Any, Callable

import zmq

logger = logging.getLogger("main.publisher")


# =============================================================================
class IPublisher:
    dropped: int = 0

    @abstractmethod
    def publish_nowait(self, event: Any) -> None:
        pass

    def close(self) -> None:
        pass


class LogPublisher(IPublisher):
    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)

    def publish_nowait(self, event):
        self.logger.debug(event)


class CallbackPublisher(IPublisher):
    def __init__(self, callback: Callable[[Any], None]):
        self.callback = callback
        self.dropped = 0

    def publish_nowait(self, event: Any):
        try:
            self.callback(event)
        except Exception as e:
            self.dropped += 1
            logger.error("callback failed for event: %s", e, exc_info=1)


class QueuePublisher(IPublisher):
    def __init__(self, queue: asyncio.Queue | None = None):
        self.queue: asyncio.Queue = queue if queue is not None else asyncio.Queue()
        self.dropped = 0

    def publish_nowait(self, event):
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.error("publish queue is full - event will not be delivered!")


class ZeroMqPublisher(IPublisher):
    # a plain (not asyncio) socket: with NOBLOCK, send either succeeds
    # right away or raises zmq.Again
    def __init__(self, address: str, ctx: zmq.Context | None = None):
        ctx = ctx or zmq.Context.instance()
        self.socket = ctx.socket(zmq.PUSH)
        self.socket.setsockopt(zmq.LINGER, 0)
        self.socket.bind(address)
        self.dropped = 0
        logger.info("zmq publisher bound to %s", address)

    def publish_nowait(self, event):
        try:
            msg = json.dumps(event._asdict() if hasattr(event, "_asdict") else event)
            self.socket.send(msg.encode("utf-8"), flags=zmq.NOBLOCK)
        except zmq.Again:
            self.dropped += 1
            if self.dropped % 1000 == 1:
                logger.warning(
                    "no consumer ready - dropped %s events so far", self.dropped
                )
        except zmq.ZMQError as e:
            logger.error(f"ZMQ error: {e}")

    def close(self):
        self.socket.close()
