#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Starts the txstream client.

Reads the API token from the environment, builds the subscription
filter from the static configuration and runs the lifecycle driver
until the process is stopped (SIGINT/SIGTERM).

Exit codes:
    0 - stopped on request
    1 - missing configuration or connection/subscription failure

Created on Sun Oct 18 14:27:36 2026

@author_ dhaneor
"""
import asyncio
import logging
import os
import signal
import sys
import uvloop

from typing import Optional

from txstream import config as cnf
from txstream.lifecycle import LifecycleDriver
from txstream.util.exceptions import ConfigError, ConnectError
from txstream.util.logger_setup import setup_logging
from txstream.util.subscription_filter import SubscriptionFilter, build_filter
from txstream.websocket.publishers import IPublisher, ZeroMqPublisher

logger = logging.getLogger("main")


def default_filter() -> SubscriptionFilter:
    return build_filter(
        network=cnf.NETWORK,
        verified=cnf.VERIFIED,
        include=cnf.INCLUDE_KEYS,
        exclude=cnf.EXCLUDE_KEYS,
    )


def get_publisher() -> Optional[IPublisher]:
    if address := os.environ.get(cnf.PUBLISH_ADDR_ENV_VAR):
        return ZeroMqPublisher(address)
    return None


async def main(driver: LifecycleDriver) -> None:
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, driver.stop)
        except NotImplementedError:
            # not available on Windows, KeyboardInterrupt ends the process there
            pass

    await driver.run()


def run() -> int:
    listener = setup_logging()
    publisher = None

    try:
        endpoint = cnf.load_endpoint()
        publisher = get_publisher()
        driver = LifecycleDriver(
            endpoint=endpoint, sub_filter=default_filter(), publisher=publisher
        )
        uvloop.run(main(driver))

    except ConfigError as e:
        logger.critical("configuration error: %s", e)
        return 1

    except ConnectError as e:
        logger.critical("unable to establish subscription: %s", e, exc_info=1)
        return 1

    except KeyboardInterrupt:
        logger.info("interrupted ...")

    finally:
        if publisher is not None:
            publisher.close()

        logger.info("shutdown complete: OK")
        listener.stop()

    return 0


if __name__ == "__main__":
    sys.exit(run())
