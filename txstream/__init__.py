#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
The txstream package is a streaming client for transaction data.

It keeps one subscription to the 'chainstream' websocket API open
and counts the transactions that arrive. If the stream fails, the
subscription is set up again after a short pause. Statistics are
logged every few seconds.

Most important components/modules:

lifecycle
    The lifecycle driver - connects, subscribes, counts the incoming
    events, logs the statistics and reconnects after stream errors.
    The states and transitions are defined as a table, so they can
    be tested without a network connection.

websocket.ws_client
    JSON-RPC websocket client with support for subscriptions. One
    client handles one connection, with bounded buffers and keepalive
    pings.

websocket.publishers
    Hand the events over to downstream consumers (queue, ZeroMQ, ...)
    without ever blocking the driver.

util.subscription_filter
    The parameters for the subscription (network, account keys).

util.stats
    Counters for the stream and the periodic stats line.

config
    Static settings and the endpoint, which is built from the API
    token in the environment (CHAINSTREAM_TOKEN).

Connection errors when (re-)connecting are fatal. The process exits
and relies on a supervisor (systemd, docker, ...) to restart it.

Created on Sat Oct 17 08:40:03 2026

@author_ dhaneor
"""
__version__ = "0.1.0"
