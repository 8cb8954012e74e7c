#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides the exceptions for the txstream components.

ConfigError and ConnectError are fatal: they end the process and leave
the restart to an external supervisor. TransportError (and its special
case StreamEnded) is raised by an active subscription and makes the
lifecycle driver reconnect.

Created on Sat Oct 17 09:12:44 2026

@author_ dhaneor
"""


class TxStreamError(Exception):
    """Base class for all txstream errors."""


class ConfigError(TxStreamError):
    """Required configuration (the API token) is missing or invalid."""


class ConnectError(TxStreamError):
    """Opening the connection or negotiating the subscription failed."""


class TransportError(TxStreamError):
    """An active subscription reported an error."""


class StreamEnded(TransportError):
    """The subscription stream ended without an error."""
