#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration file with the basic settings for the txstream client.

Everything here is static, except for the API token, which must be
provided by the environment (CHAINSTREAM_TOKEN).

Created on Sat Oct 17 09:31:02 2026

@author_ dhaneor
"""
import os

from dataclasses import dataclass
from typing import Mapping

from txstream.util.exceptions import ConfigError

# endpoint
BASE_URL = "wss://api.syndica.io/api-token/{token}"
TOKEN_ENV_VAR = "CHAINSTREAM_TOKEN"

# logging
LOG_LABEL = "txstream"
LOG_ENV_VAR = "TXSTREAM_LOG"  # level directive, e.g. 'debug'
LOG_DIR_ENV_VAR = "TXSTREAM_LOG_DIR"
PUBLISH_ADDR_ENV_VAR = "TXSTREAM_PUBLISH_ADDR"  # e.g. tcp://127.0.0.1:5590
DEFAULT_LOG_LEVEL = "info"

# subscription
SUBSCRIBE_METHOD = "chainstream.transactionsSubscribe"
UNSUBSCRIBE_METHOD = "chainstream.transactionsUnsubscribe"
NOTIFICATION_SUFFIX = "Notification"  # chainstream.transactionsNotification

NETWORK = "solana-mainnet"
VERIFIED = False

INCLUDE_KEYS = (
    "TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA",
)

EXCLUDE_KEYS = (
    "675kPX9MHTjS2zt1qfr1NYHuzeLXfQM9H24wFSUt1Mp8",
    "5Q544fKrFoe6tsEbD7S8EmxGTJYAKtTVhAW5Q5pge4j1",
    "SysvarRent111111111111111111111111111111111",
    "PhoeNiXZ8ByJGLkxNfZRnkUfjvmuYqLR89jjFHGqdXY",
    "JUP6LkbZbjS1jKKwapdHNy74zcZ3tLUZoi5QNyVTaV4",
    "SW1TCH7qEPTdLsDHRgPuMQjbQxKdH2aBStViMFnt64f",
    "SAGEqqFewepDHH6hMDcmWy7yjHPpyKLDnRXKb3Ki8e6",
    "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",
    "LBUZKhRxPF3XUpBCjp4YzTKgLccjZhTSDM9YuVaPwxo",
    "Eo7WjKq67rjJQSZxS6z3YkapzY3eMj6Xy8X5EQVn5UaB",
    "FLUXubRmkEi2q6K3Y9kBPg9248ggaZVsoSFhtJHSrm1X",
    "ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL",
    "481s8XFACzEbQokBjoZWUv976233jGP9k6SzN2Lu8fLt",
    "Dooar9JkhdZ7J3LHN3A7YCuoGRUggXhQaG4kijfLGU2j",
    "2wT8Yq49kHgDzXuPxZSaeLaH1qbmGXtEyPy64bL7aD3c",
    "GJRs4FwHtemZ5ZE9x3FNvJ8TMwitKTh21yxdRPqn7npE",
    "AC5RDfQFmDS1deWZos921JfqscXdByf8BKHs5ACWjtW2",
    "5tzFkiKscXHK5ZXCGbXZxdw7gTjjD1mBwuoFbhUvuAi9",
    "BmFdpraQhkiDQE6SnfG5omcA1VwzqfXrwtNYBwWTymy6",
)

# transport
MAX_BUFFER_CAPACITY = 100  # pending messages per subscription
PING_INTERVAL = 5  # seconds
PING_TIMEOUT = 20  # seconds
OPEN_TIMEOUT = 10  # seconds
REQUEST_TIMEOUT = 30  # seconds

# lifecycle
STATS_INTERVAL = 5  # seconds
BACKOFF_DELAY = 1  # seconds


# ======================================================================================
@dataclass(frozen=True)
class Endpoint:
    """Connection endpoint for the streaming API."""

    scheme: str
    host: str
    token: str

    def __repr__(self) -> str:
        return f"Endpoint(scheme={self.scheme!r}, host={self.host!r}, token='***')"

    @property
    def url(self) -> str:
        return f"{self.scheme}://{self.host}/api-token/{self.token}"

    @property
    def redacted_url(self) -> str:
        return f"{self.scheme}://{self.host}/api-token/***"

    @staticmethod
    def from_token(token: str, base_url: str = BASE_URL) -> "Endpoint":
        url = base_url.format(token=token)
        scheme, rest = url.split("://", 1)
        return Endpoint(scheme=scheme, host=rest.split("/", 1)[0], token=token)


def load_endpoint(environ: Mapping[str, str] = os.environ) -> Endpoint:
    """Build the endpoint from the API token in the environment.

    Parameters
    ----------
    environ : Mapping[str, str], optional
        where to look for the token, by default os.environ

    Returns
    -------
    Endpoint

    Raises
    ------
    ConfigError
        if the token is not set or empty
    """
    token = environ.get(TOKEN_ENV_VAR, "").strip()

    if not token:
        raise ConfigError(f"{TOKEN_ENV_VAR} env var not provided")

    return Endpoint.from_token(token)
