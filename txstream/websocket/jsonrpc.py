#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides encoding/decoding of JSON-RPC 2.0 messages for the websocket client.

We only need a small part of the protocol:

- requests (subscribe/unsubscribe) that we send to the server
- responses to these requests, matched by id
- subscription notifications, matched by subscription id

A NOTIFICATION looks like this:

..code:: python
{
    "jsonrpc": "2.0",
    "method": "chainstream.transactionsNotification",
    "params": {
        "subscription": 4432098732,
        "result": {...}
    }
}

Created on Sat Oct 17 12:20:08 2026

@author dhaneor
"""
import json

from typing import Any, NamedTuple, Optional, Union

JSONRPC_VERSION = "2.0"


class Response(NamedTuple):
    """Response to one of our requests."""

    id: int
    result: Any = None
    error: Optional[dict] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Notification(NamedTuple):
    """Subscription notification pushed by the server."""

    method: str
    subscription: Any
    result: Any


MessageT = Union[Response, Notification, None]


def request_ids():
    """Generate never-ending series of request ids."""
    req_id = 1
    while True:
        yield req_id
        req_id += 1


def encode_request(req_id: int, method: str, params: Any) -> str:
    return json.dumps(
        {"jsonrpc": JSONRPC_VERSION, "id": req_id, "method": method, "params": params}
    )


def decode(raw: str | bytes) -> MessageT:
    """Decode one message from the server.

    Parameters
    ----------
    raw : str | bytes
        the websocket frame

    Returns
    -------
    MessageT
        a Response or a Notification, None if the message is neither
        of these (server side requests, batches, ...)

    Raises
    ------
    ValueError
        if the frame is not valid JSON
    """
    msg = json.loads(raw)

    if not isinstance(msg, dict):
        return None

    if "id" in msg and msg.get("id") is not None and "method" not in msg:
        return Response(
            id=msg["id"], result=msg.get("result"), error=msg.get("error")
        )

    params = msg.get("params")

    if "method" in msg and isinstance(params, dict) and "subscription" in params:
        return Notification(
            method=msg["method"],
            subscription=params["subscription"],
            result=params.get("result"),
        )

    return None


def format_error(error: Optional[dict]) -> str:
    if not isinstance(error, dict):
        return str(error)

    return f"[{error.get('code')}] {error.get('message')}"
