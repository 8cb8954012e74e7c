#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides a JSON-RPC websocket client with support for subscriptions.

One WsClient manages one websocket connection. A reader task receives
all messages from the server and routes them:

- responses go to the request that is waiting for them (by id)
- notifications go to the queue of their subscription (by
  subscription id)

The subscription queues are bounded (MAX_BUFFER_CAPACITY). If the
consumer falls behind, the reader waits for it, which stops reading
from the socket. That way a slow consumer applies backpressure to the
connection instead of letting the memory usage grow without limit.

The connection sends a websocket ping every PING_INTERVAL seconds. If
the server does not answer within PING_TIMEOUT seconds, the connection
is closed and all subscriptions end with a TransportError.

This module uses the asyncio client implementation from the websockets
library.

Usage:

..code:: python
async with await connect(endpoint) as client:
    sub = await client.subscribe(
        "chainstream.transactionsSubscribe",
        params,
        "chainstream.transactionsUnsubscribe",
    )

    async for event in sub:
        ...

Created on Sat Oct 17 13:48:55 2026

@author dhaneor
"""
import asyncio
import itertools
import logging
import time

from typing import Any, Callable, NamedTuple, Optional

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import (
    ConnectionClosed,
    ConnectionClosedError,
    WebSocketException,
)

from txstream import config as cnf
from txstream.config import Endpoint
from txstream.util.exceptions import ConnectError, StreamEnded, TransportError
from txstream.websocket import jsonrpc

logger = logging.getLogger("main.websocket")

_conn_no = itertools.count(1)
_WAKEUP = object()


class Event(NamedTuple):
    """One notification from a subscription."""

    subscription: Any
    payload: Any
    received_at: float


# ======================================================================================
class Subscription:
    """One active subscription on a WsClient connection.

    Events are delivered in the order they were received. The
    subscription ends (for good) on the first error or when the
    stream is closed.
    """

    def __init__(
        self,
        client: "WsClient",
        sub_id: Any,
        unsubscribe_method: str,
        capacity: int = cnf.MAX_BUFFER_CAPACITY,
    ):
        self.client = client
        self.id = sub_id
        self.unsubscribe_method = unsubscribe_method

        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._terminal: Optional[TransportError] = None
        self._finished: bool = False

    def __repr__(self) -> str:
        return f"Subscription(id={self.id}, client={self.client.name})"

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.next()

        if event is None:
            raise StopAsyncIteration

        return event

    @property
    def finished(self) -> bool:
        return self._finished

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ..................................................................................
    async def next(self) -> Optional[Event]:
        """Wait for the next event.

        Returns
        -------
        Optional[Event]
            the next event, None if the stream has ended

        Raises
        ------
        TransportError
            if the transport reported an error
        """
        if self._finished:
            return None

        if self._terminal is not None and self._queue.empty():
            return self._end(self._terminal)

        item = await self._queue.get()

        if item is _WAKEUP:
            return self._end(self._terminal)

        return item

    async def unsubscribe(self) -> None:
        """End the subscription and tell the server about it.

        Raises
        ------
        TransportError
            if the server could not be told (the subscription is
            ended on our side anyway)
        """
        # nothing to tell the server, if the stream has ended already
        if self._finished or self._terminal is not None:
            self._finished = True
            return

        self._finished = True
        self.client._detach(self)
        self._discard(StreamEnded(f"{self} unsubscribed"))

        result = await self.client.request(self.unsubscribe_method, [self.id])

        if not result:
            logger.warning("server refused to unsubscribe %s: %s", self, result)
        else:
            logger.info("%s: unsubscribed from %s", self.client.name, self.id)

    # ..................................................................................
    async def _deliver(self, event: Event) -> None:
        await self._queue.put(event)

    def _abort(self, exc: TransportError) -> None:
        """Mark the end of the stream (never blocks)."""
        if self._terminal is not None:
            return

        self._terminal = exc

        # wake up a waiting consumer, if the queue is full the
        # consumer will find the terminal state after draining it
        try:
            self._queue.put_nowait(_WAKEUP)
        except asyncio.QueueFull:
            pass

    def _discard(self, exc: TransportError) -> None:
        """End the stream and drop the events nobody will consume.

        A non-empty queue means that nobody is waiting in next(), but
        the reader may be waiting for a free slot. Emptying the queue
        lets it go on (and read the response to our unsubscribe request).
        """
        if self._queue.empty():
            self._abort(exc)
            return

        self._terminal = exc

        while not self._queue.empty():
            self._queue.get_nowait()

    def _end(self, exc: Optional[TransportError]) -> None:
        """Finish the stream: None for a regular end, raise otherwise."""
        self._finished = True

        if exc is None or isinstance(exc, StreamEnded):
            return None

        raise exc


# ======================================================================================
class WsClient:
    """Helper class that manages one websocket connection."""

    def __init__(
        self,
        ws: Any,
        buffer_capacity: int = cnf.MAX_BUFFER_CAPACITY,
        request_timeout: float = cnf.REQUEST_TIMEOUT,
    ):
        """Initializes a new WsClient instance.

        Parameters
        ----------
        ws
            an open websocket connection
        buffer_capacity : int, optional
            max number of pending events per subscription, by default 100
        request_timeout : float, optional
            seconds to wait for a response, by default 30
        """
        self.ws = ws
        self.buffer_capacity = buffer_capacity
        self.request_timeout = request_timeout
        self.name = f"conn-{next(_conn_no)}"

        self._ids = jsonrpc.request_ids()
        self._pending: dict[int, tuple[asyncio.Future, Optional[Callable]]] = {}
        self._subscriptions: dict[Any, Subscription] = {}
        self._closed: bool = False
        self._ws_closed: bool = False

        self._reader = asyncio.create_task(self._read(), name=f"{self.name}-reader")

        logger.debug("%s created", self.name)

    def __repr__(self) -> str:
        return f"WsClient(name={self.name}, subscriptions={len(self._subscriptions)})"

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriptions(self) -> list[Subscription]:
        return list(self._subscriptions.values())

    # ..................................................................................
    async def request(
        self,
        method: str,
        params: Any,
        on_result: Optional[Callable] = None,
    ) -> Any:
        """Send a request and wait for the response.

        Parameters
        ----------
        method : str
            name of the remote method
        params : Any
            parameters for the remote method
        on_result : Optional[Callable], optional
            called by the reader with the response, its return value
            becomes the result of the request, by default None

        Returns
        -------
        Any
            the result from the response

        Raises
        ------
        TransportError
            on error responses, timeouts and closed connections
        """
        if self._closed:
            raise TransportError(f"{self.name}: connection is closed")

        req_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[req_id] = (future, on_result)

        try:
            await self.ws.send(jsonrpc.encode_request(req_id, method, params))
            return await asyncio.wait_for(future, self.request_timeout)
        except ConnectionClosed as e:
            raise TransportError(f"{self.name}: connection closed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(
                f"{self.name}: no response for {method} "
                f"within {self.request_timeout}s"
            ) from e
        finally:
            self._pending.pop(req_id, None)

    async def subscribe(
        self,
        method: str,
        params: Any,
        unsubscribe_method: str,
    ) -> Subscription:
        """Subscribe to a stream of notifications.

        Parameters
        ----------
        method : str
            name of the subscribe method
        params : Any
            parameters for the subscribe method
        unsubscribe_method : str
            name of the method that ends the subscription

        Returns
        -------
        Subscription

        Raises
        ------
        ConnectError
            if the subscription could not be negotiated
        """

        def register(response: jsonrpc.Response) -> Subscription:
            # runs in the reader, before any notification for this
            # subscription can be routed
            sub = Subscription(
                self, response.result, unsubscribe_method, self.buffer_capacity
            )
            self._subscriptions[sub.id] = sub
            return sub

        try:
            sub = await self.request(method, params, on_result=register)
        except TransportError as e:
            raise ConnectError(f"{method} failed: {e}") from e

        logger.info("%s: subscribed with %s --> id: %s", self.name, method, sub.id)
        return sub

    async def close(self) -> None:
        """Closes the connection."""
        if self._ws_closed:
            return

        self._closed = self._ws_closed = True

        if not self._reader.done():
            self._reader.cancel()

        try:
            await self._reader
        except asyncio.CancelledError:
            pass

        try:
            await self.ws.close()
        except Exception as e:
            logger.warning("%s: error while closing the websocket: %s", self.name, e)

        logger.info("%s: connection closed", self.name)

    # ..................................................................................
    async def _read(self) -> None:
        exc: TransportError = StreamEnded(f"{self.name}: stream closed by server")

        try:
            async for raw in self.ws:
                try:
                    msg = jsonrpc.decode(raw)
                except ValueError as e:
                    logger.warning("%s: unable to decode message: %s", self.name, e)
                    continue

                if isinstance(msg, jsonrpc.Notification):
                    await self._route(msg)
                elif isinstance(msg, jsonrpc.Response):
                    self._resolve(msg)
                else:
                    logger.debug("%s: ignoring message: %s", self.name, raw)

        except ConnectionClosedError as e:
            exc = TransportError(f"{self.name}: connection lost: {e}")
        except asyncio.CancelledError:
            exc = TransportError(f"{self.name}: connection closed by client")
            raise
        except Exception as e:
            logger.error("%s: unexpected error in reader: %s", self.name, e, exc_info=1)
            exc = TransportError(f"{self.name}: reader failed: {e}")
        finally:
            self._fail_all(exc)

    async def _route(self, msg: jsonrpc.Notification) -> None:
        if not msg.method.endswith(cnf.NOTIFICATION_SUFFIX):
            logger.debug("%s: ignoring method: %s", self.name, msg.method)
            return

        sub = self._subscriptions.get(msg.subscription)

        if sub is None or sub.finished:
            logger.debug(
                "%s: notification for unknown subscription: %s",
                self.name, msg.subscription
            )
            return

        await sub._deliver(Event(msg.subscription, msg.result, time.time()))

    def _resolve(self, response: jsonrpc.Response) -> None:
        future, on_result = self._pending.pop(response.id, (None, None))

        if future is None or future.done():
            logger.debug("%s: unexpected response: %s", self.name, response)
            return

        if not response.ok:
            future.set_exception(TransportError(jsonrpc.format_error(response.error)))
        elif on_result is not None:
            future.set_result(on_result(response))
        else:
            future.set_result(response.result)

    def _detach(self, sub: Subscription) -> None:
        self._subscriptions.pop(sub.id, None)

    def _fail_all(self, exc: TransportError) -> None:
        self._closed = True

        for future, _ in self._pending.values():
            if not future.done():
                future.set_exception(TransportError(str(exc)))

        for sub in self._subscriptions.values():
            sub._abort(exc)

        self._pending.clear()
        self._subscriptions.clear()


# --------------------------------------------------------------------------------------
async def connect(
    endpoint: Endpoint,
    buffer_capacity: int = cnf.MAX_BUFFER_CAPACITY,
    ping_interval: float = cnf.PING_INTERVAL,
    ping_timeout: float = cnf.PING_TIMEOUT,
    open_timeout: float = cnf.OPEN_TIMEOUT,
    request_timeout: float = cnf.REQUEST_TIMEOUT,
) -> WsClient:
    """Open a websocket connection to the endpoint.

    Parameters
    ----------
    endpoint : Endpoint
        where to connect to
    buffer_capacity : int, optional
        max number of pending messages per subscription, by default 100
    ping_interval : float, optional
        seconds between keepalive pings, by default 5
    ping_timeout : float, optional
        seconds to wait for the pong, by default 20
    open_timeout : float, optional
        seconds to wait for the opening handshake, by default 10
    request_timeout : float, optional
        seconds to wait for responses to requests, by default 30

    Returns
    -------
    WsClient

    Raises
    ------
    ConnectError
        if the connection could not be established
    """
    try:
        ws = await ws_connect(
            endpoint.url,
            ping_interval=ping_interval,
            ping_timeout=ping_timeout,
            open_timeout=open_timeout,
            max_queue=buffer_capacity,
        )
    except (OSError, asyncio.TimeoutError, WebSocketException) as e:
        raise ConnectError(f"unable to connect to {endpoint.redacted_url}: {e}") from e

    logger.info("connected to %s", endpoint.redacted_url)
    return WsClient(ws, buffer_capacity=buffer_capacity, request_timeout=request_timeout)
