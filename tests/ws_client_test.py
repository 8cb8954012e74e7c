#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the websocket client, against an in-memory websocket.

Created on Sun Oct 18 17:15:09 2026

@author dhaneor
"""
import asyncio
import json
import pytest

from websockets.exceptions import ConnectionClosedError, InvalidURI

from txstream.config import Endpoint
from txstream.util.exceptions import ConnectError, TransportError
from txstream.websocket import ws_client as wsc

SUB_METHOD = "chainstream.transactionsSubscribe"
UNSUB_METHOD = "chainstream.transactionsUnsubscribe"
SUB_ID = 4432

_CLOSE = object()


# --------------------------------------------------------------------------------------
class FakeWebsocket:
    """Replies to requests and plays back the frames it was given."""

    def __init__(self, replies: dict | None = None):
        self.replies = replies or {
            SUB_METHOD: {"result": SUB_ID},
            UNSUB_METHOD: {"result": True},
        }
        self.followups: list[str] = []  # sent right after the next reply
        self.incoming: asyncio.Queue = asyncio.Queue()
        self.sent: list[dict] = []
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self):
        item = await self.incoming.get()

        if item is _CLOSE:
            raise StopAsyncIteration

        if isinstance(item, BaseException):
            raise item

        return item

    async def send(self, msg: str) -> None:
        req = json.loads(msg)
        self.sent.append(req)

        if (reply := self.replies.get(req["method"])) is not None:
            self.push({"jsonrpc": "2.0", "id": req["id"], **reply})

        for frame in self.followups:
            self.incoming.put_nowait(frame)

        self.followups = []

    async def close(self) -> None:
        self.closed = True

    def push(self, item) -> None:
        self.incoming.put_nowait(json.dumps(item) if isinstance(item, dict) else item)

    def notify(self, result, sub_id=SUB_ID) -> None:
        self.push(notification(result, sub_id))


def notification(result, sub_id=SUB_ID) -> dict:
    return {
        "jsonrpc": "2.0",
        "method": "chainstream.transactionsNotification",
        "params": {"subscription": sub_id, "result": result},
    }


async def subscribe(ws: FakeWebsocket, capacity: int = 100):
    client = wsc.WsClient(ws, buffer_capacity=capacity, request_timeout=1)
    sub = await client.subscribe(SUB_METHOD, {"network": "x"}, UNSUB_METHOD)
    return client, sub


# --------------------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_subscribe_sends_request_and_returns_handle():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    assert sub.id == SUB_ID
    assert ws.sent[0]["method"] == SUB_METHOD
    assert ws.sent[0]["params"] == {"network": "x"}
    assert ws.sent[0]["jsonrpc"] == "2.0"
    assert client.subscriptions == [sub]

    await client.close()


@pytest.mark.asyncio
async def test_events_are_delivered_in_order():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    for i in range(5):
        ws.notify({"n": i})

    payloads = [(await sub.next()).payload for _ in range(5)]

    assert payloads == [{"n": i} for i in range(5)]
    await client.close()


@pytest.mark.asyncio
async def test_notifications_right_after_subscribe_are_not_lost():
    ws = FakeWebsocket()
    ws.followups = [json.dumps(notification({"n": i})) for i in range(3)]
    client, sub = await subscribe(ws)

    payloads = [(await sub.next()).payload for _ in range(3)]

    assert payloads == [{"n": 0}, {"n": 1}, {"n": 2}]
    await client.close()


@pytest.mark.asyncio
async def test_unknown_and_invalid_messages_are_dropped():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    ws.push("this is not json")
    ws.notify({"n": "other"}, sub_id=999)
    ws.push({"jsonrpc": "2.0", "method": "server.hello", "params": []})
    ws.notify({"n": "mine"})

    event = await asyncio.wait_for(sub.next(), 1)

    assert event.payload == {"n": "mine"}
    assert event.subscription == SUB_ID
    await client.close()


@pytest.mark.asyncio
async def test_subscribe_error_response_raises_connect_error():
    ws = FakeWebsocket(
        replies={SUB_METHOD: {"error": {"code": -32602, "message": "invalid params"}}}
    )
    client = wsc.WsClient(ws, request_timeout=1)

    with pytest.raises(ConnectError, match="invalid params"):
        await client.subscribe(SUB_METHOD, {}, UNSUB_METHOD)

    await client.close()


@pytest.mark.asyncio
async def test_subscribe_without_response_times_out():
    ws = FakeWebsocket(replies={})
    client = wsc.WsClient(ws, request_timeout=0.05)

    with pytest.raises(ConnectError):
        await client.subscribe(SUB_METHOD, {}, UNSUB_METHOD)

    await client.close()


@pytest.mark.asyncio
async def test_clean_close_ends_stream_after_pending_events():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    ws.notify({"n": 1})
    ws.push(_CLOSE)

    assert (await sub.next()).payload == {"n": 1}
    assert await asyncio.wait_for(sub.next(), 1) is None
    assert await sub.next() is None
    assert sub.finished
    assert client.closed

    await client.close()


@pytest.mark.asyncio
async def test_connection_error_is_raised_by_next():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    ws.notify({"n": 1})
    ws.push(ConnectionClosedError(None, None))

    assert (await sub.next()).payload == {"n": 1}

    with pytest.raises(TransportError):
        await asyncio.wait_for(sub.next(), 1)

    # not restartable
    assert await sub.next() is None
    await client.close()


@pytest.mark.asyncio
async def test_async_iteration_stops_at_end_of_stream():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    for i in range(3):
        ws.notify(i)
    ws.push(_CLOSE)

    received = [event.payload async for event in sub]

    assert received == [0, 1, 2]
    await client.close()


@pytest.mark.asyncio
async def test_unsubscribe():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    await sub.unsubscribe()

    assert ws.sent[-1]["method"] == UNSUB_METHOD
    assert ws.sent[-1]["params"] == [SUB_ID]
    assert client.subscriptions == []
    assert await sub.next() is None

    # nothing to do the second time
    await sub.unsubscribe()
    assert len(ws.sent) == 2

    await client.close()


@pytest.mark.asyncio
async def test_unsubscribe_wakes_up_waiting_consumer():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    waiting = asyncio.create_task(sub.next())
    await asyncio.sleep(0.01)
    await sub.unsubscribe()

    assert await asyncio.wait_for(waiting, 1) is None
    await client.close()


@pytest.mark.asyncio
async def test_full_buffer_applies_backpressure():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws, capacity=2)

    for i in range(6):
        ws.notify(i)

    await asyncio.sleep(0.05)

    # the reader waits for the consumer instead of buffering everything
    assert sub.pending == 2
    assert ws.incoming.qsize() > 0

    received = [(await asyncio.wait_for(sub.next(), 1)).payload for _ in range(6)]

    assert received == list(range(6))
    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize("capacity", [1, 2])
async def test_unsubscribe_with_full_buffer(capacity):
    ws = FakeWebsocket()
    client, sub = await subscribe(ws, capacity=capacity)

    for i in range(5):
        ws.notify(i)

    await asyncio.sleep(0.05)
    assert sub.pending == capacity

    # the reader is stuck on the full buffer, but must still get
    # the response to the unsubscribe request
    await asyncio.wait_for(sub.unsubscribe(), 0.5)

    assert ws.sent[-1]["method"] == UNSUB_METHOD
    assert client.subscriptions == []
    assert await sub.next() is None
    assert not client.closed

    await client.close()


@pytest.mark.asyncio
async def test_only_notification_methods_are_routed():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    ws.push(
        {
            "jsonrpc": "2.0",
            "method": "chainstream.somethingElse",
            "params": {"subscription": SUB_ID, "result": {"n": "other"}},
        }
    )
    ws.notify({"n": "mine"})

    event = await asyncio.wait_for(sub.next(), 1)

    assert event.payload == {"n": "mine"}
    assert sub.pending == 0
    await client.close()


@pytest.mark.asyncio
async def test_close_ends_subscriptions_and_is_idempotent():
    ws = FakeWebsocket()
    client, sub = await subscribe(ws)

    await client.close()
    await client.close()

    assert ws.closed
    assert client.closed

    with pytest.raises(TransportError):
        await asyncio.wait_for(sub.next(), 1)

    with pytest.raises(TransportError):
        await client.request(UNSUB_METHOD, [SUB_ID])


@pytest.mark.asyncio
async def test_context_manager_closes_connection():
    ws = FakeWebsocket()

    async with wsc.WsClient(ws) as client:
        assert not client.closed

    assert ws.closed


# --------------------------------------------------------------------------------------
@pytest.mark.asyncio
async def test_connect_configures_transport(monkeypatch):
    ws, kwargs = FakeWebsocket(), {}

    async def fake_connect(url, **kw):
        kwargs.update(kw, url=url)
        return ws

    monkeypatch.setattr(wsc, "ws_connect", fake_connect)

    client = await wsc.connect(Endpoint.from_token("secret"))

    assert kwargs["url"] == "wss://api.syndica.io/api-token/secret"
    assert kwargs["ping_interval"] == 5
    assert kwargs["max_queue"] == 100
    assert client.buffer_capacity == 100

    await client.close()


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [
        OSError("connection refused"),
        asyncio.TimeoutError(),
        InvalidURI("wss://nowhere", "bad uri"),
    ],
)
async def test_connect_failure_raises_connect_error(monkeypatch, exc):
    async def fake_connect(url, **kw):
        raise exc

    monkeypatch.setattr(wsc, "ws_connect", fake_connect)

    with pytest.raises(ConnectError) as e:
        await wsc.connect(Endpoint.from_token("secret"))

    assert "secret" not in str(e.value)
