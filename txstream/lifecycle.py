#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides the lifecycle driver for the transactions subscription.

The driver keeps one subscription alive forever:

    CONNECTING --> SUBSCRIBED --> BACKOFF --> CONNECTING --> ...

CONNECTING
    open the connection and negotiate the subscription. Any error here
    is fatal and is raised to the caller (ConnectError). We do not try
    to find out if the problem is permanent or not, the process is
    supposed to be restarted by a supervisor.

SUBSCRIBED
    wait for whatever comes first: the next event, the stats timer or
    a shutdown request. Events are only counted (and optionally handed
    to a publisher), so the work per event is constant. An error or the
    end of the stream moves us to BACKOFF.

BACKOFF
    tear down connection and subscription (best effort), wait for
    BACKOFF_DELAY seconds, then start over.

STOPPED
    only reached after stop() was called.

The transitions are defined in a table and computed by the pure
function transition(), which returns the next state and the effects
that the driver has to execute. This keeps the state machine testable
without a network connection.

Created on Sun Oct 18 08:55:12 2026

@author dhaneor
"""
import asyncio
import logging
import time

from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from txstream import config as cnf
from txstream.config import Endpoint
from txstream.util.exceptions import TransportError
from txstream.util.stats import StreamStats
from txstream.util.subscription_filter import SubscriptionFilter
from txstream.websocket import ws_client
from txstream.websocket.publishers import IPublisher

logger = logging.getLogger("main.driver")

TEARDOWN_TIMEOUT = 2  # seconds


class State(Enum):
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    BACKOFF = "backoff"
    STOPPED = "stopped"


class Trigger(Enum):
    START = "start"
    CONNECTED = "connected"
    SUBSCRIBED = "subscribed"
    TICK = "tick"
    UPDATE = "update"
    ERROR = "error"
    ENDED = "ended"
    BACKOFF_DONE = "backoff done"
    SHUTDOWN = "shutdown"


class Effect(Enum):
    CONNECT = "connect"
    SUBSCRIBE = "subscribe"
    FLUSH = "flush"
    RECORD_SUCCESS = "record success"
    RECORD_FAILURE = "record failure"
    PUBLISH = "publish"
    TEARDOWN = "teardown"
    SLEEP = "sleep"
    LOG_RESTART = "log restart"


_STREAM_FAILED = (
    State.BACKOFF, (Effect.RECORD_FAILURE, Effect.TEARDOWN, Effect.SLEEP)
)
_STOP = (State.STOPPED, (Effect.TEARDOWN,))

TRANSITIONS: dict[tuple[State, Trigger], tuple[State, tuple[Effect, ...]]] = {
    (State.CONNECTING, Trigger.START): (State.CONNECTING, (Effect.CONNECT,)),
    (State.CONNECTING, Trigger.CONNECTED): (State.CONNECTING, (Effect.SUBSCRIBE,)),
    (State.CONNECTING, Trigger.SUBSCRIBED): (State.SUBSCRIBED, ()),
    (State.CONNECTING, Trigger.SHUTDOWN): _STOP,
    (State.SUBSCRIBED, Trigger.TICK): (State.SUBSCRIBED, (Effect.FLUSH,)),
    (State.SUBSCRIBED, Trigger.UPDATE): (
        State.SUBSCRIBED, (Effect.RECORD_SUCCESS, Effect.PUBLISH)
    ),
    (State.SUBSCRIBED, Trigger.ERROR): _STREAM_FAILED,
    (State.SUBSCRIBED, Trigger.ENDED): _STREAM_FAILED,
    (State.SUBSCRIBED, Trigger.SHUTDOWN): _STOP,
    (State.BACKOFF, Trigger.BACKOFF_DONE): (
        State.CONNECTING, (Effect.LOG_RESTART, Effect.CONNECT)
    ),
    (State.BACKOFF, Trigger.SHUTDOWN): _STOP,
}


def transition(state: State, trigger: Trigger) -> tuple[State, tuple[Effect, ...]]:
    """Compute the next state and the effects for a trigger.

    Parameters
    ----------
    state : State
        the current state
    trigger : Trigger
        what happened

    Returns
    -------
    tuple[State, tuple[Effect, ...]]
        the next state and the effects to execute, in order

    Raises
    ------
    ValueError
        if the trigger is not valid in this state
    """
    try:
        return TRANSITIONS[(state, trigger)]
    except KeyError:
        raise ValueError(
            f"invalid trigger for state {state.value}: {trigger.value}"
        ) from None


# ======================================================================================
class Interval:
    """Timer with a fixed cadence, ticks that were missed are skipped."""

    def __init__(self, period: float):
        self.period = period
        self._deadline = time.monotonic() + period

    async def tick(self) -> None:
        delay = self._deadline - time.monotonic()

        if delay > 0:
            await asyncio.sleep(delay)

        behind = time.monotonic() - self._deadline
        self._deadline += (int(behind // self.period) + 1) * self.period


class LifecycleDriver:
    """Keeps one subscription alive and reports its statistics."""

    def __init__(
        self,
        endpoint: Endpoint,
        sub_filter: SubscriptionFilter,
        stats: Optional[StreamStats] = None,
        publisher: Optional[IPublisher] = None,
        connect: Callable[[Endpoint], Awaitable[Any]] = ws_client.connect,
        stats_interval: float = cnf.STATS_INTERVAL,
        backoff_delay: float = cnf.BACKOFF_DELAY,
        interval: Optional[Interval] = None,
        max_cycles: Optional[int] = None,
    ):
        """Initializes a new LifecycleDriver instance.

        Parameters
        ----------
        endpoint : Endpoint
            where to connect to
        sub_filter : SubscriptionFilter
            parameters for the subscription, reused for every cycle
        stats : Optional[StreamStats], optional
            the counters to update, by default a new StreamStats
        publisher : Optional[IPublisher], optional
            where to hand the events over to, by default None
            (events are only counted)
        connect : Callable, optional
            connection factory, by default ws_client.connect
        stats_interval : float, optional
            seconds between two stats lines, by default 5
        backoff_delay : float, optional
            seconds to wait before reconnecting, by default 1
        interval : Optional[Interval], optional
            timer for the stats lines, by default an Interval with
            stats_interval as period
        max_cycles : Optional[int], optional
            stop after this many connection cycles, by default None
            (run forever)
        """
        self.endpoint = endpoint
        self.sub_filter = sub_filter
        self.stats = stats or StreamStats(interval=int(stats_interval))
        self.publisher = publisher
        self.connect = connect
        self.stats_interval = stats_interval
        self.backoff_delay = backoff_delay
        self.interval = interval
        self.max_cycles = max_cycles

        self.state: State = State.CONNECTING
        self.cycles: int = 0

        self.client: Any = None
        self.subscription: Any = None

        self._params = sub_filter.to_params()
        self._event: Any = None
        self._next_task: Optional[asyncio.Future] = None
        self._tick_task: Optional[asyncio.Future] = None
        self._stop_task: Optional[asyncio.Future] = None
        self._stop: Optional[asyncio.Event] = None

    def __repr__(self) -> str:
        return f"LifecycleDriver(state={self.state.value}, cycles={self.cycles})"

    # ..................................................................................
    async def run(self) -> None:
        """Run until stop() is called (or max_cycles is reached).

        Raises
        ------
        ConnectError
            if a connection or subscription could not be established
        """
        self._stop = self._stop or asyncio.Event()
        self._stop_task = asyncio.ensure_future(self._stop.wait())
        self.interval = self.interval or Interval(self.stats_interval)
        self.state = State.CONNECTING

        logger.info("starting lifecycle driver for %s", self.endpoint.redacted_url)

        try:
            trigger: Optional[Trigger] = Trigger.START

            while self.state is not State.STOPPED:
                trigger = await self.handle(trigger)

                if trigger is None and self.state is State.SUBSCRIBED:
                    trigger = await self._wait()

        finally:
            await self._teardown()

            for task in (self._stop_task, self._tick_task):
                if task is not None and not task.done():
                    task.cancel()

            self._stop_task = self._tick_task = None

        logger.info(
            "lifecycle driver stopped after %s cycle(s) | total_updates=%s failures=%s",
            self.cycles, self.stats.total_updates, self.stats.failures
        )

    def stop(self) -> None:
        """Request a graceful shutdown."""
        if self._stop is None:
            self._stop = asyncio.Event()

        self._stop.set()

    async def handle(self, trigger: Trigger) -> Optional[Trigger]:
        """Apply a trigger and execute the resulting effects.

        Returns
        -------
        Optional[Trigger]
            the trigger produced by the effects, or None if the driver
            has to wait for the next event
        """
        self.state, effects = transition(self.state, trigger)
        next_trigger = None

        for effect in effects:
            next_trigger = await self._execute(effect) or next_trigger

        return next_trigger

    # ..................................................................................
    async def _execute(self, effect: Effect) -> Optional[Trigger]:
        match effect:

            case Effect.RECORD_SUCCESS:
                self.stats.record_success()

            case Effect.PUBLISH:
                if self.publisher is not None:
                    self.publisher.publish_nowait(self._event)

            case Effect.FLUSH:
                self.stats.flush(logger)

            case Effect.RECORD_FAILURE:
                self.stats.record_failure()

            case Effect.CONNECT:
                return await self._connect()

            case Effect.SUBSCRIBE:
                return await self._subscribe()

            case Effect.TEARDOWN:
                await self._teardown()

            case Effect.SLEEP:
                return await self._sleep()

            case Effect.LOG_RESTART:
                self.stats.record_reconnect()
                logger.warning("Restarting subscription...")

        return None

    async def _connect(self) -> Trigger:
        if self._stop.is_set():
            return Trigger.SHUTDOWN

        self.cycles += 1
        self.client = await self.connect(self.endpoint)
        return Trigger.CONNECTED

    async def _subscribe(self) -> Trigger:
        self.subscription = await self.client.subscribe(
            cnf.SUBSCRIBE_METHOD, self._params, cnf.UNSUBSCRIBE_METHOD
        )
        logger.info("subscription started (cycle %s)", self.cycles)
        return Trigger.SUBSCRIBED

    async def _sleep(self) -> Trigger:
        try:
            await asyncio.wait_for(asyncio.shield(self._stop_task), self.backoff_delay)
        except asyncio.TimeoutError:
            pass
        else:
            return Trigger.SHUTDOWN

        if self.max_cycles is not None and self.cycles >= self.max_cycles:
            logger.info("reached max cycles (%s) ... stopping", self.max_cycles)
            return Trigger.SHUTDOWN

        return Trigger.BACKOFF_DONE

    async def _wait(self) -> Trigger:
        """Wait for the next event, the stats timer or the stop signal."""
        if self._next_task is None:
            self._next_task = asyncio.ensure_future(self.subscription.next())

        if self._tick_task is None:
            self._tick_task = asyncio.ensure_future(self.interval.tick())

        await asyncio.wait(
            (self._next_task, self._tick_task, self._stop_task),
            return_when=asyncio.FIRST_COMPLETED,
        )

        # a received event (or error) is handled before the stop signal,
        # the stop signal is still set when we come back here
        if self._next_task.done():
            task, self._next_task = self._next_task, None
            return self._on_next(task)

        if self._stop_task.done():
            return Trigger.SHUTDOWN

        self._tick_task = None
        return Trigger.TICK

    def _on_next(self, task: asyncio.Future) -> Trigger:
        try:
            event = task.result()
        except TransportError as e:
            logger.error("Error: %s", e, exc_info=1)
            return Trigger.ERROR

        if event is None:
            logger.error("Received None from subscription stream. Exiting...")
            return Trigger.ENDED

        # no work here, the event is only counted and handed over
        self._event = event
        return Trigger.UPDATE

    async def _teardown(self) -> None:
        """Discard subscription and connection, errors are only logged."""
        if self._next_task is not None:
            self._next_task.cancel()
            self._next_task = None

        sub, self.subscription = self.subscription, None
        client, self.client = self.client, None
        self._event = None

        if sub is not None:
            try:
                await asyncio.wait_for(sub.unsubscribe(), TEARDOWN_TIMEOUT)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("unable to unsubscribe: %s", e)

        if client is not None:
            try:
                await asyncio.wait_for(client.close(), TEARDOWN_TIMEOUT)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning("unable to close the connection: %s", e)
