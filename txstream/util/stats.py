#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Provides the statistics for the subscription stream.

The counters are written by the lifecycle driver only. The stats line
is sent to the logger every STATS_INTERVAL seconds and looks like this:

>>> subscription stats | updates_over_last_5s=317 total_updates=48213
>>>     failures=2 reconnects=2

Created on Sat Oct 17 10:40:51 2026

@author dhaneor
"""
import logging
import time

from dataclasses import dataclass, field

logger = logging.getLogger("main.stats")


@dataclass
class StreamStats:
    """Process-wide counters for one subscription stream."""

    interval: int = 5  # seconds, only used for the label in the stats line
    total_updates: int = 0
    failures: int = 0
    window_count: int = 0
    reconnects: int = 0
    started_at: float = field(default_factory=time.monotonic)

    # ..................................................................................
    def record_success(self) -> None:
        self.total_updates += 1
        self.window_count += 1

    def record_failure(self) -> None:
        self.failures += 1

    def record_reconnect(self) -> None:
        self.reconnects += 1

    def snapshot(self) -> dict[str, int]:
        return {
            f"updates_over_last_{self.interval}s": self.window_count,
            "total_updates": self.total_updates,
            "failures": self.failures,
            "reconnects": self.reconnects,
        }

    def flush(self, sink: logging.Logger | None = None) -> dict[str, int]:
        """Log the current stats and start a new window.

        Parameters
        ----------
        sink : logging.Logger | None, optional
            where to send the stats line, by default the module logger

        Returns
        -------
        dict[str, int]
            the values that were logged
        """
        snapshot = self.snapshot()

        (sink or logger).info(
            "subscription stats | %s",
            " ".join(f"{k}={v}" for k, v in snapshot.items())
        )

        self.window_count = 0
        return snapshot
