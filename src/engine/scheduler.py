"""Tick-driven retry scheduler for power position reporting.

The scheduler ticks at a short fixed interval and counts ticks down to the next
reporting boundary. A report attempt runs at every boundary; failed attempts
are retried on the following ticks until the cycle's retry budget is spent.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Protocol

from engine.errors import PowerPositionError

LOGGER = logging.getLogger("power_position.scheduler")

SECONDS_IN_ONE_MINUTE = 60
DEFAULT_TICK_INTERVAL_SEC = 5.0
UNLIMITED_RETRIES = -1


class ReportGenerator(Protocol):
    """Produces one report per call; failures are raised as exceptions."""

    async def generate_report(self, report_time: datetime | None = None) -> Path: ...


class ReportingService(Protocol):
    """Start/stop hooks a service host drives."""

    async def start(self) -> None: ...

    async def stop(self) -> None: ...


@dataclass
class RetryState:
    ticks_remaining: int = 0
    retries_remaining: int | None = 0
    report_due: bool = False
    attempt_in_flight: bool = False


class RetryScheduler:
    """Runs reports every ``reporting_interval`` minutes with per-cycle retries.

    ``max_retries`` is the number of consecutive failed attempts tolerated in a
    cycle; ``UNLIMITED_RETRIES`` retries on every tick until a report succeeds.
    """

    def __init__(
        self,
        reporter: ReportGenerator,
        reporting_interval: int,
        max_retries: int,
        *,
        tick_interval: float = DEFAULT_TICK_INTERVAL_SEC,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        if reporting_interval < 1:
            raise ValueError("reporting_interval must be at least 1 minute")
        if max_retries < UNLIMITED_RETRIES:
            raise ValueError(
                f"max_retries must be >= 0 or {UNLIMITED_RETRIES} for unlimited"
            )
        if tick_interval <= 0:
            raise ValueError("tick_interval must be positive")
        ticks_per_minute = SECONDS_IN_ONE_MINUTE / tick_interval
        if abs(ticks_per_minute - round(ticks_per_minute)) > 1e-9:
            raise ValueError("tick_interval must divide 60 seconds evenly")
        self.reporter = reporter
        self.reporting_interval = reporting_interval
        self.max_retries = max_retries
        self.tick_interval = tick_interval
        self.clock = clock
        self.ticks_per_cycle = reporting_interval * round(ticks_per_minute)
        self._state = RetryState()
        self._tick_task: asyncio.Task | None = None
        self._attempt_task: asyncio.Task | None = None
        LOGGER.debug(
            "Scheduler created: interval=%d min, max_retries=%d, tick=%.1fs",
            reporting_interval,
            max_retries,
            tick_interval,
        )

    @property
    def state(self) -> RetryState:
        return replace(self._state)

    @property
    def is_running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    @property
    def unlimited_retries(self) -> bool:
        return self.max_retries == UNLIMITED_RETRIES

    def reset_cycle(self) -> None:
        self._state.ticks_remaining = self.ticks_per_cycle
        self._state.retries_remaining = (
            None if self.unlimited_retries else self.max_retries
        )

    async def start(self) -> None:
        """Run a report immediately, then start ticking towards the next boundary."""
        if self._tick_task is not None:
            raise RuntimeError("Scheduler already started")
        LOGGER.info("Service starting")
        self.reset_cycle()
        await self.run_attempt()
        self._tick_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        """Stop ticking. An attempt already in flight is left to finish."""
        LOGGER.info("Service stopping")
        task = self._tick_task
        self._tick_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def wait_idle(self) -> None:
        """Wait for an in-flight report attempt to finish."""
        task = self._attempt_task
        if task is not None and not task.done():
            await asyncio.wait([task])

    def tick(self) -> asyncio.Task | None:
        """Advance one tick and start a report attempt if one is due.

        Returns the task running the attempt, if one was started.
        """
        state = self._state
        state.ticks_remaining -= 1
        if state.ticks_remaining <= 0:
            LOGGER.debug("Reporting interval complete")
            state.report_due = True
            self.reset_cycle()

        if not state.report_due:
            return None
        if state.attempt_in_flight:
            LOGGER.debug("Report attempt still in flight, skipping tick")
            return None

        state.attempt_in_flight = True
        self._attempt_task = asyncio.create_task(self.run_attempt())
        return self._attempt_task

    async def run_attempt(self) -> bool:
        """Run one report attempt and update the retry budget. Returns success."""
        state = self._state
        state.attempt_in_flight = True
        state.report_due = False
        LOGGER.debug("Report run required")
        try:
            await self.reporter.generate_report(self.clock())
        except PowerPositionError as exc:
            LOGGER.warning("Report attempt failed: %s", exc)
            self._record_failure()
            return False
        except Exception:
            LOGGER.exception("Unexpected error during report attempt")
            self._record_failure()
            return False
        finally:
            state.attempt_in_flight = False
        return True

    def _record_failure(self) -> None:
        state = self._state
        if state.retries_remaining is None:
            LOGGER.info("Report failed - retrying until success")
            state.report_due = True
            return
        state.retries_remaining -= 1
        if state.retries_remaining > 0:
            LOGGER.info(
                "Report failed - %d retries remaining", state.retries_remaining
            )
            state.report_due = True
        else:
            LOGGER.info("Report failed - no retries remaining until next interval")

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            LOGGER.debug("Scheduler tick")
            self.tick()
