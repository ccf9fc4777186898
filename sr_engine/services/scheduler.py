"""
Batch scheduler
Fires the batch calculation on wall-clock interval boundaries without overlapping runs.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Iterable, Optional, Set, Union

from ..types import BatchSummary, Symbol, Timeframe
from ..utils.exceptions import log_exception
from ..utils.logger import LoggerMixin
from .calculation_service import SRCalculationService


class RunState(str, Enum):
    """Lifecycle of the batch run token"""
    IDLE = "idle"
    RUNNING = "running"


def next_run_time(now: datetime, interval_minutes: int) -> datetime:
    """
    Next interval boundary strictly after ``now``, counted from midnight.

    With a 10 minute interval 10:07:30 gives 10:10:00 and 10:10:00 gives 10:20:00.
    """
    midnight = now.replace(hour=0, minute=0, second=0, microsecond=0)
    elapsed_minutes = (now - midnight).total_seconds() / 60
    slots = int(elapsed_minutes // interval_minutes) + 1
    return midnight + timedelta(minutes=slots * interval_minutes)


class BatchScheduler(LoggerMixin):
    """
    Periodic trigger for :meth:`SRCalculationService.run_batch`.

    The run token is checked and set without an intervening await, so a
    trigger that fires while a batch is still running is skipped instead
    of starting a second, overlapping batch.
    """

    def __init__(
        self,
        service: SRCalculationService,
        symbols: Optional[Iterable[Union[str, Symbol]]] = None,
        timeframes: Optional[Iterable[Union[str, Timeframe]]] = None,
        interval_minutes: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        service_config = service.config.service
        self.service = service
        self.symbols = list(symbols) if symbols is not None else list(service_config.symbols)
        self.timeframes = list(timeframes) if timeframes is not None else list(service_config.timeframes)
        self.interval_minutes = interval_minutes or service_config.batch_interval_minutes
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self._state = RunState.IDLE
        self._tasks: Set[asyncio.Task] = set()
        self.last_summary: Optional[BatchSummary] = None
        self.completed_runs = 0
        self.skipped_runs = 0

    @property
    def state(self) -> RunState:
        return self._state

    async def trigger(self) -> Optional[BatchSummary]:
        """Run one batch unless another is in progress; returns None when skipped"""
        if self._state is RunState.RUNNING:
            self.skipped_runs += 1
            self.logger.warning("Previous batch still running, skipping trigger", skipped=self.skipped_runs)
            return None

        self._state = RunState.RUNNING
        try:
            summary = await self.service.run_batch(self.symbols, self.timeframes)
        finally:
            self._state = RunState.IDLE

        self.completed_runs += 1
        self.last_summary = summary
        return summary

    async def _trigger_logged(self) -> None:
        try:
            await self.trigger()
        except Exception as e:
            # Next tick retries; the batch itself only raises on configuration errors
            log_exception(self.logger, e, {'operation': 'scheduled_batch'})

    def _spawn(self) -> None:
        task = asyncio.create_task(self._trigger_logged())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None, run_immediately: bool = True) -> None:
        """
        Trigger a batch on every interval boundary until ``stop_event`` is set.

        Batches run as background tasks so a slow batch makes the following
        tick skip rather than drift the schedule.
        """
        stop_event = stop_event or asyncio.Event()
        self.logger.info(
            "Scheduler started",
            interval_minutes=self.interval_minutes,
            symbols=[getattr(s, 'value', s) for s in self.symbols],
            timeframes=[getattr(t, 'value', t) for t in self.timeframes]
        )

        if run_immediately:
            self._spawn()

        while not stop_event.is_set():
            now = self.clock()
            delay = (next_run_time(now, self.interval_minutes) - now).total_seconds()
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=max(delay, 0))
            except asyncio.TimeoutError:
                self._spawn()

        if self._tasks:
            await asyncio.gather(*self._tasks)
        self.logger.info("Scheduler stopped", completed=self.completed_runs, skipped=self.skipped_runs)
