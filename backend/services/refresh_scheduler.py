"""
Refresh Scheduler
Re-runs spreadsheet imports on a per-source cadence with:
- One timer loop per source (rebuilt when its configuration changes)
- Immediate first run, then every max(interval, minimum interval)
- Sliding-window rate limit per source (skips are logged, the job stays armed)
- Ticks fired as tasks so a slow import never delays the cadence
"""
import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, Iterable, List, Optional, Set

from core.config import Settings, get_settings
from models.schemas import SchedulerJobStatus, SourceConfig

logger = logging.getLogger(__name__)

RunImport = Callable[[SourceConfig], Awaitable[Any]]
MarkLastRun = Callable[[str, datetime], Awaitable[Any]]


class TickOutcome(Enum):
    """What a single scheduled tick did"""
    RAN = "ran"
    FAILED = "failed"
    SKIPPED = "skipped"


class SlidingWindowLimiter:
    """At most `max_runs` acquisitions per key within any `window_seconds` span"""

    def __init__(
        self,
        max_runs: int = 20,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_runs = max_runs
        self.window_seconds = window_seconds
        self._clock = clock
        self._history: Dict[str, Deque[float]] = {}

    def _prune(self, key: str) -> Deque[float]:
        history = self._history.setdefault(key, deque())
        cutoff = self._clock() - self.window_seconds
        while history and history[0] <= cutoff:
            history.popleft()
        return history

    def recent(self, key: str) -> int:
        return len(self._prune(key))

    def try_acquire(self, key: str) -> bool:
        history = self._prune(key)
        if len(history) >= self.max_runs:
            return False
        history.append(self._clock())
        return True

    def reset(self, key: str) -> None:
        self._history.pop(key, None)

    def reset_all(self) -> None:
        self._history.clear()


@dataclass
class ScheduledJob:
    """A live recurring import for one source"""
    config: SourceConfig
    interval_seconds: float
    timer: Optional[asyncio.Task] = None
    in_flight: Set[asyncio.Task] = field(default_factory=set)

    # Stats
    runs: int = 0
    failures: int = 0
    skips: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.now)


class RefreshScheduler:
    """
    Owns every recurring import job. Holds no module-level state, so several
    schedulers (with their own clocks and ceilings) can coexist.
    """

    def __init__(
        self,
        run_import: RunImport,
        mark_last_run: Optional[MarkLastRun] = None,
        max_runs_per_window: Optional[int] = None,
        window_seconds: Optional[float] = None,
        min_interval_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] = datetime.now,
        settings: Optional[Settings] = None,
    ):
        settings = settings or get_settings()
        self._run_import = run_import
        self._mark_last_run = mark_last_run
        self._now = now
        self.min_interval_seconds = (
            settings.scheduler_min_interval_seconds if min_interval_seconds is None else min_interval_seconds
        )
        self.limiter = SlidingWindowLimiter(
            max_runs=settings.scheduler_max_runs_per_window if max_runs_per_window is None else max_runs_per_window,
            window_seconds=settings.scheduler_window_seconds if window_seconds is None else window_seconds,
            clock=clock,
        )
        self._jobs: Dict[str, ScheduledJob] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def interval_for(self, config: SourceConfig) -> float:
        return max(config.refresh_interval_minutes * 60.0, self.min_interval_seconds)

    def is_running(self, key: str) -> bool:
        job = self._jobs.get(key)
        return job is not None and job.timer is not None and not job.timer.done()

    def start_job(self, config: SourceConfig) -> ScheduledJob:
        """(Re)build the job for a source: run now, then on its cadence"""
        key = config.spreadsheet_id
        self._cancel_timer(key)

        job = ScheduledJob(config=config, interval_seconds=self.interval_for(config))
        job.timer = asyncio.create_task(self._timer_loop(job), name=f"refresh:{key}")
        self._jobs[key] = job

        logger.info(f"⏰ Auto-refresh armed for {key} every {job.interval_seconds:.0f}s")
        return job

    def stop_job(self, key: str) -> bool:
        """Stop a source's timer and forget its rate-limit history"""
        stopped = self._cancel_timer(key)
        self.limiter.reset(key)
        if stopped:
            logger.info(f"🛑 Auto-refresh stopped for {key}")
        return stopped

    def stop_all(self) -> int:
        keys = list(self._jobs)
        for key in keys:
            self._cancel_timer(key)
        self.limiter.reset_all()
        if keys:
            logger.info(f"🛑 Stopped {len(keys)} auto-refresh job(s)")
        return len(keys)

    def start_from_configs(self, configs: Iterable[SourceConfig]) -> int:
        started = 0
        for config in configs:
            if config.auto_refresh:
                self.start_job(config)
                started += 1
        logger.info(f"✅ Scheduler started with {started} job(s)")
        return started

    async def shutdown(self, timeout: float = 5.0) -> None:
        """Stop every timer and give in-flight imports a moment to finish"""
        pending: Set[asyncio.Task] = set()
        for job in self._jobs.values():
            pending |= job.in_flight
        self.stop_all()
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    def _cancel_timer(self, key: str) -> bool:
        job = self._jobs.pop(key, None)
        if job is None:
            return False
        if job.timer is not None:
            job.timer.cancel()
        return True

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def _timer_loop(self, job: ScheduledJob) -> None:
        while True:
            self._fire(job)
            await asyncio.sleep(job.interval_seconds)

    def _fire(self, job: ScheduledJob) -> None:
        task = asyncio.create_task(self.tick(job.config))
        job.in_flight.add(task)
        task.add_done_callback(job.in_flight.discard)

    async def tick(self, config: SourceConfig) -> TickOutcome:
        """
        One scheduled run: rate-limit check, import, then stamp lastRunAt
        whether or not the import succeeded.
        """
        key = config.spreadsheet_id
        job = self._jobs.get(key)

        if not self.limiter.try_acquire(key):
            logger.warning(
                f"⏭️ Skipping refresh for {key}: {self.limiter.max_runs} runs "
                f"in the last {self.limiter.window_seconds:.0f}s"
            )
            if job:
                job.skips += 1
            return TickOutcome.SKIPPED

        outcome = TickOutcome.RAN
        error: Optional[str] = None
        try:
            await self._run_import(config)
            logger.info(f"🔄 Auto-refreshed sheets for {key}")
        except Exception as e:
            outcome = TickOutcome.FAILED
            error = getattr(e, "message", None) or str(e) or type(e).__name__
            logger.error(f"❌ Scheduled import failed for {key}: {error}")

        when = self._now()
        if job:
            job.runs += 1
            job.last_run_at = when
            job.last_error = error
            if outcome == TickOutcome.FAILED:
                job.failures += 1

        if self._mark_last_run is not None:
            try:
                await self._mark_last_run(key, when)
            except Exception as e:
                logger.error(f"❌ Could not stamp lastRunAt for {key}: {e}")

        return outcome

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> List[SchedulerJobStatus]:
        return [
            SchedulerJobStatus(
                spreadsheet_id=key,
                interval_seconds=job.interval_seconds,
                runs=job.runs,
                skips=job.skips,
                last_run_at=job.last_run_at,
                last_error=job.last_error,
                recent_runs=self.limiter.recent(key),
            )
            for key, job in self._jobs.items()
        ]

    @property
    def job_count(self) -> int:
        return len(self._jobs)
