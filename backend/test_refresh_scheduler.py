"""Test the refresh scheduler: rate limiting, cadence and job lifecycle"""
import asyncio
from datetime import datetime

from core.config import Settings
from core.exceptions import SheetFetchError
from models.schemas import SourceConfig
from services.refresh_scheduler import RefreshScheduler, SlidingWindowLimiter, TickOutcome


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class Recorder:
    """Stands in for run_import and mark_last_run"""

    def __init__(self, fail_with=None):
        self.fail_with = fail_with
        self.imports = []
        self.stamps = []

    async def run_import(self, config):
        self.imports.append(config.spreadsheet_id)
        if self.fail_with is not None:
            raise self.fail_with

    async def mark_last_run(self, key, when):
        self.stamps.append((key, when))


def make_scheduler(recorder, clock=None, **overrides):
    options = dict(
        max_runs_per_window=20,
        window_seconds=60,
        min_interval_seconds=3.0,
    )
    options.update(overrides)
    return RefreshScheduler(
        run_import=recorder.run_import,
        mark_last_run=recorder.mark_last_run,
        clock=clock or FakeClock(),
        settings=Settings(),
        **options,
    )


def config(spreadsheet_id="s1", minutes=60.0, auto_refresh=True) -> SourceConfig:
    # model_construct lets tests use intervals below the validated minimum
    return SourceConfig.model_construct(
        spreadsheet_id=spreadsheet_id,
        auto_refresh=auto_refresh,
        refresh_interval_minutes=minutes,
    )


async def settle():
    for _ in range(5):
        await asyncio.sleep(0)


def test_rate_limit_caps_runs_inside_one_window():
    recorder = Recorder()
    scheduler = make_scheduler(recorder)

    async def burst():
        return [await scheduler.tick(config()) for _ in range(25)]

    outcomes = asyncio.run(burst())

    assert outcomes.count(TickOutcome.RAN) == 20
    assert outcomes.count(TickOutcome.SKIPPED) == 5
    assert len(recorder.imports) == 20
    assert len(recorder.stamps) == 20


def test_window_slides_with_the_clock():
    clock = FakeClock()
    limiter = SlidingWindowLimiter(max_runs=2, window_seconds=60, clock=clock)

    assert limiter.try_acquire("s1")
    clock.advance(30)
    assert limiter.try_acquire("s1")
    assert not limiter.try_acquire("s1")

    clock.advance(30)  # first run is now exactly one window old
    assert limiter.try_acquire("s1")
    assert limiter.recent("s1") == 2
    assert limiter.try_acquire("other")


def test_failed_run_is_still_stamped():
    when = datetime(2024, 5, 1, 9, 30)
    recorder = Recorder(fail_with=SheetFetchError("sheet down"))
    scheduler = RefreshScheduler(
        run_import=recorder.run_import,
        mark_last_run=recorder.mark_last_run,
        max_runs_per_window=20,
        window_seconds=60,
        min_interval_seconds=3.0,
        now=lambda: when,
        settings=Settings(),
    )

    outcome = asyncio.run(scheduler.tick(config()))

    assert outcome == TickOutcome.FAILED
    assert recorder.stamps == [("s1", when)]


def test_minimum_interval_floor():
    scheduler = make_scheduler(Recorder(), min_interval_seconds=10.0)

    assert scheduler.interval_for(config(minutes=0.05)) == 10.0
    assert scheduler.interval_for(config(minutes=2)) == 120.0


def test_start_job_runs_immediately_and_stop_job_disarms():
    recorder = Recorder()
    scheduler = make_scheduler(recorder)

    async def scenario():
        scheduler.start_job(config())
        await settle()
        running = scheduler.is_running("s1")
        status = scheduler.get_status()
        stopped = scheduler.stop_job("s1")
        await settle()
        return running, status, stopped

    running, status, stopped = asyncio.run(scenario())

    assert recorder.imports == ["s1"]
    assert running is True
    assert status[0].runs == 1
    assert status[0].recent_runs == 1
    assert stopped is True
    assert scheduler.job_count == 0
    assert scheduler.limiter.recent("s1") == 0


def test_job_repeats_on_its_interval():
    recorder = Recorder()
    scheduler = make_scheduler(recorder, min_interval_seconds=0.01)

    async def scenario():
        scheduler.start_job(config(minutes=0.0001))
        await asyncio.sleep(0.05)
        scheduler.stop_all()
        await settle()

    asyncio.run(scenario())

    assert len(recorder.imports) >= 3


def test_restarting_a_job_replaces_the_old_timer():
    recorder = Recorder()
    scheduler = make_scheduler(recorder)

    async def scenario():
        first = scheduler.start_job(config(minutes=60))
        second = scheduler.start_job(config(minutes=30))
        await settle()
        first_cancelled = first.timer.cancelled()
        scheduler.stop_all()
        await settle()
        return first_cancelled, second

    first_cancelled, second = asyncio.run(scenario())

    assert first_cancelled is True
    assert second.interval_seconds == 1800
    assert recorder.imports == ["s1"]


def test_stop_all_and_start_from_configs():
    recorder = Recorder()
    scheduler = make_scheduler(recorder)

    async def scenario():
        started = scheduler.start_from_configs([
            config("a"),
            config("b"),
            config("c", auto_refresh=False),
        ])
        await settle()
        count = scheduler.job_count
        stopped = scheduler.stop_all()
        return started, count, stopped

    started, count, stopped = asyncio.run(scenario())

    assert started == 2
    assert count == 2
    assert stopped == 2
    assert scheduler.job_count == 0
    assert sorted(recorder.imports) == ["a", "b"]


def test_schedulers_do_not_share_state():
    first_recorder, second_recorder = Recorder(), Recorder()
    first = make_scheduler(first_recorder, max_runs_per_window=1)
    second = make_scheduler(second_recorder, max_runs_per_window=1)

    async def scenario():
        return [
            await first.tick(config()),
            await first.tick(config()),
            await second.tick(config()),
        ]

    outcomes = asyncio.run(scenario())

    assert outcomes == [TickOutcome.RAN, TickOutcome.SKIPPED, TickOutcome.RAN]


def test_shutdown_waits_for_in_flight_ticks():
    finished = []

    async def slow_import(cfg):
        await asyncio.sleep(0.02)
        finished.append(cfg.spreadsheet_id)

    scheduler = RefreshScheduler(run_import=slow_import, settings=Settings())

    async def scenario():
        scheduler.start_job(config())
        await settle()
        await scheduler.shutdown(timeout=1.0)

    asyncio.run(scenario())

    assert finished == ["s1"]
    assert scheduler.job_count == 0
