"""Test source configuration persistence and its scheduler wiring"""
import asyncio
from datetime import datetime

from core.config import Settings
from core.database import CONFIG_COLLECTION, DocumentStore
from core.exceptions import SheetFetchError
from models.records import EntityKind
from models.schemas import SourceConfigIn
from services.config_service import SheetsConfigService
from services.import_orchestrator import ImportOrchestrator


class DownChain:
    """Every tab fails, so scheduled imports raise without touching the network"""

    def __init__(self):
        self.calls = 0

    async def fetch_tab(self, config, tab):
        self.calls += 1
        raise SheetFetchError("sheet unavailable")


async def make_service(tmp_path):
    store = DocumentStore(str(tmp_path / "dash.db"))
    await store.connect()
    orchestrator = ImportOrchestrator(store, DownChain())
    return SheetsConfigService(store, orchestrator, settings=Settings()), store


async def stamped_config(service, spreadsheet_id, timeout=2.0):
    """Poll until the scheduled run has stamped lastRunAt"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        config = await service.get_config(spreadsheet_id)
        if (config and config.last_run_at) or loop.time() > deadline:
            return config
        await asyncio.sleep(0.01)


def test_save_config_upserts_and_keeps_history(tmp_path):
    async def scenario():
        service, store = await make_service(tmp_path)
        first = await service.save_config(SourceConfigIn(spreadsheet_id="s1", api_key="k1"))
        await service.mark_last_run("s1", datetime(2024, 1, 2, 3, 4))
        second = await service.save_config(SourceConfigIn(spreadsheet_id="s1", api_key="k2"))
        configs = await service.list_configs()
        await store.close()
        return first, second, configs

    first, second, configs = asyncio.run(scenario())

    assert len(configs) == 1
    assert configs[0].api_key == "k2"
    assert second.created_at == first.created_at
    assert second.last_run_at == datetime(2024, 1, 2, 3, 4)
    assert second.updated_at >= first.updated_at


def test_auto_refresh_starts_and_stops_the_job(tmp_path):
    async def scenario():
        service, store = await make_service(tmp_path)
        await service.save_config(SourceConfigIn(spreadsheet_id="s1", auto_refresh=True, refresh_interval_minutes=5))
        stamped = (await stamped_config(service, "s1")).last_run_at
        running = service.scheduler.is_running("s1")

        await service.save_config(SourceConfigIn(spreadsheet_id="s1", auto_refresh=False))
        stopped = not service.scheduler.is_running("s1")
        status = service.scheduler.get_status()
        await store.close()
        return running, stamped, stopped, status, service.orchestrator.fetcher.calls

    running, stamped, stopped, status, fetch_calls = asyncio.run(scenario())

    assert running is True
    # The first tick failed (every tab down) but lastRunAt is stamped anyway
    assert stamped is not None
    assert fetch_calls == 4
    assert stopped is True
    assert status == []


def test_mark_last_run_does_not_recreate_a_deleted_config(tmp_path):
    async def scenario():
        service, store = await make_service(tmp_path)
        updated = await service.mark_last_run("gone", datetime.now())
        config = await service.get_config("gone")
        await store.close()
        return updated, config

    updated, config = asyncio.run(scenario())

    assert updated is False
    assert config is None


def test_clear_all_reports_counts_and_stops_jobs(tmp_path):
    async def scenario():
        service, store = await make_service(tmp_path)
        await store.collection(EntityKind.RECRUITERS.value).insert_many([{"name": "a"}, {"name": "b"}])
        await store.collection(EntityKind.CLIENTS.value).insert_many([{"name": "c"}])
        await service.save_config(SourceConfigIn(spreadsheet_id="s1", auto_refresh=True))
        await stamped_config(service, "s1")

        deleted = await service.clear_all()
        jobs = service.scheduler.job_count
        configs = await service.list_configs()
        remaining = await store.collection(EntityKind.RECRUITERS.value).count()
        await store.close()
        return deleted, jobs, configs, remaining

    deleted, jobs, configs, remaining = asyncio.run(scenario())

    assert deleted == {"recruiters": 2, "candidates": 0, "clients": 1, "performance": 0, "sheetsConfigs": 1}
    assert jobs == 0
    assert configs == []
    assert remaining == 0


def test_start_scheduled_jobs_only_arms_auto_refresh_configs(tmp_path):
    async def scenario():
        service, store = await make_service(tmp_path)
        await store.upsert_document(CONFIG_COLLECTION, "on", {"spreadsheetId": "on", "autoRefresh": True})
        await store.upsert_document(CONFIG_COLLECTION, "off", {"spreadsheetId": "off", "autoRefresh": False})

        started = await service.start_scheduled_jobs()
        running = [key for key in ("on", "off") if service.scheduler.is_running(key)]
        await service.scheduler.shutdown()
        await store.close()
        return started, running

    started, running = asyncio.run(scenario())

    assert started == 1
    assert running == ["on"]
