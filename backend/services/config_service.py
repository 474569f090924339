"""
Sheets Configuration Service
Persists source configurations (one per spreadsheet) and keeps the refresh
scheduler in step with them.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from core.config import Settings
from core.database import CONFIG_COLLECTION, DocumentStore
from models.records import EntityKind
from models.schemas import SourceConfig, SourceConfigIn
from services.import_orchestrator import ImportOrchestrator
from services.refresh_scheduler import RefreshScheduler

logger = logging.getLogger(__name__)


class SheetsConfigService:
    def __init__(
        self,
        store: DocumentStore,
        orchestrator: ImportOrchestrator,
        scheduler: Optional[RefreshScheduler] = None,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.orchestrator = orchestrator
        self.scheduler = scheduler or RefreshScheduler(
            run_import=orchestrator.run_import,
            mark_last_run=self.mark_last_run,
            settings=settings,
        )

    async def save_config(self, payload: SourceConfigIn) -> SourceConfig:
        """Upsert on spreadsheetId, then start or stop its refresh job"""
        document = payload.model_dump(by_alias=True, mode="json")

        existing = await self.store.get_document(CONFIG_COLLECTION, payload.spreadsheet_id)
        if existing and existing.get("lastRunAt"):
            document["lastRunAt"] = existing["lastRunAt"]

        stored = await self.store.upsert_document(CONFIG_COLLECTION, payload.spreadsheet_id, document)
        config = SourceConfig.model_validate(stored)

        if config.auto_refresh:
            self.scheduler.start_job(config)
        else:
            self.scheduler.stop_job(config.spreadsheet_id)

        logger.info(
            f"💾 Saved sheets config {config.spreadsheet_id} "
            f"(auto refresh {'on' if config.auto_refresh else 'off'})"
        )
        return config

    async def get_config(self, spreadsheet_id: str) -> Optional[SourceConfig]:
        document = await self.store.get_document(CONFIG_COLLECTION, spreadsheet_id)
        return SourceConfig.model_validate(document) if document else None

    async def list_configs(self) -> List[SourceConfig]:
        documents = await self.store.collection(CONFIG_COLLECTION).find_all()
        return [SourceConfig.model_validate(doc) for doc in documents]

    async def mark_last_run(self, spreadsheet_id: str, when: datetime) -> bool:
        """Stamp lastRunAt; a config deleted meanwhile is left deleted"""
        updated = await self.store.update_fields(
            CONFIG_COLLECTION, spreadsheet_id, {"lastRunAt": when.isoformat()}
        )
        if not updated:
            logger.debug(f"Config {spreadsheet_id} no longer exists, lastRunAt not stamped")
        return updated

    async def clear_all(self) -> Dict[str, int]:
        """Stop every job, then delete all records and configurations"""
        self.scheduler.stop_all()
        self.orchestrator.forget()

        collections = [kind.value for kind in EntityKind] + [CONFIG_COLLECTION]
        counts = await self.store.delete_collections(collections)
        deleted = {name: counts.get(name, 0) for name in collections}
        deleted["sheetsConfigs"] = deleted.pop(CONFIG_COLLECTION)

        logger.info(f"🧹 Cleared recruitment data and sheet configs: {deleted}")
        return deleted

    async def start_scheduled_jobs(self) -> int:
        """Rebuild the scheduler from persisted auto-refresh configs"""
        configs = await self.list_configs()
        return self.scheduler.start_from_configs(c for c in configs if c.auto_refresh)
