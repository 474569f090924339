"""
Import Orchestrator
Runs one import cycle for a spreadsheet source:

1. fetch all four tabs concurrently (settle-all, one failure never cancels the rest)
2. parse each tab and infer which entity it really holds
3. map rows to records, concatenating tabs routed to the same kind
4. replace each non-empty kind in the document store
5. notify live dashboards

Runs for the same spreadsheet are serialised; different spreadsheets run freely.
"""
import asyncio
import logging
from collections import OrderedDict
from typing import Dict, List, Optional, Tuple

from cachetools import TTLCache

from core.database import DocumentStore
from core.exceptions import (
    DatabaseError,
    ImportFailedError,
    SheetsConfigurationError,
)
from core.logging import PerformanceLogger, source_context
from models.records import EntityKind, DashboardRecord, model_for
from models.schemas import (
    DashboardData,
    ImportResult,
    SourceConfigBase,
    TabState,
    TabStatus,
)
from services.schema_mapper import map_table
from services.sheet_inference import route_kind
from services.sheets_fetchers import FetchResult, SheetsFetchChain, TabSpec
from services.updates_service import DATA_UPDATED, UpdatesBroadcaster

logger = logging.getLogger(__name__)

SLOW_IMPORT_MS = 10_000
DATA_CACHE_SECONDS = 30


class ImportOrchestrator:
    """Coordinates fetch, inference, mapping and replace-all persistence"""

    def __init__(
        self,
        store: DocumentStore,
        fetcher: SheetsFetchChain,
        broadcaster: Optional[UpdatesBroadcaster] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.broadcaster = broadcaster
        self._locks: Dict[str, asyncio.Lock] = {}
        self._last_results: Dict[str, ImportResult] = {}
        # Stored dashboard data, dropped whenever the store changes
        self._data_cache: TTLCache = TTLCache(maxsize=1, ttl=DATA_CACHE_SECONDS)

    def lock_for(self, spreadsheet_id: str) -> asyncio.Lock:
        lock = self._locks.get(spreadsheet_id)
        if lock is None:
            lock = self._locks[spreadsheet_id] = asyncio.Lock()
        return lock

    def last_result(self, spreadsheet_id: str) -> Optional[ImportResult]:
        return self._last_results.get(spreadsheet_id)

    def forget(self, spreadsheet_id: Optional[str] = None) -> None:
        """Drop cached results for one source, or for all of them"""
        self._data_cache.clear()
        if spreadsheet_id is None:
            self._last_results.clear()
        else:
            self._last_results.pop(spreadsheet_id, None)

    async def run_import(self, config: SourceConfigBase) -> ImportResult:
        source = config.spreadsheet_id
        lock = self.lock_for(source)
        if lock.locked():
            logger.info(f"⏳ Import for {source} already running, waiting for it to finish")

        async with lock:
            with source_context(source), PerformanceLogger(logger, f"import {source}", threshold_ms=SLOW_IMPORT_MS):
                return await self._run(config)

    async def _run(self, config: SourceConfigBase) -> ImportResult:
        source = config.spreadsheet_id
        tabs = [TabSpec.for_config(config, kind) for kind in EntityKind]

        outcomes = await asyncio.gather(
            *(self.fetcher.fetch_tab(config, tab) for tab in tabs),
            return_exceptions=True,
        )

        buckets: Dict[EntityKind, List[DashboardRecord]] = OrderedDict((kind, []) for kind in EntityKind)
        statuses: List[TabStatus] = []
        failures: List[Tuple[TabSpec, Exception]] = []

        for tab, outcome in zip(tabs, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                failures.append((tab, outcome))
                message = getattr(outcome, "message", None) or str(outcome) or type(outcome).__name__
                logger.warning(f"⚠️ {tab.kind.value} tab failed for {source}: {message}")
                statuses.append(TabStatus(kind=tab.kind, range=tab.range, state=TabState.FAILED, error=message))
                continue

            routed, records = self._map_tab(config, tab, outcome)
            buckets[routed].extend(records)
            statuses.append(TabStatus(
                kind=tab.kind,
                range=tab.range,
                state=TabState.OK if records else TabState.EMPTY,
                routed_kind=routed,
                strategy=outcome.strategy,
                rows=len(records),
            ))

        if len(failures) == len(tabs):
            return self._all_failed(source, statuses, failures)

        result = ImportResult(
            spreadsheet_id=source,
            tabs=statuses,
            **{kind.value: records for kind, records in buckets.items()},
        )
        result.persisted, result.persistence_error = await self._persist(source, buckets)
        self._data_cache.clear()

        self._last_results[source] = result
        self._notify(result)

        logger.info(
            f"✅ Imported {source}: "
            + ", ".join(f"{count} {kind}" for kind, count in result.counts().items())
        )
        return result

    def _map_tab(
        self, config: SourceConfigBase, tab: TabSpec, fetched: FetchResult
    ) -> Tuple[EntityKind, List[DashboardRecord]]:
        table = fetched.payload.to_table()
        routed = route_kind(table.headers, tab.kind, enabled=config.infer_tab_kinds)
        if routed != tab.kind:
            logger.info(f"🔀 {tab.range} looks like {routed.value}, storing it as such")

        # The fixed-column layout only applies to values payloads read as their own kind
        positional = fetched.payload.is_legacy_layout_capable and routed == tab.kind
        return routed, map_table(table, routed, positional=positional)

    def _all_failed(
        self,
        source: str,
        statuses: List[TabStatus],
        failures: List[Tuple[TabSpec, Exception]],
    ) -> ImportResult:
        cached = self._last_results.get(source)
        if cached is not None:
            logger.warning(f"⚠️ Every tab failed for {source}, serving the last successful import")
            return cached.model_copy(update={"from_cache": True, "tabs": statuses})

        errors = [failure for _, failure in failures]
        if all(isinstance(e, SheetsConfigurationError) for e in errors):
            raise errors[0]

        raise ImportFailedError(
            source,
            [{"kind": status.kind.value, "range": status.range, "error": status.error} for status in statuses],
        )

    async def _persist(
        self, source: str, buckets: Dict[EntityKind, List[DashboardRecord]]
    ) -> Tuple[bool, Optional[str]]:
        """Replace each non-empty kind; an empty kind leaves the store untouched"""
        errors: List[str] = []
        for kind, records in buckets.items():
            if not records:
                logger.info(f"⏭️ No {kind.value} rows for {source}, keeping stored data")
                continue
            documents = [record.model_dump(by_alias=True, mode="json") for record in records]
            try:
                await self.store.collection(kind.value).replace_all(documents)
            except DatabaseError as e:
                logger.error(f"❌ Could not store {kind.value} for {source}: {e.message}")
                errors.append(f"{kind.value}: {e.message}")

        if errors:
            return False, "; ".join(errors)
        return True, None

    def _notify(self, result: ImportResult) -> None:
        if self.broadcaster is None:
            return
        self.broadcaster.broadcast(DATA_UPDATED, {
            "spreadsheetId": result.spreadsheet_id,
            "counts": result.counts(),
            "persisted": result.persisted,
            "importedAt": result.imported_at.isoformat(),
        })

    async def load_data(self, use_cache: bool = True) -> DashboardData:
        """Everything currently in the store, as typed records"""
        if use_cache and "data" in self._data_cache:
            return self._data_cache["data"]

        data = {}
        for kind in EntityKind:
            documents = await self.store.collection(kind.value).find_all()
            model = model_for(kind)
            data[kind.value] = [model.model_validate(doc) for doc in documents]
        result = DashboardData(**data)
        self._data_cache["data"] = result
        return result
