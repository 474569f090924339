"""
Dependency Injection Container
Wires the store, fetchers, orchestrator, scheduler and config service together
"""
from typing import Optional

from core.config import Settings, get_settings
from core.database import DocumentStore
from services.config_service import SheetsConfigService
from services.import_orchestrator import ImportOrchestrator
from services.refresh_scheduler import RefreshScheduler
from services.sheets_fetchers import SheetsFetchChain
from services.updates_service import UpdatesBroadcaster, get_updates_broadcaster


class ServiceContainer:
    """
    Centralized service container for dependency injection.
    Every collaborator can be supplied up front (tests do this); anything
    missing is built lazily from settings.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[DocumentStore] = None,
        fetcher: Optional[SheetsFetchChain] = None,
        broadcaster: Optional[UpdatesBroadcaster] = None,
    ):
        self._settings = settings
        self._store = store
        self._fetcher = fetcher
        self._broadcaster = broadcaster
        self._orchestrator: Optional[ImportOrchestrator] = None
        self._config_service: Optional[SheetsConfigService] = None

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def store(self) -> DocumentStore:
        if self._store is None:
            self._store = DocumentStore(self.settings.database_url, timeout=self.settings.db_timeout)
        return self._store

    @property
    def fetcher(self) -> SheetsFetchChain:
        if self._fetcher is None:
            self._fetcher = SheetsFetchChain.default(settings=self.settings)
        return self._fetcher

    @property
    def broadcaster(self) -> UpdatesBroadcaster:
        if self._broadcaster is None:
            self._broadcaster = get_updates_broadcaster()
        return self._broadcaster

    @property
    def orchestrator(self) -> ImportOrchestrator:
        if self._orchestrator is None:
            self._orchestrator = ImportOrchestrator(self.store, self.fetcher, self.broadcaster)
        return self._orchestrator

    @property
    def config_service(self) -> SheetsConfigService:
        if self._config_service is None:
            self._config_service = SheetsConfigService(
                self.store, self.orchestrator, settings=self.settings
            )
        return self._config_service

    @property
    def scheduler(self) -> RefreshScheduler:
        return self.config_service.scheduler

    async def shutdown(self) -> None:
        if self._config_service is not None:
            await self._config_service.scheduler.shutdown()
        await self.store.close()


# Singleton instance
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Get the service container singleton"""
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: Optional[ServiceContainer]) -> None:
    """Replace the container (None resets to a lazily built default)"""
    global _container
    _container = container


# FastAPI dependency functions
def get_orchestrator() -> ImportOrchestrator:
    return get_container().orchestrator


def get_config_service() -> SheetsConfigService:
    return get_container().config_service


def get_scheduler() -> RefreshScheduler:
    return get_container().scheduler


def get_broadcaster() -> UpdatesBroadcaster:
    return get_container().broadcaster
