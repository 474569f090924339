"""
Sheet Source Fetchers
Three interchangeable ways of reading one tab, evaluated as an ordered chain:

1. ServiceAccountFetcher - private sheets shared with the service account
2. ApiKeyFetcher         - public / anyone-with-link sheets via an API key
3. PublishedCsvFetcher   - published CSV export, only when no API key exists

Each strategy reports an outcome instead of guessing what the caller wants:
`unavailable` and `not_configured` let the chain move on, while an API-key
failure raises because a configured key is expected to work.
"""
import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Sequence, Tuple, Dict
from urllib.parse import quote

import aiohttp

from core.config import Settings, get_settings
from core.exceptions import SheetFetchError, SheetsConfigurationError
from models.records import EntityKind
from models.schemas import SourceConfigBase
from services.google_auth import ServiceAccountTokenProvider
from services.tabular_parser import Table, parse_table, table_from_values

logger = logging.getLogger(__name__)

CELL_REFERENCE = re.compile(r"^([A-Z]+\d*:[A-Z]+\d*|[A-Z]+\d+)$", re.IGNORECASE)


class FetchOutcome(str, Enum):
    OK = "ok"
    UNAVAILABLE = "unavailable"
    NOT_CONFIGURED = "not_configured"


@dataclass
class TabSpec:
    """One tab to fetch: the kind it is requested as and where it lives"""
    kind: EntityKind
    range: str
    gid: Optional[str] = None

    @property
    def sheet_name(self) -> str:
        """Tab name part of an A1 range (``'My Tab'!A:J`` -> ``My Tab``)"""
        name, _, cells = self.range.partition("!")
        name = name.strip()
        if not cells and CELL_REFERENCE.match(name):
            name = ""
        if len(name) >= 2 and name[0] == name[-1] == "'":
            name = name[1:-1].replace("''", "'")
        return name or self.kind.value.capitalize()

    @classmethod
    def for_config(cls, config: SourceConfigBase, kind: EntityKind) -> "TabSpec":
        return cls(kind=kind, range=config.ranges.for_kind(kind), gid=config.gids.get(kind.value))


@dataclass
class TabPayload:
    """Raw tab contents: a values array (Sheets API) or CSV text (export)"""
    values: Optional[List[List[Any]]] = None
    text: Optional[str] = None

    @property
    def is_legacy_layout_capable(self) -> bool:
        # Only values-API payloads may use the fixed-column layout
        return self.values is not None

    def to_table(self) -> Table:
        if self.values is not None:
            return table_from_values(self.values)
        return parse_table(self.text)


@dataclass
class FetchResult:
    outcome: FetchOutcome
    strategy: str
    payload: Optional[TabPayload] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.OK


class SheetFetcher(ABC):
    """Base strategy: knows how to read one tab of one spreadsheet"""

    name: str = "fetcher"
    # Fallback-only strategies run only after an API key was reported missing
    fallback_only: bool = False

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[], Any]] = None,
    ):
        self.settings = settings or get_settings()
        self._session_factory = session_factory or self._default_session

    def _default_session(self) -> aiohttp.ClientSession:
        return aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout_seconds)
        )

    def values_url(self, spreadsheet_id: str, range_name: str) -> str:
        return (
            f"{self.settings.sheets_api_base_url}/{quote(spreadsheet_id, safe='')}"
            f"/values/{quote(range_name, safe='')}"
        )

    def result(self, outcome: FetchOutcome, payload: Optional[TabPayload] = None,
               error: Optional[str] = None) -> FetchResult:
        return FetchResult(outcome=outcome, strategy=self.name, payload=payload, error=error)

    @abstractmethod
    async def fetch_tab(self, config: SourceConfigBase, tab: TabSpec) -> FetchResult:
        ...


class ServiceAccountFetcher(SheetFetcher):
    """Sheets values API authenticated with a service account bearer token"""

    name = "service_account"

    def __init__(self, token_provider: ServiceAccountTokenProvider, **kwargs):
        super().__init__(**kwargs)
        self.token_provider = token_provider

    async def fetch_tab(self, config: SourceConfigBase, tab: TabSpec) -> FetchResult:
        if not self.token_provider.is_configured:
            return self.result(FetchOutcome.UNAVAILABLE, error="service account not configured")

        token = await self.token_provider.get_token()
        if not token:
            return self.result(FetchOutcome.UNAVAILABLE, error="service account token exchange failed")

        url = self.values_url(config.spreadsheet_id, tab.range)
        try:
            async with self._session_factory() as session:
                async with session.get(url, headers={"Authorization": f"Bearer {token}"}) as response:
                    if response.status == 401:
                        self.token_provider.invalidate()
                    if response.status != 200:
                        error = f"{tab.range}: HTTP {response.status} {response.reason or ''}".strip()
                        logger.warning(f"⚠️ Service account read failed for {error}")
                        return self.result(FetchOutcome.UNAVAILABLE, error=error)
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"⚠️ Service account read error for {tab.range}: {e}")
            return self.result(FetchOutcome.UNAVAILABLE, error=str(e) or type(e).__name__)

        if not isinstance(data, dict):
            logger.warning(f"⚠️ Service account read for {tab.range} returned a non-object body")
            return self.result(FetchOutcome.UNAVAILABLE, error=f"{tab.range}: unexpected response body")
        return self.result(FetchOutcome.OK, TabPayload(values=data.get("values") or []))


class ApiKeyFetcher(SheetFetcher):
    """Sheets values API with an API key; raises on HTTP failure"""

    name = "api_key"

    def resolve_key(self, config: SourceConfigBase) -> Optional[str]:
        return config.api_key or self.settings.google_sheets_api_key or None

    async def fetch_tab(self, config: SourceConfigBase, tab: TabSpec) -> FetchResult:
        api_key = self.resolve_key(config)
        if not api_key:
            return self.result(FetchOutcome.NOT_CONFIGURED, error="no API key")

        url = self.values_url(config.spreadsheet_id, tab.range)
        try:
            async with self._session_factory() as session:
                async with session.get(url, params={"key": api_key}) as response:
                    if response.status < 200 or response.status >= 300:
                        raise SheetFetchError(
                            f"Failed to fetch sheet {tab.range}: {response.status} {response.reason or ''}".strip(),
                            range_name=tab.range,
                            status=response.status,
                            strategy=self.name,
                        )
                    data = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise SheetFetchError(
                f"Failed to fetch sheet {tab.range}: {e or type(e).__name__}",
                range_name=tab.range,
                strategy=self.name,
            ) from e

        if not isinstance(data, dict):
            raise SheetFetchError(
                f"Failed to fetch sheet {tab.range}: unexpected response body",
                range_name=tab.range,
                strategy=self.name,
            )
        return self.result(FetchOutcome.OK, TabPayload(values=data.get("values") or []))


class PublishedCsvFetcher(SheetFetcher):
    """
    Published CSV export. Tries, in order: export by gid, export by sheet
    name, gviz CSV query by sheet name, whole-document export. The first 2xx
    body that contains a comma or a newline wins.
    """

    name = "published_csv"
    fallback_only = True

    def candidate_urls(self, spreadsheet_id: str, tab: TabSpec) -> List[Tuple[str, Dict[str, str]]]:
        base = f"{self.settings.sheets_export_base_url}/{quote(spreadsheet_id, safe='')}"
        urls: List[Tuple[str, Dict[str, str]]] = []
        if tab.gid:
            urls.append((f"{base}/export", {"format": "csv", "gid": tab.gid}))
        urls.append((f"{base}/export", {"format": "csv", "sheet": tab.sheet_name}))
        urls.append((f"{base}/gviz/tq", {"tqx": "out:csv", "sheet": tab.sheet_name}))
        urls.append((f"{base}/export", {"format": "csv"}))
        return urls

    @staticmethod
    def looks_tabular(text: Optional[str]) -> bool:
        return bool(text) and ("," in text or "\n" in text)

    async def fetch_tab(self, config: SourceConfigBase, tab: TabSpec) -> FetchResult:
        attempts: List[str] = []
        async with self._session_factory() as session:
            for url, params in self.candidate_urls(config.spreadsheet_id, tab):
                try:
                    async with session.get(url, params=params) as response:
                        if response.status < 200 or response.status >= 300:
                            attempts.append(f"HTTP {response.status}")
                            continue
                        text = await response.text()
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    attempts.append(str(e) or type(e).__name__)
                    continue

                if self.looks_tabular(text):
                    logger.debug(f"Published CSV for {tab.sheet_name} served by {url}")
                    return self.result(FetchOutcome.OK, TabPayload(text=text))
                attempts.append("not tabular")

        return self.result(
            FetchOutcome.UNAVAILABLE,
            error=f"published export unavailable for {tab.sheet_name} ({', '.join(attempts)})",
        )


@dataclass
class SheetsFetchChain:
    """
    Ordered fallback chain; the first strategy returning data wins.

    Fallback-only strategies (the published export) are consulted only when
    an API key was reported missing and the configuration allows it.
    """
    strategies: Sequence[SheetFetcher] = field(default_factory=list)

    @classmethod
    def default(
        cls,
        settings: Optional[Settings] = None,
        session_factory: Optional[Callable[[], Any]] = None,
        token_provider: Optional[ServiceAccountTokenProvider] = None,
    ) -> "SheetsFetchChain":
        settings = settings or get_settings()
        provider = token_provider or ServiceAccountTokenProvider(
            settings=settings, session_factory=session_factory
        )
        shared = {"settings": settings, "session_factory": session_factory}
        return cls(strategies=[
            ServiceAccountFetcher(provider, **shared),
            ApiKeyFetcher(**shared),
            PublishedCsvFetcher(**shared),
        ])

    async def fetch_tab(self, config: SourceConfigBase, tab: TabSpec) -> FetchResult:
        key_missing = False
        errors: List[str] = []

        for strategy in self.strategies:
            if strategy.fallback_only and not (key_missing and config.published_fallback):
                continue

            result = await strategy.fetch_tab(config, tab)
            if result.ok:
                logger.debug(f"📄 {tab.kind.value} tab fetched via {result.strategy}")
                return result

            if result.outcome == FetchOutcome.NOT_CONFIGURED:
                key_missing = True
                if not config.published_fallback:
                    raise SheetsConfigurationError(spreadsheet_id=config.spreadsheet_id)
            if result.error:
                errors.append(f"{result.strategy}: {result.error}")

        raise SheetFetchError(
            f"{tab.kind.value.capitalize()} fetch failed: " + ("; ".join(errors) or "no usable source"),
            range_name=tab.range,
        )
