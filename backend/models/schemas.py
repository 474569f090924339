"""
Pydantic Models for Source Configuration and Import Results
API data contracts for the sheets import endpoints
"""
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import List, Optional, Dict, Any
from datetime import datetime
from enum import Enum
import re

from core.config import DEFAULT_RANGES
from models.records import (
    EntityKind,
    Recruiter,
    Candidate,
    Client,
    PerformanceMetric,
)


SHEET_LINK_PATTERN = re.compile(r"spreadsheets/d/([-_a-zA-Z0-9]+)")


class CamelModel(BaseModel):
    class Config:
        alias_generator = to_camel
        populate_by_name = True


# ============================================================================
# Source Configuration
# ============================================================================

class SheetRanges(CamelModel):
    """A1 range per entity kind, e.g. ``Recruiters!A:J``"""
    recruiters: str = DEFAULT_RANGES["recruiters"]
    candidates: str = DEFAULT_RANGES["candidates"]
    clients: str = DEFAULT_RANGES["clients"]
    performance: str = DEFAULT_RANGES["performance"]

    def for_kind(self, kind: EntityKind) -> str:
        return getattr(self, kind.value)


class SourceConfigBase(CamelModel):
    spreadsheet_id: str = Field(..., min_length=1)
    api_key: Optional[str] = None
    ranges: SheetRanges = Field(default_factory=SheetRanges)
    gids: Dict[str, str] = Field(
        default_factory=dict,
        description="Optional internal tab id per kind, used by the CSV export"
    )
    infer_tab_kinds: bool = Field(default=True, description="Reroute tabs whose headers look like another kind")
    published_fallback: bool = Field(default=True, description="Allow the published CSV export when no key exists")


class SourceConfigIn(SourceConfigBase):
    """Request body for saving a configuration"""
    auto_refresh: bool = False
    refresh_interval_minutes: float = Field(default=60.0, ge=0.05)


class SourceConfig(SourceConfigIn):
    """Persisted configuration, one per spreadsheet"""
    last_run_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ImportSheetsRequest(CamelModel):
    """Request body for an on-demand import"""
    spreadsheet_id: Optional[str] = None
    sheet_link: Optional[str] = None
    api_key: Optional[str] = None
    ranges: Optional[SheetRanges] = None
    gids: Dict[str, str] = Field(default_factory=dict)
    infer_tab_kinds: bool = True
    published_fallback: bool = True

    def resolve_spreadsheet_id(self) -> Optional[str]:
        """Raw id wins; otherwise pull it out of a Google Sheets link"""
        if self.spreadsheet_id:
            return self.spreadsheet_id.strip()
        if self.sheet_link:
            match = SHEET_LINK_PATTERN.search(self.sheet_link)
            if match:
                return match.group(1)
        return None


# ============================================================================
# Import Results
# ============================================================================

class TabState(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class TabStatus(CamelModel):
    """Outcome of fetching and routing one tab"""
    kind: EntityKind = Field(..., description="Kind the tab was requested as")
    range: str
    state: TabState
    routed_kind: Optional[EntityKind] = Field(default=None, description="Kind the rows were stored as")
    strategy: Optional[str] = None
    rows: int = 0
    error: Optional[str] = None


class DashboardData(CamelModel):
    recruiters: List[Recruiter] = Field(default_factory=list)
    candidates: List[Candidate] = Field(default_factory=list)
    clients: List[Client] = Field(default_factory=list)
    performance: List[PerformanceMetric] = Field(default_factory=list)

    def for_kind(self, kind: EntityKind) -> list:
        return getattr(self, kind.value)

    def counts(self) -> Dict[str, int]:
        return {kind.value: len(self.for_kind(kind)) for kind in EntityKind}


class ImportResult(DashboardData):
    spreadsheet_id: str
    tabs: List[TabStatus] = Field(default_factory=list)
    persisted: bool = False
    persistence_error: Optional[str] = None
    from_cache: bool = False
    imported_at: datetime = Field(default_factory=datetime.now)


# ============================================================================
# Misc Responses
# ============================================================================

class ClearDataResponse(BaseModel):
    message: str
    deleted: Dict[str, int]


class SchedulerJobStatus(CamelModel):
    spreadsheet_id: str
    interval_seconds: float
    runs: int = 0
    skips: int = 0
    last_run_at: Optional[datetime] = None
    last_error: Optional[str] = None
    recent_runs: int = 0


class ErrorResponse(BaseModel):
    """Standard error response"""
    error: bool = True
    error_code: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
