"""
Spreadsheet Import API Routes
On-demand imports, stored dashboard data and saved source configurations
"""
import logging
from typing import List

from fastapi import APIRouter, Depends

from core.dependencies import get_config_service, get_orchestrator, get_scheduler
from core.exceptions import ValidationError
from models.schemas import (
    DashboardData,
    ImportResult,
    ImportSheetsRequest,
    SchedulerJobStatus,
    SheetRanges,
    SourceConfig,
    SourceConfigBase,
    SourceConfigIn,
)
from services.config_service import SheetsConfigService
from services.import_orchestrator import ImportOrchestrator
from services.refresh_scheduler import RefreshScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Sheets Import"])


@router.post("/import-sheets", response_model=ImportResult)
async def import_sheets(
    request: ImportSheetsRequest,
    orchestrator: ImportOrchestrator = Depends(get_orchestrator),
):
    """
    Import all four tabs of a spreadsheet now and replace the stored data.
    Accepts a raw spreadsheet id or a full Google Sheets link.
    """
    spreadsheet_id = request.resolve_spreadsheet_id()
    if not spreadsheet_id:
        raise ValidationError("Missing spreadsheetId or sheetLink", field="spreadsheetId")

    config = SourceConfigBase(
        spreadsheet_id=spreadsheet_id,
        api_key=request.api_key,
        ranges=request.ranges or SheetRanges(),
        gids=request.gids,
        infer_tab_kinds=request.infer_tab_kinds,
        published_fallback=request.published_fallback,
    )
    logger.info(f"📥 Manual import requested for {spreadsheet_id}")
    return await orchestrator.run_import(config)


@router.get("/data", response_model=DashboardData)
async def get_data(orchestrator: ImportOrchestrator = Depends(get_orchestrator)):
    """Every stored recruiter, candidate, client and performance record"""
    return await orchestrator.load_data()


@router.post("/save-sheets-config", response_model=SourceConfig)
async def save_sheets_config(
    payload: SourceConfigIn,
    service: SheetsConfigService = Depends(get_config_service),
):
    """Upsert a source configuration and start or stop its auto-refresh"""
    return await service.save_config(payload)


@router.get("/sheets-configs", response_model=List[SourceConfig])
async def list_sheets_configs(service: SheetsConfigService = Depends(get_config_service)):
    return await service.list_configs()


@router.get("/scheduler/status", response_model=List[SchedulerJobStatus])
async def scheduler_status(scheduler: RefreshScheduler = Depends(get_scheduler)):
    """Live auto-refresh jobs with their run and skip counts"""
    return scheduler.get_status()
