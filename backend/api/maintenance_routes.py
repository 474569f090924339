"""
Maintenance and Live Update Routes
"""
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import StreamingResponse

from core.dependencies import get_broadcaster, get_config_service
from models.schemas import ClearDataResponse
from services.config_service import SheetsConfigService
from services.updates_service import UpdatesBroadcaster

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Maintenance"])


@router.post("/clear-data", response_model=ClearDataResponse)
async def clear_data(service: SheetsConfigService = Depends(get_config_service)):
    """Stop every auto-refresh job and delete all records and configurations"""
    deleted = await service.clear_all()
    return ClearDataResponse(
        message="Cleared all recruitment data and sheet configs",
        deleted=deleted,
    )


@router.get("/updates")
async def updates_stream(broadcaster: UpdatesBroadcaster = Depends(get_broadcaster)):
    """Server-sent events; a `data-updated` event follows every successful import"""
    return StreamingResponse(
        broadcaster.stream(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )
