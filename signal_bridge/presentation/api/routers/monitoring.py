from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ....application.services.monitoring_service import MonitoringService
from ....core.config import Settings
from ....core.dependencies import get_monitoring_service, get_settings, get_telegram_source
from ....services.telegram import TelegramMessageSource
from ...api.schemas.monitoring import MonitoringStartRequest, MonitoringStatisticsResponse

router = APIRouter(prefix="/api/monitoring", tags=["Monitoring"])


@router.get("", response_model=MonitoringStatisticsResponse)
async def get_statistics(
    monitoring_service: MonitoringService = Depends(get_monitoring_service),
) -> Dict[str, Any]:
    return monitoring_service.statistics()


@router.post("/start", status_code=status.HTTP_202_ACCEPTED)
async def start_monitoring(
    payload: Optional[MonitoringStartRequest] = Body(default=None),
    monitoring_service: MonitoringService = Depends(get_monitoring_service),
    settings: Settings = Depends(get_settings),
) -> Dict[str, Any]:
    identifiers = payload.channels if payload and payload.channels else settings.channels
    try:
        count = await monitoring_service.start_from_identifiers(identifiers)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"message": "Monitoring started.", "channel_count": count}


@router.post("/stop")
async def stop_monitoring(
    monitoring_service: MonitoringService = Depends(get_monitoring_service),
) -> Dict[str, Any]:
    await monitoring_service.stop_monitoring()
    return {"message": "Monitoring stopped."}


@router.get("/channels/available")
async def list_available_channels(
    telegram: TelegramMessageSource = Depends(get_telegram_source),
) -> Dict[str, Any]:
    try:
        items = await telegram.list_available_channels()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return {"items": items, "count": len(items)}
