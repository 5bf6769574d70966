from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ....application.services.signal_query_service import SignalQueryService
from ....core.dependencies import get_signal_query_service
from ....domain.errors import WriteTimeoutError

router = APIRouter(prefix="/api/signals", tags=["Signals"])


@router.get("")
async def list_signals(
    limit: int = Query(default=100, ge=1, le=1000),
    channel_id: Optional[str] = None,
    signal_service: SignalQueryService = Depends(get_signal_query_service),
) -> Dict[str, Any]:
    return signal_service.get_recent_signals(limit=limit, channel_id=channel_id)


@router.post("/cleanup")
async def cleanup_signal_file(
    signal_service: SignalQueryService = Depends(get_signal_query_service),
) -> Dict[str, Any]:
    try:
        return await signal_service.cleanup_signal_file()
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except WriteTimeoutError as exc:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc)) from exc
