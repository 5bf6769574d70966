from typing import Any, Dict, List, Optional

from ...domain.models import ProcessedSignalRecord
from ...domain.ports.persistence import SignalRecordRepository
from ...services.signal_writer import SignalFileWriter


def record_to_dict(record: ProcessedSignalRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "timestamp": record.timestamp.replace(microsecond=0).isoformat(),
        "channel_id": record.channel_id,
        "channel_name": record.channel_name,
        "message_id": record.message_id,
        "original_text": record.original_text,
        "status": record.status,
        "parsed": record.parsed.to_dict() if record.parsed else None,
        "error": record.error,
    }


class SignalQueryService:
    """Read access to processed signal history plus on-demand EA file cleanup."""

    def __init__(self, repository: SignalRecordRepository, writer: Optional[SignalFileWriter] = None) -> None:
        self._records = repository
        self._writer = writer

    def get_recent_signals(self, limit: int, channel_id: Optional[str] = None) -> Dict[str, Any]:
        if limit <= 0:
            raise ValueError("limit must be positive.")
        items: List[Dict[str, Any]] = [
            record_to_dict(record) for record in self._records.get_records(limit, channel_id=channel_id)
        ]
        return {"items": items, "count": len(items)}

    async def cleanup_signal_file(self) -> Dict[str, Any]:
        if self._writer is None:
            raise ValueError("EA files path is not configured.")
        removed = await self._writer.cleanup()
        return {"removed": removed, "path": str(self._writer.path)}
