from __future__ import annotations

from typing import List, Optional, Protocol

from ..models import ProcessedSignalRecord


class SignalRecordRepository(Protocol):
    """Storage for processed signal records."""

    def save_record(self, record: ProcessedSignalRecord) -> None:
        ...

    def get_records(self, limit: int, channel_id: Optional[str] = None) -> List[ProcessedSignalRecord]:
        ...

    def trim_records(self, keep: int) -> int:
        ...

    def clear_records(self) -> None:
        ...
