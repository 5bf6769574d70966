import json
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, List, Optional

from ...domain.models import ParsedSignal, ProcessedSignalRecord
from ...domain.ports.persistence import SignalRecordRepository


class SQLitePersistence(SignalRecordRepository):
    """SQLite-backed history of processed signal records."""

    def __init__(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._initialize()

    def _initialize(self) -> None:
        with self._conn:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS signal_records (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    timestamp TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    channel_name TEXT NOT NULL,
                    message_id INTEGER,
                    original_text TEXT NOT NULL,
                    status TEXT NOT NULL,
                    parsed_payload TEXT,
                    error TEXT
                );

                CREATE INDEX IF NOT EXISTS idx_signal_records_channel
                    ON signal_records(channel_id, seq DESC);
                """
            )

    def close(self) -> None:
        self._conn.close()

    def save_record(self, record: ProcessedSignalRecord) -> None:
        payload = json.dumps(record.parsed.to_dict(), ensure_ascii=False) if record.parsed else None
        with self._lock, self._conn:
            self._conn.execute(
                """
                INSERT INTO signal_records (
                    id, timestamp, channel_id, channel_name, message_id,
                    original_text, status, parsed_payload, error
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    status = excluded.status,
                    parsed_payload = excluded.parsed_payload,
                    error = excluded.error
                """,
                (
                    record.id,
                    self._format_timestamp(record.timestamp),
                    record.channel_id,
                    record.channel_name,
                    record.message_id,
                    record.original_text,
                    record.status,
                    payload,
                    record.error,
                ),
            )

    def get_records(self, limit: int, channel_id: Optional[str] = None) -> List[ProcessedSignalRecord]:
        query = "SELECT * FROM signal_records"
        params: List[Any] = []
        if channel_id:
            query += " WHERE channel_id = ?"
            params.append(channel_id)
        query += " ORDER BY seq DESC LIMIT ?"
        params.append(limit)
        with self._lock:
            cur = self._conn.execute(query, params)
            rows = cur.fetchall()
        return [self._row_to_record(row) for row in rows]

    def count_records(self) -> int:
        with self._lock:
            cur = self._conn.execute("SELECT COUNT(*) FROM signal_records")
            row = cur.fetchone()
        return int(row[0]) if row else 0

    def trim_records(self, keep: int) -> int:
        """Delete all but the newest ``keep`` records; returns the number removed."""
        with self._lock, self._conn:
            cur = self._conn.execute(
                """
                DELETE FROM signal_records
                WHERE seq NOT IN (
                    SELECT seq FROM signal_records ORDER BY seq DESC LIMIT ?
                )
                """,
                (max(keep, 0),),
            )
        return cur.rowcount

    def clear_records(self) -> None:
        with self._lock, self._conn:
            self._conn.execute("DELETE FROM signal_records")

    # Helpers ----------------------------------------------------------------
    @staticmethod
    def _format_timestamp(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> ProcessedSignalRecord:
        payload = row["parsed_payload"]
        return ProcessedSignalRecord(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            channel_id=row["channel_id"],
            channel_name=row["channel_name"],
            original_text=row["original_text"],
            status=row["status"],
            parsed=ParsedSignal.from_dict(json.loads(payload)) if payload else None,
            error=row["error"],
            message_id=row["message_id"],
        )
