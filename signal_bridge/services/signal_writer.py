"""Append-only signal file consumed by the MetaTrader expert advisor."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, List, Optional

from ..domain.errors import WriteTimeoutError
from ..domain.models import OrderType, ProcessedSignalRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y.%m.%d %H:%M:%S"
HEADER_TITLE = "# Telegram EA Signal File - CLEARED ON STARTUP"
HEADER_FORMAT = "# Format: TIMESTAMP|CHANNEL_ID|CHANNEL_NAME|DIRECTION|SYMBOL|ENTRY|SL|TP1|TP2|TP3|STATUS|ORDER_TYPE"
NEW_STATUS = "NEW"
# Status the EA writes back once it has acted on a line.
PROCESSED_STATUS = "PROCESSED"

DUPLICATE_SCAN_LINES = 50
_STATUS_FIELD = 10
_MIN_FIELDS = 11

Clock = Callable[[], datetime]


class SignalFileWriter:
    """Serialises signals to the EA file under a single lock.

    Timestamps are local time because the EA compares them with the terminal
    clock.
    """

    def __init__(
        self,
        path: Path,
        *,
        lock_timeout: float = 10.0,
        duplicate_window: timedelta = timedelta(minutes=10),
        retention: timedelta = timedelta(minutes=10),
        processed_retention: timedelta = timedelta(minutes=30),
        clock: Clock = datetime.now,
    ) -> None:
        self._path = Path(path)
        self._lock_timeout = lock_timeout
        self._duplicate_window = duplicate_window
        self._retention = retention
        self._processed_retention = processed_retention
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def format_line(self, record: ProcessedSignalRecord) -> str:
        signal = record.parsed
        if signal is None:
            raise ValueError("Cannot write a record without a parsed signal")
        direction = signal.direction.value if signal.direction else ""
        symbol = signal.final_symbol or signal.symbol
        fields = [
            self._clock().strftime(TIMESTAMP_FORMAT),
            record.channel_id,
            record.channel_name,
            direction,
            symbol,
            f"{signal.entry:.5f}",
            f"{signal.stop_loss:.5f}",
            f"{signal.take_profit1:.5f}",
            f"{signal.take_profit2:.5f}",
            f"{signal.take_profit3:.5f}",
            NEW_STATUS,
            (signal.order_type or OrderType.MARKET).value,
        ]
        return "|".join(fields)

    def reset_file(self) -> None:
        """Truncate the file and write a fresh header so old signals are never replayed."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        header = [
            HEADER_TITLE,
            f"# Startup Time: {self._clock().strftime(TIMESTAMP_FORMAT)} LOCAL",
            HEADER_FORMAT,
            "",
        ]
        self._path.write_text("\n".join(header) + "\n", encoding="utf-8")
        logger.info("Signal file %s cleared on startup.", self._path)

    async def write(self, record: ProcessedSignalRecord) -> bool:
        """Append the record's line; returns False when a recent duplicate suppressed it.

        Raises ``WriteTimeoutError`` when the lock cannot be taken in time.
        """
        line = self.format_line(record)
        signature = self._signature(record)
        await self._acquire()
        try:
            return await asyncio.to_thread(self._append_unless_duplicate, line, signature)
        finally:
            self._lock.release()

    async def cleanup(self) -> int:
        """Drop records older than the retention window; returns the number of lines removed."""
        await self._acquire()
        try:
            return await asyncio.to_thread(self._rewrite_recent)
        finally:
            self._lock.release()

    async def _acquire(self) -> None:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self._lock_timeout)
        except asyncio.TimeoutError as exc:
            logger.warning("Timed out waiting for the signal file lock after %ss.", self._lock_timeout)
            raise WriteTimeoutError("File write operation timed out") from exc

    @staticmethod
    def _signature(record: ProcessedSignalRecord) -> str:
        signal = record.parsed
        direction = signal.direction.value if signal and signal.direction else ""
        symbol = (signal.final_symbol or signal.symbol) if signal else ""
        return f"|{record.channel_id}|{record.channel_name}|{direction}|{symbol}|"

    def _append_unless_duplicate(self, line: str, signature: str) -> bool:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        if self._has_recent_duplicate(signature):
            logger.info("Skipped duplicate signal %s", signature.strip("|"))
            return False
        with self._path.open("a", encoding="utf-8") as handle:
            handle.write(line + "\n")
            handle.flush()
        logger.info("Signal written to %s: %s", self._path.name, line)
        return True

    def _has_recent_duplicate(self, signature: str) -> bool:
        if not self._path.exists():
            return False
        with self._path.open("r", encoding="utf-8") as handle:
            recent = deque(handle, maxlen=DUPLICATE_SCAN_LINES)

        cutoff = self._clock() - self._duplicate_window
        for raw in recent:
            line = raw.rstrip("\n")
            if line.startswith("#") or signature not in line:
                continue
            stamped = _parse_timestamp(line.split("|", 1)[0])
            if stamped is not None and stamped > cutoff:
                return True
        return False

    def _rewrite_recent(self) -> int:
        if not self._path.exists():
            return 0
        lines = self._path.read_text(encoding="utf-8").splitlines()
        now = self._clock()
        kept: List[str] = []
        for line in lines:
            if line.startswith("#") or not line.strip():
                kept.append(line)
                continue
            parts = line.split("|")
            if len(parts) < _MIN_FIELDS:
                continue
            stamped = _parse_timestamp(parts[0])
            if stamped is None:
                continue
            age = now - stamped
            if parts[_STATUS_FIELD] == PROCESSED_STATUS:
                if age <= self._processed_retention:
                    kept.append(line)
            elif age <= self._retention:
                kept.append(line)

        self._path.write_text("\n".join(kept) + "\n" if kept else "", encoding="utf-8")
        removed = len(lines) - len(kept)
        kept_signals = sum(1 for line in kept if line.strip() and not line.startswith("#"))
        logger.debug("Cleanup completed - kept %s signals, removed %s lines.", kept_signals, removed)
        return removed


def _parse_timestamp(value: str) -> Optional[datetime]:
    try:
        return datetime.strptime(value.strip(), TIMESTAMP_FORMAT)
    except ValueError:
        return None
