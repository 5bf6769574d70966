from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Deque, List, Optional

from ..domain.errors import MappingError, ValidationError, WriteTimeoutError
from ..domain.models import NewSignalEvent, PendingMessage, ProcessedSignalRecord, SignalStatus
from ..domain.ports.events import EventSink
from ..domain.ports.persistence import SignalRecordRepository
from .metrics import MESSAGES_PROCESSED, PROCESSING_DELAY, PROCESSING_ERRORS, PerformanceMetrics
from .signal_parser import SignalParser
from .signal_writer import SignalFileWriter

logger = logging.getLogger(__name__)


class SignalProcessor:
    """Single background worker that parses queued messages and writes signals to the EA file."""

    def __init__(
        self,
        parser: SignalParser,
        writer: Optional[SignalFileWriter],
        sink: EventSink,
        *,
        repository: Optional[SignalRecordRepository] = None,
        metrics: Optional[PerformanceMetrics] = None,
        history_limit: int = 1000,
        queue_size: int = 1000,
        dequeue_timeout: float = 0.1,
        enqueue_timeout: float = 0.1,
    ) -> None:
        self._parser = parser
        self._writer = writer
        self._sink = sink
        self._repository = repository
        self._metrics = metrics or PerformanceMetrics()
        self._history_limit = history_limit
        self._history: Deque[ProcessedSignalRecord] = deque(maxlen=history_limit)
        self._queue: asyncio.Queue[PendingMessage] = asyncio.Queue(maxsize=queue_size)
        self._dequeue_timeout = dequeue_timeout
        self._enqueue_timeout = enqueue_timeout
        self._worker: Optional[asyncio.Task[None]] = None
        self._shutdown = asyncio.Event()

    @property
    def is_running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self.is_running:
            return
        logger.info("Starting signal processor.")
        self._shutdown.clear()
        self._worker = asyncio.get_running_loop().create_task(self._run(), name="signal-processor")

    async def stop(self) -> None:
        """Stop the worker, then process whatever is still queued before returning."""
        if self._worker is not None:
            logger.info("Stopping signal processor.")
            self._shutdown.set()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

        drained = 0
        while not self._queue.empty():
            pending = self._queue.get_nowait()
            try:
                await self.process_message(pending)
            except Exception:  # pragma: no cover - defensive
                logger.exception("Unexpected error while draining signal queue.")
            finally:
                self._queue.task_done()
            drained += 1
        if drained:
            logger.info("Drained %s queued messages on stop.", drained)

    async def enqueue(self, pending: PendingMessage) -> None:
        try:
            await asyncio.wait_for(self._queue.put(pending), timeout=self._enqueue_timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Signal queue full; processing message %s from %s inline.",
                pending.message_id,
                pending.channel_name,
            )
            await self.process_message(pending)

    def recent_records(self, limit: int = 50, channel_id: Optional[str] = None) -> List[ProcessedSignalRecord]:
        records = [record for record in self._history if channel_id is None or record.channel_id == channel_id]
        return list(reversed(records[-limit:])) if limit > 0 else []

    async def _run(self) -> None:
        while not self._shutdown.is_set():
            try:
                pending = await asyncio.wait_for(self._queue.get(), timeout=self._dequeue_timeout)
            except asyncio.TimeoutError:
                continue
            try:
                await self.process_message(pending)
            except Exception:  # pragma: no cover - defensive
                logger.exception("Unexpected error while processing queued message.")
            finally:
                self._queue.task_done()

    async def process_message(self, pending: PendingMessage) -> ProcessedSignalRecord:
        started = time.perf_counter()
        record = ProcessedSignalRecord(
            id=uuid.uuid4().hex,
            timestamp=datetime.now(timezone.utc),
            channel_id=pending.channel_id,
            channel_name=pending.channel_name,
            original_text=pending.content,
            status=SignalStatus.NO_SIGNAL,
            message_id=pending.message_id,
        )

        if not pending.content or not pending.content.strip():
            record.status = SignalStatus.EMPTY
        else:
            await self._evaluate(record)

        self._metrics.record_latency(
            PROCESSING_DELAY,
            (datetime.now(timezone.utc) - _as_utc(pending.received_at)).total_seconds() * 1000,
        )
        self._metrics.increment(MESSAGES_PROCESSED)
        self._remember(record)
        logger.debug(
            "Processed message %s from %s in %.1f ms: %s",
            pending.message_id,
            pending.channel_name,
            (time.perf_counter() - started) * 1000,
            record.status,
        )

        if record.was_sent:
            await self._sink.new_signal(
                NewSignalEvent(record=record, message_time=pending.message_time, received_at=pending.received_at)
            )
        return record

    async def _evaluate(self, record: ProcessedSignalRecord) -> None:
        signal = self._parser.parse(record.original_text)
        if signal is None:
            record.status = SignalStatus.NO_SIGNAL
            return
        record.parsed = signal

        try:
            self._parser.map_symbol(signal)
            self._parser.validate(signal)
        except MappingError as exc:
            record.status = f"{SignalStatus.ERROR_PREFIX}{exc}"
            record.error = str(exc)
            self._metrics.increment(PROCESSING_ERRORS)
            await self._sink.error(f"Error processing signal: {exc}")
            return
        except ValidationError as exc:
            record.status = SignalStatus.INVALID
            record.error = str(exc)
            await self._sink.debug(f"Validation failed: {exc}")
            return

        if self._writer is None:
            record.status = f"{SignalStatus.WRITE_FAILED_PREFIX}EA files path not configured"
            record.error = "EA files path not configured"
            self._metrics.increment(PROCESSING_ERRORS)
            await self._sink.error("Cannot deliver signal: EA files path not configured")
            return

        try:
            written = await self._writer.write(record)
        except (WriteTimeoutError, OSError) as exc:
            record.status = f"{SignalStatus.WRITE_FAILED_PREFIX}{exc}"
            record.error = str(exc)
            self._metrics.increment(PROCESSING_ERRORS)
            await self._sink.error(f"Failed to write signal to EA file: {exc}")
            return

        record.status = SignalStatus.SENT if written else SignalStatus.DUPLICATE

    def _remember(self, record: ProcessedSignalRecord) -> None:
        self._history.append(record)
        if self._repository is None:
            return
        self._repository.save_record(record)
        trimmed = self._repository.trim_records(self._history_limit)
        if trimmed:
            logger.debug("Trimmed %s old signal records.", trimmed)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
