from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence

from ...domain.errors import FatalExhaustionError, WriteTimeoutError
from ...domain.models import ChannelInfo, ChannelMonitorState, MonitoringStatusEvent
from ...domain.ports.events import EventSink
from ...domain.ports.source import MessageSource
from ...services.dedup import DeduplicationIndex
from ...services.health import ChannelHealthMonitor
from ...services.metrics import (
    HEALTH_CHECK,
    MESSAGES_PROCESSED,
    POLLING_CYCLE,
    PROCESSING_ERRORS,
    PerformanceMetrics,
)
from ...services.reconnection import (
    MAX_RECONNECT_ATTEMPTS,
    RECONNECT_DELAYS,
    ReconnectionController,
    ReconnectionState,
)
from ...services.scheduler import AdaptivePollScheduler
from ...services.signal_processor import SignalProcessor
from ...services.signal_writer import SignalFileWriter

logger = logging.getLogger(__name__)

ChannelResolver = Callable[[Iterable[str]], Awaitable[List[ChannelInfo]]]


class MonitoringService:
    """Runs the polling scheduler, queue worker, health checks and maintenance as one unit."""

    def __init__(
        self,
        source: MessageSource,
        processor: SignalProcessor,
        dedup: DeduplicationIndex,
        sink: EventSink,
        *,
        writer: Optional[SignalFileWriter] = None,
        metrics: Optional[PerformanceMetrics] = None,
        resolver: Optional[ChannelResolver] = None,
        tick_interval: float = 0.5,
        health_interval: float = 60.0,
        maintenance_interval: float = 300.0,
        reconnect_delays: Sequence[float] = RECONNECT_DELAYS,
        max_reconnect_attempts: int = MAX_RECONNECT_ATTEMPTS,
    ) -> None:
        self._source = source
        self._processor = processor
        self._dedup = dedup
        self._sink = sink
        self._writer = writer
        self._metrics = metrics or PerformanceMetrics()
        self._resolver = resolver
        self._health_interval = health_interval
        self._maintenance_interval = maintenance_interval

        self._scheduler = AdaptivePollScheduler(
            source,
            dedup,
            processor.enqueue,
            sink,
            metrics=self._metrics,
            tick_interval=tick_interval,
            on_poll_failure=self._on_poll_failure,
        )
        self._health = ChannelHealthMonitor(sink)
        self._reconnection = ReconnectionController(
            source,
            sink,
            snapshot=self._scheduler.channels,
            on_restore=self._restore,
            on_exhausted=self._on_exhausted,
            delays=reconnect_delays,
            max_attempts=max_reconnect_attempts,
        )

        self._active = False
        self._background: List[asyncio.Task[None]] = []
        self._reconnect_task: Optional[asyncio.Task[Any]] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def scheduler(self) -> AdaptivePollScheduler:
        return self._scheduler

    @property
    def reconnection(self) -> ReconnectionController:
        return self._reconnection

    # ------------------------------------------------------------------ #
    async def start_monitoring(self, channels: Sequence[ChannelInfo]) -> int:
        if self._active:
            await self.stop_monitoring()
        try:
            await self._processor.start()
            count = await self._scheduler.start(channels)
        except Exception as exc:
            self._active = False
            await self._sink.error(f"Failed to start monitoring: {exc}")
            await self._sink.monitoring_status_changed(
                MonitoringStatusEvent(active=False, channel_count=0, reason=f"Start failed: {exc}")
            )
            raise

        self._reconnection.reset()
        self._active = True
        loop = asyncio.get_running_loop()
        self._background = [
            loop.create_task(self._periodic(self._health_interval, self.run_health_check), name="health-check"),
            loop.create_task(self._periodic(self._maintenance_interval, self.run_maintenance), name="maintenance"),
        ]
        await self._sink.monitoring_status_changed(
            MonitoringStatusEvent(active=True, channel_count=count, reason="Monitoring active")
        )
        return count

    async def start_from_identifiers(self, identifiers: Iterable[str]) -> int:
        if self._resolver is None:
            raise ValueError("No channel resolver configured.")
        cleaned: List[str] = []
        for identifier in identifiers:
            value = (identifier or "").strip()
            if value and value not in cleaned:
                cleaned.append(value)
        if not cleaned:
            raise ValueError("Provide at least one channel to monitor.")
        channels = await self._resolver(cleaned)
        if not channels:
            raise ValueError("None of the requested channels could be resolved.")
        return await self.start_monitoring(channels)

    async def stop_monitoring(self, reason: str = "Monitoring stopped", *, fatal: bool = False) -> None:
        current = asyncio.current_task()
        for task in self._background:
            if task is not current:
                task.cancel()
        await asyncio.gather(*(task for task in self._background if task is not current), return_exceptions=True)
        self._background = []

        was_active = self._active
        self._active = False
        await self._scheduler.stop()
        await self._processor.stop()
        if was_active or fatal:
            await self._sink.monitoring_status_changed(
                MonitoringStatusEvent(active=False, channel_count=0, reason=reason, fatal=fatal)
            )

    async def shutdown(self) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            self._reconnect_task.cancel()
            await asyncio.gather(self._reconnect_task, return_exceptions=True)
        await self.stop_monitoring()

    # ------------------------------------------------------------------ #
    async def run_health_check(self) -> None:
        if not self._active:
            return
        started = time.perf_counter()
        try:
            healthy = await self._source.probe()
        except Exception as exc:
            logger.warning("Health probe raised: %s", exc)
            healthy = False

        if not healthy:
            await self._sink.error("Health check failed: message source is unreachable")
            self.trigger_reconnect("health check failed")
            return

        elapsed = (time.perf_counter() - started) * 1000
        self._metrics.record_latency(HEALTH_CHECK, elapsed)
        await self._health.check(self._scheduler.states.values())
        await self._sink.debug(f"Health check completed in {elapsed:.0f}ms")

    async def run_maintenance(self) -> None:
        purged = self._dedup.purge()
        self._metrics.cleanup()
        removed = 0
        if self._writer is not None:
            try:
                removed = await self._writer.cleanup()
            except (WriteTimeoutError, OSError) as exc:
                await self._sink.error(f"Failed to cleanup signals: {exc}")
        await self._sink.debug(
            f"Cleanup completed - removed {purged} old message hashes and {removed} stale signal lines"
        )

    def trigger_reconnect(self, reason: str) -> None:
        if self._reconnect_task is not None and not self._reconnect_task.done():
            return
        if self._reconnection.state is ReconnectionState.EXHAUSTED:
            return
        self._reconnect_task = asyncio.get_running_loop().create_task(
            self._reconnection.handle_failure(reason), name="reconnect"
        )

    async def _on_poll_failure(self, state: ChannelMonitorState) -> None:
        # A single broken channel should not tear down the session; only reconnect
        # when the source itself is unreachable.
        try:
            healthy = await self._source.probe()
        except Exception:
            healthy = False
        if not healthy:
            self.trigger_reconnect(f"poll failed for {state.name}")

    async def _restore(self, channels: List[ChannelInfo]) -> None:
        if not self._active:
            return
        cursors = {channel_id: state.last_processed_message_id for channel_id, state in self._scheduler.states.items()}
        count = await self._scheduler.start(channels, cursors=cursors)
        await self._sink.monitoring_status_changed(
            MonitoringStatusEvent(active=True, channel_count=count, reason="Monitoring restored after reconnection")
        )

    async def _on_exhausted(self, error: FatalExhaustionError) -> None:
        await self.stop_monitoring(reason=str(error), fatal=True)

    async def _periodic(self, interval: float, job: Callable[[], Awaitable[None]]) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await job()
            except Exception:
                logger.exception("Periodic %s job failed.", getattr(job, "__name__", "monitoring"))

    # ------------------------------------------------------------------ #
    def statistics(self) -> Dict[str, Any]:
        return {
            "active": self._active,
            "monitored_channels": len(self._scheduler.states),
            "messages_processed": self._metrics.counter(MESSAGES_PROCESSED),
            "processing_errors": self._metrics.counter(PROCESSING_ERRORS),
            "average_latency_ms": self._metrics.average_latency(POLLING_CYCLE),
            "queue_size": self._processor.queue_size,
            "reconnection_state": self._reconnection.state.value,
            "channels": [
                {
                    "channel_id": state.channel_id,
                    "channel_name": state.name,
                    "priority": state.priority.name,
                    "message_count": state.message_count,
                    "last_message_time": state.last_message_time,
                    "health": state.health.value,
                    "message_rate": state.recent_message_rate,
                    "consecutive_errors": state.consecutive_errors,
                }
                for state in self._scheduler.states.values()
            ],
        }
