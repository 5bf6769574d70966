from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from ..domain.models import ChannelInfo, ChannelMonitorState, ChannelPriority, PendingMessage, priority_from_title
from ..domain.ports.events import EventSink
from ..domain.ports.source import MessageSource
from .dedup import DeduplicationIndex
from .metrics import POLLING_CYCLE, PerformanceMetrics

logger = logging.getLogger(__name__)

EnqueueCallback = Callable[[PendingMessage], Awaitable[None]]
PollFailureCallback = Callable[[ChannelMonitorState], Awaitable[None]]
Clock = Callable[[], datetime]

BASE_INTERVALS = {
    ChannelPriority.HIGH: timedelta(seconds=1),
    ChannelPriority.MEDIUM: timedelta(seconds=2),
    ChannelPriority.LOW: timedelta(seconds=5),
}
RATE_WINDOW = timedelta(minutes=5)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def adaptive_interval(state: ChannelMonitorState) -> timedelta:
    """Polling cadence for a channel given its priority, message rate and empty-poll streak."""
    base = BASE_INTERVALS.get(state.priority, timedelta(seconds=3))
    rate = state.recent_message_rate
    if rate > 10:
        return timedelta(milliseconds=500)
    if rate > 5:
        return base
    if rate > 1:
        return base * 2
    if state.consecutive_empty_polls > 10:
        return timedelta(seconds=30)
    if state.consecutive_empty_polls > 5:
        return timedelta(seconds=10)
    return base * 3


class AdaptivePollScheduler:
    """Owns the per-channel state map and polls due channels on a fixed tick.

    A tick never waits for the previous cycle; if that cycle is still running
    the tick is skipped.
    """

    def __init__(
        self,
        source: MessageSource,
        dedup: DeduplicationIndex,
        enqueue: EnqueueCallback,
        sink: EventSink,
        *,
        metrics: Optional[PerformanceMetrics] = None,
        tick_interval: float = 0.5,
        max_channels_per_cycle: int = 10,
        history_limit: int = 20,
        max_attempts: int = 3,
        retry_delay: float = 0.1,
        on_poll_failure: Optional[PollFailureCallback] = None,
        clock: Clock = _utcnow,
    ) -> None:
        self._source = source
        self._dedup = dedup
        self._enqueue = enqueue
        self._sink = sink
        self._metrics = metrics or PerformanceMetrics()
        self._tick_interval = tick_interval
        self._max_channels = max_channels_per_cycle
        self._history_limit = history_limit
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self._on_poll_failure = on_poll_failure
        self._clock = clock

        self._states: Dict[str, ChannelMonitorState] = {}
        self._cycle_lock = asyncio.Lock()
        self._tick_task: Optional[asyncio.Task[None]] = None
        self._cycle_task: Optional[asyncio.Task[int]] = None

    @property
    def states(self) -> Dict[str, ChannelMonitorState]:
        return self._states

    @property
    def is_running(self) -> bool:
        return self._tick_task is not None and not self._tick_task.done()

    def channels(self) -> List[ChannelInfo]:
        return [state.to_info() for state in self._states.values()]

    async def start(self, channels: Sequence[ChannelInfo], cursors: Optional[Mapping[str, int]] = None) -> int:
        """Begin polling ``channels``.

        Channels listed in ``cursors`` resume from that message id; the rest
        start at their latest message so history is never replayed.
        """
        await self.stop()
        cursors = cursors or {}
        now = self._clock()
        for channel in channels:
            state = ChannelMonitorState(
                channel_id=channel.channel_id,
                name=channel.title,
                handle=channel.handle,
                priority=channel.priority if channel.priority is not None else priority_from_title(channel.title),
                last_poll_time=now,
                last_message_time=now,
            )
            if channel.channel_id in cursors:
                state.last_processed_message_id = cursors[channel.channel_id]
            else:
                state.last_processed_message_id = await self._initial_cursor(state)
            self._states[state.channel_id] = state

        self._tick_task = asyncio.get_running_loop().create_task(self._tick_loop(), name="poll-scheduler")
        logger.info("Adaptive polling started for %s channels.", len(self._states))
        return len(self._states)

    async def stop(self) -> None:
        """Halt ticking, let an in-flight cycle finish, then forget channel state."""
        if self._tick_task is not None:
            self._tick_task.cancel()
            await asyncio.gather(self._tick_task, return_exceptions=True)
            self._tick_task = None
        if self._cycle_task is not None:
            await asyncio.gather(self._cycle_task, return_exceptions=True)
            self._cycle_task = None
        if self._states:
            logger.info("Adaptive polling stopped for %s channels.", len(self._states))
        self._states.clear()

    async def _initial_cursor(self, state: ChannelMonitorState) -> int:
        try:
            return await self._source.get_latest_message_id(state.handle)
        except Exception as exc:
            await self._sink.debug(f"Failed to get latest message ID for {state.name}: {exc}")
            return 0

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(self._tick_interval)
            if self._cycle_lock.locked():
                continue
            self._cycle_task = asyncio.get_running_loop().create_task(self.run_cycle(), name="poll-cycle")

    def due_channels(self, now: Optional[datetime] = None) -> List[ChannelMonitorState]:
        now = now or self._clock()
        due = [state for state in self._states.values() if now - state.last_poll_time >= adaptive_interval(state)]
        due.sort(key=lambda state: (-int(state.priority), state.last_poll_time))
        return due[: self._max_channels]

    async def run_cycle(self) -> int:
        """Poll every due channel concurrently; returns the number polled, 0 when skipped."""
        if self._cycle_lock.locked():
            return 0
        async with self._cycle_lock:
            started = time.perf_counter()
            batch = self.due_channels()
            if not batch:
                return 0
            await asyncio.gather(*(self.poll_with_retry(state) for state in batch))
            elapsed = (time.perf_counter() - started) * 1000
            self._metrics.record_latency(POLLING_CYCLE, elapsed)
            await self._sink.debug(f"Polled {len(batch)} channels in {elapsed:.0f}ms")
            return len(batch)

    async def poll_with_retry(self, state: ChannelMonitorState) -> bool:
        last_error: Optional[Exception] = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self.poll_channel(state)
            except Exception as exc:
                last_error = exc
                state.consecutive_errors += 1
                logger.debug("Poll attempt %s for %s failed: %s", attempt, state.name, exc)
                if attempt < self._max_attempts:
                    await asyncio.sleep(self._retry_delay * attempt)
                continue
            state.consecutive_errors = 0
            return True

        await self._sink.error(
            f"Failed to poll {state.name} after {self._max_attempts} attempts: {last_error}"
        )
        if self._on_poll_failure is not None:
            await self._on_poll_failure(state)
        return False

    async def poll_channel(self, state: ChannelMonitorState) -> int:
        """Fetch messages past the cursor, enqueue unseen ones and update the channel's counters."""
        cursor = state.last_processed_message_id
        history = await self._source.get_history_since(state.handle, cursor, self._history_limit)
        messages = sorted(
            (message for message in history if message.message_id > cursor and message.text),
            key=lambda message: message.message_id,
        )
        now = self._clock()

        if messages:
            state.consecutive_empty_polls = 0
            for message in messages:
                if self._dedup.check_and_add(state.channel_id, message.message_id, message.text):
                    continue
                try:
                    await self._enqueue(
                        PendingMessage(
                            content=message.text,
                            channel_id=state.channel_id,
                            channel_name=state.name,
                            message_id=message.message_id,
                            message_time=message.timestamp,
                            received_at=now,
                        )
                    )
                except Exception:
                    # Unmark so the retry re-delivers it; the cursor has not moved.
                    self._dedup.discard(state.channel_id, message.message_id, message.text)
                    raise
                state.message_count += 1
                state.last_message_time = now

            state.advance_cursor(messages[-1].message_id)
            recent = sum(1 for message in messages if _as_utc(message.timestamp) > now - RATE_WINDOW)
            state.recent_message_rate = recent / 5.0
            await self._sink.debug(f"Processed {len(messages)} new messages from {state.name}")
        else:
            state.consecutive_empty_polls += 1

        state.last_poll_time = now
        return len(messages)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
