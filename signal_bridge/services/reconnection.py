from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Sequence

from ..domain.errors import FatalExhaustionError
from ..domain.models import ChannelInfo
from ..domain.ports.events import EventSink
from ..domain.ports.source import MessageSource

logger = logging.getLogger(__name__)

RECONNECT_DELAYS: Sequence[float] = (1, 2, 5, 10, 30)
MAX_RECONNECT_ATTEMPTS = 5

ChannelSnapshot = Callable[[], List[ChannelInfo]]
RestoreCallback = Callable[[List[ChannelInfo]], Awaitable[None]]
ExhaustedCallback = Callable[[FatalExhaustionError], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


class ReconnectionState(str, Enum):
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    EXHAUSTED = "exhausted"


class ReconnectionController:
    """Reconnects the message source with a fixed backoff ladder.

    A failure reported while a reconnection is already running is ignored.
    After ``max_attempts`` failed attempts the controller is exhausted and
    makes no further attempts until ``reset`` is called.
    """

    def __init__(
        self,
        source: MessageSource,
        sink: EventSink,
        *,
        snapshot: ChannelSnapshot,
        on_restore: RestoreCallback,
        on_exhausted: ExhaustedCallback,
        delays: Sequence[float] = RECONNECT_DELAYS,
        max_attempts: int = MAX_RECONNECT_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._source = source
        self._sink = sink
        self._snapshot = snapshot
        self._on_restore = on_restore
        self._on_exhausted = on_exhausted
        self._delays = tuple(delays)
        self._max_attempts = max_attempts
        self._sleep = sleep
        self._state = ReconnectionState.CONNECTED
        self._attempts = 0
        self._lock = asyncio.Lock()

    @property
    def state(self) -> ReconnectionState:
        return self._state

    @property
    def attempts(self) -> int:
        return self._attempts

    def reset(self) -> None:
        self._state = ReconnectionState.CONNECTED
        self._attempts = 0

    def next_delay(self) -> float:
        return self._delays[min(self._attempts, len(self._delays) - 1)]

    async def handle_failure(self, reason: str) -> ReconnectionState:
        if self._state is ReconnectionState.EXHAUSTED:
            logger.debug("Reconnection exhausted; ignoring failure: %s", reason)
            return self._state
        if self._lock.locked():
            return self._state

        async with self._lock:
            channels = self._snapshot()
            while self._attempts < self._max_attempts:
                delay = self.next_delay()
                self._attempts += 1
                self._state = ReconnectionState.RECONNECTING
                await self._sink.debug(
                    f"Attempting reconnection {self._attempts}/{self._max_attempts} in {delay}s"
                )
                await self._sleep(delay)

                try:
                    restored = await self._source.reconnect()
                except Exception as exc:
                    await self._sink.error(f"Reconnection failed: {exc}")
                    continue
                if not restored:
                    continue

                self.reset()
                if channels:
                    await self._on_restore(channels)
                await self._sink.debug("Reconnection successful")
                return self._state

            self._state = ReconnectionState.EXHAUSTED
            error = FatalExhaustionError(
                f"Maximum reconnection attempts reached ({self._max_attempts}). Stopping monitoring."
            )
            await self._sink.error(str(error))
            await self._on_exhausted(error)
            return self._state
