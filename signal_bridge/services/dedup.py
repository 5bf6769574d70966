from __future__ import annotations

import hashlib
import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def message_key(channel_id: str, message_id: int, content: str) -> str:
    return hashlib.md5(f"{channel_id}:{message_id}:{content}".encode("utf-8")).hexdigest()


class DeduplicationIndex:
    """Time-windowed set of message hashes seen by the poller."""

    def __init__(self, window: timedelta = timedelta(minutes=10), clock: Clock = _utcnow) -> None:
        self._window = window
        self._clock = clock
        self._seen: Dict[str, datetime] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._seen)

    def check_and_add(self, channel_id: str, message_id: int, content: str) -> bool:
        """Record the message and return True if it was already seen inside the window."""
        key = message_key(channel_id, message_id, content)
        now = self._clock()
        with self._lock:
            first_seen = self._seen.get(key)
            if first_seen is not None and now - first_seen < self._window:
                return True
            self._seen[key] = now
            return False

    def discard(self, channel_id: str, message_id: int, content: str) -> None:
        """Forget a message so the next poll delivers it again."""
        with self._lock:
            self._seen.pop(message_key(channel_id, message_id, content), None)

    def purge(self) -> int:
        cutoff = self._clock() - self._window
        with self._lock:
            stale = [key for key, seen in self._seen.items() if seen < cutoff]
            for key in stale:
                del self._seen[key]
        if stale:
            logger.debug("Purged %s stale message hashes.", len(stale))
        return len(stale)
