from __future__ import annotations

import threading
from collections import defaultdict, deque
from typing import Deque, Dict

MESSAGES_PROCESSED = "MessagesProcessed"
PROCESSING_ERRORS = "ProcessingErrors"
POLLING_CYCLE = "PollingCycle"
HEALTH_CHECK = "HealthCheck"
PROCESSING_DELAY = "ProcessingDelay"

_MAX_SAMPLES = 1000


class PerformanceMetrics:
    """In-process latency samples and counters for the statistics endpoint."""

    def __init__(self, max_samples: int = _MAX_SAMPLES) -> None:
        self._latencies: Dict[str, Deque[float]] = defaultdict(lambda: deque(maxlen=max_samples))
        self._counters: Dict[str, int] = defaultdict(int)
        self._lock = threading.Lock()

    def record_latency(self, operation: str, milliseconds: float) -> None:
        with self._lock:
            self._latencies[operation].append(milliseconds)

    def average_latency(self, operation: str) -> float:
        with self._lock:
            samples = self._latencies.get(operation)
            if not samples:
                return 0.0
            return sum(samples) / len(samples)

    def increment(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._counters[name] += amount

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def cleanup(self) -> None:
        with self._lock:
            for operation in [key for key, samples in self._latencies.items() if not samples]:
                del self._latencies[operation]
