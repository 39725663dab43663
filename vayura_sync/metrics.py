# vayura_sync/metrics.py
from __future__ import annotations
import time
import threading
from collections import defaultdict
from typing import Dict, List

class _Latency:
    # rolling window of recent samples; enough for a p50/p95 on the ops page
    WINDOW = 200

    def __init__(self):
        self.lock = threading.Lock()
        self.count = 0
        self._samples: List[float] = []

    def observe_ms(self, ms: float):
        with self.lock:
            self.count += 1
            self._samples.append(ms)
            if len(self._samples) > self.WINDOW:
                self._samples = self._samples[-self.WINDOW:]

    def percentile(self, q: float) -> float:
        with self.lock:
            if not self._samples:
                return 0.0
            arr = sorted(self._samples)
            return arr[int(q * (len(arr) - 1))]

class Metrics:
    """Process-local counters for cache hits/misses, fetches and HTTP latency."""

    def __init__(self):
        self.counters: Dict[str, int] = defaultdict(int)
        self.latencies: Dict[str, _Latency] = defaultdict(_Latency)
        self.lock = threading.Lock()
        self.process_start_ns = time.time_ns()

    def inc(self, key: str, n: int = 1):
        with self.lock:
            self.counters[key] += n

    def observe_ms(self, key: str, ms: float):
        with self.lock:
            lat = self.latencies[key]
        lat.observe_ms(ms)

    def snapshot(self) -> Dict:
        up_ms = (time.time_ns() - self.process_start_ns) / 1e6
        with self.lock:
            counters = dict(self.counters)
            lats = dict(self.latencies)
        return {
            "uptime_ms": up_ms,
            "counters": counters,
            "latency_ms": {
                k: {"count": h.count, "p50": h.percentile(0.5), "p95": h.percentile(0.95)}
                for k, h in lats.items()
            },
        }

metrics = Metrics()
