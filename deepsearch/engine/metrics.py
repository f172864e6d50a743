"""Search latency and counter metrics."""

import json
import time
from bisect import bisect_left
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import psutil
from loguru import logger

# Latency budget for one search (milliseconds)
SEARCH_P50_BUDGET_MS = 100
SEARCH_P99_BUDGET_MS = 500

BUCKETS_MS: Tuple[float, ...] = (1, 5, 10, 25, 50, 100, 200, 500, 1000, 5000)


@dataclass
class LatencyHistogram:
    """
    Bucketed latency distribution for one pipeline stage.
    Samples above the last bucket are counted in it.
    """
    stage: str
    bounds: Tuple[float, ...] = BUCKETS_MS
    hits: List[int] = field(default_factory=list)
    samples: int = 0
    total_ms: float = 0.0
    fastest_ms: Optional[float] = None
    slowest_ms: Optional[float] = None

    def __post_init__(self):
        if not self.hits:
            self.hits = [0] * len(self.bounds)

    def observe(self, elapsed_ms: float) -> None:
        self.samples += 1
        self.total_ms += elapsed_ms
        self.fastest_ms = elapsed_ms if self.fastest_ms is None else min(self.fastest_ms, elapsed_ms)
        self.slowest_ms = elapsed_ms if self.slowest_ms is None else max(self.slowest_ms, elapsed_ms)
        slot = min(bisect_left(self.bounds, elapsed_ms), len(self.bounds) - 1)
        self.hits[slot] += 1

    def percentile(self, pct: float) -> float:
        """Upper bound of the bucket holding the `pct` percentile sample."""
        if not self.samples:
            return 0.0
        needed = self.samples * pct / 100
        seen = 0
        for bound, count in zip(self.bounds, self.hits):
            seen += count
            if seen >= needed:
                return bound
        return self.bounds[-1]

    @property
    def mean_ms(self) -> float:
        return self.total_ms / self.samples if self.samples else 0.0

    def summary(self) -> Dict[str, Any]:
        return {
            "count": self.samples,
            "mean": round(self.mean_ms, 2),
            "min": round(self.fastest_ms or 0.0, 2),
            "max": round(self.slowest_ms or 0.0, 2),
            "p50": self.percentile(50),
            "p95": self.percentile(95),
            "p99": self.percentile(99),
        }


class MetricsCollector:
    """
    Per-engine metrics: stage latency histograms, event counters and a
    process memory sample. Owned by one SearchEngine, never global.
    """

    STAGES = ("search.total", "search.scoring", "expansion", "candidates")

    def __init__(self):
        self.started_at = time.time()
        self.reset()

    def reset(self) -> None:
        self.histograms: Dict[str, LatencyHistogram] = {s: LatencyHistogram(s) for s in self.STAGES}
        self.counters: Counter = Counter()

    def record_latency(self, stage: str, elapsed_ms: float) -> None:
        histogram = self.histograms.get(stage)
        if histogram is None:
            logger.warning(f"No latency histogram for stage '{stage}'")
            return
        histogram.observe(elapsed_ms)

    def increment_counter(self, event: str, amount: int = 1) -> None:
        self.counters[event] += amount

    def timer(self, stage: str) -> "LatencyTimer":
        return LatencyTimer(self, stage)

    @property
    def cache_hit_rate(self) -> float:
        lookups = self.counters["cache.hit"] + self.counters["cache.miss"]
        return self.counters["cache.hit"] / lookups if lookups else 0.0

    def check_budget(self) -> Dict[str, bool]:
        """Whether recorded end-to-end search latencies fit the budget."""
        total = self.histograms["search.total"]
        if not total.samples:
            return {}
        return {
            "search_p50_100ms": total.percentile(50) <= SEARCH_P50_BUDGET_MS,
            "search_p99_500ms": total.percentile(99) <= SEARCH_P99_BUDGET_MS,
        }

    def snapshot(self) -> Dict[str, Any]:
        rss = psutil.Process().memory_info().rss
        return {
            "timestamp": datetime.now().isoformat(),
            "uptime_s": round(time.time() - self.started_at, 1),
            "latencies": {stage: h.summary() for stage, h in self.histograms.items()},
            "counters": dict(self.counters),
            "cache_hit_rate": round(self.cache_hit_rate, 3),
            "budget": self.check_budget(),
            "memory_mb": round(rss / 1024 / 1024, 1),
        }

    def export_json(self) -> str:
        return json.dumps(self.snapshot(), indent=2, default=str)


class LatencyTimer:
    """Times a `with` block into one stage histogram."""

    def __init__(self, metrics: MetricsCollector, stage: str):
        self.metrics = metrics
        self.stage = stage
        self.elapsed_ms = 0.0
        self._started: Optional[float] = None

    def __enter__(self) -> "LatencyTimer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._started is not None:
            self.elapsed_ms = (time.perf_counter() - self._started) * 1000
            self.metrics.record_latency(self.stage, self.elapsed_ms)
        return False
