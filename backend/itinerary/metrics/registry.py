"""In-process metrics registry for the itinerary pipeline."""

import threading
from collections import defaultdict


class MetricsClient:
    """
    Simple in-process metrics client for tracking pipeline behaviour.

    Stores metrics in memory for testing and internal monitoring.
    Can be replaced with Prometheus/OpenTelemetry in the future.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()

        # Generation outcomes: "success" | "fallback" -> count
        self.generations: dict[str, int] = defaultdict(int)

        # Generation latency observations in milliseconds
        self.generation_latencies: list[int] = []

        # Recovery attempts: error code -> count
        self.recovery_attempts: dict[str, int] = defaultdict(int)

        # Storage operations: tier -> outcome -> count
        self.storage_ops: dict[str, dict[str, int]] = defaultdict(
            lambda: defaultdict(int)
        )

        # Sync outcomes: "synced" | "conflict" | "queued" | "error" -> count
        self.sync_outcomes: dict[str, int] = defaultdict(int)

        # Updates: type -> count, path ("incremental" | "full") -> count
        self.updates: dict[str, int] = defaultdict(int)
        self.update_paths: dict[str, int] = defaultdict(int)

        # Violation counts: kind -> count
        self.violation_counts: dict[str, int] = defaultdict(int)

        self.auto_regenerations: int = 0
        self.evictions: int = 0

    def inc_generation(self, outcome: str, latency_ms: int) -> None:
        """Record a finished generation call."""
        with self._lock:
            self.generations[outcome] += 1
            self.generation_latencies.append(latency_ms)

    def inc_recovery_attempt(self, code: str) -> None:
        """Increment recovery attempts for an error code."""
        with self._lock:
            self.recovery_attempts[code] += 1

    def inc_storage_op(self, tier: str, outcome: str) -> None:
        """Increment a storage operation counter for a tier."""
        with self._lock:
            self.storage_ops[tier][outcome] += 1

    def inc_sync_outcome(self, outcome: str) -> None:
        with self._lock:
            self.sync_outcomes[outcome] += 1

    def inc_update(self, update_type: str, path: str) -> None:
        """Increment update counters by type and processing path."""
        with self._lock:
            self.updates[update_type] += 1
            self.update_paths[path] += 1

    def inc_violation(self, kind: str) -> None:
        """Increment violation counter for a kind."""
        with self._lock:
            self.violation_counts[kind] += 1

    def inc_auto_regeneration(self) -> None:
        with self._lock:
            self.auto_regenerations += 1

    def inc_eviction(self, count: int = 1) -> None:
        with self._lock:
            self.evictions += count

    def get_storage_error_count(self, tier: str) -> int:
        """Get failed operation count for a tier."""
        return self.storage_ops.get(tier, {}).get("error", 0)

    def get_generation_stats(self) -> dict[str, float]:
        """Get generation latency statistics."""
        latencies = self.generation_latencies
        if not latencies:
            return {"count": 0, "min": 0, "max": 0, "avg": 0}

        return {
            "count": len(latencies),
            "min": min(latencies),
            "max": max(latencies),
            "avg": sum(latencies) / len(latencies),
        }
