"""
Metrics collection for MDB_POLICY.

Records how long condition resolution, permission decisions and secured
database calls take and how often they fail, keyed by operation name and
tags (model, permission, collection).
"""

import threading
import time
from collections import OrderedDict
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def metric_key(operation_name: str, tags: dict[str, Any]) -> str:
    """`operation[k=v,...]` with tags sorted by name; the bare name without tags."""
    if not tags:
        return operation_name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{operation_name}[{rendered}]"


@dataclass
class OperationMetrics:
    """Running totals for one operation/tags combination."""

    operation_name: str
    tags: dict[str, Any] = field(default_factory=dict)
    count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float | None = None
    max_duration_ms: float = 0.0
    last_execution: datetime | None = None

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.count if self.count else 0.0

    @property
    def error_rate(self) -> float:
        """Failed executions, in percent."""
        return self.error_count * 100 / self.count if self.count else 0.0

    def record(self, duration_ms: float, success: bool = True) -> None:
        self.count += 1
        self.total_duration_ms += duration_ms
        if self.min_duration_ms is None or duration_ms < self.min_duration_ms:
            self.min_duration_ms = duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if not success:
            self.error_count += 1
        self.last_execution = datetime.now()

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation_name,
            "tags": dict(self.tags),
            "count": self.count,
            "error_count": self.error_count,
            "error_rate_percent": round(self.error_rate, 2),
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "min_duration_ms": round(self.min_duration_ms or 0.0, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
            "last_execution": self.last_execution.isoformat() if self.last_execution else None,
        }


class MetricsCollector:
    """
    Thread-safe, bounded metrics store.

    Once `max_metrics` distinct keys are held, recording a new key evicts the
    least recently recorded one.
    """

    def __init__(self, max_metrics: int = 10000):
        self._entries: OrderedDict[str, OperationMetrics] = OrderedDict()
        self._lock = threading.Lock()
        self._max_metrics = max_metrics

    def record_operation(
        self, operation_name: str, duration_ms: float, success: bool = True, **tags: Any
    ) -> None:
        """
        Record one execution.

        Args:
            operation_name: e.g. "policy.get_condition"
            duration_ms: Duration in milliseconds
            success: Whether the execution succeeded
            **tags: model, permission, collection, ...
        """
        key = metric_key(operation_name, tags)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                if len(self._entries) >= self._max_metrics:
                    self._entries.popitem(last=False)
                entry = self._entries[key] = OperationMetrics(operation_name, dict(tags))
            else:
                self._entries.move_to_end(key)
            entry.record(duration_ms, success)

    def get_metrics(self, operation_name: str | None = None) -> dict[str, Any]:
        """
        Snapshot of the recorded metrics.

        Args:
            operation_name: Only keys starting with this prefix
        """
        with self._lock:
            selected = {
                key: entry.to_dict()
                for key, entry in self._entries.items()
                if not operation_name or key.startswith(operation_name)
            }
            total = len(self._entries)
        return {
            "timestamp": datetime.now().isoformat(),
            "metrics": selected,
            "total_operations": total,
        }

    def _sum(self, operation_name: str, attribute: str) -> int:
        with self._lock:
            return sum(
                getattr(entry, attribute)
                for entry in self._entries.values()
                if entry.operation_name == operation_name
            )

    def get_operation_count(self, operation_name: str) -> int:
        """Executions of `operation_name`, across all tags."""
        return self._sum(operation_name, "count")

    def get_error_count(self, operation_name: str) -> int:
        """Failed executions of `operation_name`, across all tags."""
        return self._sum(operation_name, "error_count")

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


_metrics_collector: MetricsCollector | None = None
_collector_lock = threading.Lock()


def get_metrics_collector() -> MetricsCollector:
    """Process-wide collector, created on first use."""
    global _metrics_collector
    if _metrics_collector is None:
        with _collector_lock:
            if _metrics_collector is None:
                _metrics_collector = MetricsCollector()
    return _metrics_collector


def record_operation(
    operation_name: str, duration_ms: float, success: bool = True, **tags: Any
) -> None:
    """Record one execution in the process-wide collector."""
    get_metrics_collector().record_operation(operation_name, duration_ms, success, **tags)


@contextmanager
def timed_operation(operation_name: str, enabled: bool = True, **tags: Any) -> Iterator[None]:
    """
    Time the enclosed block and record it; any exception marks it failed.

    Usage:
        with timed_operation("policy.get_condition", model="Activity"):
            ...
    """
    if not enabled:
        yield
        return

    started = time.perf_counter()
    success = True
    try:
        yield
    except BaseException:
        success = False
        raise
    finally:
        record_operation(
            operation_name, (time.perf_counter() - started) * 1000, success, **tags
        )
