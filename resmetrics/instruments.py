"""Minimal histogram, counter and gauge instruments for server self-monitoring."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

DEF_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)


def exponential_buckets(start: float, factor: float, count: int) -> tuple[float, ...]:
    """Return count buckets, the first at start, each factor times the last."""
    if count < 1:
        raise ValueError("exponential_buckets needs a positive count")
    if start <= 0:
        raise ValueError("exponential_buckets needs a positive start value")
    if factor <= 1:
        raise ValueError("exponential_buckets needs a factor greater than 1")
    buckets = []
    for _ in range(count):
        buckets.append(start)
        start *= factor
    return tuple(buckets)


def _full_name(namespace: str, subsystem: str, name: str) -> str:
    return "_".join(part for part in (namespace, subsystem, name) if part)


@dataclass
class Histogram:
    buckets: tuple[float, ...]
    cumulative_counts: list[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self) -> None:
        if not self.cumulative_counts:
            self.cumulative_counts = [0] * len(self.buckets)

    def observe(self, value: float) -> None:
        for i, bound in enumerate(self.buckets):
            if value <= bound:
                self.cumulative_counts[i] += 1
        self.sum += value
        self.count += 1


@dataclass
class Counter:
    value: float = 0.0

    def inc(self) -> None:
        self.value += 1


@dataclass
class Gauge:
    value: float = 0.0

    def set(self, value: float) -> None:
        self.value = value


class _Vec:
    def __init__(self, namespace: str, subsystem: str, name: str, help: str, label_names: Sequence[str]) -> None:
        self.full_name = _full_name(namespace, subsystem, name)
        self.help = help
        self.label_names = tuple(label_names)
        self.children: dict[tuple[str, ...], object] = {}

    def _child(self, values: Sequence[str], factory):
        key = tuple(values)
        if len(key) != len(self.label_names):
            raise ValueError(
                f"{self.full_name}: expected {len(self.label_names)} label values, got {len(key)}"
            )
        if key not in self.children:
            self.children[key] = factory()
        return self.children[key]

    def reset(self) -> None:
        self.children.clear()


class HistogramVec(_Vec):
    def __init__(self, namespace: str, subsystem: str, name: str, help: str,
                 buckets: Sequence[float], label_names: Sequence[str] = ()) -> None:
        super().__init__(namespace, subsystem, name, help, label_names)
        self.buckets = tuple(buckets)

    def with_label_values(self, values: Sequence[str]) -> Histogram:
        return self._child(values, lambda: Histogram(self.buckets))

    def reset(self) -> None:
        super().reset()


class CounterVec(_Vec):
    def with_label_values(self, values: Sequence[str]) -> Counter:
        return self._child(values, Counter)

    def reset(self) -> None:
        super().reset()


class GaugeVec(_Vec):
    def with_label_values(self, values: Sequence[str]) -> Gauge:
        return self._child(values, Gauge)

    def reset(self) -> None:
        super().reset()


metric_freshness = HistogramVec(
    namespace="metrics_server",
    subsystem="api",
    name="metric_freshness_seconds",
    help="Freshness of metrics exported",
    buckets=exponential_buckets(1, 1.364, 20),
)


def register_api_metrics(registration_func: Callable[[object], object]):
    """Register the metric-freshness histogram with the given function."""
    return registration_func(metric_freshness)