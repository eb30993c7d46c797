"""In-process counters for routing and ticket activity."""
from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict, Iterable, Mapping, MutableMapping, Tuple

LabelValues = Tuple[str, ...]


class CounterMetric:
    """Monotonic counter keyed by an ordered tuple of label values."""

    def __init__(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> None:
        self.name = name
        self.description = description
        self.label_names: Tuple[str, ...] = tuple(label_names or ())
        self._values: MutableMapping[LabelValues, float] = defaultdict(float)
        self._lock = Lock()

    def _label_values(self, labels: Mapping[str, str] | None) -> LabelValues:
        labels = labels or {}
        if set(labels) != set(self.label_names):
            raise ValueError(f"Metric '{self.name}' expects labels {self.label_names}, got {tuple(labels)}")
        return tuple(str(labels[name]) for name in self.label_names)

    def inc(self, amount: float = 1.0, *, labels: Mapping[str, str] | None = None) -> None:
        key = self._label_values(labels)
        with self._lock:
            self._values[key] += amount

    def value(self, *, labels: Mapping[str, str] | None = None) -> float:
        key = self._label_values(labels)
        with self._lock:
            return self._values.get(key, 0.0)

    def snapshot(self) -> Dict[str, float]:
        with self._lock:
            return {",".join(key): value for key, value in self._values.items()}


@dataclass(frozen=True)
class MetricDefinition:
    """Describe a counter that should exist in the registry."""

    name: str
    description: str
    label_names: Tuple[str, ...] = ()


DEFAULT_METRIC_DEFINITIONS: Tuple[MetricDefinition, ...] = (
    MetricDefinition(
        name="messages_routed_total",
        description="Inbound messages by the response action chosen for them.",
        label_names=("route",),
    ),
    MetricDefinition(
        name="lookup_failures_total",
        description="Content lookups that raised and were treated as no match.",
        label_names=("strategy",),
    ),
    MetricDefinition(
        name="ticket_transitions_total",
        description="Ticket lifecycle transitions that were persisted.",
        label_names=("action",),
    ),
)


class MetricsRegistry:
    """Registry holding named counters."""

    def __init__(self) -> None:
        self._metrics: MutableMapping[str, CounterMetric] = {}
        self._lock = Lock()

    def counter(self, name: str, *, description: str = "", label_names: Iterable[str] | None = None) -> CounterMetric:
        with self._lock:
            if name not in self._metrics:
                self._metrics[name] = CounterMetric(name, description=description, label_names=label_names)
            return self._metrics[name]

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Return a JSON friendly view of every counter."""

        with self._lock:
            metrics = list(self._metrics.values())
        return {metric.name: metric.snapshot() for metric in metrics}


def register_default_metrics(registry: MetricsRegistry) -> MetricsRegistry:
    for definition in DEFAULT_METRIC_DEFINITIONS:
        registry.counter(
            definition.name,
            description=definition.description,
            label_names=definition.label_names,
        )
    return registry


metrics_registry = register_default_metrics(MetricsRegistry())


def record_route(route: str, registry: MetricsRegistry | None = None) -> None:
    (registry or metrics_registry).counter("messages_routed_total").inc(labels={"route": route})


def record_lookup_failure(strategy: str, registry: MetricsRegistry | None = None) -> None:
    (registry or metrics_registry).counter("lookup_failures_total").inc(labels={"strategy": strategy})


def record_transition(action: str, registry: MetricsRegistry | None = None) -> None:
    (registry or metrics_registry).counter("ticket_transitions_total").inc(labels={"action": action})
