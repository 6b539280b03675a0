"""Tabular rendering of node and pod metrics."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from resmetrics.quantity import Quantity
from resmetrics.types import NodeMetrics, PodMetrics


@dataclass
class TableColumnDefinition:
    name: str
    type: str
    format: str
    description: str = ""


@dataclass
class TableRow:
    cells: list[Any]
    object: Any = None


@dataclass
class Table:
    column_definitions: list[TableColumnDefinition] = field(default_factory=list)
    rows: list[TableRow] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_: str = ""


def _fraction(value: int, precision: int) -> str:
    whole, frac = divmod(value, 10**precision)
    if not frac:
        return str(whole)
    return f"{whole}.{str(frac).zfill(precision).rstrip('0')}"


def format_duration(nanoseconds: int) -> str:
    """Render a duration the way the cluster tools do, e.g. '1µs' or '1h2m3.5s'."""
    sign = "-" if nanoseconds < 0 else ""
    u = abs(int(nanoseconds))
    if u == 0:
        return "0s"
    if u < 1_000:
        return f"{sign}{u}ns"
    if u < 1_000_000:
        return f"{sign}{_fraction(u, 3)}µs"
    if u < 1_000_000_000:
        return f"{sign}{_fraction(u, 6)}ms"
    minutes, secs = divmod(u, 60_000_000_000)
    text = _fraction(secs, 9) + "s"
    if minutes:
        hours, mins = divmod(minutes, 60)
        text = f"{mins}m" + text
        if hours:
            text = f"{hours}h" + text
    return sign + text


def _columns(names: list[str]) -> list[TableColumnDefinition]:
    return [
        TableColumnDefinition("Name", "string", "name", "Name of the resource"),
        *(TableColumnDefinition(n, "string", "quantity") for n in names),
        TableColumnDefinition("Window", "string", "duration"),
    ]


def _add_rows(table: Table, items: Iterable[tuple[Any, dict[str, Quantity]]]) -> None:
    names: list[str] | None = None
    for obj, usage in items:
        if names is None:
            names = sorted(usage)
            table.column_definitions = _columns(names)
        cells = [obj.name, *(str(usage.get(n, Quantity())) for n in names), format_duration(obj.window)]
        table.rows.append(TableRow(cells, obj))


def _pod_usage(pod: PodMetrics) -> dict[str, Quantity]:
    usage: dict[str, Quantity] = {}
    for container in pod.containers:
        for key, value in container.usage.items():
            usage[key] = usage.get(key, Quantity()).add(value)
    return usage


def add_pod_metrics_to_table(table: Table, pods: Iterable[PodMetrics]) -> None:
    """Append one row per pod, summing container usage."""
    _add_rows(table, ((pod, _pod_usage(pod)) for pod in pods))


def add_node_metrics_to_table(table: Table, nodes: Iterable[NodeMetrics]) -> None:
    """Append one row per node."""
    _add_rows(table, ((node, dict(node.usage)) for node in nodes))