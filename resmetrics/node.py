"""Read-only storage serving node resource metrics."""

from __future__ import annotations

import logging
from typing import Iterable, Protocol, Sequence

from resmetrics.clock import RealClock
from resmetrics.instruments import metric_freshness
from resmetrics.selectors import (
    LabelSelector,
    ListOptions,
    Requirement,
    everything,
    filter_nodes,
)
from resmetrics.table import Table, add_node_metrics_to_table
from resmetrics.types import Node, NodeMetrics, NodeMetricsList, NotFoundError

_log = logging.getLogger(__name__)


class _NodeLister(Protocol):
    def list(self, selector: LabelSelector) -> list[Node]: ...

    def get(self, name: str) -> Node | None: ...


class _NodeMetricsGetter(Protocol):
    def get_node_metrics(self, nodes: Sequence[Node]) -> list[NodeMetrics]: ...


class NodeMetricsStorage:
    """Serves NodeMetrics objects for the nodes known to a lister."""

    def __init__(
        self,
        group_resource: str,
        metrics: _NodeMetricsGetter,
        node_lister: _NodeLister,
        node_selector: Iterable[Requirement] | None = None,
        clock=None,
    ) -> None:
        self.group_resource = group_resource
        self._metrics = metrics
        self._node_lister = node_lister
        self._node_selector = tuple(node_selector) if node_selector is not None else None
        self._clock = clock if clock is not None else RealClock()

    def new(self) -> NodeMetrics:
        return NodeMetrics(name="")

    def destroy(self) -> None:
        """Nothing to release."""

    def kind(self) -> str:
        return "NodeMetrics"

    def new_list(self) -> NodeMetricsList:
        return NodeMetricsList()

    def list(self, options: ListOptions | None = None) -> NodeMetricsList:
        """Metrics of every node matching the options, sorted by name."""
        nodes = self._nodes(options)
        try:
            items = self._get_metrics(nodes)
        except Exception as err:
            _log.error("Failed reading nodes metrics: %s", err)
            raise RuntimeError(f"failed reading nodes metrics: {err}") from err
        return NodeMetricsList(items=items)

    def _nodes(self, options: ListOptions | None) -> list[Node]:
        selector = everything()
        if options is not None and options.label_selector is not None:
            selector = options.label_selector
        if self._node_selector is not None:
            selector = selector.add(self._node_selector)
        try:
            nodes = list(self._node_lister.list(selector))
        except Exception as err:
            _log.error("Failed listing nodes (labelSelector=%s): %s", selector, err)
            raise RuntimeError(f"failed listing nodes: {err}") from err
        if options is not None and options.field_selector is not None:
            nodes = filter_nodes(nodes, options.field_selector)
        return nodes

    def get(self, name: str) -> NodeMetrics:
        """Metrics of one node; raises NotFoundError if there are none."""
        try:
            node = self._node_lister.get(name)
        except NotFoundError:
            raise
        except Exception as err:
            _log.error("Failed getting node %s: %s", name, err)
            raise RuntimeError(f"failed getting node: {err}") from err
        if node is None:
            raise NotFoundError(self.group_resource, name)
        try:
            items = self._get_metrics([node])
        except Exception as err:
            _log.error("Failed reading node metrics for %s: %s", name, err)
            raise RuntimeError(f"failed reading node metrics: {err}") from err
        if not items:
            raise NotFoundError(self.group_resource, name)
        return items[0]

    def convert_to_table(self, obj) -> Table:
        """Render a NodeMetrics or NodeMetricsList as a table; anything else gives an empty one."""
        table = Table()
        if isinstance(obj, NodeMetrics):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            add_node_metrics_to_table(table, [obj])
        elif isinstance(obj, NodeMetricsList):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            table.continue_ = obj.continue_
            add_node_metrics_to_table(table, obj.items)
        return table

    def _get_metrics(self, nodes: Sequence[Node]) -> list[NodeMetrics]:
        items = list(self._metrics.get_node_metrics(nodes))
        histogram = metric_freshness.with_label_values(())
        for item in items:
            if item.timestamp is not None:
                histogram.observe(self._clock.since(item.timestamp).total_seconds())
        items.sort(key=lambda m: m.name)
        return items

    def namespace_scoped(self) -> bool:
        return False

    def singular_name(self) -> str:
        return "node"