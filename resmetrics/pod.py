"""Read-only storage serving pod resource metrics."""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

from resmetrics.clock import RealClock
from resmetrics.instruments import metric_freshness
from resmetrics.selectors import LabelSelector, ListOptions, everything, filter_pod_metadata
from resmetrics.table import Table, add_pod_metrics_to_table
from resmetrics.types import NotFoundError, PodMetadata, PodMetrics, PodMetricsList

_log = logging.getLogger(__name__)


class _PodLister(Protocol):
    def list(self, namespace: str, selector: LabelSelector) -> list[PodMetadata]: ...

    def get(self, namespace: str, name: str) -> PodMetadata | None: ...


class _PodMetricsGetter(Protocol):
    def get_pod_metrics(self, pods: Sequence[PodMetadata]) -> list[PodMetrics]: ...


class PodMetricsStorage:
    """Serves PodMetrics objects for the pods known to a lister."""

    def __init__(self, group_resource: str, metrics: _PodMetricsGetter, pod_lister: _PodLister, clock=None) -> None:
        self.group_resource = group_resource
        self._metrics = metrics
        self._pod_lister = pod_lister
        self._clock = clock if clock is not None else RealClock()

    def new(self) -> PodMetrics:
        return PodMetrics(name="")

    def destroy(self) -> None:
        """Nothing to release."""

    def kind(self) -> str:
        return "PodMetrics"

    def new_list(self) -> PodMetricsList:
        return PodMetricsList()

    def list(self, namespace: str = "", options: ListOptions | None = None) -> PodMetricsList:
        """Metrics of every pod in the namespace matching the options, sorted by namespace and name."""
        pods = self._pods(namespace, options)
        try:
            items = self._get_metrics(pods)
        except Exception as err:
            _log.error("Failed reading pods metrics (namespace=%s): %s", namespace, err)
            raise RuntimeError(f"failed reading pods metrics: {err}") from err
        return PodMetricsList(items=items)

    def _pods(self, namespace: str, options: ListOptions | None) -> list[PodMetadata]:
        selector = everything()
        if options is not None and options.label_selector is not None:
            selector = options.label_selector
        try:
            pods = list(self._pod_lister.list(namespace, selector))
        except Exception as err:
            _log.error("Failed listing pods (labelSelector=%s, namespace=%s): %s", selector, namespace, err)
            raise RuntimeError(f"failed listing pods: {err}") from err
        if options is not None and options.field_selector is not None:
            pods = filter_pod_metadata(pods, options.field_selector)
        return pods

    def get(self, namespace: str, name: str) -> PodMetrics:
        """Metrics of one pod; raises NotFoundError if there are none."""
        try:
            pod = self._pod_lister.get(namespace, name)
        except NotFoundError:
            raise
        except Exception as err:
            _log.error("Failed getting pod %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed getting pod: {err}") from err
        if pod is None:
            raise NotFoundError("pods", f"{namespace}/{name}")
        try:
            items = self._get_metrics([pod])
        except Exception as err:
            _log.error("Failed reading pod metrics for %s/%s: %s", namespace, name, err)
            raise RuntimeError(f"failed pod metrics: {err}") from err
        if not items:
            raise NotFoundError(self.group_resource, f"{namespace}/{name}")
        return items[0]

    def convert_to_table(self, obj) -> Table:
        """Render a PodMetrics or PodMetricsList as a table; anything else gives an empty one."""
        table = Table()
        if isinstance(obj, PodMetrics):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            add_pod_metrics_to_table(table, [obj])
        elif isinstance(obj, PodMetricsList):
            table.resource_version = obj.resource_version
            table.self_link = obj.self_link
            table.continue_ = obj.continue_
            add_pod_metrics_to_table(table, obj.items)
        return table

    def _get_metrics(self, pods: Sequence[PodMetadata]) -> list[PodMetrics]:
        items = list(self._metrics.get_pod_metrics(list(pods)))
        histogram = metric_freshness.with_label_values(())
        for item in items:
            if item.timestamp is not None:
                histogram.observe(self._clock.since(item.timestamp).total_seconds())
        items.sort(key=lambda m: (m.namespace, m.name))
        return items

    def namespace_scoped(self) -> bool:
        return True

    def singular_name(self) -> str:
        return "pod"