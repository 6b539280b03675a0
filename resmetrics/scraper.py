"""Concurrent collection of resource metrics from every selected node's kubelet."""

from __future__ import annotations

import logging
import queue
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Protocol, Sequence

from resmetrics.clock import RealClock
from resmetrics.instruments import DEF_BUCKETS, CounterVec, GaugeVec, HistogramVec
from resmetrics.selectors import LabelSelector, Requirement, everything
from resmetrics.types import MetricsBatch, Node

_log = logging.getLogger(__name__)

MAX_DELAY_MS = 4 * 1000
DELAY_PER_SOURCE_MS = 8

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

request_duration = HistogramVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="request_duration_seconds",
    help="Duration of requests to Kubelet API in seconds",
    buckets=DEF_BUCKETS,
    label_names=("node",),
)
request_total = CounterVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="request_total",
    help="Number of requests sent to Kubelet API",
    label_names=("success",),
)
last_request_time = GaugeVec(
    namespace="metrics_server",
    subsystem="kubelet",
    name="last_request_time_seconds",
    help="Time of last request performed to Kubelet API since unix epoch in seconds",
    label_names=("node",),
)


def register_scraper_metrics(registration_func: Callable[[object], object]) -> None:
    """Register the request duration, count and last-request-time metrics."""
    for metric in (request_duration, request_total, last_request_time):
        registration_func(metric)


class _NodeLister(Protocol):
    def list(self, selector: LabelSelector) -> Sequence[Node]: ...


class _KubeletMetricsGetter(Protocol):
    def get_metrics(self, node: Node) -> MetricsBatch: ...


@dataclass(frozen=True)
class NodeInfo:
    """The name of a node and the address used to reach it."""

    name: str
    connect_address: str


def _unix_seconds(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(seconds=1)


class Scraper:
    """Scrapes all nodes matching a label selector, each with its own timeout."""

    def __init__(
        self,
        node_lister: _NodeLister,
        kubelet_client: _KubeletMetricsGetter,
        scrape_timeout: float,
        label_requirements: Iterable[Requirement] | None = None,
        clock=None,
    ) -> None:
        selector = everything()
        if label_requirements is not None:
            selector = selector.add(label_requirements)
        self.node_lister = node_lister
        self.kubelet_client = kubelet_client
        self.scrape_timeout = scrape_timeout
        self.label_selector = selector
        self._clock = clock if clock is not None else RealClock()

    def scrape(self, timeout: float | None = None) -> MetricsBatch:
        """Collect metrics from every node, giving up on all of them after timeout seconds.

        Nodes that fail or time out are left out of the result; a failure to
        list nodes is logged and yields whatever could be listed.
        """
        deadline = None if timeout is None else time.monotonic() + timeout
        try:
            nodes = list(self.node_lister.list(self.label_selector))
        except Exception as err:
            _log.error("Failed to list nodes: %s", err)
            nodes = []
        _log.info("Scraping metrics from %d nodes (nodeSelector=%s)", len(nodes), self.label_selector)

        responses: queue.Queue[MetricsBatch | None] = queue.Queue()
        start = self._clock.now()
        delay_ms = min(DELAY_PER_SOURCE_MS * len(nodes), MAX_DELAY_MS)

        for node in nodes:
            threading.Thread(
                target=self._scrape_node, args=(node, delay_ms, deadline, responses), daemon=True
            ).start()

        result = MetricsBatch()
        for _ in nodes:
            batch = responses.get()
            if batch is None:
                continue
            for node_name, point in batch.nodes.items():
                if node_name in result.nodes:
                    _log.error("Got duplicate node point for %s", node_name)
                    continue
                result.nodes[node_name] = point
            for ref, pod_point in batch.pods.items():
                if ref in result.pods:
                    _log.error("Got duplicate pod point for %s", ref)
                    continue
                result.pods[ref] = pod_point

        _log.info(
            "Scrape finished in %s: %d nodes, %d pods",
            self._clock.since(start), len(result.nodes), len(result.pods),
        )
        return result

    def _scrape_node(self, node: Node, delay_ms: int, deadline: float | None,
                     responses: "queue.Queue[MetricsBatch | None]") -> None:
        batch = None
        try:
            # Spread requests out to avoid network congestion.
            if delay_ms > 0:
                time.sleep(random.randrange(delay_ms) / 1000)
            batch = self._collect_node(node, deadline)
        except TimeoutError as err:
            _log.error("Failed to scrape node %s, timeout to access kubelet (timeout=%ss): %s",
                       node.name, self.scrape_timeout, err)
        except Exception as err:
            _log.error("Failed to scrape node %s: %s", node.name, err)
        finally:
            responses.put(batch)

    def _collect_node(self, node: Node, deadline: float | None) -> MetricsBatch:
        start = self._clock.now()
        try:
            batch = self._call_with_timeout(node, deadline)
        except Exception:
            request_total.with_label_values(("false",)).inc()
            raise
        finally:
            request_duration.with_label_values((node.name,)).observe(
                self._clock.since(start).total_seconds()
            )
            last_request_time.with_label_values((node.name,)).set(
                float(_unix_seconds(self._clock.now()))
            )
        request_total.with_label_values(("true",)).inc()
        return batch

    def _call_with_timeout(self, node: Node, deadline: float | None) -> MetricsBatch:
        wait = self.scrape_timeout
        if deadline is not None:
            wait = min(wait, deadline - time.monotonic())
        if wait <= 0:
            raise TimeoutError("deadline exceeded before the request started")

        outcome: queue.Queue[tuple[bool, object]] = queue.Queue(maxsize=1)

        def call() -> None:
            try:
                outcome.put((True, self.kubelet_client.get_metrics(node)))
            except BaseException as err:  # handed over to the waiting thread
                outcome.put((False, err))

        threading.Thread(target=call, daemon=True).start()
        try:
            ok, value = outcome.get(timeout=wait)
        except queue.Empty:
            raise TimeoutError(f"no response from node {node.name} within {wait:.3f}s") from None
        if not ok:
            raise value  # type: ignore[misc]
        return value  # type: ignore[return-value]