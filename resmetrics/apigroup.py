"""Assembly of the metrics.k8s.io API group from its storages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from resmetrics.node import NodeMetricsStorage
from resmetrics.pod import PodMetricsStorage
from resmetrics.selectors import Requirement

GROUP_NAME = "metrics.k8s.io"
VERSION = "v1beta1"


@dataclass
class APIGroupInfo:
    """The storages served by one API group, keyed by version and resource."""

    group_name: str = GROUP_NAME
    versioned_resources_storage_map: dict[str, dict[str, Any]] = field(default_factory=dict)


def build(pod, node) -> APIGroupInfo:
    """Group the pod and node storages under the served version."""
    return APIGroupInfo(versioned_resources_storage_map={VERSION: {"nodes": node, "pods": pod}})


def build_from_getters(
    metrics,
    pod_lister,
    node_lister,
    node_selector: Iterable[Requirement] | None = None,
) -> APIGroupInfo:
    """Create node and pod storages backed by one metrics getter and group them."""
    node = NodeMetricsStorage(f"nodemetrics.{GROUP_NAME}", metrics, node_lister, node_selector)
    pod = PodMetricsStorage(f"podmetrics.{GROUP_NAME}", metrics, pod_lister)
    return build(pod, node)