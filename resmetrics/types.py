"""Core data types shared by the metrics API, the scraper and the kubelet client."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Mapping


@dataclass(frozen=True, order=True)
class NamespacedName:
    """Identifies a namespaced object."""

    namespace: str = ""
    name: str = ""

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass
class MetricsPoint:
    """A single CPU/memory sample; a timestamp of None means it was never set."""

    timestamp: datetime | None = None
    cumulative_cpu_used: int = 0
    memory_usage: int = 0
    start_time: datetime | None = None


@dataclass
class PodMetricsPoint:
    """Metrics of every container of one pod."""

    containers: dict[str, MetricsPoint] = field(default_factory=dict)


@dataclass
class MetricsBatch:
    """Metrics collected from one or more kubelets."""

    nodes: dict[str, MetricsPoint] = field(default_factory=dict)
    pods: dict[NamespacedName, PodMetricsPoint] = field(default_factory=dict)


@dataclass(frozen=True)
class NodeAddress:
    """One address of a node, with its type (Hostname, InternalIP, ...)."""

    type: str
    address: str


@dataclass
class Node:
    """The parts of a cluster node the server needs."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    addresses: list[NodeAddress] = field(default_factory=list)
    kubelet_port: int = 0


@dataclass
class PodMetadata:
    """Metadata of a pod, without its spec or status."""

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ContainerMetrics:
    """Resource usage of one container."""

    name: str
    usage: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class NodeMetrics:
    """Resource usage of one node; window is in nanoseconds."""

    name: str
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime | None = None
    window: int = 0
    usage: Mapping[str, Any] = field(default_factory=dict)
    resource_version: str = ""
    self_link: str = ""


@dataclass
class PodMetrics:
    """Resource usage of one pod; window is in nanoseconds."""

    name: str
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    timestamp: datetime | None = None
    window: int = 0
    containers: list[ContainerMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""


@dataclass
class NodeMetricsList:
    items: list[NodeMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_: str = ""


@dataclass
class PodMetricsList:
    items: list[PodMetrics] = field(default_factory=list)
    resource_version: str = ""
    self_link: str = ""
    continue_: str = ""


@dataclass(frozen=True)
class TimeInfo:
    """When a metric was collected and over which window a rate was computed."""

    timestamp: datetime
    window: timedelta


@dataclass
class TLSConfig:
    insecure: bool = False
    ca_file: str = ""
    ca_data: bytes | None = None
    cert_file: str = ""
    cert_data: bytes | None = None
    key_file: str = ""
    key_data: bytes | None = None


@dataclass
class RestConfig:
    """Connection settings for talking to the cluster."""

    host: str = ""
    bearer_token: str = ""
    username: str = ""
    password: str = ""
    tls: TLSConfig = field(default_factory=TLSConfig)
    timeout: float = 0.0
    content_type: str = ""


@dataclass
class KubeletClientConfig:
    """Settings for connecting to kubelets."""

    client: RestConfig = field(default_factory=RestConfig)
    address_type_priority: list[str] = field(default_factory=list)
    scheme: str = "https"
    default_port: int = 10250
    use_node_status_port: bool = False


class NotFoundError(LookupError):
    """The requested object does not exist."""

    def __init__(self, resource: str, name: str) -> None:
        super().__init__(f'{resource} "{name}" not found')
        self.resource = resource
        self.name = name