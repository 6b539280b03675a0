from datetime import datetime, timezone

import pytest

from resmetrics.apigroup import APIGroupInfo, build, build_from_getters
from resmetrics.node import NodeMetricsStorage
from resmetrics.pod import PodMetricsStorage
from resmetrics.selectors import parse_requirements
from resmetrics.types import Node, NodeMetrics, NotFoundError, PodMetadata, PodMetrics


class Lister:
    def __init__(self, items):
        self.items = items

    def list(self, *args):
        selector = args[-1]
        return [i for i in self.items if selector.matches(i.labels)]

    def get(self, *args):
        name = args[-1]
        return next((i for i in self.items if i.name == name), None)


class Getter:
    def __init__(self):
        self.now = datetime.now(timezone.utc)

    def get_node_metrics(self, nodes):
        return [NodeMetrics(name=n.name, labels=n.labels, timestamp=self.now) for n in nodes]

    def get_pod_metrics(self, pods):
        return [PodMetrics(name=p.name, namespace=p.namespace, timestamp=self.now) for p in pods]


def make_info(selector=None):
    nodes = Lister([Node("a"), Node("b", labels={"skip": "true"})])
    pods = Lister([PodMetadata("p", "ns")])
    return build_from_getters(Getter(), pods, nodes, selector)


def test_build_maps_resources():
    info = build("pod-storage", "node-storage")
    assert info.group_name == "metrics.k8s.io"
    assert info.versioned_resources_storage_map == {
        "v1beta1": {"nodes": "node-storage", "pods": "pod-storage"}
    }


def test_build_from_getters_storage_kinds():
    info = make_info()
    resources = info.versioned_resources_storage_map["v1beta1"]
    assert isinstance(resources["nodes"], NodeMetricsStorage)
    assert isinstance(resources["pods"], PodMetricsStorage)
    assert resources["nodes"].kind() == "NodeMetrics"
    assert resources["pods"].kind() == "PodMetrics"


def test_node_selector_applied():
    info = make_info(parse_requirements("skip!=true"))
    nodes = info.versioned_resources_storage_map["v1beta1"]["nodes"]
    assert [m.name for m in nodes.list(None).items] == ["a"]


def test_no_selector_lists_all():
    nodes = make_info().versioned_resources_storage_map["v1beta1"]["nodes"]
    assert [m.name for m in nodes.list(None).items] == ["a", "b"]


def test_pods_served():
    pods = make_info().versioned_resources_storage_map["v1beta1"]["pods"]
    got = pods.get("ns", "p")
    assert (got.namespace, got.name) == ("ns", "p")


def test_missing_node_reports_group_resource():
    nodes = make_info().versioned_resources_storage_map["v1beta1"]["nodes"]
    with pytest.raises(NotFoundError) as info:
        nodes.get("zzz")
    assert info.value.resource == "nodemetrics.metrics.k8s.io"


def test_default_info_is_empty():
    info = APIGroupInfo()
    assert info.group_name == "metrics.k8s.io"
    assert info.versioned_resources_storage_map == {}