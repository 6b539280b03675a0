from resmetrics.quantity import parse_quantity
from resmetrics.table import Table, add_node_metrics_to_table, add_pod_metrics_to_table, format_duration
from resmetrics.types import ContainerMetrics, NodeMetrics, PodMetrics


def test_format_duration():
    assert format_duration(1000) == "1µs"
    assert format_duration(2000) == "2µs"
    assert format_duration(0) == "0s"
    assert format_duration(1500) == "1.5µs"
    assert format_duration(3600 * 10**9) == "1h0m0s"


def test_node_table():
    nodes = [
        NodeMetrics("node1", window=1000, usage={"res1": parse_quantity("10m")}),
        NodeMetrics("node2", window=2000, usage={"res1": parse_quantity("5Mi")}),
        NodeMetrics("node3", window=3000, usage={"res1": parse_quantity("1")}),
    ]
    table = Table()
    add_node_metrics_to_table(table, nodes)
    assert [c.name for c in table.column_definitions] == ["Name", "res1", "Window"]
    assert [r.cells for r in table.rows] == [
        ["node1", "10m", "1µs"],
        ["node2", "5Mi", "2µs"],
        ["node3", "1", "3µs"],
    ]
    assert table.rows[0].object is nodes[0]


def test_pod_table_sums_containers():
    pods = [
        PodMetrics("pod1", "other", window=1000, containers=[
            ContainerMetrics("metric1", {"cpu": parse_quantity("10m")}),
            ContainerMetrics("metric1-b", {"memory": parse_quantity("5Mi")}),
        ]),
        PodMetrics("pod2", "other", window=2000, containers=[
            ContainerMetrics("metric2", {"cpu": parse_quantity("20m"), "memory": parse_quantity("15Mi")}),
        ]),
    ]
    table = Table()
    add_pod_metrics_to_table(table, pods)
    assert [c.name for c in table.column_definitions] == ["Name", "cpu", "memory", "Window"]
    assert table.rows[0].cells == ["pod1", "10m", "5Mi", "1µs"]
    assert table.rows[1].cells == ["pod2", "20m", "15Mi", "2µs"]


def test_empty_input_leaves_table_empty():
    table = Table()
    add_pod_metrics_to_table(table, [])
    assert table.rows == []
    assert table.column_definitions == []