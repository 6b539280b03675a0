from datetime import datetime, timedelta, timezone

import pytest

from resmetrics.decode import ParseError, decode_batch, iter_series
from resmetrics.types import MetricsBatch, MetricsPoint, NamespacedName, PodMetricsPoint

UTC = timezone.utc
ZERO_TIME = datetime(1, 1, 1, tzinfo=UTC)
COREDNS = NamespacedName(namespace="kube-system", name="coredns-558bd4d5db-4dpjz")

NODE_POINT = MetricsPoint(
    timestamp=datetime(2021, 10, 3, 9, 36, 49, 720000, tzinfo=UTC),
    cumulative_cpu_used=357354910000,
    memory_usage=1616273408,
)
COREDNS_POINT = MetricsPoint(
    timestamp=datetime(2021, 10, 3, 9, 36, 52, 125000, tzinfo=UTC),
    cumulative_cpu_used=4710169000,
    memory_usage=12533760,
    start_time=datetime(2021, 10, 3, 9, 18, 32, tzinfo=UTC),
)

NORMAL_INPUT = """
# HELP container_cpu_usage_seconds_total [ALPHA] Cumulative cpu time consumed by the container in core-seconds
# TYPE container_cpu_usage_seconds_total counter
container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.710169 1633253812125
# HELP container_memory_working_set_bytes [ALPHA] Current working set of the container in bytes
# TYPE container_memory_working_set_bytes gauge
container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.253376e+07 1633253812125
# TYPE container_start_time_seconds gauge
container_start_time_seconds{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.633252712e+9 1633253812125
# HELP node_cpu_usage_seconds_total [ALPHA] Cumulative cpu time consumed by the node in core-seconds
# TYPE node_cpu_usage_seconds_total counter
node_cpu_usage_seconds_total 357.35491 1633253809720
# HELP node_memory_working_set_bytes [ALPHA] Current working set of the node in bytes
# TYPE node_memory_working_set_bytes gauge
node_memory_working_set_bytes 1.616273408e+09 1633253809720
# HELP pod_cpu_usage_seconds_total [ALPHA] Cumulative cpu time consumed by the pod in core-seconds
# TYPE pod_cpu_usage_seconds_total counter
pod_cpu_usage_seconds_total{namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.67812 1633253803935
# HELP pod_memory_working_set_bytes [ALPHA] Current working set of the pod in bytes
# TYPE pod_memory_working_set_bytes gauge
pod_memory_working_set_bytes{namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.2627968e+07 1633253803935
# HELP scrape_error [ALPHA] 1 if there was an error while getting container metrics, 0 otherwise
# TYPE scrape_error gauge
scrape_error 0
"""

CONTAINER_ONLY = """
container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.710169 1633253812125
container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.253376e+07 1633253812125
container_start_time_seconds{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.633252712e+9 1633253812125
"""


def empty_batch():
    return MetricsBatch(nodes={}, pods={})


@pytest.mark.parametrize(
    "text, expected",
    [
        pytest.param(
            NORMAL_INPUT,
            MetricsBatch(
                nodes={"node1": NODE_POINT},
                pods={COREDNS: PodMetricsPoint(containers={"coredns": COREDNS_POINT})},
            ),
            id="normal",
        ),
        pytest.param(
            CONTAINER_ONLY,
            MetricsBatch(nodes={}, pods={COREDNS: PodMetricsPoint(containers={"coredns": COREDNS_POINT})}),
            id="single-pod",
        ),
        pytest.param(
            'container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.253376e+07 1633253812125\n',
            empty_batch(),
            id="no-container-cpu",
        ),
        pytest.param(
            'container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 0 1633253812125\n'
            'container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.253376e+07 1633253812125\n',
            empty_batch(),
            id="empty-container-cpu",
        ),
        pytest.param(
            'container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.710169 1633253812125\n',
            empty_batch(),
            id="no-container-memory",
        ),
        pytest.param(
            'container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.710169 1633253812125\n'
            'container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 0 1633253812125\n',
            empty_batch(),
            id="empty-container-memory",
        ),
        pytest.param(
            "node_cpu_usage_seconds_total 357.35491 1633253809720\nnode_memory_working_set_bytes 1.616273408e+09 1633253809720\n",
            MetricsBatch(nodes={"node1": NODE_POINT}, pods={}),
            id="single-node",
        ),
        pytest.param(
            "node_memory_working_set_bytes 1.616273408e+09 1633253809720\n",
            empty_batch(),
            id="no-node-cpu",
        ),
        pytest.param(
            "node_cpu_usage_seconds_total 0 1633253809720\nnode_memory_working_set_bytes 1.616273408e+09 1633253809720\n",
            empty_batch(),
            id="empty-node-cpu",
        ),
        pytest.param(
            "node_cpu_usage_seconds_total 357.35491 1633253809720\n",
            empty_batch(),
            id="no-node-memory",
        ),
        pytest.param(
            "node_cpu_usage_seconds_total 357.35491 1633253809720\nnode_memory_working_set_bytes 0 1633253809720\n",
            empty_batch(),
            id="empty-node-memory",
        ),
    ],
)
def test_decode(text, expected):
    assert decode_batch(text, ZERO_TIME, "node1") == expected


def test_decode_without_timestamp_uses_default_time():
    text = """
container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 4.710169
container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.253376e+07
container_start_time_seconds{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} 1.633252712e+9
node_cpu_usage_seconds_total 357.35491
node_memory_working_set_bytes 1.616273408e+09
"""
    default = datetime(2077, 7, 7, 7, 7, 7, tzinfo=UTC)
    batch = decode_batch(text, default, "node1")
    assert batch == MetricsBatch(
        nodes={"node1": MetricsPoint(default, 357354910000, 1616273408)},
        pods={
            COREDNS: PodMetricsPoint(
                containers={
                    "coredns": MetricsPoint(
                        default, 4710169000, 12533760, datetime(2021, 10, 3, 9, 18, 32, tzinfo=UTC)
                    )
                }
            )
        },
    )


def test_decode_incorrect_timestamp_raises():
    text = """
# HELP container_start_time_seconds [ALPHA] Start time of the container since unix epoch in seconds
# TYPE container_start_time_seconds gauge
container_start_time_seconds{container="metrics-server",namespace="kubernetes-dashboard",pod="kubernetes-dashboard-metrics-server-77db45cdf4-fppzx"} -6.7953645788713455e+09 -62135596800000
container_start_time_seconds{container="metrics-server",namespace="kubernetes-dashboard",pod="kubernetes-dashboard-metrics-server-77db45cdf4-tpx4v"} 1.6509742024191372e+09 1650974202419
"""
    with pytest.raises(ParseError):
        decode_batch(text, ZERO_TIME, "node1")


def test_decode_accepts_bytes():
    data = b"node_cpu_usage_seconds_total 357.35491 1633253809720\nnode_memory_working_set_bytes 1.616273408e+09 1633253809720\n"
    assert decode_batch(data, ZERO_TIME, "worker").nodes == {"worker": NODE_POINT}


def _formatted(cpu, mem, start, timestamp):
    return (
        "# HELP container_cpu_usage_seconds_total [ALPHA] Cumulative cpu time consumed by the container in core-seconds\n"
        "# TYPE container_cpu_usage_seconds_total counter\n"
        'container_cpu_usage_seconds_total{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} %f %d\n'
        "# HELP container_memory_working_set_bytes [ALPHA] Current working set of the container in bytes\n"
        "# TYPE container_memory_working_set_bytes gauge\n"
        'container_memory_working_set_bytes{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} %e %d\n'
        "# TYPE container_start_time_seconds gauge\n"
        'container_start_time_seconds{container="coredns",namespace="kube-system",pod="coredns-558bd4d5db-4dpjz"} %E %d'
    ) % (cpu, timestamp, mem, timestamp, start, timestamp)


@pytest.mark.parametrize("value", [0, -10000, 10000, 0.5, -0.000000001, 1e100, -1e100])
@pytest.mark.parametrize("timestamp", [0, 10000, 5])
def test_decode_formatted_non_negative_timestamps_never_fail(value, timestamp):
    batch = decode_batch(_formatted(value, value, value, timestamp), datetime(1970, 1, 1, tzinfo=UTC), "node1")
    assert batch.nodes == {}
    assert all(set(pod.containers) == {"coredns"} for pod in batch.pods.values())


@pytest.mark.parametrize("timestamp", [-10000, -1])
def test_decode_formatted_negative_timestamps_fail(timestamp):
    with pytest.raises(ParseError):
        decode_batch(_formatted(1.0, 1.0, 1.0, timestamp), ZERO_TIME, "node1")


def test_decode_formatted_valid_values_keep_container():
    batch = decode_batch(_formatted(0.5, 10000, 10000, 10000), ZERO_TIME, "node1")
    point = batch.pods[COREDNS].containers["coredns"]
    assert point.cumulative_cpu_used == 500000000
    assert point.memory_usage == 10000
    assert point.timestamp == datetime(1970, 1, 1, 0, 0, 10, tzinfo=UTC)


@pytest.mark.parametrize("default_nanos", [0, -10000, 10000, 5, -1])
def test_decode_empty_input(default_nanos):
    default = datetime(1970, 1, 1, tzinfo=UTC) + timedelta(microseconds=default_nanos // 1000)
    assert decode_batch("", default, "abc") == empty_batch()


def test_iter_series_parses_labels_and_timestamp():
    samples = list(iter_series('# just a comment\nfoo{a="x",b="y\\"z"} 1.5 42\nbar 2\n'))
    assert samples == [
        ("foo", {"a": "x", "b": 'y"z'}, 1.5, 42),
        ("bar", {}, 2.0, None),
    ]


def test_iter_series_accepts_special_values():
    values = [value for _, _, value, _ in iter_series("a +Inf\nb 0x1p3\n")]
    assert values == [float("inf"), 8.0]


@pytest.mark.parametrize(
    "text",
    [
        "foo\n",
        "foo{a=\"x\" 1\n",
        "foo abc\n",
        "foo 1 2 3\n",
        "foo 1e400\n",
        "foo 1_000\n",
        "# TYPE foo bogus\n",
        "# HELP\n",
        "1foo 1\n",
    ],
)
def test_iter_series_rejects_malformed(text):
    with pytest.raises(ParseError):
        list(iter_series(text))