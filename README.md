# resmetrics

`resmetrics` collects CPU and memory usage from cluster nodes and the pods
running on them, and serves that data through a small metrics API layer. It
uses only the Python standard library and needs Python 3.10 or newer.

## Modules

| Module | Contents |
| --- | --- |
| `resmetrics.types` | Data classes: `MetricsPoint`, `PodMetricsPoint`, `MetricsBatch`, `NamespacedName`, `Node`, `NodeAddress`, `PodMetadata`, `NodeMetrics`, `PodMetrics`, `ContainerMetrics`, the list types, `RestConfig`, `TLSConfig`, `KubeletClientConfig` and the `NotFoundError` exception. |
| `resmetrics.decode` | `iter_series` and `decode_batch` for the Prometheus text format; `ParseError`. |
| `resmetrics.client` | `KubeletClient` and `new_for_config`. |
| `resmetrics.scraper` | `Scraper`, `NodeInfo` and `register_scraper_metrics`. |
| `resmetrics.node`, `resmetrics.pod` | `NodeMetricsStorage` and `PodMetricsStorage`. |
| `resmetrics.apigroup` | `APIGroupInfo`, `build` and `build_from_getters`. |
| `resmetrics.selectors` | Label and field selectors, and `ListOptions`. |
| `resmetrics.quantity` | `Quantity` and `parse_quantity`. |
| `resmetrics.table` | `Table`, `format_duration` and the table builders. |
| `resmetrics.instruments` | `HistogramVec`, `CounterVec`, `GaugeVec`, `exponential_buckets` and `register_api_metrics`. |
| `resmetrics.clock` | `RealClock` and `FakeClock`. |
| `resmetrics.options` | `Options`, `KubeletClientOptions`, `build_parser` and `parse_options`. |

## Decoding kubelet output

```python
from datetime import datetime, timezone

from resmetrics.decode import decode_batch

text = b"""
node_cpu_usage_seconds_total 357.35491 1633253809720
node_memory_working_set_bytes 1.616273408e+09 1633253809720
container_cpu_usage_seconds_total{container="app",namespace="default",pod="web-0"} 4.71 1633253812125
container_memory_working_set_bytes{container="app",namespace="default",pod="web-0"} 1.253376e+07 1633253812125
"""

batch = decode_batch(text, datetime.now(timezone.utc), "node1")
print(batch.nodes["node1"])
for ref, point in batch.pods.items():
    print(ref.namespace, ref.name, point.containers)
```

`decode_batch` reads these series:

- `node_cpu_usage_seconds_total`
- `node_memory_working_set_bytes`
- `container_cpu_usage_seconds_total`
- `container_memory_working_set_bytes`
- `container_start_time_seconds`

It ignores all other series. CPU seconds are stored as nanoseconds. Samples
without a timestamp get the default time you pass in.

The decoder drops incomplete data:

- A node point is kept only when it has a timestamp, a non-zero CPU value and a
  non-zero memory value.
- A pod is dropped when any of its containers lacks CPU or memory.

Malformed input raises `ParseError`, which is a `ValueError`. `iter_series`
yields each sample as `(name, labels, value, timestamp_ms_or_None)`.

## Fetching from kubelets

`KubeletClient.get_metrics(node)` builds the URL from these parts:

- the client's scheme;
- the node's address;
- the default port, or the node's `kubelet_port` when `use_node_status_port` is
  set;
- `/metrics/resource`, or the path in the node's
  `metrics.k8s.io/resource-metrics-path` annotation when it has one.

`fetch(url, node_name)` GETs the URL and decodes the body. A status other than
200 raises `RuntimeError`.

Choosing a node's address is up to you. Pass a resolver: any object with a
`node_address(node)` method that returns a host. You can also pass your own
`transport`: a callable that takes a URL and returns `(status, reason, body)`.

`new_for_config(config, resolver)` builds a client from a
`KubeletClientConfig`. It takes the TLS files or data, a bearer token or basic
auth credentials, and the timeout from that config.

## Scraping

`Scraper(node_lister, kubelet_client, scrape_timeout, label_requirements)`
works as follows:

- It lists nodes through `node_lister.list(selector)`.
- It queries each node on its own thread, after a small random delay.
- Each node gets `scrape_timeout` seconds.
- `scrape(timeout)` also enforces an overall deadline.
- It merges the results into one `MetricsBatch`. Nodes that fail or time out
  are left out, and duplicate points are ignored.

Request durations, success counts and last-request times are recorded in the
module's instruments.

## Metrics API layer

`NodeMetricsStorage` and `PodMetricsStorage` each wrap two objects you supply:

- a lister, with `list(selector)` and `get(name)` for nodes, or
  `list(namespace, selector)` and `get(namespace, name)` for pods;
- a metrics getter, with `get_node_metrics(nodes)` or `get_pod_metrics(pods)`.

Both storages behave the same way:

- `list` applies the `ListOptions` label and field selectors.
- Results are sorted by name, or for pods by namespace and then name.
- `get` raises `NotFoundError` when there is no such object or no metrics for
  it.
- `convert_to_table` renders a `Table`. It has one quantity column per resource
  and a `Window` column.

`build_from_getters` creates both storages and groups them under
`metrics.k8s.io/v1beta1` in an `APIGroupInfo`.

## Selectors

```python
from resmetrics.selectors import parse_requirements, selector_from_set

skip = parse_requirements("metrics-server-skip!=true")
selector = selector_from_set({"role": "worker"}).add(skip)
print(selector.matches({"role": "worker"}))  # True
```

`parse_requirements` accepts the following forms, separated by commas:

- `key=value`
- `key==value`
- `key!=value`
- `key in (a,b)`
- `key notin (a,b)`
- `key`
- `!key`

## Quantities and durations

```python
from resmetrics.quantity import parse_quantity
from resmetrics.table import format_duration

print(parse_quantity("10m").add(parse_quantity("20m")))  # 30m
print(format_duration(1000))  # 1µs
```

## Options

```python
from resmetrics.options import Options, build_parser, parse_options

options = parse_options(["--metric-resolution", "30s", "--kubelet-insecure-tls"])
```

`parse_options` parses the arguments over the defaults and validates the
result. It raises the first problem it finds as `ValueError`, unless
`--version` was given.

`Options.validate()` returns the full list of problems instead. These count as
problems:

- conflicting kubelet TLS flags;
- a request timeout that is not positive;
- a metric resolution under 10 seconds;
- a metric resolution whose nine-tenths is shorter than the kubelet request
  timeout.

`KubeletClientOptions.config(rest_config)` turns the options into a
`KubeletClientConfig`.

## What it does not do

- It has no command-line program or entry point.
- It has no HTTP server that serves the metrics API.
- It has no store that keeps scraped batches and turns them into
  `NodeMetrics`/`PodMetrics`.
- It does not load kubeconfig files.
- It does not resolve node addresses.
- The instruments keep their values in memory and are not exposed over HTTP.

You supply the listers, the metrics getters and the address resolver.

## Running the tests

```
pip install -e ".[test]"
pytest
```