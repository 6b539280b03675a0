"""Decoding of the kubelet resource-metrics endpoint (Prometheus text format)."""

from __future__ import annotations

import logging
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Iterator

from resmetrics.types import MetricsBatch, MetricsPoint, NamespacedName, PodMetricsPoint

_log = logging.getLogger(__name__)

NODE_CPU_USAGE_METRIC_NAME = "node_cpu_usage_seconds_total"
NODE_MEM_USAGE_METRIC_NAME = "node_memory_working_set_bytes"
CONTAINER_CPU_USAGE_METRIC_NAME = "container_cpu_usage_seconds_total"
CONTAINER_MEM_USAGE_METRIC_NAME = "container_memory_working_set_bytes"
CONTAINER_START_TIME_METRIC_NAME = "container_start_time_seconds"

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_INT64_MIN = -(2**63)
_UINT64_MAX = 2**64 - 1

_METRIC_NAME_RE = re.compile(r"[a-zA-Z_:][a-zA-Z0-9_:]*")
_LABEL_NAME_RE = re.compile(r"[a-zA-Z_][a-zA-Z0-9_]*")
_METRIC_TYPES = frozenset({"counter", "gauge", "histogram", "summary", "untyped"})
_ESCAPES = {"\\": "\\", '"': '"', "n": "\n"}


class ParseError(ValueError):
    """The input is not valid Prometheus text exposition format."""

    def __init__(self, message: str, line: int) -> None:
        super().__init__(f"line {line}: {message}")
        self.line = line


def _as_text(data: bytes | str, ) -> str:
    if isinstance(data, str):
        return data
    try:
        return bytes(data).decode("utf-8")
    except UnicodeDecodeError as err:
        raise ParseError(f"invalid UTF-8: {err}", 1) from err


def _skip_blanks(line: str, pos: int) -> int:
    while pos < len(line) and line[pos] in " \t":
        pos += 1
    return pos


def _check_comment(line: str, lineno: int) -> None:
    if line[1:2] not in (" ", "\t"):
        return
    parts = line[1:].split(None, 2)
    if not parts or parts[0] not in ("HELP", "TYPE"):
        return
    if len(parts) < 2 or not _METRIC_NAME_RE.fullmatch(parts[1]):
        raise ParseError(f"invalid metric name in {parts[0]} line", lineno)
    if parts[0] == "TYPE":
        kind = parts[2].strip() if len(parts) > 2 else ""
        if kind not in _METRIC_TYPES:
            raise ParseError(f"invalid metric type {kind!r}", lineno)


def _parse_labels(line: str, pos: int, lineno: int) -> tuple[dict[str, str], int]:
    labels: dict[str, str] = {}
    while True:
        pos = _skip_blanks(line, pos)
        if line[pos:pos + 1] == "}":
            return labels, pos + 1
        match = _LABEL_NAME_RE.match(line, pos)
        if not match:
            raise ParseError("invalid label name", lineno)
        key = match.group()
        pos = _skip_blanks(line, match.end())
        if line[pos:pos + 1] != "=":
            raise ParseError(f"expected '=' after label name {key!r}", lineno)
        pos = _skip_blanks(line, pos + 1)
        if line[pos:pos + 1] != '"':
            raise ParseError(f"expected quoted value for label {key!r}", lineno)
        pos += 1
        chars: list[str] = []
        while True:
            if pos >= len(line):
                raise ParseError(f"unterminated value for label {key!r}", lineno)
            ch = line[pos]
            if ch == "\\":
                if pos + 1 >= len(line):
                    raise ParseError(f"unterminated value for label {key!r}", lineno)
                nxt = line[pos + 1]
                chars.append(_ESCAPES.get(nxt, "\\" + nxt))
                pos += 2
            elif ch == '"':
                pos += 1
                break
            else:
                chars.append(ch)
                pos += 1
        labels[key] = "".join(chars)
        pos = _skip_blanks(line, pos)
        if line[pos:pos + 1] == ",":
            pos += 1
            continue
        if line[pos:pos + 1] == "}":
            return labels, pos + 1
        raise ParseError("expected ',' or '}' in label set", lineno)


def _parse_value(token: str, lineno: int) -> float:
    if not token.isascii() or "_" in token:
        raise ParseError(f"invalid value {token!r}", lineno)
    body = token.lstrip("+-").lower()
    try:
        value = float(token)
    except ValueError:
        if body.startswith("0x") and "p" in body:
            try:
                value = float.fromhex(token)
            except ValueError as err:
                raise ParseError(f"invalid value {token!r}", lineno) from err
        else:
            raise ParseError(f"invalid value {token!r}", lineno) from None
    if math.isinf(value) and body not in ("inf", "infinity"):
        raise ParseError(f"value {token!r} out of range", lineno)
    return value


def _parse_sample(line: str, lineno: int) -> tuple[str, dict[str, str], float, int | None]:
    match = _METRIC_NAME_RE.match(line)
    if not match:
        raise ParseError("invalid metric name", lineno)
    name = match.group()
    pos = match.end()
    labels: dict[str, str] = {}
    if line[pos:pos + 1] == "{":
        labels, pos = _parse_labels(line, pos + 1, lineno)
    rest = line[pos:]
    if not rest or rest[0] not in " \t":
        raise ParseError(f"expected value after metric {name!r}", lineno)
    fields = rest.split()
    if len(fields) not in (1, 2):
        raise ParseError("expected a value and an optional timestamp", lineno)
    value = _parse_value(fields[0], lineno)
    timestamp = None
    if len(fields) == 2:
        token = fields[1]
        if not (token.isascii() and token.isdigit()):
            raise ParseError(f"invalid timestamp {token!r}", lineno)
        timestamp = int(token)
        if timestamp >= 2**63:
            raise ParseError(f"timestamp {token!r} out of range", lineno)
    return name, labels, value, timestamp


def iter_series(data: bytes | str) -> Iterator[tuple[str, dict[str, str], float, int | None]]:
    """Yield (name, labels, value, timestamp in ms or None) for every sample."""
    text = _as_text(data)
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip(" \t\r")
        if not line:
            continue
        if line.startswith("#"):
            _check_comment(line, lineno)
            continue
        yield _parse_sample(line, lineno)


def _wrap_int64(value: int) -> int:
    return ((value - _INT64_MIN) % 2**64) + _INT64_MIN


def _from_nanos(nanos: int) -> datetime:
    return _EPOCH + timedelta(microseconds=_wrap_int64(nanos) // 1000)


def _from_millis(millis: int) -> datetime:
    return _from_nanos(millis * 1_000_000)


def _to_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def _float_to_uint64(value: float) -> int:
    if math.isnan(value) or value < 0:
        return 0
    if value >= 2**64:
        return _UINT64_MAX
    return int(value)


def _float_to_int64(value: float) -> int:
    if not math.isfinite(value) or value < _INT64_MIN or value >= 2**63:
        return _INT64_MIN
    return int(value)


def _container(pods: dict[NamespacedName, PodMetricsPoint], labels: dict[str, str]) -> MetricsPoint:
    ref = NamespacedName(namespace=labels.get("namespace", ""), name=labels.get("pod", ""))
    pod = pods.setdefault(ref, PodMetricsPoint())
    return pod.containers.setdefault(labels.get("container", ""), MetricsPoint())


def _check_container_metrics(pod: PodMetricsPoint) -> dict[str, MetricsPoint] | None:
    """Containers with data, or None if any container is missing CPU or memory."""
    result: dict[str, MetricsPoint] = {}
    for name, point in pod.containers.items():
        if point == MetricsPoint():
            continue
        if point.cumulative_cpu_used == 0 or point.memory_usage == 0:
            _log.debug("Failed getting complete container metric %s: %s", name, point)
            return None
        result[name] = point
    return result


def decode_batch(data: bytes | str, default_time: datetime, node_name: str) -> MetricsBatch:
    """Decode a resource-metrics response from the named node into a batch.

    Samples without a timestamp are stamped with default_time. Incomplete node
    or pod metrics are dropped; malformed input raises ParseError.
    """
    default_ms = _to_millis(default_time)
    node = MetricsPoint()
    pods: dict[NamespacedName, PodMetricsPoint] = {}

    for name, labels, value, timestamp in iter_series(data):
        millis = default_ms if timestamp is None else timestamp
        if name == NODE_CPU_USAGE_METRIC_NAME:
            node.cumulative_cpu_used = _float_to_uint64(value * 1e9)
            node.timestamp = _from_millis(millis)
        elif name == NODE_MEM_USAGE_METRIC_NAME:
            node.memory_usage = _float_to_uint64(value)
            node.timestamp = _from_millis(millis)
        elif name == CONTAINER_CPU_USAGE_METRIC_NAME:
            point = _container(pods, labels)
            point.cumulative_cpu_used = _float_to_uint64(value * 1e9)
            point.timestamp = _from_millis(millis)
        elif name == CONTAINER_MEM_USAGE_METRIC_NAME:
            point = _container(pods, labels)
            point.memory_usage = _float_to_uint64(value)
            point.timestamp = _from_millis(millis)
        elif name == CONTAINER_START_TIME_METRIC_NAME:
            point = _container(pods, labels)
            point.start_time = _from_nanos(_float_to_int64(value * 1e9))

    batch = MetricsBatch()
    if node.timestamp is None or node.cumulative_cpu_used == 0 or node.memory_usage == 0:
        _log.debug("Failed getting complete node metric for %s: %s", node_name, node)
    else:
        batch.nodes[node_name] = node

    for ref, pod in pods.items():
        if not pod.containers:
            continue
        containers = _check_container_metrics(pod)
        if containers is None:
            _log.debug("Failed getting complete pod metric for %s", ref)
        else:
            batch.pods[ref] = PodMetricsPoint(containers=containers)
    return batch