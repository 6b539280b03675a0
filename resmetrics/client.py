"""HTTP client fetching resource metrics from kubelets."""

from __future__ import annotations

import base64
import contextlib
import os
import ssl
import tempfile
import urllib.error
import urllib.request
from datetime import datetime, timezone
from typing import Callable, Iterator, Protocol
from urllib.parse import quote

from resmetrics.decode import decode_batch
from resmetrics.types import KubeletClientConfig, MetricsBatch, Node, RestConfig, TLSConfig

ANNOTATION_RESOURCE_METRICS_PATH = "metrics.k8s.io/resource-metrics-path"
DEFAULT_METRICS_PATH = "/metrics/resource"

Transport = Callable[[str], "tuple[int, str, bytes]"]


class _AddressResolver(Protocol):
    def node_address(self, node: Node) -> str: ...


class _HTTPTransport:
    """Performs GET requests and returns (status code, reason, body)."""

    def __init__(self, context: ssl.SSLContext | None = None, headers: dict[str, str] | None = None,
                 timeout: float | None = None) -> None:
        handlers = [urllib.request.HTTPSHandler(context=context)] if context is not None else []
        self._opener = urllib.request.build_opener(*handlers)
        self._headers = dict(headers or {})
        self._timeout = timeout

    def __call__(self, url: str) -> tuple[int, str, bytes]:
        request = urllib.request.Request(url, headers=self._headers, method="GET")
        try:
            with self._opener.open(request, timeout=self._timeout) as response:
                return response.status, response.reason, response.read()
        except urllib.error.HTTPError as err:
            with err:
                return err.code, str(err.reason), err.read()


@contextlib.contextmanager
def _material(path: str, data: bytes | None) -> Iterator[str | None]:
    if path:
        yield path
    elif data:
        handle, temp_path = tempfile.mkstemp(suffix=".pem")
        try:
            with os.fdopen(handle, "wb") as f:
                f.write(data)
            yield temp_path
        finally:
            os.unlink(temp_path)
    else:
        yield None


def _ssl_context(tls: TLSConfig) -> ssl.SSLContext:
    if tls.insecure and (tls.ca_file or tls.ca_data):
        raise ValueError("specifying a root certificates file with the insecure flag is not allowed")
    context = ssl.create_default_context(
        cafile=tls.ca_file or None,
        cadata=tls.ca_data.decode("ascii") if tls.ca_data else None,
    )
    if tls.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    with _material(tls.cert_file, tls.cert_data) as cert, _material(tls.key_file, tls.key_data) as key:
        if cert:
            context.load_cert_chain(cert, key)
    return context


def _auth_headers(config: RestConfig) -> dict[str, str]:
    if config.bearer_token and (config.username or config.password):
        raise ValueError("username/password or bearer token may be set, but not both")
    if config.bearer_token:
        return {"Authorization": f"Bearer {config.bearer_token}"}
    if config.username or config.password:
        pair = f"{config.username}:{config.password}".encode()
        return {"Authorization": "Basic " + base64.b64encode(pair).decode("ascii")}
    return {}


def _join_host_port(host: str, port: int) -> str:
    return f"[{host}]:{port}" if ":" in host else f"{host}:{port}"


class KubeletClient:
    """Fetches and decodes resource metrics from kubelets."""

    def __init__(
        self,
        transport: Transport | None = None,
        resolver: _AddressResolver | None = None,
        default_port: int = 10250,
        scheme: str = "https",
        use_node_status_port: bool = False,
    ) -> None:
        self._transport = transport if transport is not None else _HTTPTransport()
        self._resolver = resolver
        self.default_port = default_port
        self.scheme = scheme
        self.use_node_status_port = use_node_status_port

    def get_metrics(self, node: Node) -> MetricsBatch:
        """Fetch the metrics of one node from its kubelet."""
        port = self.default_port
        if self.use_node_status_port and node.kubelet_port:
            port = node.kubelet_port
        path = node.annotations.get(ANNOTATION_RESOURCE_METRICS_PATH) or DEFAULT_METRICS_PATH
        if self._resolver is None:
            raise ValueError("no node address resolver configured")
        address = self._resolver.node_address(node)
        if not path.startswith("/"):
            path = "/" + path
        url = f"{self.scheme}://{_join_host_port(address, port)}{quote(path, safe='/:@!$&()*+,;=-._~')}"
        return self.fetch(url, node.name)

    def fetch(self, url: str, node_name: str) -> MetricsBatch:
        """GET the URL and decode the body as metrics of the named node."""
        request_time = datetime.now(timezone.utc)
        status, reason, body = self._transport(url)
        if status != 200:
            raise RuntimeError(f'request failed, status: "{status} {reason}"')
        return decode_batch(body, request_time, node_name)


def new_for_config(config: KubeletClientConfig, resolver: _AddressResolver | None) -> KubeletClient:
    """Build a client whose TLS, authentication and timeout come from the config."""
    try:
        context = _ssl_context(config.client.tls)
        headers = _auth_headers(config.client)
    except (OSError, ValueError) as err:
        raise ValueError(f"unable to construct transport: {err}") from err
    transport = _HTTPTransport(context, headers, config.client.timeout or None)
    return KubeletClient(
        transport, resolver, config.default_port, config.scheme, config.use_node_status_port
    )