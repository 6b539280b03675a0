"""Command-line options of the metrics server and the kubelet client settings built from them."""

from __future__ import annotations

import argparse
import copy
import re
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from typing import Any, Callable, Sequence

from resmetrics.table import format_duration
from resmetrics.types import KubeletClientConfig, RestConfig, TLSConfig

DEFAULT_ADDRESS_TYPE_PRIORITY = ("Hostname", "InternalDNS", "InternalIP", "ExternalDNS", "ExternalIP")

_UNIT_NANOS = {
    "ns": 1,
    "us": 1_000,
    "µs": 1_000,
    "μs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60_000_000_000,
    "h": 3_600_000_000_000,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")
_TRUE = {"1", "t", "T", "TRUE", "true", "True"}
_FALSE = {"0", "f", "F", "FALSE", "false", "False"}


def _parse_duration(text: str) -> timedelta:
    """Parse a duration such as '10s', '1m30s' or '1.5h'."""
    rest = text
    sign = 1
    if rest[:1] in ("+", "-"):
        sign = -1 if rest[0] == "-" else 1
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
    nanos = Fraction(0)
    pos = 0
    while pos < len(rest):
        match = _DURATION_PART.match(rest, pos)
        if not match:
            raise argparse.ArgumentTypeError(f"invalid duration {text!r}")
        nanos += Fraction(match.group(1)) * _UNIT_NANOS[match.group(2)]
        pos = match.end()
    return timedelta(microseconds=sign * int(nanos) / 1000)


def _parse_bool(text: str) -> bool:
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise argparse.ArgumentTypeError(f"invalid boolean value {text!r}")


def _duration_text(value: timedelta) -> str:
    return format_duration((value // timedelta(microseconds=1)) * 1000)


class _SetAttr(argparse.Action):
    """Stores the parsed value as an attribute of a target object."""

    def __init__(self, option_strings, dest, target: Any = None, attr: str = "", **kwargs) -> None:
        kwargs["default"] = argparse.SUPPRESS
        super().__init__(option_strings, dest, **kwargs)
        self.target = target
        self.attr = attr

    def __call__(self, parser, namespace, values, option_string=None) -> None:
        setattr(self.target, self.attr, values)


class _SetSlice(_SetAttr):
    """A comma-separated list: the first use replaces the default, later uses append."""

    def __init__(self, option_strings, dest, **kwargs) -> None:
        super().__init__(option_strings, dest, **kwargs)
        self._seen = False

    def __call__(self, parser, namespace, values, option_string=None) -> None:
        items = values.split(",") if values else []
        if self._seen:
            getattr(self.target, self.attr).extend(items)
        else:
            setattr(self.target, self.attr, items)
            self._seen = True


def _add(parser, flags: Sequence[str], target: Any, attr: str, help: str,
         convert: Callable[[str], Any] = str) -> None:
    parser.add_argument(*flags, action=_SetAttr, target=target, attr=attr, type=convert, help=help)


def _add_bool(parser, flag: str, target: Any, attr: str, help: str) -> None:
    parser.add_argument(flag, action=_SetAttr, target=target, attr=attr, type=_parse_bool,
                        nargs="?", const=True, metavar="BOOL", help=help)


@dataclass
class KubeletClientOptions:
    """How to reach and authenticate to kubelets."""

    kubelet_use_node_status_port: bool = False
    kubelet_port: int = 10250
    insecure_kubelet_tls: bool = False
    kubelet_preferred_address_types: list[str] = field(
        default_factory=lambda: list(DEFAULT_ADDRESS_TYPE_PRIORITY)
    )
    kubelet_ca_file: str = ""
    kubelet_client_key_file: str = ""
    kubelet_client_cert_file: str = ""
    deprecated_completely_insecure_kubelet: bool = False
    kubelet_request_timeout: timedelta = timedelta(seconds=10)
    node_selector: str = ""

    def validate(self) -> list[ValueError]:
        """Every conflict or invalid value among the options."""
        errors: list[ValueError] = []
        insecure = self.deprecated_completely_insecure_kubelet
        if self.kubelet_ca_file and self.insecure_kubelet_tls:
            errors.append(ValueError("cannot use both --kubelet-certificate-authority and --kubelet-insecure-tls"))
        if bool(self.kubelet_client_key_file) != bool(self.kubelet_client_cert_file):
            errors.append(ValueError("need both --kubelet-client-key and --kubelet-client-certificate"))
        if self.kubelet_client_key_file and insecure:
            errors.append(ValueError(
                "cannot use both --kubelet-client-key and --deprecated-kubelet-completely-insecure"))
        if self.kubelet_client_cert_file and insecure:
            errors.append(ValueError(
                "cannot use both --kubelet-client-certificate and --deprecated-kubelet-completely-insecure"))
        if self.insecure_kubelet_tls and insecure:
            errors.append(ValueError(
                "cannot use both --kubelet-insecure-tls and --deprecated-kubelet-completely-insecure"))
        if self.kubelet_ca_file and insecure:
            errors.append(ValueError(
                "cannot use both --kubelet-certificate-authority and --deprecated-kubelet-completely-insecure"))
        if self.kubelet_request_timeout <= timedelta(0):
            errors.append(ValueError("kubelet-request-timeout should be positive"))
        return errors

    def add_arguments(self, parser) -> None:
        """Add the kubelet client flags; parsed values are stored on this object."""
        _add_bool(parser, "--kubelet-insecure-tls", self, "insecure_kubelet_tls",
                  "Do not verify CA of serving certificates presented by Kubelets.  For testing purposes only.")
        _add_bool(parser, "--kubelet-use-node-status-port", self, "kubelet_use_node_status_port",
                  "Use the port in the node status. Takes precedence over --kubelet-port flag.")
        _add(parser, ["--kubelet-port"], self, "kubelet_port",
             f"The port to use to connect to Kubelets. (default {self.kubelet_port})", int)
        parser.add_argument(
            "--kubelet-preferred-address-types", action=_SetSlice, target=self,
            attr="kubelet_preferred_address_types",
            help="The priority of node address types to use when determining which address to use to "
                 "connect to a particular node (default "
                 f"[{','.join(self.kubelet_preferred_address_types)}])",
        )
        # These three flags default to empty whatever was set before.
        self.kubelet_ca_file = ""
        self.kubelet_client_key_file = ""
        self.kubelet_client_cert_file = ""
        _add(parser, ["--kubelet-certificate-authority"], self, "kubelet_ca_file",
             "Path to the CA to use to validate the Kubelet's serving certificates.")
        _add(parser, ["--kubelet-client-key"], self, "kubelet_client_key_file",
             "Path to a client key file for TLS.")
        _add(parser, ["--kubelet-client-certificate"], self, "kubelet_client_cert_file",
             "Path to a client cert file for TLS.")
        _add(parser, ["--kubelet-request-timeout"], self, "kubelet_request_timeout",
             "The length of time to wait before giving up on a single request to Kubelet. Non-zero values "
             "should contain a corresponding time unit (e.g. 1s, 2m, 3h). "
             f"(default {_duration_text(self.kubelet_request_timeout)})", _parse_duration)
        _add(parser, ["--node-selector", "-l"], self, "node_selector",
             "Selector (label query) to filter on, not including uninitialized ones, supports '=', '==', "
             "and '!='.(e.g. -l key1=value1,key2=value2).")
        _add_bool(parser, "--deprecated-kubelet-completely-insecure", self,
                  "deprecated_completely_insecure_kubelet",
                  "DEPRECATED: Do not use any encryption, authorization, or authentication when communicating "
                  "with the Kubelet. This is rarely the right option, since it leaves kubelet communication "
                  "completely insecure.  If you encounter auth errors, make sure you've enabled token webhook "
                  "auth on the Kubelet, and if you're in a test cluster with self-signed Kubelet certificates, "
                  "consider using kubelet-insecure-tls instead.")

    def config(self, rest_config: RestConfig) -> KubeletClientConfig:
        """Kubelet client settings derived from the cluster connection and these options."""
        client = copy.deepcopy(rest_config)
        scheme = "https"
        if self.deprecated_completely_insecure_kubelet:
            scheme = "http"
            # No credentials and no TLS towards an insecure endpoint.
            client = RestConfig(host=client.host, timeout=client.timeout, content_type=client.content_type)
            client.tls = TLSConfig()
        tls = client.tls
        if self.insecure_kubelet_tls:
            tls.insecure = True
            tls.ca_data = None
            tls.ca_file = ""
        if self.kubelet_ca_file:
            tls.ca_file = self.kubelet_ca_file
            tls.ca_data = None
        if self.kubelet_client_cert_file:
            tls.cert_file = self.kubelet_client_cert_file
            tls.cert_data = None
        if self.kubelet_client_key_file:
            tls.key_file = self.kubelet_client_key_file
            tls.key_data = None
        return KubeletClientConfig(
            client=client,
            address_type_priority=self.address_type_priority(),
            scheme=scheme,
            default_port=self.kubelet_port,
            use_node_status_port=self.kubelet_use_node_status_port,
        )

    def address_type_priority(self) -> list[str]:
        """The node address types to try, most preferred first."""
        return list(self.kubelet_preferred_address_types)


@dataclass
class Options:
    """All options of the metrics server."""

    kubelet_client: KubeletClientOptions = field(default_factory=KubeletClientOptions)
    metric_resolution: timedelta = timedelta(seconds=60)
    show_version: bool = False
    kubeconfig: str = ""

    def validate(self) -> list[ValueError]:
        """Every problem with the options, kubelet client ones first."""
        return self.kubelet_client.validate() + self.validate_resolution()

    def validate_resolution(self) -> list[ValueError]:
        """Problems with the metric resolution and how it relates to the request timeout."""
        errors: list[ValueError] = []
        resolution = self.metric_resolution
        timeout = self.kubelet_client.kubelet_request_timeout
        if resolution < timedelta(seconds=10):
            errors.append(ValueError(
                "metric-resolution should be a time duration at least 10s, "
                f"but value {_duration_text(resolution)} provided"))
        if resolution * 9 / 10 < timeout:
            errors.append(ValueError(
                "metric-resolution should be larger than kubelet-request-timeout, but metric-resolution value "
                f"{_duration_text(resolution)} kubelet-request-timeout value {_duration_text(timeout)} provided"))
        return errors

    def add_arguments(self, parser) -> None:
        """Add every flag; parsed values are stored on this object and its kubelet options."""
        group = parser.add_argument_group("metrics server")
        _add(group, ["--metric-resolution"], self, "metric_resolution",
             "The resolution at which metrics-server will retain metrics, must set value at least 10s. "
             f"(default {_duration_text(self.metric_resolution)})", _parse_duration)
        self.show_version = False
        _add_bool(group, "--version", self, "show_version", "Show version")
        _add(group, ["--kubeconfig"], self, "kubeconfig",
             "The path to the kubeconfig used to connect to the Kubernetes API server and the Kubelets "
             "(defaults to in-cluster config)")
        self.kubelet_client.add_arguments(parser.add_argument_group("kubelet client"))


def build_parser(options: Options) -> argparse.ArgumentParser:
    """A parser that stores what it parses on the given options."""
    parser = argparse.ArgumentParser(prog="metrics-server", description="Launch metrics-server")
    options.add_arguments(parser)
    return parser


def parse_options(argv: Sequence[str] | None = None) -> Options:
    """Parse the command line over the defaults.

    Unless the version was asked for, the result is validated and the first
    problem found is raised as ValueError.
    """
    options = Options()
    build_parser(options).parse_args(argv)
    if not options.show_version:
        errors = options.validate()
        if errors:
            raise errors[0]
    return options