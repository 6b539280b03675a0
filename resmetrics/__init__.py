"""Resource metrics for cluster nodes and pods: kubelet scraping, decoding, selectors and API storages."""

__version__ = "0.1.0"

__all__ = [
    "apigroup",
    "client",
    "clock",
    "decode",
    "instruments",
    "node",
    "options",
    "pod",
    "quantity",
    "scraper",
    "selectors",
    "table",
    "types",
]