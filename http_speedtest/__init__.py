"""HTTP endpoint for measuring download and upload throughput."""

from http_speedtest.__version__ import __version__

__all__ = ["__version__"]
