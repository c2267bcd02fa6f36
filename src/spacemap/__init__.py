"""spacemap - disk space scanner with a persistent, coalescing size cache."""

__version__ = "0.1.0"
