"""Mosaic - multi-provider content plugin runtime."""

__version__ = "0.1.0"
