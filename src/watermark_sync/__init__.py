"""Stateless watermark-based incremental sync from SQL sources into Elasticsearch."""

__version__ = "0.1.0"
