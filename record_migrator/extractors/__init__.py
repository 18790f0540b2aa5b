"""Source-side readers."""

from .schema_fetcher import SchemaFetcher
from .record_exporter import ExportResult, RecordExporter

__all__ = [
    "SchemaFetcher",
    "ExportResult",
    "RecordExporter",
]
