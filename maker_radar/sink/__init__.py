"""Sink implementations and the approved-record reconciler."""

from pathlib import Path

from ..config import SinkConfig, SinkKind
from .base import NullSink, SINK_HEADERS, SinkError, SinkUnavailable, TabularSink
from .csv_sink import CsvSink
from .reconciler import SinkReconciler, SyncResult
from .sheets_sink import GoogleSheetsSink


def build_sink(config: SinkConfig, base_dir: Path | None = None) -> TabularSink:
    """Instantiate the sink selected by ``config.kind``."""

    def _resolve(path: Path) -> Path:
        if base_dir is not None and not path.is_absolute():
            return base_dir / path
        return path

    if config.kind is SinkKind.CSV:
        return CsvSink(_resolve(config.csv_path))
    if config.kind is SinkKind.SHEETS:
        credentials = _resolve(config.credentials_file) if config.credentials_file else None
        return GoogleSheetsSink(config.spreadsheet_id, config.sheet_name, credentials)
    return NullSink()


__all__ = [
    "CsvSink",
    "GoogleSheetsSink",
    "NullSink",
    "SINK_HEADERS",
    "SinkError",
    "SinkReconciler",
    "SinkUnavailable",
    "SyncResult",
    "TabularSink",
    "build_sink",
]
