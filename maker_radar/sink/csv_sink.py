"""Local CSV file sink."""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Sequence

from .base import SinkError, TabularSink


class CsvSink(TabularSink):
    """Append approved rows to a CSV file, creating it with a header on first use."""

    name = "csv"

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def available(self) -> bool:
        return True

    def ensure_header(self, headers: Sequence[str]) -> None:
        try:
            if self.path.exists() and self.path.stat().st_size > 0:
                return
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("w", encoding="utf-8", newline="") as handle:
                csv.writer(handle).writerow(list(headers))
        except OSError as exc:
            raise SinkError(f"Cannot initialise {self.path}: {exc}") from exc

    def read_rows(self) -> list[list[str]]:
        if not self.path.exists():
            return []
        try:
            with self.path.open("r", encoding="utf-8", newline="") as handle:
                rows = list(csv.reader(handle))
        except OSError as exc:
            raise SinkError(f"Cannot read {self.path}: {exc}") from exc
        return rows[1:]

    def append_row(self, row: Sequence[str]) -> None:
        try:
            with self.path.open("a", encoding="utf-8", newline="") as handle:
                csv.writer(handle).writerow(list(row))
        except OSError as exc:
            raise SinkError(f"Cannot append to {self.path}: {exc}") from exc

    def describe(self) -> dict[str, Any]:
        return {"kind": self.name, "path": str(self.path)}


__all__ = ["CsvSink"]
