"""Tabular sink Service Provider Interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

SINK_HEADERS = (
    "Date Approved",
    "Maker Name",
    "Profile",
    "Product Name",
    "Category",
    "Source Link",
)


class SinkError(RuntimeError):
    """Raised when the sink is configured but an I/O operation fails."""


class SinkUnavailable(SinkError):
    """Raised when the sink is not configured or its backend is missing."""


class TabularSink(ABC):
    """Uniform row-oriented destination for approved records."""

    name = "sink"

    @abstractmethod
    def available(self) -> bool:
        """Return whether the sink is configured well enough to try connecting."""

    def connect(self) -> None:
        """Establish the connection; raise ``SinkUnavailable``/``SinkError`` on failure."""
        if not self.available():
            raise SinkUnavailable(f"{self.name} sink is not configured")

    @abstractmethod
    def ensure_header(self, headers: Sequence[str]) -> None:
        """Create the destination and its header row when missing."""

    @abstractmethod
    def read_rows(self) -> list[list[str]]:
        """Return every data row, header excluded."""

    @abstractmethod
    def append_row(self, row: Sequence[str]) -> None:
        """Append one data row."""

    def describe(self) -> dict[str, Any]:
        return {"kind": self.name}

    def close(self) -> None:
        return


class NullSink(TabularSink):
    """Placeholder used when no sink is configured."""

    name = "none"

    def available(self) -> bool:
        return False

    def ensure_header(self, headers: Sequence[str]) -> None:
        raise SinkUnavailable("No sink configured")

    def read_rows(self) -> list[list[str]]:
        raise SinkUnavailable("No sink configured")

    def append_row(self, row: Sequence[str]) -> None:
        raise SinkUnavailable("No sink configured")


__all__ = ["NullSink", "SINK_HEADERS", "SinkError", "SinkUnavailable", "TabularSink"]
