"""Google Sheets sink backed by gspread."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Sequence

from .base import SinkError, SinkUnavailable, TabularSink

try:  # noqa: SIM105
    import gspread
except Exception as exc:  # noqa: BLE001
    gspread = None  # type: ignore[assignment]
    _IMPORT_ERROR = exc
else:
    _IMPORT_ERROR = None


def _service_account_client(credentials_file: Path) -> Any:
    return gspread.service_account(filename=str(credentials_file))


class GoogleSheetsSink(TabularSink):
    """Append rows to one tab of a spreadsheet, creating the tab when absent."""

    name = "sheets"

    def __init__(
        self,
        spreadsheet_id: str | None,
        sheet_name: str,
        credentials_file: Path | None,
        client_factory: Callable[[Path], Any] | None = None,
    ) -> None:
        self.spreadsheet_id = spreadsheet_id
        self.sheet_name = sheet_name
        self.credentials_file = credentials_file
        self._client_factory = client_factory or _service_account_client
        self._spreadsheet: Any = None
        self._worksheet: Any = None

    def available(self) -> bool:
        return bool(
            gspread is not None
            and self.spreadsheet_id
            and self.credentials_file
            and Path(self.credentials_file).exists()
        )

    def connect(self) -> None:
        if gspread is None:
            raise SinkUnavailable(f"gspread is required for GoogleSheetsSink: {_IMPORT_ERROR}")
        if not self.available():
            raise SinkUnavailable("Google Sheets sink needs a spreadsheet id and a credentials file")
        try:
            client = self._client_factory(Path(self.credentials_file))
            self._spreadsheet = client.open_by_key(self.spreadsheet_id)
        except Exception as exc:  # noqa: BLE001
            raise SinkError(f"Failed to connect to spreadsheet {self.spreadsheet_id}: {exc}") from exc

    def ensure_header(self, headers: Sequence[str]) -> None:
        if self._spreadsheet is None:
            raise SinkUnavailable("Google Sheets sink used before connect()")
        try:
            try:
                worksheet = self._spreadsheet.worksheet(self.sheet_name)
            except gspread.exceptions.WorksheetNotFound:
                worksheet = self._spreadsheet.add_worksheet(
                    title=self.sheet_name, rows=1000, cols=len(headers)
                )
            if not worksheet.row_values(1):
                worksheet.append_row(list(headers), value_input_option="RAW")
        except Exception as exc:  # noqa: BLE001
            raise SinkError(f"Failed to prepare sheet {self.sheet_name}: {exc}") from exc
        self._worksheet = worksheet

    def read_rows(self) -> list[list[str]]:
        worksheet = self._require_worksheet()
        try:
            return worksheet.get_all_values()[1:]
        except Exception as exc:  # noqa: BLE001
            raise SinkError(f"Failed to read sheet {self.sheet_name}: {exc}") from exc

    def append_row(self, row: Sequence[str]) -> None:
        worksheet = self._require_worksheet()
        try:
            worksheet.append_row(
                list(row), value_input_option="RAW", insert_data_option="INSERT_ROWS"
            )
        except Exception as exc:  # noqa: BLE001
            raise SinkError(f"Failed to append to sheet {self.sheet_name}: {exc}") from exc

    def describe(self) -> dict[str, Any]:
        return {
            "kind": self.name,
            "spreadsheet_id": self.spreadsheet_id,
            "sheet_name": self.sheet_name,
        }

    def _require_worksheet(self) -> Any:
        if self._worksheet is None:
            raise SinkUnavailable("Google Sheets sink used before ensure_header()")
        return self._worksheet


__all__ = ["GoogleSheetsSink"]
