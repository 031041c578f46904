"""Optional Google Sheets connector for pushing pivot exports."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, List

import pandas as pd

try:
    import gspread  # type: ignore
except Exception:  # pragma: no cover
    gspread = None

try:
    from google.oauth2.service_account import Credentials  # type: ignore
except Exception:  # pragma: no cover
    Credentials = None

logger = logging.getLogger(__name__)

SCOPES = [
    "https://www.googleapis.com/auth/spreadsheets",
    "https://www.googleapis.com/auth/drive",
]


class GoogleSheetsConfigError(RuntimeError):
    pass


def _resolve_creds_path() -> str:
    path = os.environ.get("ADPIVOT_GOOGLE_CREDS_JSON") or os.environ.get(
        "GOOGLE_APPLICATION_CREDENTIALS"
    )
    if not path:
        raise GoogleSheetsConfigError(
            "Google credentials not configured. Set ADPIVOT_GOOGLE_CREDS_JSON or "
            "GOOGLE_APPLICATION_CREDENTIALS to a Service Account JSON path."
        )
    if not Path(path).exists():
        raise GoogleSheetsConfigError(f"Credential file not found: {path}")
    return path


def _open_worksheet(spreadsheet_id: str, worksheet: str):
    creds_path = _resolve_creds_path()
    if gspread is None or Credentials is None:
        raise GoogleSheetsConfigError(
            "Google Sheets dependencies missing. Install gspread and google-auth "
            "(pip install 'adpivot[sheets]'), then retry."
        )
    creds = Credentials.from_service_account_file(creds_path, scopes=SCOPES)
    client = gspread.authorize(creds)
    return client.open_by_key(spreadsheet_id).worksheet(worksheet)


def _cell_text(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, float) and value != value:
        return ""
    return value


def push_matrix(spreadsheet_id: str, worksheet: str, matrix: List[List[Any]]) -> int:
    """Replace the worksheet contents with ``matrix``. Returns rows written."""
    ws = _open_worksheet(spreadsheet_id, worksheet)
    values = [[_cell_text(v) for v in row] for row in matrix]
    ws.clear()
    ws.update("A1", values)
    logger.info("Pushed %d rows to worksheet %r", len(values), worksheet)
    return len(values)


def push_tabular_file(spreadsheet_id: str, worksheet: str, input_path: str) -> int:
    """Push a CSV/TSV/XLSX export verbatim (header rows included)."""
    p = Path(input_path)
    suffix = p.suffix.lower()
    if suffix == ".xlsx":
        df = pd.read_excel(p, header=None, dtype=str).fillna("")
    elif suffix == ".tsv":
        df = pd.read_csv(p, sep="\t", header=None, dtype=str, keep_default_na=False)
    else:
        df = pd.read_csv(p, header=None, dtype=str, keep_default_na=False)
    return push_matrix(spreadsheet_id, worksheet, df.values.tolist())
