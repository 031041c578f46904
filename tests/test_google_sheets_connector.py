"""Tests for Google Sheets connector with mocking (no network)."""

from __future__ import annotations

from unittest.mock import MagicMock, patch

import pytest

from adpivot.connectors.google_sheets import (
    GoogleSheetsConfigError,
    push_matrix,
    push_tabular_file,
)


def _fake_client():
    ws = MagicMock()
    sh = MagicMock()
    sh.worksheet.return_value = ws
    client = MagicMock()
    client.open_by_key.return_value = sh
    fake_creds_cls = MagicMock()
    fake_creds_cls.from_service_account_file.return_value = object()
    fake_gspread = MagicMock()
    fake_gspread.authorize.return_value = client
    return ws, fake_creds_cls, fake_gspread


def test_missing_credentials_raises(tmp_path):
    f = tmp_path / "pivot.csv"
    f.write_text("a\n1\n", encoding="utf-8")
    with patch.dict("os.environ", {}, clear=True):
        with pytest.raises(GoogleSheetsConfigError):
            push_tabular_file("sid", "ws", str(f))


def test_credentials_path_must_exist(tmp_path):
    env = {"ADPIVOT_GOOGLE_CREDS_JSON": str(tmp_path / "missing.json")}
    with patch.dict("os.environ", env, clear=True):
        with pytest.raises(GoogleSheetsConfigError, match="not found"):
            push_matrix("sid", "ws", [["a"]])


def test_missing_dependency_raises(tmp_path):
    creds = tmp_path / "sa.json"
    creds.write_text("{}", encoding="utf-8")
    with patch.dict("os.environ", {"GOOGLE_APPLICATION_CREDENTIALS": str(creds)}, clear=True):
        with patch("adpivot.connectors.google_sheets.gspread", None):
            with pytest.raises(GoogleSheetsConfigError, match="gspread"):
                push_matrix("sid", "ws", [["a"]])


def test_push_file_keeps_header_rows(tmp_path):
    creds = tmp_path / "sa.json"
    creds.write_text("{}", encoding="utf-8")
    f = tmp_path / "pivot.csv"
    f.write_text("Platform,Facebook,总计\nCampaign,cost,cost\nC1,10.0,\n", encoding="utf-8")

    ws, fake_creds_cls, fake_gspread = _fake_client()
    with patch.dict("os.environ", {"ADPIVOT_GOOGLE_CREDS_JSON": str(creds)}, clear=True):
        with patch("adpivot.connectors.google_sheets.Credentials", fake_creds_cls):
            with patch("adpivot.connectors.google_sheets.gspread", fake_gspread):
                n = push_tabular_file("sid", "ws", str(f))

    assert n == 3
    ws.clear.assert_called_once()
    ws.update.assert_called_once_with(
        "A1",
        [["Platform", "Facebook", "总计"], ["Campaign", "cost", "cost"], ["C1", "10.0", ""]],
    )


def test_push_matrix_blanks_empty_cells(tmp_path):
    creds = tmp_path / "sa.json"
    creds.write_text("{}", encoding="utf-8")

    ws, fake_creds_cls, fake_gspread = _fake_client()
    with patch.dict("os.environ", {"ADPIVOT_GOOGLE_CREDS_JSON": str(creds)}, clear=True):
        with patch("adpivot.connectors.google_sheets.Credentials", fake_creds_cls):
            with patch("adpivot.connectors.google_sheets.gspread", fake_gspread):
                push_matrix("sid", "ws", [["C1", None, 2.0]])

    ws.update.assert_called_once_with("A1", [["C1", "", 2.0]])
