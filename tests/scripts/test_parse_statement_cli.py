"""Tests for scripts/parse_statement.py."""

import importlib.util
import json
from datetime import datetime
from decimal import Decimal
from pathlib import Path

import openpyxl
import pytest

SCRIPT = Path(__file__).resolve().parents[2] / "scripts" / "parse_statement.py"


@pytest.fixture(scope="module")
def cli():
    module_spec = importlib.util.spec_from_file_location("parse_statement_cli", SCRIPT)
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)
    return module


@pytest.fixture(autouse=True)
def _no_env_overrides(monkeypatch):
    for var in ("CASHBOX_DATABASE_URL", "CASHBOX_ADMIN_CODE", "CASHBOX_GRACE_SECONDS"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def statement_file(tmp_path):
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.append(["التاريخ", "طريقة الدفع", "المبلغ", "الاتجاه"])
    ws.append([datetime(2024, 3, 15, 9, 0), "مدى", 120, "داخل"])
    ws.append([datetime(2024, 3, 14, 9, 0), "مدى", 80, "داخل"])
    path = tmp_path / "statement.xlsx"
    wb.save(path)
    return path


class TestParseStatementCli:
    def test_prints_totals(self, cli, statement_file, capsys):
        code = cli.main([str(statement_file), "--after", "2024-03-15T00:00"])
        assert code == 0
        payload = json.loads(capsys.readouterr().out)
        assert Decimal(payload["sums"]["mada"]) == Decimal("120")
        assert payload["counts"]["mada"] == 1
        assert payload["error"] is None

    def test_without_cutoff_counts_everything(self, cli, statement_file, capsys):
        assert cli.main([str(statement_file)]) == 0
        payload = json.loads(capsys.readouterr().out)
        assert Decimal(payload["sums"]["mada"]) == Decimal("200")

    def test_unparseable_file(self, cli, tmp_path, capsys):
        path = tmp_path / "notes.csv"
        path.write_text("nothing,useful\nhere,at all\n", encoding="utf-8")
        assert cli.main([str(path)]) == 1
        assert json.loads(capsys.readouterr().out)["error"] is not None

    def test_missing_file(self, cli, tmp_path, capsys):
        assert cli.main([str(tmp_path / "absent.xlsx")]) == 2
        assert "file not found" in capsys.readouterr().err
