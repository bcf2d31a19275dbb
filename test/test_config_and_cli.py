import csv
from pathlib import Path

import pytest

from pharmapos.config import Settings, get_app_paths, load_settings
from pharmapos.domain.errors import ValidationError
from pharmapos.main import main


def test_load_settings_defaults_and_overrides(tmp_path: Path):
    assert load_settings({}) == Settings()

    settings = load_settings(
        {
            "PHARMAPOS_DB_PATH": str(tmp_path / "shop.db"),
            "PHARMAPOS_LOW_STOCK_THRESHOLD": "25",
            "PHARMAPOS_BUSY_TIMEOUT": "0.5",
            "GEMINI_API_KEY": "  secret  ",
            "PHARMAPOS_GEMINI_MODEL": "gemini-pro",
            "PHARMAPOS_AI_TIMEOUT": " ",
        }
    )
    assert settings.db_path == tmp_path / "shop.db"
    assert settings.low_stock_threshold == 25
    assert settings.busy_timeout == 0.5
    assert settings.gemini_api_key == "secret"
    assert settings.gemini_model == "gemini-pro"
    assert settings.ai_timeout == 30.0


@pytest.mark.parametrize("value", ["ten", "0", "-3", "2.5"])
def test_load_settings_rejects_bad_threshold(value):
    with pytest.raises(ValidationError):
        load_settings({"PHARMAPOS_LOW_STOCK_THRESHOLD": value})


def test_app_paths_live_under_home(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setattr("sys.platform", "linux")

    paths = get_app_paths()

    assert paths.base_dir == tmp_path / ".pharmapos"
    assert paths.db_path == tmp_path / ".pharmapos" / "pharmacy.db"
    assert paths.logs_dir.is_dir()


@pytest.fixture
def cli(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    for key in ("PHARMAPOS_DB_PATH", "PHARMAPOS_LOW_STOCK_THRESHOLD", "GEMINI_API_KEY"):
        monkeypatch.delenv(key, raising=False)
    db = tmp_path / "cli.db"
    return lambda *args: main(["--db", str(db), *args])


def test_cli_import_sell_and_export(cli, tmp_path: Path, capsys):
    stock_file = tmp_path / "stock.csv"
    stock_file.write_text(
        "Name,Manufacturer,Category,Batch Number,HSN Code,MRP,Stock,Expiry Date\n"
        "Paracetamol 500mg,Cipla,Painkiller,B-2291,3004,100,10,2027-06-30\n"
        "Cetirizine 10mg,Sun Pharma,Antihistamine,C-1102,3003,25,5,2026-12-31\n",
        encoding="utf-8",
    )

    assert cli("import", str(stock_file)) == 0
    assert "Imported 2 medicines (0 rows skipped)." in capsys.readouterr().out

    assert cli("sell", "1:2", "2:1", "--customer", "Asha Rao", "--phone", "9876543210", "--discount", "10") == 0
    receipt = capsys.readouterr().out
    assert "Customer: Asha Rao" in receipt
    assert "You Saved 22.50!" in receipt

    assert cli("low-stock") == 0
    assert "Cetirizine 10mg" in capsys.readouterr().out

    assert cli("list", "sun") == 0
    listed = capsys.readouterr().out
    assert "Cetirizine 10mg" in listed
    assert "Paracetamol" not in listed

    out = tmp_path / "stock-out.csv"
    assert cli("export", "stock", str(out)) == 0
    with open(out, newline="", encoding="utf-8") as fh:
        stock = {r["name"]: r["stock"] for r in csv.DictReader(fh)}
    assert stock == {"Cetirizine 10mg": "4", "Paracetamol 500mg": "8"}


def test_cli_reports_errors_on_stderr(cli, capsys):
    assert cli("sell", "1:1", "--customer", "Asha", "--phone", "9876543210") == 1
    assert "Error: Medicine not found." in capsys.readouterr().err


def test_cli_ask_without_key_apologises(cli, capsys):
    assert cli("ask", "what", "is", "ibuprofen?") == 0
    assert "Sorry, I encountered an error." in capsys.readouterr().out


def test_cli_import_of_corrupt_workbook_fails_cleanly(cli, tmp_path: Path, capsys):
    bad = tmp_path / "bad.xlsx"
    bad.write_text("not a workbook", encoding="utf-8")

    assert cli("import", str(bad)) == 1
    assert "Error: Not a readable .xlsx workbook: bad.xlsx" in capsys.readouterr().err
