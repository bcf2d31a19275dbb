from datetime import datetime
from decimal import Decimal
from pathlib import Path

import pytest
from openpyxl import Workbook

from pharmapos.domain.errors import AssistantUnavailableError, ImportFormatError
from pharmapos.repositories.sqlite_repo import SqliteRepository
from pharmapos.services.import_service import ImportService
from pharmapos.services.inventory_service import InventoryService


class FakeAssistant:
    def __init__(self, rows=None, error=None):
        self.rows = rows or []
        self.error = error
        self.calls = []

    def extract_medicines_from_image(self, image: bytes, mime_type: str):
        self.calls.append((image, mime_type))
        if self.error:
            raise self.error
        return self.rows


def _setup(tmp_path: Path, assistant=None):
    repo = SqliteRepository(tmp_path / "import.db")
    repo.init_db()
    inventory = InventoryService(repo)
    return repo, ImportService(inventory, assistant)


def test_excel_import_maps_headers_and_skips_bad_rows(tmp_path: Path):
    repo, importer = _setup(tmp_path)

    wb = Workbook()
    ws = wb.active
    ws.append(["Name", "Manufacturer", "Stock", "Price", "Expiry Date", "Batch Number", "HSN Code"])
    ws.append(["Dolo 650", "Micro Labs", 40, 30.5, datetime(2027, 3, 31), "DL-01", "3004"])
    ws.append(["Crocin", None, "12", "18", "2026-12-01", None, None])
    ws.append([None, "Nobody", 5, 10, None, None, None])
    ws.append(["Half Strip", "Cipla", 2.5, 10, None, None, None])
    ws.append(["Free Sample", "Cipla", 3, 0, None, None, None])
    ws.append([None, None, None, None, None, None, None])
    path = tmp_path / "stock.xlsx"
    wb.save(path)

    ok, skipped = importer.import_file(path)

    assert (ok, skipped) == (2, 3)
    dolo, crocin = sorted(repo.list_medicines(), key=lambda m: m.name, reverse=True)
    assert dolo.name == "Dolo 650"
    assert dolo.mrp == Decimal("30.5")
    assert dolo.stock == 40
    assert dolo.expiry_date == "2027-03-31"
    assert dolo.batch_number == "DL-01"
    assert crocin.manufacturer == "Unknown"
    assert crocin.stock == 12
    assert crocin.expiry_date == "2026-12-01"


def test_csv_import_accepts_mrp_and_camel_case_headers(tmp_path: Path):
    repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.csv"
    path.write_text(
        "name,manufacturer,category,batchNumber,hsnCode,mrp,stock,expiryDate\n"
        "Pantoprazole 40mg,Alkem,Antacid,PN-4,3004,112.00,25,2027-01-31\n"
        "Broken,Alkem,Antacid,PN-5,3004,abc,25,2027-01-31\n"
        "\n",
        encoding="utf-8",
    )

    ok, skipped = importer.import_file(path)

    assert (ok, skipped) == (1, 1)
    med = repo.list_medicines()[0]
    assert med.category == "Antacid"
    assert med.hsn_code == "3004"
    assert med.mrp == Decimal("112.00")


def test_missing_required_header_is_a_format_error(tmp_path: Path):
    repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.csv"
    path.write_text("name,manufacturer,stock\nDolo,Micro,4\n", encoding="utf-8")

    with pytest.raises(ImportFormatError, match="mrp"):
        importer.import_file(path)
    assert repo.list_medicines() == []


def test_file_with_only_bad_rows_imports_nothing(tmp_path: Path):
    repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.csv"
    path.write_text("name,price,stock\n,10,4\nX,-1,4\n", encoding="utf-8")

    with pytest.raises(ImportFormatError, match="2 rows skipped"):
        importer.import_file(path)
    assert repo.list_medicines() == []


def test_unsupported_file_type_is_rejected(tmp_path: Path):
    _repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.pdf"
    path.write_bytes(b"%PDF")

    with pytest.raises(ImportFormatError, match="Unsupported file type"):
        importer.import_file(path)


def test_corrupt_workbook_is_a_format_error(tmp_path: Path):
    repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.xlsx"
    path.write_text("not a workbook", encoding="utf-8")

    with pytest.raises(ImportFormatError, match="Not a readable .xlsx workbook"):
        importer.import_file(path)
    assert repo.list_medicines() == []


def test_non_utf8_csv_is_a_format_error(tmp_path: Path):
    repo, importer = _setup(tmp_path)
    path = tmp_path / "stock.csv"
    path.write_bytes("name,stock,mrp\nParacétamol,10,25\n".encode("latin-1"))

    with pytest.raises(ImportFormatError, match="UTF-8"):
        importer.import_file(path)
    assert repo.list_medicines() == []


def test_image_import_goes_through_the_assistant(tmp_path: Path):
    assistant = FakeAssistant(
        rows=[
            {"name": "Azee 500", "manufacturer": "Cipla", "stock": 10, "mrp": 71.2, "expiryDate": "2027-08-31",
             "category": "Antibiotic", "batchNumber": "AZ9", "hsnCode": "3004"},
            {"name": "Unreadable", "stock": None, "mrp": None, "expiryDate": None, "batchNumber": None, "hsnCode": None},
        ]
    )
    repo, importer = _setup(tmp_path, assistant)
    path = tmp_path / "invoice.png"
    path.write_bytes(b"\x89PNG fake")

    ok, skipped = importer.import_file(path)

    assert (ok, skipped) == (1, 1)
    assert assistant.calls == [(b"\x89PNG fake", "image/png")]
    med = repo.list_medicines()[0]
    assert med.batch_number == "AZ9"
    assert med.mrp == Decimal("71.2")


def test_image_import_failures_surface_to_the_caller(tmp_path: Path):
    path = tmp_path / "invoice.jpg"
    path.write_bytes(b"jpeg")

    (tmp_path / "other").mkdir()
    _repo, no_assistant = _setup(tmp_path / "other")
    with pytest.raises(ImportFormatError):
        no_assistant.import_file(path)

    repo, importer = _setup(tmp_path, FakeAssistant(error=AssistantUnavailableError("quota exceeded")))
    with pytest.raises(AssistantUnavailableError, match="quota"):
        importer.import_file(path)
    assert repo.list_medicines() == []
