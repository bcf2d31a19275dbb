from __future__ import annotations

import csv
import logging
import mimetypes
import re
from datetime import date, datetime
from pathlib import Path
from typing import Iterable, Optional
from zipfile import BadZipFile

from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from pharmapos.domain.errors import ImportFormatError, ValidationError
from pharmapos.domain.models import MedicineDraft
from pharmapos.services.inventory_service import normalize_draft

log = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp"}

# normalized header -> draft field
HEADER_ALIASES = {
    "name": "name",
    "medicine": "name",
    "manufacturer": "manufacturer",
    "category": "category",
    "batch": "batch_number",
    "batchnumber": "batch_number",
    "batchno": "batch_number",
    "hsn": "hsn_code",
    "hsncode": "hsn_code",
    "mrp": "mrp",
    "price": "mrp",
    "stock": "stock",
    "qty": "stock",
    "quantity": "stock",
    "expiry": "expiry_date",
    "expirydate": "expiry_date",
}

REQUIRED_FIELDS = ("name", "stock", "mrp")


def _header_key(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return HEADER_ALIASES.get(re.sub(r"[^a-z]", "", value.lower()))


def _text(value: object, default: str = "") -> str:
    if value is None:
        return default
    # openpyxl hands date cells back as datetime
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value).strip()
    return text or default


def _whole_number(value: object) -> int:
    number = float(str(value).strip())
    if not number.is_integer():
        raise ValueError(f"not a whole number: {value!r}")
    return int(number)


def row_to_draft(row: dict) -> MedicineDraft:
    """
    row: {field: raw value} keyed by draft field names
    """
    if row.get("stock") in (None, "") or row.get("mrp") in (None, ""):
        raise ValidationError("Stock and MRP are required.")
    try:
        stock = _whole_number(row["stock"])
    except ValueError as e:
        raise ValidationError(f"Stock must be a whole number. Received: {row['stock']!r}") from e

    draft = MedicineDraft(
        name=_text(row.get("name")),
        manufacturer=_text(row.get("manufacturer"), "Unknown"),
        category=_text(row.get("category"), "Unknown"),
        batch_number=_text(row.get("batch_number")),
        hsn_code=_text(row.get("hsn_code")),
        mrp=_text(row.get("mrp")),
        stock=stock,
        expiry_date=_text(row.get("expiry_date")),
    )
    return normalize_draft(draft, allow_blank_expiry=True)


class ImportService:
    def __init__(self, inventory_service, assistant_service=None):
        self.inventory = inventory_service
        self.assistant = assistant_service

    def _collect(self, rows: Iterable[tuple[int, dict]]) -> tuple[list[MedicineDraft], int]:
        drafts: list[MedicineDraft] = []
        skipped = 0
        for line, row in rows:
            try:
                drafts.append(row_to_draft(row))
            except ValidationError as e:
                log.warning("import_row_skipped row=%s error=%s", line, e)
                skipped += 1
        return drafts, skipped

    @staticmethod
    def _columns(headers: Iterable[object]) -> dict[int, str]:
        columns = {}
        for idx, value in enumerate(headers):
            key = _header_key(value)
            if key and key not in columns.values():
                columns[idx] = key
        missing = [f for f in REQUIRED_FIELDS if f not in columns.values()]
        if missing:
            raise ImportFormatError(f"Missing column header: {', '.join(missing)}")
        return columns

    def parse_excel(self, path: str | Path) -> tuple[list[MedicineDraft], int]:
        """
        First sheet, header row first. Recognised headers (case/space insensitive):
          name | manufacturer | category | batchNumber | hsnCode | mrp (or price) | stock | expiryDate
        """
        try:
            wb = load_workbook(path, read_only=True, data_only=True)
        except (BadZipFile, InvalidFileException, KeyError) as e:
            raise ImportFormatError(f"Not a readable .xlsx workbook: {Path(path).name}") from e
        try:
            ws = wb.worksheets[0]
            rows = ws.iter_rows(values_only=True)
            header = next(rows, None)
            if header is None:
                raise ImportFormatError("Workbook is empty.")
            columns = self._columns(header)

            def records():
                for line, values in enumerate(rows, start=2):
                    if values is None or all(v is None for v in values):
                        continue
                    yield line, {columns[i]: v for i, v in enumerate(values) if i in columns}

            return self._collect(records())
        finally:
            wb.close()

    def parse_csv(self, path: str | Path) -> tuple[list[MedicineDraft], int]:
        try:
            with open(path, newline="", encoding="utf-8-sig") as fh:
                reader = csv.reader(fh)
                header = next(reader, None)
                if header is None:
                    raise ImportFormatError("CSV file is empty.")
                columns = self._columns(header)

                def records():
                    for line, values in enumerate(reader, start=2):
                        if not any(v.strip() for v in values):
                            continue
                        yield line, {columns[i]: v for i, v in enumerate(values) if i in columns}

                return self._collect(records())
        except UnicodeDecodeError as e:
            raise ImportFormatError(f"CSV file must be UTF-8 encoded: {Path(path).name}") from e
        except csv.Error as e:
            raise ImportFormatError(f"Malformed CSV file: {e}") from e

    def parse_image(self, path: str | Path) -> tuple[list[MedicineDraft], int]:
        if self.assistant is None:
            raise ImportFormatError("Image import needs the assistant to be configured.")
        path = Path(path)
        mime_type = mimetypes.guess_type(path.name)[0] or "image/jpeg"
        raw_rows = self.assistant.extract_medicines_from_image(path.read_bytes(), mime_type)
        rows = ((i, {_header_key(k) or k: v for k, v in r.items()}) for i, r in enumerate(raw_rows, start=1))
        return self._collect(rows)

    def parse_file(self, path: str | Path) -> tuple[list[MedicineDraft], int]:
        suffix = Path(path).suffix.lower()
        if suffix == ".xlsx":
            return self.parse_excel(path)
        if suffix == ".csv":
            return self.parse_csv(path)
        if suffix in IMAGE_SUFFIXES:
            return self.parse_image(path)
        raise ImportFormatError("Unsupported file type. Please upload a .csv, .xlsx or image file.")

    def import_file(self, path: str | Path) -> tuple[int, int]:
        drafts, skipped = self.parse_file(path)
        if not drafts:
            raise ImportFormatError(f"No valid medicines found ({skipped} rows skipped).")
        ids = self.inventory.add_medicines(drafts)
        log.info("import_completed path=%s imported=%s skipped=%s", path, len(ids), skipped)
        return len(ids), skipped
