from __future__ import annotations

from dataclasses import asdict, replace
from datetime import date
from typing import Callable, Iterable

from pharmapos.domain.errors import ValidationError, NotFoundError
from pharmapos.domain.models import Medicine, MedicineDraft
from pharmapos.domain.pricing import to_decimal


def normalize_draft(draft: MedicineDraft, allow_blank_expiry: bool = False) -> MedicineDraft:
    name = (draft.name or "").strip()
    if not name:
        raise ValidationError("Name is required.")

    mrp = to_decimal(draft.mrp, "MRP")
    if mrp <= 0:
        raise ValidationError("MRP must be > 0.")

    stock = draft.stock
    if isinstance(stock, bool) or not isinstance(stock, int):
        raise ValidationError("Stock must be a whole number.")
    if stock < 0:
        raise ValidationError("Stock must be >= 0.")

    expiry = (draft.expiry_date or "").strip()
    if expiry:
        try:
            expiry = date.fromisoformat(expiry).isoformat()
        except ValueError as e:
            raise ValidationError(f"Expiry date must be YYYY-MM-DD. Received: {expiry!r}") from e
    elif not allow_blank_expiry:
        raise ValidationError("Expiry date is required.")

    return MedicineDraft(
        name=name,
        manufacturer=(draft.manufacturer or "").strip(),
        category=(draft.category or "").strip(),
        batch_number=(draft.batch_number or "").strip(),
        hsn_code=(draft.hsn_code or "").strip(),
        mrp=mrp,
        stock=stock,
        expiry_date=expiry,
    )


class InventoryService:
    def __init__(self, repo, low_stock_threshold: int = 10):
        self.repo = repo
        self.low_stock_threshold = int(low_stock_threshold)

    def subscribe(self, listener: Callable[[str], None]) -> Callable[[], None]:
        return self.repo.subscribe(listener)

    def list_medicines(self) -> list[Medicine]:
        return self.repo.list_medicines()

    def get_medicine(self, medicine_id: int) -> Medicine:
        m = self.repo.get_medicine(int(medicine_id))
        if not m:
            raise NotFoundError("Medicine not found.")
        return m

    def search(self, term: str, limit: int = 5) -> list[Medicine]:
        needle = (term or "").strip().lower()
        if not needle:
            return []
        hits = [m for m in self.repo.list_medicines() if needle in m.name.lower() and m.stock > 0]
        return hits[:limit]

    def filter_medicines(self, term: str) -> list[Medicine]:
        """Inventory listing filter: name or manufacturer, out of stock included."""
        needle = (term or "").strip().lower()
        medicines = self.repo.list_medicines()
        if not needle:
            return medicines
        return [m for m in medicines if needle in m.name.lower() or needle in m.manufacturer.lower()]

    def low_stock(self, threshold: int | None = None) -> list[Medicine]:
        limit = self.low_stock_threshold if threshold is None else int(threshold)
        return [m for m in self.repo.list_medicines() if m.stock < limit]

    def expiring_before(self, cutoff: date) -> list[Medicine]:
        cutoff_iso = cutoff.isoformat()
        found = [m for m in self.repo.list_medicines() if m.expiry_date and m.expiry_date < cutoff_iso]
        return sorted(found, key=lambda m: m.expiry_date)

    def add_medicine(
        self,
        name: str,
        manufacturer: str,
        category: str,
        batch_number: str,
        hsn_code: str,
        mrp,
        stock: int,
        expiry_date: str,
    ) -> int:
        draft = MedicineDraft(
            name=name,
            manufacturer=manufacturer,
            category=category,
            batch_number=batch_number,
            hsn_code=hsn_code,
            mrp=mrp,
            stock=stock,
            expiry_date=expiry_date,
        )
        return self.repo.add_medicine(normalize_draft(draft))

    def add_medicines(self, drafts: Iterable[MedicineDraft]) -> list[int]:
        """Insert all drafts in one transaction; one bad draft rejects the batch."""
        cleaned = [normalize_draft(d, allow_blank_expiry=True) for d in drafts]
        if not cleaned:
            raise ValidationError("Nothing to import.")
        return self.repo.add_medicines(cleaned)

    def update_medicine(self, medicine: Medicine) -> None:
        cleaned = normalize_draft(medicine.as_draft(), allow_blank_expiry=True)
        updated = self.repo.update_medicine(replace(medicine, **asdict(cleaned)))
        if not updated:
            raise NotFoundError("Medicine not found.")

    def delete_medicine(self, medicine_id: int) -> None:
        removed = self.repo.delete_medicine(int(medicine_id))
        if not removed:
            raise NotFoundError("Medicine not found.")

    def delete_medicines(self, medicine_ids: Iterable[int]) -> int:
        ids = [int(i) for i in medicine_ids]
        if not ids:
            raise ValidationError("No medicines selected.")
        return self.repo.delete_medicines(ids)
