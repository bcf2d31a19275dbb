from __future__ import annotations

import re

from pharmapos.domain.errors import ValidationError
from pharmapos.domain.models import CartItem, Customer, Medicine, Sale
from pharmapos.domain.pricing import SaleTotals, compute_totals

PHONE_RE = re.compile(r"[0-9]{10}")


class Cart:
    """Pending checkout held by one operator session.

    Quantities are checked against the stock the operator last saw; the sale
    processor checks them again against the store at commit time.
    """

    def __init__(self):
        self._items: dict[int, CartItem] = {}

    @property
    def items(self) -> list[CartItem]:
        return list(self._items.values())

    def __len__(self) -> int:
        return len(self._items)

    def add(self, medicine: Medicine) -> CartItem:
        existing = self._items.get(medicine.id)
        qty = existing.quantity + 1 if existing else 1
        if qty > medicine.stock:
            raise ValidationError(f"Only {medicine.stock} of {medicine.name} in stock.")
        item = CartItem(medicine=medicine, quantity=qty)
        self._items[medicine.id] = item
        return item

    def update_quantity(self, medicine_id: int, quantity: int) -> None:
        item = self._items.get(medicine_id)
        if item is None:
            raise ValidationError("Medicine is not in the cart.")
        if quantity == 0:
            self.remove(medicine_id)
            return
        if quantity < 0 or quantity > item.medicine.stock:
            raise ValidationError(f"Quantity must be between 0 and {item.medicine.stock}.")
        self._items[medicine_id] = CartItem(medicine=item.medicine, quantity=int(quantity))

    def remove(self, medicine_id: int) -> None:
        self._items.pop(medicine_id, None)

    def clear(self) -> None:
        self._items.clear()

    def preview(self, discount_percentage=0) -> SaleTotals:
        return compute_totals(((it.medicine.mrp, it.quantity) for it in self._items.values()), discount_percentage)

    def checkout(self, sales_service, customer_name: str, customer_phone: str, discount_percentage=0) -> Sale:
        if not self._items:
            raise ValidationError("Cart is empty.")
        name = (customer_name or "").strip()
        phone = (customer_phone or "").strip()
        if not name:
            raise ValidationError("Customer name is required.")
        if not PHONE_RE.fullmatch(phone):
            raise ValidationError("Phone must be exactly 10 digits.")

        sale = sales_service.process_sale(self.items, Customer(name=name, phone=phone), discount_percentage)
        self.clear()
        return sale
