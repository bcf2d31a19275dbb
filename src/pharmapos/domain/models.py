from __future__ import annotations
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class MedicineDraft:
    name: str
    manufacturer: str
    category: str
    batch_number: str
    hsn_code: str
    mrp: Decimal
    stock: int
    expiry_date: str


@dataclass(frozen=True)
class Medicine:
    id: int
    name: str
    manufacturer: str
    category: str
    batch_number: str
    hsn_code: str
    mrp: Decimal
    stock: int
    expiry_date: str

    def as_draft(self) -> MedicineDraft:
        return MedicineDraft(
            name=self.name,
            manufacturer=self.manufacturer,
            category=self.category,
            batch_number=self.batch_number,
            hsn_code=self.hsn_code,
            mrp=self.mrp,
            stock=self.stock,
            expiry_date=self.expiry_date,
        )


@dataclass(frozen=True)
class Customer:
    name: str
    phone: str


@dataclass(frozen=True)
class CartItem:
    medicine: Medicine
    quantity: int


@dataclass(frozen=True)
class SaleItem:
    medicine_id: int
    name: str
    quantity: int
    mrp: Decimal
    price: Decimal
    batch_number: str
    hsn_code: str

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class Sale:
    id: int
    datetime: str
    customer: Customer
    items: tuple[SaleItem, ...]
    subtotal: Decimal
    discount_percentage: Decimal
    discount_amount: Decimal
    total_savings: Decimal
    tax: Decimal
    total: Decimal

    @property
    def taxable_amount(self) -> Decimal:
        return self.subtotal - self.discount_amount
