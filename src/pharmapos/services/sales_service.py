from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Callable, Iterable, Optional
import logging

from pharmapos.domain.errors import (
    InsufficientStockError,
    MedicineNotFoundError,
    StoreError,
    ValidationError,
)
from pharmapos.domain.models import CartItem, Customer, Sale, SaleItem
from pharmapos.domain.pricing import compute_totals, format_money, validate_discount
from pharmapos.repositories.sqlite_repo import SqliteRepository
from pharmapos.repositories.unit_of_work import SqliteUnitOfWork, UnitOfWork

log = logging.getLogger("pharmapos.sales")


class SalesService:
    def __init__(
        self,
        repo: SqliteRepository,
        uow_factory: Callable[[], UnitOfWork] | None = None,
    ):
        self.repo = repo
        self.uow_factory = uow_factory or (lambda: SqliteUnitOfWork(repo))

    def process_sale(self, cart: Iterable[CartItem], customer: Customer, discount_percentage) -> Sale:
        """Price the cart and commit it against current stock, all or nothing.

        Stock, MRP and the line snapshots come from the store inside the
        transaction; the medicine objects held by the cart only supply ids.
        Raises ``ValidationError`` before touching the store, and
        ``MedicineNotFoundError`` / ``InsufficientStockError`` when the commit
        is rejected. Nothing is retried.
        """
        cart = list(cart)
        if not cart:
            raise ValidationError("Cart is empty.")
        name = (customer.name or "").strip()
        if not name:
            raise ValidationError("Customer name is required.")
        pct = validate_discount(discount_percentage)

        # Aggregate qty by medicine so repeated lines cannot oversell
        qty_by_medicine: Counter[int] = Counter()
        cart_names: dict[int, str] = {}
        for item in cart:
            qty = item.quantity
            if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
                raise ValidationError("Qty must be a whole number >= 1.")
            medicine_id = int(item.medicine.id)
            qty_by_medicine[medicine_id] += qty
            cart_names.setdefault(medicine_id, item.medicine.name)

        customer = Customer(name=name, phone=(customer.phone or "").strip())
        dt_iso = datetime.now().replace(microsecond=0).isoformat(sep=" ")

        try:
            with self.uow_factory() as uow:
                lines = []
                for medicine_id, qty in qty_by_medicine.items():
                    current = uow.read_medicine(medicine_id)
                    if current is None:
                        raise MedicineNotFoundError(medicine_id, cart_names[medicine_id])
                    if qty > current.stock:
                        raise InsufficientStockError(current.id, current.name, current.stock, qty)
                    lines.append((current, qty))

                totals = compute_totals(((m.mrp, qty) for m, qty in lines), pct)
                items = tuple(
                    SaleItem(
                        medicine_id=m.id,
                        name=m.name,
                        quantity=qty,
                        mrp=m.mrp,
                        price=m.mrp,
                        batch_number=m.batch_number,
                        hsn_code=m.hsn_code,
                    )
                    for m, qty in lines
                )

                for m, qty in lines:
                    uow.apply_stock_delta(m.id, -qty)
                sale_id = uow.append_sale(dt_iso, customer, items, totals)
        except (InsufficientStockError, MedicineNotFoundError) as e:
            log.warning("sale_rejected customer=%s reason=%s", customer.name, e)
            raise
        except StoreError:
            log.exception("sale_failed customer=%s lines=%s", customer.name, len(qty_by_medicine))
            raise

        log.info(
            "sale_committed sale_id=%s lines=%s total=%s discount_pct=%s",
            sale_id,
            len(items),
            format_money(totals.total),
            pct,
        )
        return Sale(
            id=sale_id,
            datetime=dt_iso,
            customer=customer,
            items=items,
            subtotal=totals.subtotal,
            discount_percentage=totals.discount_percentage,
            discount_amount=totals.discount_amount,
            total_savings=totals.total_savings,
            tax=totals.tax,
            total=totals.total,
        )

    def list_sales(self) -> list[Sale]:
        return self.repo.list_sales()

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self.repo.list_sales_between(start_iso, end_iso)

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        return self.repo.get_sale(sale_id)
