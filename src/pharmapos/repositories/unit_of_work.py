from __future__ import annotations

import sqlite3
from typing import Iterable, Optional, Protocol

from pharmapos.domain.errors import InsufficientStockError, MedicineNotFoundError, StoreError
from pharmapos.domain.models import Customer, Medicine, SaleItem
from pharmapos.domain.pricing import SaleTotals
from pharmapos.repositories.sqlite_repo import SqliteRepository, fetch_medicine


class UnitOfWork(Protocol):
    def __enter__(self) -> "UnitOfWork": ...
    def __exit__(self, exc_type, exc, tb) -> None: ...
    def read_medicine(self, medicine_id: int) -> Optional[Medicine]: ...
    def apply_stock_delta(self, medicine_id: int, delta: int) -> int: ...
    def append_sale(self, datetime_iso: str, customer: Customer, items: Iterable[SaleItem], totals: SaleTotals) -> int: ...


class SqliteUnitOfWork:
    """One serializable write transaction against the repository database.

    ``BEGIN IMMEDIATE`` takes SQLite's write lock before the first read, so stock
    read through :meth:`read_medicine` cannot change under us until commit. Other
    connections (threads or processes) wait up to the repository busy timeout.
    Leaving the block normally commits; any exception rolls everything back.
    """

    def __init__(self, repo: SqliteRepository):
        self.repo = repo
        self._conn: Optional[sqlite3.Connection] = None
        self._touched: set[str] = set()

    def __enter__(self) -> "SqliteUnitOfWork":
        conn = sqlite3.connect(self.repo.db_path, timeout=self.repo.busy_timeout, isolation_level=None)
        try:
            conn.execute("PRAGMA foreign_keys = ON;")
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            conn.close()
            raise StoreError(f"Could not start transaction: {e}") from e
        self._conn = conn
        self._touched.clear()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return None
        try:
            if exc_type is not None:
                conn.rollback()
            else:
                conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Transaction failed: {e}") from e
        finally:
            conn.close()

        if exc_type is None:
            for collection in sorted(self._touched):
                self.repo.notify(collection)
        elif issubclass(exc_type, sqlite3.Error):
            raise StoreError(f"Transaction failed: {exc}") from exc
        return None

    def _cursor(self) -> sqlite3.Cursor:
        if self._conn is None:
            raise RuntimeError("Unit of work is not active.")
        return self._conn.cursor()

    def read_medicine(self, medicine_id: int) -> Optional[Medicine]:
        return fetch_medicine(self._cursor(), medicine_id)

    def apply_stock_delta(self, medicine_id: int, delta: int) -> int:
        cur = self._cursor()
        cur.execute(
            "UPDATE medicines SET stock = stock + ? WHERE id = ? AND stock + ? >= 0",
            (int(delta), int(medicine_id), int(delta)),
        )
        updated = cur.rowcount > 0
        current = fetch_medicine(cur, medicine_id)
        if current is None:
            raise MedicineNotFoundError(int(medicine_id))
        if not updated:
            raise InsufficientStockError(current.id, current.name, current.stock, -int(delta))
        self._touched.add("medicines")
        return current.stock

    def append_sale(self, datetime_iso: str, customer: Customer, items: Iterable[SaleItem], totals: SaleTotals) -> int:
        cur = self._cursor()
        cur.execute(
            """
            INSERT INTO sales (
                datetime, customer_name, customer_phone, subtotal, discount_percentage,
                discount_amount, total_savings, tax, total
            )
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
            (
                datetime_iso,
                customer.name,
                customer.phone,
                str(totals.subtotal),
                str(totals.discount_percentage),
                str(totals.discount_amount),
                str(totals.total_savings),
                str(totals.tax),
                str(totals.total),
            ),
        )
        sale_id = int(cur.lastrowid)

        for position, it in enumerate(items):
            cur.execute(
                """
                INSERT INTO sale_items (
                    sale_id, position, medicine_id, name, quantity, mrp, price, batch_number, hsn_code
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
                (
                    sale_id,
                    position,
                    int(it.medicine_id),
                    it.name,
                    int(it.quantity),
                    str(it.mrp),
                    str(it.price),
                    it.batch_number,
                    it.hsn_code,
                ),
            )
        self._touched.add("sales")
        return sale_id
