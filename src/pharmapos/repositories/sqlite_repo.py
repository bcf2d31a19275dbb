from __future__ import annotations

import logging
import shutil
import sqlite3
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Callable, Iterable, Optional

from pharmapos.domain.errors import StoreError
from pharmapos.domain.models import Customer, Medicine, MedicineDraft, Sale, SaleItem

log = logging.getLogger(__name__)

MEDICINE_COLUMNS = "id, name, manufacturer, category, batch_number, hsn_code, mrp, stock, expiry_date"
SALE_COLUMNS = (
    "id, datetime, customer_name, customer_phone, subtotal, discount_percentage, "
    "discount_amount, total_savings, tax, total"
)

Listener = Callable[[str], None]


def medicine_from_row(r) -> Medicine:
    return Medicine(
        id=int(r[0]),
        name=str(r[1]),
        manufacturer=str(r[2]),
        category=str(r[3]),
        batch_number=str(r[4]),
        hsn_code=str(r[5]),
        mrp=Decimal(str(r[6])),
        stock=int(r[7]),
        expiry_date=str(r[8]),
    )


def fetch_medicine(cur: sqlite3.Cursor, medicine_id: int) -> Optional[Medicine]:
    cur.execute(f"SELECT {MEDICINE_COLUMNS} FROM medicines WHERE id=?", (int(medicine_id),))
    r = cur.fetchone()
    return medicine_from_row(r) if r else None


class SqliteRepository:
    def __init__(self, db_path: Path | str, busy_timeout: float = 5.0):
        self.db_path = str(db_path)
        self.busy_timeout = float(busy_timeout)
        self._listeners: list[Listener] = []

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout)
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def init_db(self) -> None:
        self.run_migrations()

    def run_migrations(self) -> None:
        conn = self._conn()
        backup_path = self._create_pre_migration_backup()
        try:
            cur = conn.cursor()
            cur.execute("BEGIN")
            cur.execute("CREATE TABLE IF NOT EXISTS schema_migrations (version INTEGER PRIMARY KEY, applied_at TEXT NOT NULL)")
            cur.execute("SELECT COALESCE(MAX(version), 0) FROM schema_migrations")
            current_version = int(cur.fetchone()[0])

            migrations = [
                (1, self._migration_v1_base),
                (2, self._migration_v2_indexes),
            ]

            for version, migration in migrations:
                if version <= current_version:
                    continue
                migration(cur)
                cur.execute(
                    "INSERT INTO schema_migrations (version, applied_at) VALUES (?, datetime('now'))",
                    (version,),
                )
                log.info("migration_applied version=%s db=%s", version, self.db_path)
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            self._restore_pre_migration_backup(backup_path)
            raise StoreError(
                "Database migration failed. Original database restored from automatic backup."
            ) from exc
        finally:
            conn.close()

    def _create_pre_migration_backup(self) -> Path | None:
        db_file = Path(self.db_path)
        if not db_file.exists() or db_file.stat().st_size == 0:
            return None
        backup_file = db_file.with_name(f"{db_file.stem}.pre_migration_{datetime.now().strftime('%Y%m%d%H%M%S')}.bak")
        shutil.copy2(db_file, backup_file)
        return backup_file

    def _restore_pre_migration_backup(self, backup_path: Path | None) -> None:
        if backup_path is None or not backup_path.exists():
            return
        shutil.copy2(backup_path, self.db_path)

    def _migration_v1_base(self, cur: sqlite3.Cursor) -> None:
        # money is stored as decimal text so no precision is lost on the way back
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS medicines (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            manufacturer TEXT NOT NULL DEFAULT '',
            category TEXT NOT NULL DEFAULT '',
            batch_number TEXT NOT NULL DEFAULT '',
            hsn_code TEXT NOT NULL DEFAULT '',
            mrp TEXT NOT NULL CHECK(CAST(mrp AS REAL) > 0),
            stock INTEGER NOT NULL DEFAULT 0 CHECK(stock >= 0),
            expiry_date TEXT NOT NULL DEFAULT ''
        )
        """
        )

        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sales (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            datetime TEXT NOT NULL,
            customer_name TEXT NOT NULL,
            customer_phone TEXT NOT NULL,
            subtotal TEXT NOT NULL,
            discount_percentage TEXT NOT NULL,
            discount_amount TEXT NOT NULL,
            total_savings TEXT NOT NULL,
            tax TEXT NOT NULL,
            total TEXT NOT NULL
        )
        """
        )

        # medicine_id is a snapshot, not a foreign key: deleting a medicine keeps its sales history
        cur.execute(
            """
        CREATE TABLE IF NOT EXISTS sale_items (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            sale_id INTEGER NOT NULL,
            position INTEGER NOT NULL,
            medicine_id INTEGER NOT NULL,
            name TEXT NOT NULL,
            quantity INTEGER NOT NULL CHECK(quantity > 0),
            mrp TEXT NOT NULL,
            price TEXT NOT NULL,
            batch_number TEXT NOT NULL,
            hsn_code TEXT NOT NULL,
            FOREIGN KEY(sale_id) REFERENCES sales(id),
            UNIQUE(sale_id, position)
        )
        """
        )

    def _migration_v2_indexes(self, cur: sqlite3.Cursor) -> None:
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sales_datetime ON sales(datetime)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_sale_items_sale ON sale_items(sale_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_medicines_name ON medicines(name COLLATE NOCASE)")

    # ---------- Observers ----------
    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def notify(self, collection: str) -> None:
        # runs after commit; listener errors are logged, never raised
        for listener in list(self._listeners):
            try:
                listener(collection)
            except Exception:
                log.exception("listener_failed collection=%s", collection)

    # ---------- Medicines ----------
    @staticmethod
    def _draft_params(d: MedicineDraft) -> tuple:
        return (d.name, d.manufacturer, d.category, d.batch_number, d.hsn_code, str(d.mrp), int(d.stock), d.expiry_date)

    def add_medicine(self, draft: MedicineDraft) -> int:
        return self.add_medicines([draft])[0]

    def add_medicines(self, drafts: Iterable[MedicineDraft]) -> list[int]:
        conn = self._conn()
        cur = conn.cursor()
        try:
            ids = []
            for d in drafts:
                cur.execute(
                    """
                    INSERT INTO medicines (name, manufacturer, category, batch_number, hsn_code, mrp, stock, expiry_date)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                    self._draft_params(d),
                )
                ids.append(int(cur.lastrowid))
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Could not save medicines: {e}") from e
        finally:
            conn.close()
        self.notify("medicines")
        return ids

    def update_medicine(self, medicine: Medicine) -> bool:
        conn = self._conn()
        cur = conn.cursor()
        try:
            cur.execute(
                """
                UPDATE medicines
                SET name=?, manufacturer=?, category=?, batch_number=?, hsn_code=?, mrp=?, stock=?, expiry_date=?
                WHERE id=?
            """,
                (*self._draft_params(medicine.as_draft()), int(medicine.id)),
            )
            changed = cur.rowcount > 0
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Could not update medicine: {e}") from e
        finally:
            conn.close()
        if changed:
            self.notify("medicines")
        return bool(changed)

    def delete_medicine(self, medicine_id: int) -> bool:
        return self.delete_medicines([medicine_id]) > 0

    def delete_medicines(self, medicine_ids: Iterable[int]) -> int:
        conn = self._conn()
        cur = conn.cursor()
        try:
            removed = 0
            for mid in medicine_ids:
                cur.execute("DELETE FROM medicines WHERE id=?", (int(mid),))
                removed += cur.rowcount
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise StoreError(f"Could not delete medicines: {e}") from e
        finally:
            conn.close()
        if removed:
            self.notify("medicines")
        return int(removed)

    def get_medicine(self, medicine_id: int) -> Optional[Medicine]:
        conn = self._conn()
        try:
            return fetch_medicine(conn.cursor(), medicine_id)
        finally:
            conn.close()

    def list_medicines(self) -> list[Medicine]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {MEDICINE_COLUMNS} FROM medicines ORDER BY name COLLATE NOCASE, id")
        rows = cur.fetchall()
        conn.close()
        return [medicine_from_row(r) for r in rows]

    # ---------- Sales ----------
    def list_sales(self) -> list[Sale]:
        return self._load_sales("", ())

    def list_sales_between(self, start_iso: str, end_iso: str) -> list[Sale]:
        return self._load_sales("WHERE datetime >= ? AND datetime < ?", (start_iso, end_iso))

    def get_sale(self, sale_id: int) -> Optional[Sale]:
        found = self._load_sales("WHERE id = ?", (int(sale_id),))
        return found[0] if found else None

    def _load_sales(self, where: str, params: tuple) -> list[Sale]:
        conn = self._conn()
        cur = conn.cursor()
        cur.execute(f"SELECT {SALE_COLUMNS} FROM sales {where} ORDER BY datetime, id", params)
        headers = cur.fetchall()

        items_by_sale: dict[int, list[SaleItem]] = {int(h[0]): [] for h in headers}
        if headers:
            marks = ",".join("?" for _ in headers)
            cur.execute(
                f"""
                SELECT sale_id, medicine_id, name, quantity, mrp, price, batch_number, hsn_code
                FROM sale_items
                WHERE sale_id IN ({marks})
                ORDER BY sale_id, position
            """,
                tuple(items_by_sale),
            )
            for r in cur.fetchall():
                items_by_sale[int(r[0])].append(
                    SaleItem(
                        medicine_id=int(r[1]),
                        name=str(r[2]),
                        quantity=int(r[3]),
                        mrp=Decimal(str(r[4])),
                        price=Decimal(str(r[5])),
                        batch_number=str(r[6]),
                        hsn_code=str(r[7]),
                    )
                )
        conn.close()

        return [
            Sale(
                id=int(h[0]),
                datetime=str(h[1]),
                customer=Customer(name=str(h[2]), phone=str(h[3])),
                items=tuple(items_by_sale[int(h[0])]),
                subtotal=Decimal(str(h[4])),
                discount_percentage=Decimal(str(h[5])),
                discount_amount=Decimal(str(h[6])),
                total_savings=Decimal(str(h[7])),
                tax=Decimal(str(h[8])),
                total=Decimal(str(h[9])),
            )
            for h in headers
        ]
