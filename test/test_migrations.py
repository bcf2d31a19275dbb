import sqlite3
from pathlib import Path

import pytest

from pharmapos.domain.errors import StoreError
from pharmapos.repositories.sqlite_repo import SqliteRepository


def _versions(db: Path) -> list[int]:
    conn = sqlite3.connect(db)
    try:
        return [r[0] for r in conn.execute("SELECT version FROM schema_migrations ORDER BY version")]
    finally:
        conn.close()


class BrokenIndexRepository(SqliteRepository):
    def _migration_v2_indexes(self, cur):
        raise sqlite3.OperationalError("disk I/O error")


def test_migrations_are_applied_once(tmp_path: Path):
    db = tmp_path / "m.db"
    repo = SqliteRepository(db)
    repo.init_db()
    repo.init_db()

    assert _versions(db) == [1, 2]
    # second run found an existing file and backed it up first
    assert list(tmp_path.glob("m.pre_migration_*.bak"))


def test_failed_migration_rolls_back_the_schema(tmp_path: Path):
    db = tmp_path / "broken.db"

    with pytest.raises(StoreError, match="migration failed"):
        BrokenIndexRepository(db).init_db()
    conn = sqlite3.connect(db)
    tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
    conn.close()
    assert "medicines" not in tables

    repo = SqliteRepository(db)
    repo.init_db()
    assert _versions(db) == [1, 2]
    assert repo.list_medicines() == []


def test_sale_ranges_are_half_open(tmp_path: Path):
    repo = SqliteRepository(tmp_path / "r.db")
    repo.init_db()
    conn = repo._conn()
    conn.executemany(
        "INSERT INTO sales (datetime, customer_name, customer_phone, subtotal, discount_percentage,"
        " discount_amount, total_savings, tax, total) VALUES (?, 'A', '9876543210', '1', '0', '0', '0', '0.05', '1.05')",
        [("2026-10-01 00:00:00",), ("2026-10-01 23:59:59",), ("2026-10-02 00:00:00",)],
    )
    conn.commit()
    conn.close()

    sales = repo.list_sales_between("2026-10-01", "2026-10-02")

    assert [s.datetime for s in sales] == ["2026-10-01 00:00:00", "2026-10-01 23:59:59"]
    assert sales[0].items == ()
    assert repo.get_sale(999) is None
