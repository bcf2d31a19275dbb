from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional

from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.table import Table, TableStyleInfo

from pharmapos.domain.errors import ValidationError
from pharmapos.domain.models import Sale
from pharmapos.domain.pricing import TAX_RATE, format_money

STOCK_HEADERS = ["name", "manufacturer", "category", "batchNumber", "hsnCode", "mrp", "stock", "expiryDate"]
SALES_HEADERS = [
    "saleId", "date", "customerName", "customerPhone", "medicineName", "quantity",
    "pricePerUnit", "lineItemTotal", "saleDiscountPercentage", "saleTotal",
]
TAX_HEADERS = [
    "saleId", "date", "customerName", "subtotal", "discountPercentage",
    "discountAmount", "taxableAmount", "tax", "total",
]

RECEIPT_WIDTH = 40


@dataclass(frozen=True)
class DashboardSummary:
    total_medicines: int
    low_stock_count: int
    total_sales: Decimal
    monthly_sales: list[tuple[str, Decimal]]


def _pct(value: Decimal) -> str:
    return f"{value.normalize():f}"


class ReportingService:
    def __init__(self, repo, low_stock_threshold: int = 10):
        self.repo = repo
        self.low_stock_threshold = int(low_stock_threshold)

    def _sales_in_range(self, start: Optional[date], end: Optional[date]) -> list[Sale]:
        """Both bounds inclusive, whole days."""
        if start and end and start > end:
            raise ValidationError("Start date must be on or before end date.")
        start_iso = start.isoformat() if start else "0000-01-01"
        end_iso = (end + timedelta(days=1)).isoformat() if end else "9999-12-31"
        return self.repo.list_sales_between(start_iso, end_iso)

    # ---------- Row builders ----------
    def stock_rows(self) -> list[dict]:
        return [
            {
                "name": m.name,
                "manufacturer": m.manufacturer,
                "category": m.category,
                "batchNumber": m.batch_number,
                "hsnCode": m.hsn_code,
                "mrp": format_money(m.mrp),
                "stock": m.stock,
                "expiryDate": m.expiry_date,
            }
            for m in self.repo.list_medicines()
        ]

    def sales_rows(self, start: Optional[date] = None, end: Optional[date] = None) -> list[dict]:
        rows = []
        for s in self._sales_in_range(start, end):
            for it in s.items:
                rows.append(
                    {
                        "saleId": s.id,
                        "date": s.datetime,
                        "customerName": s.customer.name,
                        "customerPhone": s.customer.phone,
                        "medicineName": it.name,
                        "quantity": it.quantity,
                        "pricePerUnit": format_money(it.price),
                        "lineItemTotal": format_money(it.line_total),
                        "saleDiscountPercentage": _pct(s.discount_percentage),
                        "saleTotal": format_money(s.total),
                    }
                )
        return rows

    def tax_rows(self, start: Optional[date] = None, end: Optional[date] = None) -> list[dict]:
        return [
            {
                "saleId": s.id,
                "date": s.datetime,
                "customerName": s.customer.name,
                "subtotal": format_money(s.subtotal),
                "discountPercentage": _pct(s.discount_percentage),
                "discountAmount": format_money(s.discount_amount),
                "taxableAmount": format_money(s.taxable_amount),
                "tax": format_money(s.tax),
                "total": format_money(s.total),
            }
            for s in self._sales_in_range(start, end)
        ]

    # ---------- Dashboard ----------
    def monthly_sales_totals(self, months: int = 6) -> list[tuple[str, Decimal]]:
        by_month: dict[str, Decimal] = {}
        for s in self.repo.list_sales():
            ym = s.datetime[:7]
            by_month[ym] = by_month.get(ym, Decimal("0")) + s.total
        return sorted(by_month.items())[-months:] if months > 0 else []

    def dashboard(self) -> DashboardSummary:
        medicines = self.repo.list_medicines()
        sales = self.repo.list_sales()
        return DashboardSummary(
            total_medicines=len(medicines),
            low_stock_count=sum(1 for m in medicines if m.stock < self.low_stock_threshold),
            total_sales=sum((s.total for s in sales), Decimal("0")),
            monthly_sales=self.monthly_sales_totals(),
        )

    # ---------- CSV ----------
    @staticmethod
    def write_csv(rows: list[dict], headers: list[str], path: str | Path) -> int:
        if not rows:
            raise ValidationError("No data available for the selected range.")
        with open(path, "w", newline="", encoding="utf-8") as fh:
            writer = csv.DictWriter(fh, fieldnames=headers)
            writer.writeheader()
            writer.writerows(rows)
        return len(rows)

    def export_stock_csv(self, path: str | Path) -> int:
        return self.write_csv(self.stock_rows(), STOCK_HEADERS, path)

    def export_sales_csv(self, path: str | Path, start: Optional[date] = None, end: Optional[date] = None) -> int:
        return self.write_csv(self.sales_rows(start, end), SALES_HEADERS, path)

    def export_tax_csv(self, path: str | Path, start: Optional[date] = None, end: Optional[date] = None) -> int:
        return self.write_csv(self.tax_rows(start, end), TAX_HEADERS, path)

    # ---------- Excel ----------
    def export_report_excel(self, path: str | Path, start: Optional[date] = None, end: Optional[date] = None) -> None:
        wb = Workbook()

        def bold_row(ws, r):
            for c in ws[r]:
                c.font = Font(bold=True)

        def add_table(ws, name: str, end_col: int):
            if ws.max_row < 2:
                return
            ref = f"A1:{get_column_letter(end_col)}{ws.max_row}"
            tab = Table(displayName=name, ref=ref)
            tab.tableStyleInfo = TableStyleInfo(
                name="TableStyleMedium9",
                showRowStripes=True,
                showColumnStripes=False,
            )
            ws.add_table(tab)

        def sheet(ws, headers: list[str], rows: list[dict], table: str):
            ws.append(headers)
            bold_row(ws, 1)
            for row in rows:
                ws.append([row[h] for h in headers])
            ws.freeze_panes = "A2"
            for idx, h in enumerate(headers, start=1):
                ws.column_dimensions[get_column_letter(idx)].width = max(12, len(h) + 4)
            add_table(ws, table, len(headers))

        tax = self.tax_rows(start, end)
        summary = self.dashboard()

        # -------- 1) Summary --------
        ws = wb.active
        ws.title = "Summary"
        ws["A1"] = "Summary"
        ws["A1"].font = Font(bold=True, size=14)
        ws["A3"] = "Window"
        ws["B3"] = f"{start.isoformat() if start else 'start'}  ->  {end.isoformat() if end else 'end'}"

        window_total = sum((Decimal(r["total"]) for r in tax), Decimal("0"))
        window_tax = sum((Decimal(r["tax"]) for r in tax), Decimal("0"))
        rows = [
            ("Sales in window", len(tax)),
            ("Revenue in window", float(window_total)),
            (f"Tax collected ({TAX_RATE * 100:.0f}%)", float(window_tax)),
            ("Medicines", summary.total_medicines),
            (f"Low stock (< {self.low_stock_threshold})", summary.low_stock_count),
        ]
        for i, (label, val) in enumerate(rows, start=5):
            ws[f"A{i}"] = label
            ws[f"B{i}"] = val
            if isinstance(val, float):
                ws[f"B{i}"].number_format = "#,##0.00"
        ws.column_dimensions["A"].width = 28
        ws.column_dimensions["B"].width = 34

        # -------- 2..4) Detail sheets --------
        sheet(wb.create_sheet("Stock"), STOCK_HEADERS, self.stock_rows(), "StockDetail")
        sheet(wb.create_sheet("Sales Detail"), SALES_HEADERS, self.sales_rows(start, end), "SalesDetail")
        sheet(wb.create_sheet("Tax Summary"), TAX_HEADERS, tax, "TaxSummary")

        wb.save(path)

    # ---------- Receipt ----------
    @staticmethod
    def format_receipt(sale: Sale, shop_name: str = "Pharmacy ERP Pro") -> str:
        def line(label: str, amount: str) -> str:
            # at least one space between label and amount, even past the width
            gap = max(1, RECEIPT_WIDTH - len(label) - len(amount))
            return f"{label}{' ' * gap}{amount}"

        out = [
            shop_name.center(RECEIPT_WIDTH).rstrip(),
            "Sale Receipt".center(RECEIPT_WIDTH).rstrip(),
            "",
            f"Customer: {sale.customer.name}",
            f"Phone: {sale.customer.phone}",
            f"Date: {sale.datetime}",
            f"Receipt ID: {sale.id}",
            "-" * RECEIPT_WIDTH,
        ]
        for it in sale.items:
            out.append(line(f"{it.name} ({it.quantity}x{format_money(it.mrp)})", format_money(it.mrp * it.quantity)))
            out.append(f"  Batch: {it.batch_number}, HSN: {it.hsn_code}")
        out.append("-" * RECEIPT_WIDTH)
        out.append(line("Subtotal", format_money(sale.subtotal)))
        if sale.discount_amount > 0:
            out.append(line(f"Discount ({_pct(sale.discount_percentage)}%)", f"-{format_money(sale.discount_amount)}"))
        out.append(line(f"Tax ({TAX_RATE * 100:.0f}%)", format_money(sale.tax)))
        out.append(line("Total Payable", format_money(sale.total)))
        if sale.total_savings > 0:
            out.append(f"You Saved {format_money(sale.total_savings)}!")
        return "\n".join(out)
