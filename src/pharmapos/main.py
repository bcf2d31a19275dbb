from __future__ import annotations

import argparse
import logging
import sys
from datetime import date
from typing import Optional, Sequence

from pharmapos.application.container import AppContainer, build_container
from pharmapos.config import get_app_paths, load_settings
from pharmapos.domain.errors import AppError, ValidationError
from pharmapos.domain.pricing import format_money
from pharmapos.logging_config import setup_logging
from pharmapos.services.cart import Cart

log = logging.getLogger(__name__)


def _cart_line(value: str) -> tuple[int, int]:
    try:
        medicine_id, qty = value.split(":", 1)
        line = int(medicine_id), int(qty)
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected MEDICINE_ID:QTY, got {value!r}")
    if line[1] < 1:
        raise argparse.ArgumentTypeError(f"quantity must be >= 1, got {value!r}")
    return line


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pharmapos", description="Pharmacy point of sale and inventory.")
    parser.add_argument("--db", help="database file (default: per-user app directory)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("import", help="import medicines from .xlsx, .csv or an image")
    p.add_argument("file")

    p = sub.add_parser("export", help="write a report")
    p.add_argument("kind", choices=["stock", "sales", "tax", "xlsx"])
    p.add_argument("out")
    p.add_argument("--start", type=date.fromisoformat)
    p.add_argument("--end", type=date.fromisoformat)

    p = sub.add_parser("sell", help="check out a cart and print the receipt")
    p.add_argument("lines", nargs="+", type=_cart_line, metavar="MEDICINE_ID:QTY")
    p.add_argument("--customer", required=True)
    p.add_argument("--phone", required=True)
    p.add_argument("--discount", default="0")

    p = sub.add_parser("list", help="list medicines matching a name or manufacturer")
    p.add_argument("term", nargs="?", default="")

    sub.add_parser("low-stock", help="list medicines under the low stock threshold")
    sub.add_parser("dashboard", help="print headline figures")

    p = sub.add_parser("ask", help="ask the pharmacy assistant")
    p.add_argument("question", nargs="+")
    return parser


def _sell(c: AppContainer, args) -> str:
    cart = Cart()
    for medicine_id, qty in args.lines:
        medicine = c.inventory.get_medicine(medicine_id)
        item = cart.add(medicine)
        cart.update_quantity(medicine.id, item.quantity - 1 + qty)
    sale = cart.checkout(c.sales, args.customer, args.phone, args.discount)
    return c.reporting.format_receipt(sale)


def _medicine_row(m) -> str:
    return f"{m.id:>5}  {m.name:<30} {m.manufacturer:<20} {m.stock:>5}"


def run(c: AppContainer, args) -> str:
    if args.command == "import":
        ok, skipped = c.importer.import_file(args.file)
        return f"Imported {ok} medicines ({skipped} rows skipped)."
    if args.command == "export":
        if args.kind == "xlsx":
            c.reporting.export_report_excel(args.out, args.start, args.end)
            return f"Report written to {args.out}."
        writers = {
            "stock": lambda: c.reporting.export_stock_csv(args.out),
            "sales": lambda: c.reporting.export_sales_csv(args.out, args.start, args.end),
            "tax": lambda: c.reporting.export_tax_csv(args.out, args.start, args.end),
        }
        count = writers[args.kind]()
        return f"{count} rows written to {args.out}."
    if args.command == "sell":
        return _sell(c, args)
    if args.command == "list":
        found = c.inventory.filter_medicines(args.term)
        if not found:
            return "No medicines found."
        return "\n".join(_medicine_row(m) for m in found)
    if args.command == "low-stock":
        low = c.inventory.low_stock()
        if not low:
            return "No medicines are low on stock."
        return "\n".join(_medicine_row(m) for m in low)
    if args.command == "dashboard":
        d = c.reporting.dashboard()
        out = [
            f"Medicines: {d.total_medicines}",
            f"Low stock: {d.low_stock_count}",
            f"Total sales: {format_money(d.total_sales)}",
        ]
        out += [f"  {ym}: {format_money(total)}" for ym, total in d.monthly_sales]
        return "\n".join(out)
    if args.command == "ask":
        return c.assistant.ask(" ".join(args.question))
    raise ValidationError(f"Unknown command: {args.command}")


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = load_settings()
        paths = get_app_paths(db_path=args.db or settings.db_path)
        setup_logging(paths.logs_dir, level=logging.INFO)
        container = build_container(paths.db_path, settings)
        print(run(container, args))
    except AppError as e:
        log.warning("command_failed command=%s error=%s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
