#!/usr/bin/env python3
"""
Billing Hub - command line entry point
Point-of-sale billing backend
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from billing_hub.app import BillingHub
from billing_hub.config.settings import load_config
from billing_hub.db.model import UserRole
from billing_hub.db.users import UserStore
from billing_hub.utils.logger import setup_logging, get_logger
from billing_hub.utils.report_generator import (
    export_invoices,
    generate_import_report,
    generate_sales_report,
)

logger = get_logger(__name__)


def _print(status: int, body: dict) -> int:
    print(json.dumps(body, indent=2, default=str))
    return 0 if status < 400 else 1


def _parse_items(values):
    """``PRODUCT_ID:QTY`` pairs into request items."""
    items = []
    for value in values:
        product_id, _, qty = value.partition(":")
        try:
            quantity = int(qty) if qty else 1
        except ValueError:
            raise argparse.ArgumentTypeError(f"Bad item '{value}', expected PRODUCT_ID:QTY")
        items.append({"product_id": product_id, "quantity": quantity})
    return items


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Billing Hub - point-of-sale billing backend",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/main.py init-db
  python scripts/main.py create-user --name "Asha" --email asha@example.com --role admin
  python scripts/main.py import-products --file data/input/products.xlsx
  python scripts/main.py create-invoice --user <USER_ID> --item <PRODUCT_ID>:2 --payment Card --discount 10
  python scripts/main.py report month --month 1 --year 2024 --out logs/month.txt
  python scripts/main.py export-invoices --start 2024-01-01 --end 2024-01-31 --out data/output/jan.csv
        """
    )
    parser.add_argument("--config", default="config/settings.yaml", help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Logging level"
    )

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create database tables")

    user = sub.add_parser("create-user", help="Register an invoice creator")
    user.add_argument("--name", required=True)
    user.add_argument("--email", required=True)
    user.add_argument("--role", choices=[r.value for r in UserRole], default=UserRole.CASHIER.value)

    imp = sub.add_parser("import-products", help="Load products from CSV/XLSX")
    imp.add_argument("--file", required=True, help="Path to input file")
    imp.add_argument("--chunk-size", type=int, help="Override default chunk size")
    imp.add_argument("--offset", type=int, default=0, help="Number of records to skip from beginning")

    inv = sub.add_parser("create-invoice", help="Create an invoice")
    inv.add_argument("--user", required=True, help="Creator user id")
    inv.add_argument("--item", action="append", required=True, help="PRODUCT_ID:QTY (repeatable)")
    inv.add_argument("--payment", required=True, choices=["Cash", "Card", "UPI"])
    inv.add_argument("--discount", default="0")

    rep = sub.add_parser("report", help="Sales reports")
    rep.add_argument("kind", choices=["today", "month", "top"])
    rep.add_argument("--month", type=int)
    rep.add_argument("--year", type=int)
    rep.add_argument("--limit", type=int)
    rep.add_argument("--out", help="Also write a text report to this path")

    exp = sub.add_parser("export-invoices", help="Export invoices to CSV/XLSX")
    exp.add_argument("--start", required=True, type=datetime.fromisoformat)
    exp.add_argument("--end", required=True, type=datetime.fromisoformat)
    exp.add_argument("--out", required=True)

    return parser


def run(args, config) -> int:
    hub = BillingHub(config=config)

    if args.command == "init-db":
        hub.db.create_schema()
        logger.info("✅ Schema created")
        return 0

    if args.command == "create-user":
        with hub.db.transaction() as session:
            user = UserStore().create(session, args.name, args.email, args.role)
        return _print(201, {"success": True, "data": user.to_dict()})

    if args.command == "import-products":
        stats = hub.product_importer().run_import(args.file, args.chunk_size, args.offset)
        generate_import_report(stats, f"{config.file_paths.log_dir}/products_import_report.txt")
        return 0 if stats.database_errors == 0 else 1

    if args.command == "create-invoice":
        payload = {
            "items": _parse_items(args.item),
            "payment_method": args.payment,
            "discount": args.discount,
        }
        return _print(*hub.create_invoice(payload, args.user))

    if args.command == "report":
        if args.kind == "today":
            status, body = hub.today_sales()
        elif args.kind == "month":
            status, body = hub.month_sales(args.month, args.year)
        else:
            status, body = hub.top_products(limit=args.limit, month=args.month, year=args.year)
        if args.out and status < 400 and args.kind != "top":
            generate_sales_report(body, args.out, title=f"{args.kind.upper()} SALES")
        return _print(status, body)

    if args.command == "export-invoices":
        with hub.db.transaction() as session:
            invoices = hub.invoice_queries.store.all_in_range(session, args.start, args.end)
        export_invoices(invoices, args.out)
        return 0

    return 1


def main():
    """Main entry point."""
    args = build_parser().parse_args()

    config = load_config(args.config)
    setup_logging(log_level=args.log_level, log_dir=config.file_paths.log_dir)
    logger.info(f"🎯 Billing Hub starting at {datetime.now()}")

    try:
        return run(args, config)
    except Exception as e:
        logger.error(f"💥 Critical error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
