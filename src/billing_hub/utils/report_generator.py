from typing import Dict, Any, Iterable
from datetime import datetime
from pathlib import Path
import pandas as pd
from billing_hub.core.data_processor import ProcessingStats
from billing_hub.db.model import Invoice
from billing_hub.utils.logger import get_logger

logger = get_logger(__name__)

INVOICE_COLUMNS = [
    "invoice_number", "created_at", "payment_method", "items",
    "total_amount", "tax_amount", "discount", "grand_total", "created_by",
]

def generate_import_report(
    stats: ProcessingStats, 
    output_path: str,
    additional_info: Dict[str, Any] = None
) -> None:
    """Write a plain-text summary of a catalog import."""
    
    logger.info(f"📄 Generating import report: {output_path}")
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)
    
    with open(output_path, 'w') as f:
        f.write("BILLING HUB - CATALOG IMPORT REPORT\n")
        f.write("=" * 60 + "\n")
        f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"Duration: {stats.duration:.2f} seconds\n" if stats.duration else "Duration: N/A\n")
        f.write("\n")
        
        f.write("SUMMARY STATISTICS\n")
        f.write("-" * 30 + "\n")
        f.write(f"Total input records: {stats.total_input_records:,}\n")
        f.write(f"Valid rows: {stats.successful_records:,}\n")
        f.write(f"Created products: {stats.created_records:,}\n")
        f.write(f"Updated products: {stats.updated_records:,}\n")
        f.write(f"Skipped records: {stats.skipped_records:,}\n")
        f.write(f"Error records: {stats.error_records:,}\n")
        f.write(f"Duplicate groups: {stats.duplicate_groups:,}\n")
        f.write(f"Success rate: {stats.success_rate:.2f}%\n")
        
        if stats.error_records > 0 or stats.database_errors > 0:
            f.write("\nERROR ANALYSIS\n")
            f.write("-" * 20 + "\n")
            f.write(f"Rejected rows: {stats.error_records:,}\n")
            f.write(f"Database errors: {stats.database_errors:,}\n")
        
        if additional_info:
            f.write("\nADDITIONAL INFORMATION\n")
            f.write("-" * 30 + "\n")
            for key, value in additional_info.items():
                f.write(f"{key}: {value}\n")
    
    logger.info("✅ Report generated successfully")

def generate_sales_report(report: Dict[str, Any], output_path: str, title: str = "SALES REPORT") -> None:
    """Write a today/month sales report dictionary as plain text."""
    logger.info(f"📄 Generating sales report: {output_path}")
    Path(output_path).parent.mkdir(parents=True, exist_ok=True)

    summary = report.get("data", {})
    with open(output_path, 'w') as f:
        f.write(f"BILLING HUB - {title}\n")
        f.write("=" * 60 + "\n")
        f.write(f"Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n\n")

        f.write("SUMMARY\n")
        f.write("-" * 30 + "\n")
        f.write(f"Invoices: {summary.get('invoice_count', 0):,}\n")
        f.write(f"Total sales: {summary.get('total_sales', 0)}\n")
        f.write(f"Total tax: {summary.get('total_tax', 0)}\n")
        f.write(f"Total discount: {summary.get('total_discount', 0)}\n")

        if report.get("daily_sales"):
            f.write("\nDAILY SALES\n")
            f.write("-" * 30 + "\n")
            for row in report["daily_sales"]:
                f.write(f"Day {row['day']:>2}: {row['total_sales']} ({row['invoice_count']} invoices)\n")

        if report.get("payment_method_breakdown"):
            f.write("\nBY PAYMENT METHOD\n")
            f.write("-" * 30 + "\n")
            for row in report["payment_method_breakdown"]:
                f.write(f"{row['payment_method']}: {row['total']} ({row['count']} invoices)\n")

    logger.info("✅ Report generated successfully")

def invoices_to_frame(invoices: Iterable[Invoice]) -> pd.DataFrame:
    """One row per invoice, amounts kept as Decimal."""
    rows = []
    for invoice in invoices:
        rows.append({
            "invoice_number": invoice.invoice_number,
            "created_at": invoice.created_at,
            "payment_method": invoice.payment_method.value,
            "items": sum(item.quantity for item in invoice.items),
            "total_amount": invoice.total_amount,
            "tax_amount": invoice.tax_amount,
            "discount": invoice.discount,
            "grand_total": invoice.grand_total,
            "created_by": invoice.creator.email if invoice.creator else str(invoice.created_by),
        })
    return pd.DataFrame(rows, columns=INVOICE_COLUMNS)

def export_invoices(invoices: Iterable[Invoice], output_path: str) -> pd.DataFrame:
    """Export invoices to .csv or .xlsx, chosen by the file suffix."""
    df = invoices_to_frame(invoices)
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.suffix == ".csv":
        df.to_csv(path, index=False)
    elif path.suffix == ".xlsx":
        # Excel has no timezone-aware datetimes
        df["created_at"] = pd.to_datetime(df["created_at"], utc=True).dt.tz_localize(None)
        df.to_excel(path, index=False, engine="openpyxl")
    else:
        raise ValueError("Unsupported export type. Use .csv or .xlsx")

    logger.info(f"📤 Exported {len(df):,} invoices to {path}")
    return df
