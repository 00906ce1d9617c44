# utils/helpers.py
import uuid
import datetime
import os
import html
import math
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Tuple

import pandas as pd

from billing_hub.core.exceptions import ValidationError

def read_data(file_path):
    """
    Reads a CSV or Excel file into a pandas DataFrame,
    skipping any initial blank rows before the header.

    Args:
        file_path (str): Path to the input file (CSV or XLSX).

    Returns:
        pd.DataFrame: Loaded data.

    Raises:
        ValueError: If file type is unsupported.
    """
    full_path = os.fspath(file_path)

    def find_header_row_xlsx(path):
        # Scan first 20 rows to find first non-empty row with header columns
        temp_df = pd.read_excel(path, nrows=20, header=None, engine='openpyxl')
        for idx, row in temp_df.iterrows():
            if row.dropna().shape[0] > 1:  # heuristic: more than 1 non-empty cell = header
                return idx
        return 0

    def find_header_row_csv(path):
        with open(path, 'r', encoding='utf-8') as f:
            for idx, line in enumerate(f):
                if len([c for c in line.strip().split(',') if c]) > 1:
                    return idx
        return 0

    if full_path.endswith(".csv"):
        header_row = find_header_row_csv(full_path)
        df = pd.read_csv(full_path, header=header_row, dtype={'Barcode': str})
    elif full_path.endswith(".xlsx") or full_path.endswith(".xls"):
        header_row = find_header_row_xlsx(full_path)
        df = pd.read_excel(full_path, header=header_row, dtype={'Barcode': str}, engine='openpyxl')
    else:
        raise ValueError("Unsupported file type. Use .csv or .xlsx")

    return df

def now():
    return datetime.datetime.now(datetime.timezone.utc)

def clean_name(name):
    if not name:
        return ''
    # Decode HTML entities like &amp; to &
    return html.unescape(name.strip())

def to_decimal(value: Any, field_name: str) -> Decimal:
    """Convert user input to Decimal, rejecting floats' NaN/inf and junk."""
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a number")
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValidationError(f"{field_name} must be a finite number")
        value = repr(value)
    try:
        result = Decimal(str(value).strip()) if isinstance(value, str) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a number")
    if not result.is_finite():
        raise ValidationError(f"{field_name} must be a finite number")
    return result

def parse_uuid(value: Any, field_name: str = "id") -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, TypeError, AttributeError):
        raise ValidationError(f"Invalid {field_name}: {value}")

def paginate_args(page: Any, limit: Any, default_limit: int = 10, max_limit: int = 100) -> Tuple[int, int]:
    """Normalise page/limit query values."""
    try:
        page_num = int(page) if page is not None else 1
        limit_num = int(limit) if limit is not None else default_limit
    except (TypeError, ValueError):
        raise ValidationError("page and limit must be integers")
    if page_num < 1:
        raise ValidationError("page must be at least 1")
    if limit_num < 1:
        raise ValidationError("limit must be at least 1")
    return page_num, min(limit_num, max_limit)

def day_bounds(day: datetime.date, tzinfo: Optional[datetime.tzinfo] = datetime.timezone.utc):
    """Return [start, end) datetimes covering one calendar day."""
    start = datetime.datetime.combine(day, datetime.time.min, tzinfo=tzinfo)
    return start, start + datetime.timedelta(days=1)

def month_bounds(year: int, month: int, tzinfo: Optional[datetime.tzinfo] = datetime.timezone.utc):
    """Return [start, end) datetimes covering one calendar month."""
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    start = datetime.datetime(year, month, 1, tzinfo=tzinfo)
    if month == 12:
        end = datetime.datetime(year + 1, 1, 1, tzinfo=tzinfo)
    else:
        end = datetime.datetime(year, month + 1, 1, tzinfo=tzinfo)
    return start, end
