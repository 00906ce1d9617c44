import pandas as pd
from decimal import Decimal
from typing import Any, Optional
import re

class FieldNormalizer:
    """Utility class for normalizing spreadsheet cell values."""
    
    @staticmethod
    def is_missing(val: Any) -> bool:
        return val is None or (not isinstance(val, (list, dict)) and pd.isna(val))

    @classmethod
    def normalize_string(cls, val: Any) -> str:
        """Normalize string fields for consistency."""
        if cls.is_missing(val) or str(val).strip() in ["", "nan", "null"]:
            return ""
        return " ".join(str(val).split())
    
    @classmethod
    def normalize_barcode(cls, val: Any) -> Optional[str]:
        """Normalize barcode with validation."""
        if cls.is_missing(val):
            return None
        
        barcode = str(val).strip()
        # Excel turns numeric barcodes into floats
        if re.fullmatch(r"\d+\.0", barcode):
            barcode = barcode[:-2]
        # Remove any non-alphanumeric characters except hyphens
        barcode = re.sub(r'[^a-zA-Z0-9\-]', '', barcode)
        
        return barcode if barcode else None
    
    @classmethod
    def parse_decimal(cls, val: Any, default: Optional[Decimal] = None) -> Optional[Decimal]:
        """Parse a money or percentage cell; strips currency symbols, % and thousands separators."""
        if cls.is_missing(val):
            return default
        text = re.sub(r"[^0-9.\-]", "", str(val))
        if not text:
            return default
        try:
            return Decimal(text)
        except ArithmeticError:
            return default
    
    @classmethod
    def parse_integer(cls, val: Any, default: Optional[int] = None) -> Optional[int]:
        """Parse integer value with fallback."""
        try:
            if cls.is_missing(val):
                return default
            number = float(val)
            return int(number) if number.is_integer() else default
        except (ValueError, TypeError):
            return default
