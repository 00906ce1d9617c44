from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd

from billing_hub.utils.field_normalizer import FieldNormalizer
from billing_hub.utils.logger import get_logger

logger = get_logger(__name__)

# Spreadsheet header -> cell normaliser
COLUMN_RULES = {
    'Name': FieldNormalizer.normalize_string,
    'Barcode': FieldNormalizer.normalize_barcode,
    'Price': FieldNormalizer.parse_decimal,
    'Tax Percent': FieldNormalizer.parse_decimal,
    'Stock': FieldNormalizer.parse_integer,
}


class DuplicatePolicy(Enum):
    """Which row wins when a file lists the same barcode more than once."""
    KEEP_FIRST = "first"
    KEEP_LAST = "last"


@dataclass
class ProcessingStats:
    """Counters for one catalog import run."""
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    total_input_records: int = 0
    successful_records: int = 0
    skipped_records: int = 0
    error_records: int = 0
    duplicate_groups: int = 0
    created_records: int = 0
    updated_records: int = 0
    database_errors: int = 0

    def finish(self):
        self.finished_at = datetime.now()

    @property
    def duration(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    @property
    def success_rate(self) -> float:
        if not self.total_input_records:
            return 0.0
        return 100.0 * self.successful_records / self.total_input_records

    def log_summary(self):
        rows = [
            ("Input rows", self.total_input_records),
            ("Valid rows", self.successful_records),
            ("Created", self.created_records),
            ("Updated", self.updated_records),
            ("Skipped", self.skipped_records),
            ("Rejected", self.error_records),
            ("Duplicate barcodes", self.duplicate_groups),
        ]
        logger.info("=" * 60)
        logger.info("CATALOG IMPORT SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Duration: {self.duration:.2f}s" if self.duration is not None else "Duration: N/A")
        for label, value in rows:
            logger.info(f"{label}: {value:,}")
        logger.info(f"Success rate: {self.success_rate:.2f}%")
        if self.database_errors:
            logger.error(f"Failed batches: {self.database_errors:,}")
        logger.info("=" * 60)


class DataProcessor:
    """Cleans raw catalog frames and collapses repeated barcodes within a batch."""

    def __init__(self):
        self.logger = get_logger(self.__class__.__name__)

    def normalize_dataframe(self, df: pd.DataFrame, column_mappings: Dict[str, str] = None) -> pd.DataFrame:
        if column_mappings:
            df = df.rename(columns=column_mappings)
        # Header cells often carry stray spaces
        df = df.rename(columns=lambda c: str(c).strip())

        for column, rule in COLUMN_RULES.items():
            if column in df.columns:
                df[column] = df[column].astype(object).apply(rule)

        self.logger.debug(f"Normalized {len(df):,} rows, columns: {list(df.columns)}")
        return df

    def deduplicate_records(
        self,
        records: List[Dict[str, Any]],
        key_columns: List[str],
        policy: DuplicatePolicy = DuplicatePolicy.KEEP_LAST,
    ) -> Tuple[List[Dict[str, Any]], Dict[tuple, int]]:
        """
        Keep one record per key, chosen by ``policy``.

        Records whose key is entirely empty (products without a barcode)
        never collide and are all kept. Returns the surviving records and a
        ``{key: occurrences}`` map of the keys that were repeated.
        """
        chosen: "OrderedDict[tuple, Dict[str, Any]]" = OrderedDict()
        counts: Dict[tuple, int] = {}
        keyless = []

        for record in records:
            key = self._key(record, key_columns)
            if all(part is None for part in key):
                keyless.append(record)
                continue
            counts[key] = counts.get(key, 0) + 1
            if key not in chosen or policy is DuplicatePolicy.KEEP_LAST:
                chosen[key] = record

        repeated = {key: n for key, n in counts.items() if n > 1}
        if repeated:
            self.logger.warning(
                f"⚠️  {len(repeated):,} barcodes repeated in batch, keeping the {policy.value} row of each"
            )
        return list(chosen.values()) + keyless, repeated

    @staticmethod
    def _key(record: Dict[str, Any], columns: List[str]) -> tuple:
        parts = []
        for col in columns:
            val = record.get(col)
            if isinstance(val, str):
                val = val.strip().lower() or None
            parts.append(val)
        return tuple(parts)
