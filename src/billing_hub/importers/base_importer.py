import math
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from sqlalchemy.exc import SQLAlchemyError
from tqdm.auto import tqdm

from billing_hub.core.data_processor import DataProcessor, DuplicatePolicy, ProcessingStats
from billing_hub.core.exceptions import FileProcessingError, ValidationError
from billing_hub.utils.helpers import read_data
from billing_hub.utils.logger import get_logger


class BaseImporter(ABC):
    """
    Spreadsheet-to-database loader.

    A run reads the file, normalises its columns, then walks it in chunks:
    every row is validated on its own, the chunk is de-duplicated and
    written in one transaction. A failed chunk is counted and the run
    carries on with the next one.
    """

    def __init__(self, db_connection, config: Dict[str, Any] = None):
        self.db = db_connection
        self.config = config or {}
        self.logger = get_logger(self.__class__.__name__)
        self.processor = DataProcessor()
        self.stats = ProcessingStats()

        self.chunk_size = self.config.get('chunk_size', 500)
        self.enable_validation = self.config.get('enable_validation', True)
        self.show_progress = self.config.get('show_progress', True)

    @abstractmethod
    def get_conflict_columns(self) -> List[str]:
        """Record fields that identify the same entity across rows."""

    @abstractmethod
    def get_required_columns(self) -> List[str]:
        """Spreadsheet headers the file must have."""

    @abstractmethod
    def process_row(self, row: pd.Series) -> Optional[Dict[str, Any]]:
        """
        Turn one row into a record.

        Return None to skip the row; raise ValidationError to reject it.
        """

    @abstractmethod
    def write_batch(self, batch_data: List[Dict[str, Any]]) -> int:
        """Persist records in one transaction and return how many were written."""

    def get_duplicate_policy(self) -> DuplicatePolicy:
        return DuplicatePolicy.KEEP_LAST

    def check_columns(self, df: pd.DataFrame) -> List[str]:
        problems = [f"missing column '{col}'" for col in self.get_required_columns() if col not in df.columns]
        if df.empty:
            problems.append("no data rows")
        return problems

    def load_file(self, file_path: str) -> pd.DataFrame:
        path = Path(file_path)
        if not path.exists():
            raise FileProcessingError(f"File not found: {file_path}")

        try:
            df = read_data(path)
        except (OSError, ValueError) as e:
            self.logger.error(f"❌ Could not read {path.name}: {e}")
            raise FileProcessingError(f"Failed to load {file_path}: {e}") from e

        df = self.processor.normalize_dataframe(df)
        self.logger.info(f"📂 Loaded {len(df):,} rows from {path.name}")

        if self.enable_validation:
            problems = self.check_columns(df)
            if problems:
                self.logger.error(f"❌ {path.name} rejected: {', '.join(problems)}")
                raise FileProcessingError(f"{path.name}: {', '.join(problems)}")
        return df

    def process_batch(self, batch_df: pd.DataFrame) -> List[Dict[str, Any]]:
        records = []
        for idx, row in batch_df.iterrows():
            try:
                record = self.process_row(row)
            except ValidationError as e:
                self.logger.warning(f"⚠️  Row {idx} rejected: {e}")
                self.stats.error_records += 1
                continue
            if record is None:
                self.stats.skipped_records += 1
            else:
                records.append(record)
                self.stats.successful_records += 1
        return records

    def insert_batch(self, batch_data: List[Dict[str, Any]]) -> int:
        if not batch_data:
            return 0

        unique, repeated = self.processor.deduplicate_records(
            batch_data, self.get_conflict_columns(), self.get_duplicate_policy()
        )
        self.stats.duplicate_groups += len(repeated)

        try:
            return self.write_batch(unique)
        except SQLAlchemyError as e:
            self.logger.error(f"❌ Batch of {len(unique):,} records not written: {e}")
            self.stats.database_errors += 1
            return 0

    def run_import(self, file_path: str, chunk_size: Optional[int] = None, offset: int = 0) -> ProcessingStats:
        chunk_size = chunk_size or self.chunk_size
        self.stats = ProcessingStats()
        self.logger.info(f"🚀 Importing {file_path} (chunk_size={chunk_size}, offset={offset})")

        try:
            df = self.load_file(file_path)
            self.stats.total_input_records = len(df)
            if offset > 0:
                df = df.iloc[offset:]

            starts = range(0, len(df), chunk_size)
            for start in tqdm(starts, total=math.ceil(len(df) / chunk_size), desc="Importing",
                              unit="batch", disable=not self.show_progress):
                records = self.process_batch(df.iloc[start:start + chunk_size])
                self.insert_batch(records)
            return self.stats
        except Exception as e:
            self.logger.error(f"💥 Import failed: {e}")
            raise
        finally:
            self.stats.finish()
            self.stats.log_summary()
