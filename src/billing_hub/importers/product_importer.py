from typing import Dict, List, Any, Optional
import pandas as pd
from billing_hub.db.catalog import CatalogStore
from billing_hub.db.model import Product
from billing_hub.importers.base_importer import BaseImporter
from billing_hub.models.product import ProductModel
from billing_hub.utils.field_normalizer import FieldNormalizer
from billing_hub.utils.helpers import clean_name

class ProductImporter(BaseImporter):
    """
    Bulk catalog loader.
    
    Handles:
    - Name/barcode cleanup
    - Price and tax parsing
    - Create-or-update by barcode
    """
    
    def __init__(self, db_connection, config: Dict[str, Any] = None):
        super().__init__(db_connection, config)
        self.store = CatalogStore()
    
    def get_conflict_columns(self) -> List[str]:
        return ['barcode']
    
    def get_required_columns(self) -> List[str]:
        return ['Name', 'Price', 'Stock']

    def process_row(self, row: pd.Series) -> Optional[Dict[str, Any]]:
        """Validate one product row; blank names are skipped, bad values raise."""
        name = clean_name(FieldNormalizer.normalize_string(row.get('Name')))
        if not name:
            return None

        product = ProductModel(
            name=name,
            barcode=FieldNormalizer.normalize_barcode(row.get('Barcode')),
            price=FieldNormalizer.parse_decimal(row.get('Price')),
            tax_percent=FieldNormalizer.parse_decimal(row.get('Tax Percent'), default=0),
            stock=FieldNormalizer.parse_integer(row.get('Stock')),
        )
        return product.to_dict()
    
    def write_batch(self, batch_data: List[Dict[str, Any]]) -> int:
        created = updated = 0
        with self.db.transaction() as session:
            for record in batch_data:
                existing = None
                if record.get('barcode'):
                    existing = self.store.get_by_barcode(session, record['barcode'])
                if existing is None:
                    self.store.add(session, Product(**record))
                    created += 1
                else:
                    for key, value in record.items():
                        setattr(existing, key, value)
                    updated += 1
        self.stats.created_records += created
        self.stats.updated_records += updated
        self.logger.debug(f"Batch written: {created} created, {updated} updated")
        return created + updated
