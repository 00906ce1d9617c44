from dataclasses import dataclass, field, fields
from typing import Dict, Any
import yaml
from pathlib import Path

from billing_hub.config.database import DATABASE_CONFIG

@dataclass
class BillingConfig:
    """Invoice transaction and query settings."""
    max_retries: int = 3
    retry_backoff_seconds: float = 0.05
    lock_products: bool = False
    default_page_size: int = 10
    max_page_size: int = 100
    top_products_limit: int = 10
    search_limit: int = 20

@dataclass
class ImporterConfig:
    """Configuration for the catalog importer."""
    chunk_size: int = 500
    enable_validation: bool = True
    show_progress: bool = True

@dataclass
class FilePathConfig:
    """File path configuration."""
    input_dir: str = "data/input"
    output_dir: str = "data/output"
    log_dir: str = "logs"

@dataclass
class ApplicationConfig:
    """Main application configuration."""
    billing: BillingConfig = field(default_factory=BillingConfig)
    importer: ImporterConfig = field(default_factory=ImporterConfig)
    file_paths: FilePathConfig = field(default_factory=FilePathConfig)
    database: Dict[str, Any] = field(default_factory=dict)

def _section(cls, data: Dict[str, Any] = None):
    """Build a config dataclass from a YAML mapping, ignoring unknown keys."""
    data = data or {}
    known = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in known})

def load_config(config_path: str = "config/settings.yaml") -> ApplicationConfig:
    """Load configuration from YAML file and database.py."""
    if not Path(config_path).exists():
        # Return default configuration with database from database.py
        config = ApplicationConfig()
        config.database = dict(DATABASE_CONFIG)
        return config

    with open(config_path, 'r') as f:
        config_data = yaml.safe_load(f) or {}

    # Database settings always come from the environment
    config_data.pop('database', None)

    config = ApplicationConfig(
        billing=_section(BillingConfig, config_data.get('billing')),
        importer=_section(ImporterConfig, config_data.get('importer')),
        file_paths=_section(FilePathConfig, config_data.get('file_paths')),
    )
    config.database = dict(DATABASE_CONFIG)
    return config
