import os
from pathlib import Path

from dotenv import load_dotenv

# Project-root .env; real environment variables take precedence
load_dotenv(dotenv_path=Path(__file__).resolve().parents[3] / ".env")


def _flag(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


DATABASE_CONFIG = {
    "user": os.getenv("DB_USER"),
    "password": os.getenv("DB_PASS"),
    "host": os.getenv("DB_HOST"),
    "port": os.getenv("DB_PORT"),
    "dbname": os.getenv("DB_NAME"),
    # A full SQLAlchemy URL overrides the fields above
    "url": os.getenv("DB_URL") or None,
    "echo": _flag("DB_ECHO"),
    "isolation_level": os.getenv("DB_ISOLATION_LEVEL") or None,
}
