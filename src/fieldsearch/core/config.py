"""
Search Engine Configuration

Storage location, deployment environment and engine tunables, all read
from environment variables at import.

Storage:
- PostgreSQL (production): set DATABASE_URL
- SQLite (development/test): SEARCH_DB, or search.db under SEARCH_DATA_DIR
"""

import os
from enum import Enum
from pathlib import Path


class Environment(str, Enum):
    """Deployment environment"""

    PRODUCTION = "production"
    DEVELOPMENT = "development"
    TEST = "test"


def _get_environment() -> Environment:
    """Get and validate ENVIRONMENT variable."""
    env_value = os.getenv("ENVIRONMENT")
    if env_value is None:
        raise RuntimeError(
            "ENVIRONMENT is required. Set to 'production', 'development', or 'test'."
        )
    try:
        return Environment(env_value.lower())
    except ValueError:
        raise RuntimeError(
            f"Invalid ENVIRONMENT value: '{env_value}'. "
            "Must be 'production', 'development', or 'test'."
        )


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes", "on")


class SearchSettings:
    """Search engine configuration"""

    ENVIRONMENT: Environment = _get_environment()

    # Index storage
    DATABASE_URL: str | None = os.getenv("DATABASE_URL")
    DATA_DIR: Path = Path(os.getenv("SEARCH_DATA_DIR", "data"))
    DB_PATH: str = os.getenv("SEARCH_DB", str(DATA_DIR / "search.db"))

    # Term expansion
    STEMMING_ENABLED: bool = _env_flag("SEARCH_STEMMING_ENABLED", "true")
    SYNONYMS_ENABLED: bool = _env_flag("SEARCH_SYNONYMS_ENABLED", "true")

    # Query defaults
    DEFAULT_LOGIC: str = os.getenv("SEARCH_DEFAULT_LOGIC", "AND").upper()

    # Bulk item type lookups (SQLite caps host parameters at 999)
    ITEM_TYPE_CHUNK_SIZE: int = int(os.getenv("SEARCH_ITEM_TYPE_CHUNK_SIZE", "500"))

    # External item catalog
    ITEM_TABLE: str = os.getenv("SEARCH_ITEM_TABLE", "items")
    ITEM_ID_COLUMN: str = os.getenv("SEARCH_ITEM_ID_COLUMN", "item_id")
    ITEM_TYPE_COLUMN: str = os.getenv("SEARCH_ITEM_TYPE_COLUMN", "item_type")

    # Lexicon / synonym inserts under SQLite writer contention
    LOCK_RETRY_ATTEMPTS: int = int(os.getenv("SEARCH_LOCK_RETRY_ATTEMPTS", "3"))


settings = SearchSettings()


def _validate_required(settings: SearchSettings) -> None:
    """Validate engine settings."""
    if settings.DEFAULT_LOGIC not in ("AND", "OR"):
        raise RuntimeError(
            f"Invalid SEARCH_DEFAULT_LOGIC value: '{settings.DEFAULT_LOGIC}'. "
            "Must be 'AND' or 'OR'."
        )
    if settings.ITEM_TYPE_CHUNK_SIZE <= 0:
        raise RuntimeError("SEARCH_ITEM_TYPE_CHUNK_SIZE must be greater than zero")
    if settings.LOCK_RETRY_ATTEMPTS <= 0:
        raise RuntimeError("SEARCH_LOCK_RETRY_ATTEMPTS must be greater than zero")


_validate_required(settings)
