"""Configuration management for the encrypted record store."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Database path configuration
DB_PATH = os.getenv("RECORDVAULT_DB_PATH", "./data/records.db")

DEBUG = os.getenv("RECORDVAULT_DEBUG", "false").lower() == "true"

# Cache configuration
CACHE_TTL_SEC = float(os.getenv("RECORDVAULT_CACHE_TTL_SEC", "300"))  # 5 minutes
CACHE_SWEEP_SEC = float(os.getenv("RECORDVAULT_CACHE_SWEEP_SEC", "60"))

# Record sanity bounds
RETENTION_DAYS = int(os.getenv("RECORDVAULT_RETENTION_DAYS", "365"))
MAX_DURATION_SEC = float(os.getenv("RECORDVAULT_MAX_DURATION_SEC", "86400"))  # 24 hours
NOTES_MAX_LENGTH = int(os.getenv("RECORDVAULT_NOTES_MAX_LENGTH", "1000"))
LOCATION_MAX_LENGTH = int(os.getenv("RECORDVAULT_LOCATION_MAX_LENGTH", "100"))

# Defense-in-depth validation of data read back from the substrate
REVALIDATE_ON_READ = os.getenv("RECORDVAULT_REVALIDATE_ON_READ", "true").lower() == "true"

# Substrate keys
RECORDS_KEY = "records"
SECRET_KEY = "installation_secret"
BACKUP_KEY = "records_backup"
# Written automatically before restore or a replacing import
AUTO_BACKUP_KEY = "records_backup_auto"

EXPORT_SCHEMA_VERSION = 1

VERSION = "0.1.0"


@dataclass(frozen=True)
class StoreSettings:
    """Snapshot of store tunables, passed explicitly to the store and validator."""
    db_path: str = DB_PATH
    debug: bool = DEBUG
    cache_ttl_sec: float = CACHE_TTL_SEC
    cache_sweep_sec: float = CACHE_SWEEP_SEC
    retention_days: int = RETENTION_DAYS
    max_duration_sec: float = MAX_DURATION_SEC
    notes_max_length: int = NOTES_MAX_LENGTH
    location_max_length: int = LOCATION_MAX_LENGTH
    revalidate_on_read: bool = REVALIDATE_ON_READ

    @classmethod
    def from_env(cls) -> "StoreSettings":
        """Read settings from the current environment rather than import-time constants."""
        return cls(
            db_path=os.getenv("RECORDVAULT_DB_PATH", "./data/records.db"),
            debug=os.getenv("RECORDVAULT_DEBUG", "false").lower() == "true",
            cache_ttl_sec=float(os.getenv("RECORDVAULT_CACHE_TTL_SEC", "300")),
            cache_sweep_sec=float(os.getenv("RECORDVAULT_CACHE_SWEEP_SEC", "60")),
            retention_days=int(os.getenv("RECORDVAULT_RETENTION_DAYS", "365")),
            max_duration_sec=float(os.getenv("RECORDVAULT_MAX_DURATION_SEC", "86400")),
            notes_max_length=int(os.getenv("RECORDVAULT_NOTES_MAX_LENGTH", "1000")),
            location_max_length=int(os.getenv("RECORDVAULT_LOCATION_MAX_LENGTH", "100")),
            revalidate_on_read=os.getenv("RECORDVAULT_REVALIDATE_ON_READ", "true").lower() == "true",
        )


DEFAULT_SETTINGS = StoreSettings()


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("RECORDVAULT_DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def validate_store_config(settings: StoreSettings = None) -> List[str]:
    """Validate store configuration and return any issues."""
    settings = settings or DEFAULT_SETTINGS
    issues = []

    if settings.cache_ttl_sec <= 0:
        issues.append("RECORDVAULT_CACHE_TTL_SEC must be > 0")

    if settings.cache_sweep_sec <= 0:
        issues.append("RECORDVAULT_CACHE_SWEEP_SEC must be > 0")

    if settings.retention_days < 1:
        issues.append("RECORDVAULT_RETENTION_DAYS must be >= 1")

    if settings.max_duration_sec <= 0:
        issues.append("RECORDVAULT_MAX_DURATION_SEC must be > 0")

    if settings.notes_max_length < 1 or settings.location_max_length < 1:
        issues.append("Text length caps must be >= 1")

    return issues
