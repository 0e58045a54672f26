"""
Encrypted, validated, cached store for personal activity records.
"""

from .core.cache import CacheStats, TTLCache
from .core.config import StoreSettings
from .core.db import IRecordSubstrate, MemorySubstrate, SQLiteSubstrate
from .core.errors import (
    CorruptData,
    DuplicateRecord,
    NotFound,
    RecordStoreError,
    StorageUnavailable,
    ValidationError,
)
from .core.keys import KeyManager
from .core.schema import Record, serialize_record
from .core.store import ImportResult, RecordStore, new_record_id

__all__ = [
    'CacheStats',
    'TTLCache',
    'StoreSettings',
    'IRecordSubstrate',
    'MemorySubstrate',
    'SQLiteSubstrate',
    'CorruptData',
    'DuplicateRecord',
    'NotFound',
    'RecordStoreError',
    'StorageUnavailable',
    'ValidationError',
    'KeyManager',
    'Record',
    'serialize_record',
    'ImportResult',
    'RecordStore',
    'new_record_id',
]
