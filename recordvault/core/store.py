"""
Record store - the only entry point consumers use.

Reads:  cache -> substrate -> decrypt -> validate -> clean -> cache.
Writes: validate -> merge -> clean -> encrypt -> substrate -> invalidate cache.

Every read-modify-write cycle runs under the store lock, so concurrent
save/update/delete/import calls are serialised and cannot lose each other's
changes.
"""

import threading
import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from .backup import (
    BackupSnapshot,
    build_export_document,
    is_export_document,
    is_export_envelope,
    open_export,
    seal_export,
    verify_export_document,
)
from .cache import CacheStats, TTLCache
from .cleaner import clean_anomalies, dedupe, sort_canonical
from .codec import decode_json, decrypt, encode_json, encode_records, encrypt
from .config import AUTO_BACKUP_KEY, BACKUP_KEY, RECORDS_KEY, StoreSettings
from .db import IRecordSubstrate
from .errors import CorruptData, DuplicateRecord, NotFound, RecordStoreError, ValidationError
from .keys import KeyManager
from .schema import RECORD_LIST_ADAPTER, Record
from .validation import build_context, validate_many, validate_one
from ..util.logging import StructuredLogger

RECORDS_CACHE_KEY = "records"
INDEX_CACHE_KEY = "record_index"

# wire name or attribute name -> attribute name
_FIELD_NAMES: Dict[str, str] = {}
for _name, _info in Record.model_fields.items():
    _FIELD_NAMES[_name] = _name
    _FIELD_NAMES[_info.alias or _name] = _name


def new_record_id() -> str:
    return str(uuid.uuid4())


@dataclass
class ImportResult:
    """Outcome of a batch import.

    ``final`` counts imported records present in the persisted collection
    after dedupe and anomaly cleaning; ``total`` is the collection size.
    """
    input: int
    valid: int
    final: int
    total: int
    errors: List[Tuple[int, ValidationError]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "input": self.input,
            "valid": self.valid,
            "final": self.final,
            "total": self.total,
            "errors": [{"index": i, "field": e.field, "message": e.message} for i, e in self.errors],
        }


class RecordStore:
    """Encrypted, validated, cached collection of activity records."""

    def __init__(self, substrate: IRecordSubstrate,
                 key_manager: Optional[KeyManager] = None,
                 cache: Optional[TTLCache] = None,
                 settings: Optional[StoreSettings] = None,
                 logger: Optional[StructuredLogger] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.settings = settings or StoreSettings.from_env()
        self.substrate = substrate
        self.logger = logger or StructuredLogger("recordvault.store", debug=self.settings.debug)
        self.key_manager = key_manager or KeyManager(substrate)
        self.cache = cache if cache is not None else TTLCache(default_ttl=self.settings.cache_ttl_sec,
                                                               logger=self.logger)
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        # Set once this process has persisted the collection itself
        self._trusted = False

    # Reads

    def get_all(self) -> List[Record]:
        """All records, most recent first."""
        return list(self._load())

    def get(self, record_id: str) -> Record:
        """Look up one record by id via the cached id index."""
        key = str(record_id).strip().lower()
        index = self.cache.get(INDEX_CACHE_KEY)
        if index is None:
            with self._lock:
                index = {r.id: r for r in self._load()}
                self.cache.set(INDEX_CACHE_KEY, index, self.settings.cache_ttl_sec)
        try:
            return index[key]
        except KeyError:
            raise NotFound(f"Record {record_id} does not exist") from None

    def _load(self) -> Tuple[Record, ...]:
        cached = self.cache.get(RECORDS_CACHE_KEY)
        if cached is not None:
            return cached

        with self._lock:
            # Another caller may have filled the cache while we waited
            cached = self.cache.get(RECORDS_CACHE_KEY)
            if cached is not None:
                return cached
            records = tuple(self._read_collection())
            self.cache.set(RECORDS_CACHE_KEY, records, self.settings.cache_ttl_sec)
            return records

    def _read_collection(self) -> List[Record]:
        blob = self.substrate.get(RECORDS_KEY)
        if blob is None:
            return []

        plaintext = decrypt(blob, self.key_manager.get_or_create_key())
        data = decode_json(plaintext)
        if not isinstance(data, list):
            raise CorruptData("Stored collection is not a list")

        now = self._clock()
        records = None
        if self._trusted and not self.settings.revalidate_on_read:
            try:
                records = RECORD_LIST_ADAPTER.validate_python(
                    data, context=build_context(now, self.settings, trusted=True)
                )
            except PydanticValidationError:
                self.logger.warning("Trusted fast-path parse failed; falling back to full validation")

        if records is None:
            records, errors = validate_many(data, now=now, settings=self.settings)
            for index, error in errors:
                self.logger.log_validation_rejected("read", error.errors, source_index=index)

        records = clean_anomalies(
            dedupe(records, self.logger), now=now,
            retention_days=self.settings.retention_days,
            max_duration_sec=self.settings.max_duration_sec,
            logger=self.logger,
        )
        self.logger.log_record_operation("load", details={"count": len(records), "stored": len(data)})
        return sort_canonical(records)

    # Writes

    def _persist(self, records: List[Record]) -> None:
        """Encrypt and write the whole collection, then invalidate cached views.

        A failed write leaves the cache alone; it still mirrors the substrate.
        """
        blob = encrypt(encode_records(records), self.key_manager.get_or_create_key())
        self.substrate.set(RECORDS_KEY, blob)
        self._trusted = True
        self._invalidate()

    def _invalidate(self) -> None:
        self.cache.delete(RECORDS_CACHE_KEY)
        self.cache.delete(INDEX_CACHE_KEY)

    def _validate(self, operation: str, raw: Any, now: datetime) -> Record:
        try:
            return validate_one(raw, now=now, settings=self.settings)
        except ValidationError as e:
            self.logger.log_validation_rejected(operation, e.errors)
            raise

    def save(self, record: Union[Record, Dict[str, Any]]) -> Record:
        """
        Validate and append a new record.

        A fresh id is assigned when the input has none.

        Raises:
            ValidationError: If the record is invalid (nothing is persisted)
            DuplicateRecord: If the id already exists; use update() instead
        """
        if isinstance(record, Record):
            raw = record.model_dump(by_alias=True)
        elif isinstance(record, Mapping):
            raw = dict(record)
            if raw.get("id") is None:
                raw["id"] = new_record_id()
        else:
            raw = record

        with self._lock:
            validated = self._validate("save", raw, self._clock())
            records = list(self._load())
            if any(r.id == validated.id for r in records):
                self.logger.log_record_operation("save", validated.id, status="duplicate")
                raise DuplicateRecord(validated.id)

            records.append(validated)
            self._persist(sort_canonical(dedupe(records, self.logger)))

        self.logger.log_record_operation("save", validated.id)
        return validated

    def update(self, record_id: str, fields: Dict[str, Any]) -> Record:
        """
        Merge fields onto an existing record and re-validate the result.

        Raises:
            NotFound: If no record has this id
            ValidationError: If a field is unknown, tries to change the id, or
                the merged record is invalid (storage is left unchanged)
        """
        if not isinstance(fields, Mapping):
            raise ValidationError("Update fields must be an object", field=None)

        key = str(record_id).strip().lower()
        changes = {}
        for name, value in fields.items():
            attr = _FIELD_NAMES.get(name)
            if attr is None:
                raise ValidationError(f"Unknown field: {name}", field=name)
            if attr == "id" and str(value).strip().lower() != key:
                raise ValidationError("id cannot be changed by update", field="id")
            changes[attr] = value

        with self._lock:
            records = list(self._load())
            position = next((i for i, r in enumerate(records) if r.id == key), None)
            if position is None:
                raise NotFound(f"Record {record_id} does not exist")

            merged = records[position].model_dump()
            merged.update(changes)
            validated = self._validate("update", merged, self._clock())

            records[position] = validated
            self._persist(sort_canonical(dedupe(records, self.logger)))

        self.logger.log_record_operation("update", key, details={"fields": sorted(changes)})
        return validated

    def delete(self, record_id: str) -> bool:
        """Remove a record by id. Idempotent; returns whether anything was removed."""
        key = str(record_id).strip().lower()
        with self._lock:
            records = list(self._load())
            remaining = [r for r in records if r.id != key]
            removed = len(remaining) != len(records)
            self._persist(remaining)

        self.logger.log_record_operation("delete", key, status="success" if removed else "absent")
        return removed

    # Import / export

    def _parse_import(self, raw: Any, passphrase: Optional[str]) -> List[Any]:
        if isinstance(raw, str):
            raw = raw.encode('utf-8')

        if isinstance(raw, (bytes, bytearray)):
            raw = bytes(raw)
            if is_export_envelope(raw):
                raw = open_export(raw, self.key_manager.get_or_create_key(), passphrase)
            data = decode_json(raw)
        else:
            data = raw

        if is_export_document(data):
            return verify_export_document(data)
        if isinstance(data, list):
            return data
        raise CorruptData("Import payload must be a record list or an export document")

    def import_collection(self, raw: Any, passphrase: Optional[str] = None,
                          replace: bool = False) -> ImportResult:
        """
        Import records, keeping the valid subset.

        Existing records are scanned first, so they win on id collision. With
        replace=True the imported records become the whole collection.

        Raises:
            CorruptData: If the payload cannot be decrypted or parsed, or its checksum fails
        """
        items = self._parse_import(raw, passphrase)

        with self._lock:
            now = self._clock()
            valid, errors = validate_many(items, now=now, settings=self.settings)
            for index, error in errors:
                self.logger.log_validation_rejected("import", error.errors, source_index=index)

            existing = [] if replace else list(self._load())
            existing_ids = {r.id for r in existing}

            merged = clean_anomalies(
                dedupe(existing + valid, self.logger), now=now,
                retention_days=self.settings.retention_days,
                max_duration_sec=self.settings.max_duration_sec,
                logger=self.logger,
            )
            merged = sort_canonical(merged)
            if replace:
                self._auto_backup("import")
            self._persist(merged)

        imported_ids = {r.id for r in valid} - existing_ids
        result = ImportResult(
            input=len(items),
            valid=len(valid),
            final=sum(1 for r in merged if r.id in imported_ids),
            total=len(merged),
            errors=errors,
        )
        self.logger.audit_event("store.import", {"replace": replace},
                                {"input": result.input, "valid": result.valid,
                                 "final": result.final, "rejected": len(errors)})
        return result

    def export_collection(self, passphrase: Optional[str] = None) -> bytes:
        """Encrypted, self-describing export of the current collection."""
        records = self.get_all()
        document = build_export_document(records, now=self._clock())
        payload = seal_export(encode_json(document, pretty=True),
                              self.key_manager.get_or_create_key(), passphrase)

        self.logger.audit_event("store.export", {"record_count": len(records)},
                                {"passphrase_protected": bool(passphrase)})
        return payload

    # Local backup snapshot

    def _write_snapshot(self, snapshot_key: str, records: List[Record]) -> BackupSnapshot:
        document = build_export_document(records, now=self._clock())
        blob = encrypt(encode_json(document), self.key_manager.get_or_create_key())
        self.substrate.set(snapshot_key, blob)
        return BackupSnapshot.from_document(document)

    def _auto_backup(self, operation: str) -> None:
        """Snapshot the live collection before it is replaced wholesale.

        An unreadable collection has nothing worth keeping, so it is logged and skipped.
        """
        try:
            records = list(self._load())
        except CorruptData as e:
            self.logger.warning(f"Skipping automatic backup before {operation}: {e}")
            return
        snapshot = self._write_snapshot(AUTO_BACKUP_KEY, records)
        self.logger.audit_event("store.auto_backup", {"before": operation,
                                                      "record_count": snapshot.record_count})

    def backup(self) -> BackupSnapshot:
        """Write an encrypted snapshot of the current collection beside it."""
        with self._lock:
            snapshot = self._write_snapshot(BACKUP_KEY, list(self._load()))

        self.logger.audit_event("store.backup", {"record_count": snapshot.record_count},
                                {"checksum": snapshot.checksum})
        return snapshot

    def restore_backup(self, snapshot_key: str = BACKUP_KEY) -> int:
        """
        Replace the collection with a local backup snapshot.

        The collection being replaced is first saved under AUTO_BACKUP_KEY, so
        restore_backup(AUTO_BACKUP_KEY) undoes the last restore or replacing import.

        Returns:
            Number of records in the restored collection

        Raises:
            NotFound: If no backup exists
            CorruptData: If the snapshot fails decryption or checksum verification
        """
        with self._lock:
            blob = self.substrate.get(snapshot_key)
            if blob is None:
                raise NotFound("No backup snapshot available")

            document = decode_json(decrypt(blob, self.key_manager.get_or_create_key()))
            if not is_export_document(document):
                raise CorruptData("Backup snapshot is not an export document")
            items = verify_export_document(document)

            now = self._clock()
            valid, errors = validate_many(items, now=now, settings=self.settings)
            for index, error in errors:
                self.logger.log_validation_rejected("restore", error.errors, source_index=index)

            records = sort_canonical(clean_anomalies(
                dedupe(valid, self.logger), now=now,
                retention_days=self.settings.retention_days,
                max_duration_sec=self.settings.max_duration_sec,
                logger=self.logger,
            ))
            self._auto_backup("restore")
            self._persist(records)

        self.logger.audit_event("store.restore", {"record_count": len(records)})
        return len(records)

    # Cache management

    def warmup(self) -> int:
        """Populate the cache ahead of first use."""
        try:
            count = len(self._load())
        except RecordStoreError as e:
            self.logger.error(f"Cache warmup failed: {e}")
            raise
        self.logger.log_record_operation("warmup", details={"count": count})
        return count

    def cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

    def start_cache_sweeper(self) -> None:
        self.cache.start_sweeper(self.settings.cache_sweep_sec)

    def close(self) -> None:
        self.cache.stop_sweeper()
