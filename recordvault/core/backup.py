"""
Export and backup payloads.

An export document is ``{schemaVersion, timestamp, recordCount, checksum, records}``.
The checksum covers ``(id, startTime epoch millis, duration)`` in collection
order, so an importer can detect tampering independent of the encryption layer.
"""

import hashlib
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from .codec import decrypt, derive_key, encode_json, encrypt
from .config import EXPORT_SCHEMA_VERSION
from .errors import CorruptData
from .schema import Record, serialize_record

EXPORT_MAGIC = b"RECORDVAULT_EXPORT_V1"
SALT_SIZE = 16

_DATETIME_ADAPTER = TypeAdapter(datetime)


@dataclass
class BackupSnapshot:
    """Summary of a local backup written to the substrate."""
    created_at: datetime
    record_count: int
    checksum: str
    schema_version: int = EXPORT_SCHEMA_VERSION

    def to_dict(self) -> Dict[str, Any]:
        """Convert snapshot to dictionary for JSON serialization."""
        data = asdict(self)
        data['created_at'] = self.created_at.isoformat()
        return data

    @classmethod
    def from_document(cls, document: Dict[str, Any]) -> 'BackupSnapshot':
        return cls(
            created_at=datetime.fromtimestamp(document["timestamp"] / 1000, tz=timezone.utc),
            record_count=document["recordCount"],
            checksum=document["checksum"],
            schema_version=document["schemaVersion"],
        )


def _checksum_tuples(tuples: Iterable[Tuple[str, int, float]]) -> str:
    payload = encode_json([[record_id, millis, duration] for record_id, millis, duration in tuples])
    return hashlib.sha256(payload).hexdigest()


def calculate_checksum(records: Iterable[Record]) -> str:
    """SHA-256 over the ordered (id, startTime millis, duration) tuples."""
    return _checksum_tuples((r.id, r.start_millis, r.duration) for r in records)


def _raw_tuple(raw: Any) -> Optional[Tuple[str, int, float]]:
    if not isinstance(raw, dict):
        return None
    record_id, start, duration = raw.get("id"), raw.get("startTime"), raw.get("duration")
    if not isinstance(record_id, str) or isinstance(duration, bool) or not isinstance(duration, (int, float)):
        return None
    if start is None or isinstance(start, bool):
        return None
    try:
        start_dt = _DATETIME_ADAPTER.validate_python(start)
    except PydanticValidationError:
        return None
    if start_dt.tzinfo is None:
        start_dt = start_dt.replace(tzinfo=timezone.utc)
    try:
        seconds = float(duration)
    except OverflowError:
        return None
    return record_id.strip().lower(), int(round(start_dt.timestamp() * 1000)), seconds


def calculate_raw_checksum(raw_records: Sequence[Any]) -> Optional[str]:
    """Checksum of wire dicts as exported; None when an entry lacks the checksummed fields."""
    tuples = []
    for raw in raw_records:
        item = _raw_tuple(raw)
        if item is None:
            return None
        tuples.append(item)
    return _checksum_tuples(tuples)


def build_export_document(records: List[Record], now: datetime = None) -> Dict[str, Any]:
    now = now or datetime.now(timezone.utc)
    return {
        "schemaVersion": EXPORT_SCHEMA_VERSION,
        "timestamp": int(now.timestamp() * 1000),
        "recordCount": len(records),
        "checksum": calculate_checksum(records),
        "records": [serialize_record(r) for r in records],
    }


def is_export_document(data: Any) -> bool:
    return isinstance(data, dict) and "records" in data and "checksum" in data


def verify_export_document(document: Dict[str, Any]) -> List[Any]:
    """
    Check version, count and checksum of an export document.

    Returns:
        The raw record list, still unvalidated

    Raises:
        CorruptData: If the document is malformed or its checksum does not match
    """
    version = document.get("schemaVersion")
    if version != EXPORT_SCHEMA_VERSION:
        raise CorruptData(f"Unsupported export schema version: {version!r}")

    raw_records = document.get("records")
    if not isinstance(raw_records, list):
        raise CorruptData("Export document records must be a list")

    if document.get("recordCount") != len(raw_records):
        raise CorruptData(
            f"Export record count mismatch: header says {document.get('recordCount')}, found {len(raw_records)}"
        )

    actual = calculate_raw_checksum(raw_records)
    if actual is None or actual != document.get("checksum"):
        raise CorruptData(f"Export checksum mismatch: expected {document.get('checksum')}, got {actual}")

    return raw_records


def seal_export(plaintext: bytes, installation_key: bytes, passphrase: str = None) -> bytes:
    """Wrap plaintext in an encrypted envelope with a one-line format header."""
    if passphrase:
        salt = secrets.token_bytes(SALT_SIZE)
        key = derive_key(passphrase, salt)
        header = EXPORT_MAGIC + b" pbkdf2 " + salt.hex().encode('ascii') + b"\n"
    else:
        key = installation_key
        header = EXPORT_MAGIC + b" local\n"
    return header + encrypt(plaintext, key)


def is_export_envelope(payload: bytes) -> bool:
    return payload.startswith(EXPORT_MAGIC)


def open_export(payload: bytes, installation_key: bytes, passphrase: str = None) -> bytes:
    """
    Decrypt an export envelope.

    Raises:
        CorruptData: On a bad header, a missing passphrase or failed authentication
    """
    header, sep, body = payload.partition(b"\n")
    if not sep or not header.startswith(EXPORT_MAGIC):
        raise CorruptData("Invalid export file format")

    parts = header.split(b" ")
    mode = parts[1] if len(parts) > 1 else b""

    if mode == b"local" and len(parts) == 2:
        key = installation_key
    elif mode == b"pbkdf2" and len(parts) == 3:
        if not passphrase:
            raise CorruptData("Export is passphrase-protected; a passphrase is required")
        try:
            salt = bytes.fromhex(parts[2].decode('ascii'))
        except (UnicodeDecodeError, ValueError) as e:
            raise CorruptData("Invalid export salt") from e
        key = derive_key(passphrase, salt)
    else:
        raise CorruptData(f"Unknown export key mode: {mode!r}")

    return decrypt(body, key)
