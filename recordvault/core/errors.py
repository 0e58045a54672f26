"""Error taxonomy for the record store."""

from typing import Any, Dict, List, Optional


class RecordStoreError(Exception):
    """Base class for every error raised by the record store."""
    pass


class ValidationError(RecordStoreError):
    """Malformed or out-of-range record input.

    ``field`` names the first failing field (``None`` when the input is not a
    record at all); ``errors`` keeps every ``{"field", "message"}`` pair found.
    """

    def __init__(self, message: str, field: Optional[str] = None, errors: List[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.errors = errors if errors is not None else [{"field": field, "message": message}]

    def __repr__(self):
        return f"ValidationError(field={self.field!r}, message={self.message!r})"


class DuplicateRecord(ValidationError):
    """A save supplied an id that already exists in the collection."""

    def __init__(self, record_id: str):
        super().__init__(f"record {record_id} already exists; use update to change it", field="id")
        self.record_id = record_id


class CorruptData(RecordStoreError):
    """Ciphertext or payload does not decode to well-formed data."""
    pass


class NotFound(RecordStoreError):
    """Update, lookup or restore target is missing."""
    pass


class StorageUnavailable(RecordStoreError):
    """The persistence substrate cannot be reached."""
    pass
