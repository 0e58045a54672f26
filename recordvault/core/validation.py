"""
Record validation - proves raw, untyped input conforms to the Record schema.

Pure functions: nothing here logs or touches storage. Callers decide what to
do with rejected entries.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from .config import DEFAULT_SETTINGS, StoreSettings
from .errors import ValidationError
from .schema import MODEL_ERROR_FIELDS, Record


def _field_name(error: Dict[str, Any]) -> Optional[str]:
    loc = error.get("loc") or ()
    if not loc:
        return MODEL_ERROR_FIELDS.get(error.get("type"))
    return ".".join(str(part) for part in loc)


def _message(error: Dict[str, Any]) -> str:
    msg = error.get("msg", "invalid value")
    if msg.startswith("Value error, "):
        msg = msg[len("Value error, "):]
    return msg


def to_validation_error(exc: PydanticValidationError) -> ValidationError:
    """Translate a pydantic error into the store's ValidationError, keeping field detail."""
    errors = [{"field": _field_name(e), "message": _message(e)} for e in exc.errors()]
    first = errors[0] if errors else {"field": None, "message": "invalid record"}
    summary = f"{first['field']}: {first['message']}" if first["field"] else first["message"]
    return ValidationError(f"Record validation failed: {summary}", field=first["field"], errors=errors)


def build_context(now: datetime = None, settings: StoreSettings = None, trusted: bool = False) -> Dict[str, Any]:
    return {
        "now": now or datetime.now(timezone.utc),
        "settings": settings or DEFAULT_SETTINGS,
        "trusted": trusted,
    }


def validate_one(raw: Any, now: datetime = None, settings: StoreSettings = None) -> Record:
    """
    Validate a single raw record.

    Args:
        raw: Untrusted input, expected to be a mapping with wire or attribute names
        now: Reference time for future/retention checks (defaults to current UTC time)
        settings: Store settings supplying the sanity bounds

    Returns:
        Record: The normalized record

    Raises:
        ValidationError: If any field rule or the endTime/startTime rule fails
    """
    if isinstance(raw, Record):
        raw = raw.model_dump(by_alias=True)
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Record must be an object, got {type(raw).__name__}", field=None)

    try:
        return Record.model_validate(dict(raw), context=build_context(now, settings))
    except PydanticValidationError as e:
        raise to_validation_error(e) from e


def validate_many(raw: Sequence[Any], now: datetime = None,
                  settings: StoreSettings = None) -> Tuple[List[Record], List[Tuple[int, ValidationError]]]:
    """
    Validate every element independently; never stops at the first failure.

    Returns:
        (valid records in input order, [(index, ValidationError)] for each rejected element)
    """
    if isinstance(raw, (str, bytes, Mapping)) or not isinstance(raw, Sequence):
        raise ValidationError("Record collection must be a list", field=None)

    now = now or datetime.now(timezone.utc)
    valid: List[Record] = []
    errors: List[Tuple[int, ValidationError]] = []

    for index, item in enumerate(raw):
        try:
            valid.append(validate_one(item, now=now, settings=settings))
        except ValidationError as e:
            errors.append((index, e))

    return valid, errors
