"""
Record schema - the canonical unit persisted by the store.

Wire names are camelCase (``startTime``), attributes are snake_case
(``start_time``). Time-relative rules (future start, retention horizon) read
``now`` and the active ``StoreSettings`` from the validation context.
"""

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, TypeAdapter, ValidationInfo, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError

from .config import DEFAULT_SETTINGS, StoreSettings

UUID_PATTERN = re.compile(
    r'^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$',
    re.IGNORECASE,
)

# Errors raised from model validators carry no location; map their type to a field.
MODEL_ERROR_FIELDS = {"end_before_start": "endTime"}


def _context_now(info: ValidationInfo) -> datetime:
    context = info.context or {}
    return context.get("now") or datetime.now(timezone.utc)


def _context_settings(info: ValidationInfo) -> StoreSettings:
    context = info.context or {}
    return context.get("settings") or DEFAULT_SETTINGS


def _is_trusted(info: ValidationInfo) -> bool:
    return bool((info.context or {}).get("trusted"))


def _to_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _reject_non_time(value: Any, name: str) -> Any:
    if isinstance(value, bool) or not isinstance(value, (str, int, float, datetime)):
        raise ValueError(f'{name} must be an ISO-8601 string, epoch number or datetime')
    if isinstance(value, float) and not math.isfinite(value):
        raise ValueError(f'{name} must be a finite timestamp')
    return value


def _rating(value: Any, name: str) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f'{name} must be an integer between 1 and 5')
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f'{name} must be an integer between 1 and 5')
        value = int(value)
    if not 1 <= value <= 5:
        raise ValueError(f'{name} must be an integer between 1 and 5')
    return value


def _capped_text(value: Any, name: str, max_length: int) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f'{name} must be a string')
    cleaned = value.strip()
    if not cleaned:
        return None
    return cleaned[:max_length]


class Record(BaseModel):
    """One logged activity event."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra='ignore',
    )

    id: str
    start_time: datetime
    end_time: Optional[datetime] = None
    duration: float
    mood: Optional[int] = None
    energy: Optional[int] = None
    tags: Optional[List[str]] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    is_private: bool = False

    @field_validator('id', mode='before')
    @classmethod
    def id_must_be_uuid(cls, v):
        if not isinstance(v, str) or not UUID_PATTERN.match(v.strip()):
            raise ValueError('id must be a UUID string')
        return v.strip().lower()

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def time_must_be_timestamp(cls, v, info: ValidationInfo):
        if v is None and info.field_name == 'end_time':
            return None
        return _reject_non_time(v, to_camel(info.field_name))

    @field_validator('start_time')
    @classmethod
    def start_time_within_horizon(cls, v, info: ValidationInfo):
        v = _to_utc(v)
        if _is_trusted(info):
            return v
        now = _context_now(info)
        if v > now:
            raise ValueError('startTime cannot be in the future')
        if v < now - timedelta(days=_context_settings(info).retention_days):
            raise ValueError('startTime is older than the retention horizon')
        return v

    @field_validator('end_time')
    @classmethod
    def end_time_to_utc(cls, v):
        return _to_utc(v) if v is not None else None

    @field_validator('duration', mode='before')
    @classmethod
    def duration_must_be_sane(cls, v, info: ValidationInfo):
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            raise ValueError('duration must be a number of seconds')
        try:
            seconds = float(v)
        except OverflowError:
            raise ValueError('duration must be a finite, non-negative number') from None
        if not math.isfinite(seconds) or seconds < 0:
            raise ValueError('duration must be a finite, non-negative number')
        if not _is_trusted(info) and seconds > _context_settings(info).max_duration_sec:
            raise ValueError('duration exceeds the maximum allowed length')
        return seconds

    @field_validator('mood', 'energy', mode='before')
    @classmethod
    def rating_must_be_in_range(cls, v, info: ValidationInfo):
        return _rating(v, info.field_name)

    @field_validator('tags', mode='before')
    @classmethod
    def tags_must_be_non_empty_strings(cls, v):
        if v is None:
            return None
        if not isinstance(v, (list, tuple)):
            raise ValueError('tags must be a list of strings')
        cleaned = []
        for tag in v:
            if not isinstance(tag, str) or not tag.strip():
                raise ValueError('tags must be non-empty strings')
            cleaned.append(tag.strip())
        return cleaned

    @field_validator('location', mode='before')
    @classmethod
    def location_trimmed(cls, v, info: ValidationInfo):
        return _capped_text(v, 'location', _context_settings(info).location_max_length)

    @field_validator('notes', mode='before')
    @classmethod
    def notes_trimmed(cls, v, info: ValidationInfo):
        return _capped_text(v, 'notes', _context_settings(info).notes_max_length)

    @field_validator('is_private', mode='before')
    @classmethod
    def is_private_must_be_bool(cls, v):
        if v is None:
            return False
        if not isinstance(v, bool):
            raise ValueError('isPrivate must be a boolean')
        return v

    @model_validator(mode='after')
    def end_after_start(self):
        if self.end_time is not None and self.end_time <= self.start_time:
            raise PydanticCustomError('end_before_start', 'endTime must be after startTime')
        return self

    @property
    def start_millis(self) -> int:
        """startTime as integer epoch milliseconds."""
        return int(round(self.start_time.timestamp() * 1000))


RECORD_LIST_ADAPTER = TypeAdapter(List[Record])


def serialize_record(record: Record) -> Dict[str, Any]:
    """Convert a record to its JSON-safe wire dict (camelCase, absent fields omitted)."""
    return record.model_dump(mode='json', by_alias=True, exclude_none=True)
