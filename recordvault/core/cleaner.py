"""
Data cleaning over already-validated records: dedupe, canonical order and
silent anomaly filtering.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional

from .config import MAX_DURATION_SEC, RETENTION_DAYS
from .schema import Record
from ..util.logging import StructuredLogger


def dedupe(records: Iterable[Record], logger: Optional[StructuredLogger] = None) -> List[Record]:
    """Keep the first occurrence of each id, in input order."""
    seen = set()
    result = []
    for record in records:
        if record.id in seen:
            if logger:
                logger.log_record_operation("dedupe", record.id, status="dropped")
            continue
        seen.add(record.id)
        result.append(record)
    return result


def sort_canonical(records: Iterable[Record]) -> List[Record]:
    """Most recent first. sorted() is stable, so ties keep input order."""
    return sorted(records, key=lambda r: r.start_time, reverse=True)


def clean_anomalies(records: Iterable[Record], now: datetime = None,
                    retention_days: int = RETENTION_DAYS,
                    max_duration_sec: float = MAX_DURATION_SEC,
                    logger: Optional[StructuredLogger] = None) -> List[Record]:
    """Drop future-dated, expired and over-long records. Never raises."""
    now = now or datetime.now(timezone.utc)
    horizon = now - timedelta(days=retention_days)
    kept = []

    for record in records:
        reason = None
        if record.start_time > now:
            reason = "future_start_time"
        elif record.start_time < horizon:
            reason = "beyond_retention"
        elif record.duration > max_duration_sec:
            reason = "duration_too_long"

        if reason is None:
            kept.append(record)
        elif logger:
            logger.log_anomaly_dropped(record.id, reason)

    return kept
