"""
Structured operation logging for the record store.
Record contents never reach the log, only ids, counts and field names.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['notes', 'location', 'tags', 'value', 'secret', 'key', 'payload']


class StructuredLogger:
    """Structured logger for store, cache and validation operations."""

    def __init__(self, name: str = "recordvault", debug: bool = False):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG if debug else logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None, level: int = logging.INFO):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {details}"

        self.logger.log(level, message)

    def log_record_operation(self, operation: str, record_id: str = None, status: str = "success", details: Dict[str, Any] = None):
        """Log a record store operation."""
        log_details = {}
        if record_id is not None:
            log_details["record_id"] = record_id
        if details:
            log_details.update(sanitize_payload(details))

        level = logging.INFO if status == "success" else logging.WARNING
        self.log_operation(f"store.{operation}", status, log_details, level=level)

    def log_validation_rejected(self, operation: str, errors: List[Any], source_index: int = None):
        """Log validation errors without leaking field values."""
        sanitized_errors = []
        for error in errors:
            if isinstance(error, dict):
                sanitized_error = {k: v for k, v in error.items() if k not in ('value', 'input')}
                sanitized_errors.append(sanitized_error)
            else:
                sanitized_errors.append(str(error)[:100])

        log_details = {
            "errors": sanitized_errors,
            "error_count": len(sanitized_errors)
        }
        if source_index is not None:
            log_details["index"] = source_index

        self.log_operation(f"validation.{operation}", "rejected", log_details, level=logging.WARNING)

    def log_anomaly_dropped(self, record_id: str, reason: str):
        """Log a record dropped by anomaly cleaning."""
        self.log_operation("cleaner.anomaly", "dropped", {"record_id": record_id, "reason": reason},
                           level=logging.DEBUG)

    def log_cache_event(self, event: str, key: str, details: Dict[str, Any] = None):
        """Log a cache event at debug level."""
        log_details = {"key": key}
        if details:
            log_details.update(details)

        self.log_operation(f"cache.{event}", "ok", log_details, level=logging.DEBUG)

    def audit_event(self, event_type: str, identifiers: Dict[str, Any], payload: Dict[str, Any] = None):
        """General audit event logging with privacy controls."""
        log_details = identifiers.copy() if identifiers else {}

        if payload:
            log_details["payload"] = sanitize_payload(payload)

        self.log_operation(event_type.replace(".", "_"), "audit", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Sanitize payloads for audit logging."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
