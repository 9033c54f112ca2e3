"""
Credential redaction and audit logging utilities.

SECURITY REQUIREMENTS:
- Cookie values (SESSDATA, bili_jct, ...) NEVER appear in logs
- ALLOWED in logs: account_id, display_name
- All vault operations are logged for an audit trail

Audit Events:
- credential.stored
- credential.loaded
- credential.recovered
- credential.revoked
- credential.error

Usage:
    from bili_publisher.credentials.redaction import CredentialAuditLogger, AuditEventType

    audit = CredentialAuditLogger()
    audit.log(
        event_type=AuditEventType.CREDENTIAL_STORED,
        account_id="42",
        display_name="some uploader",
    )
"""

import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Dict

logger = logging.getLogger(__name__)

REDACTED_VALUE = "[REDACTED]"


class AuditEventType(str, Enum):
    """Credential audit event types."""
    CREDENTIAL_STORED = "credential.stored"
    CREDENTIAL_LOADED = "credential.loaded"
    CREDENTIAL_RECOVERED = "credential.recovered"
    CREDENTIAL_REVOKED = "credential.revoked"
    CREDENTIAL_ERROR = "credential.error"


# Bilibili cookie pairs and generic bearer material
CREDENTIAL_SECRET_PATTERNS = [
    re.compile(r"(SESSDATA=)[^;\s\"']+", re.IGNORECASE),
    re.compile(r"(bili_jct=)[^;\s\"']+", re.IGNORECASE),
    re.compile(r"(DedeUserID__ckMd5=)[^;\s\"']+", re.IGNORECASE),
    re.compile(r"(sid=)[^;\s\"']+"),
    re.compile(r"(access_token[\"']?\s*[:=]\s*[\"']?)[^,;\s\"'}]+", re.IGNORECASE),
    re.compile(r"(refresh_token[\"']?\s*[:=]\s*[\"']?)[^,;\s\"'}]+", re.IGNORECASE),
]

# Key names whose values are always secret
SECRET_KEY_MARKERS = (
    "cookie", "token", "secret", "password", "sessdata", "bili_jct",
    "payload", "plaintext",
)

# Key names that look secret but are safe per logging policy
ALLOWED_KEYS = ("account_id", "display_name", "username", "token_generation")


def is_credential_secret_key(key: str) -> bool:
    """
    Check if a key name indicates a credential secret.

    Args:
        key: The key name to check

    Returns:
        True if the key likely contains a secret
    """
    if key in ALLOWED_KEYS:
        return False
    key_lower = key.lower()
    return any(marker in key_lower for marker in SECRET_KEY_MARKERS)


def redact_credential_value(value: Any) -> Any:
    """
    Redact secret patterns from a credential value.

    The cookie name is kept so that logs still show which pair was present.
    """
    if not isinstance(value, str):
        return value

    result = value
    for pattern in CREDENTIAL_SECRET_PATTERNS:
        result = pattern.sub(lambda m: m.group(1) + REDACTED_VALUE, result)
    return result


def redact_credential_data(data: Any, _depth: int = 0) -> Any:
    """
    Recursively redact credential secrets from a data structure.

    Use this before logging any upstream payload that may carry cookies.
    """
    # Prevent infinite recursion
    if _depth > 10:
        return data

    if isinstance(data, dict):
        result = {}
        for key, value in data.items():
            if isinstance(key, str) and is_credential_secret_key(key):
                result[key] = REDACTED_VALUE
            else:
                result[key] = redact_credential_data(value, _depth + 1)
        return result

    if isinstance(data, list):
        return [redact_credential_data(item, _depth + 1) for item in data]

    if isinstance(data, str):
        return redact_credential_value(data)

    return data


class CredentialAuditLogger:
    """
    Structured audit logger for vault operations.

    SECURITY:
    - Cookies are NEVER logged
    - account_id and display_name ARE logged
    """

    def __init__(self, logger_name: str = "bili_publisher.credentials.audit"):
        self.logger = logging.getLogger(logger_name)

    def log(
        self,
        event_type: AuditEventType,
        account_id: str,
        display_name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> None:
        """
        Log an audit event.

        Args:
            event_type: Type of audit event
            account_id: Bilibili account id
            display_name: Display name (allowed in logs)
            metadata: Additional context (will be redacted)
        """
        safe_metadata = redact_credential_data(metadata) if metadata else {}

        audit_record = {
            "event_type": event_type.value,
            "audit_timestamp": datetime.now(timezone.utc).isoformat(),
            "account_id": account_id,
            "display_name": display_name,
            **safe_metadata,
        }

        self.logger.info(
            f"Credential audit: {event_type.value}",
            extra=audit_record
        )

    def log_error(
        self,
        account_id: str,
        error: str,
        display_name: Optional[str] = None,
    ) -> None:
        """Log a credential error (message is redacted)."""
        self.log(
            event_type=AuditEventType.CREDENTIAL_ERROR,
            account_id=account_id,
            display_name=display_name,
            metadata={"error": redact_credential_value(error)},
        )


class CredentialLoggingFilter(logging.Filter):
    """
    Logging filter that redacts credential secrets from log records.

    Usage:
        handler.addFilter(CredentialLoggingFilter())
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact_credential_value(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = redact_credential_data(record.args)
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    redact_credential_value(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        # Extra fields
        for key in list(record.__dict__.keys()):
            if key in ("msg", "args"):
                continue
            if is_credential_secret_key(key):
                setattr(record, key, REDACTED_VALUE)
            elif isinstance(getattr(record, key), str):
                setattr(record, key, redact_credential_value(getattr(record, key)))

        return True


def setup_credential_logging(level: int = logging.INFO) -> None:
    """
    Configure credential-safe logging.

    Call this during application startup. The filter is attached to the
    root handlers so that records from every module pass through it.
    """
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )

    credential_filter = CredentialLoggingFilter()
    for handler in root.handlers:
        if not any(isinstance(f, CredentialLoggingFilter) for f in handler.filters):
            handler.addFilter(credential_filter)

    logger.info("Credential logging configured with redaction filter")
