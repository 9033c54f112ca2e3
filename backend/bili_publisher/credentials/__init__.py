"""
Credentials module for Bilibili session cookies.

This module provides:
- Encrypted, durable storage of cookies keyed by account id
- Audit logging with automatic redaction

SECURITY:
- Cookies are encrypted at rest using CREDENTIAL_ENCRYPTION_KEY
- No plaintext cookies outside process memory
- Cookies NEVER appear in logs or API responses
- Allowed in logs: account_id, display_name

Usage:
    from bili_publisher.credentials import CredentialVault

    vault = CredentialVault(db_session, encryptor)
    vault.save("42", "some uploader", cookie_json)
"""

from bili_publisher.credentials.vault import (
    CredentialVault,
    CredentialVaultError,
    CredentialNotFoundError,
    CredentialExpiredError,
    CredentialMetadata,
)
from bili_publisher.credentials.redaction import (
    redact_credential_data,
    redact_credential_value,
    CredentialAuditLogger,
    CredentialLoggingFilter,
    AuditEventType,
    setup_credential_logging,
)

__all__ = [
    # Vault
    "CredentialVault",
    "CredentialVaultError",
    "CredentialNotFoundError",
    "CredentialExpiredError",
    "CredentialMetadata",
    # Redaction & Audit
    "redact_credential_data",
    "redact_credential_value",
    "CredentialAuditLogger",
    "CredentialLoggingFilter",
    "AuditEventType",
    "setup_credential_logging",
]
