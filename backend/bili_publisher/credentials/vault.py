"""
Credential vault for Bilibili session cookies.

The vault is the durable source of truth for every account's cookie. The
biliup container keeps its own copy on disk, but that copy is lost whenever
the container restarts and can always be rebuilt from here, never the
reverse.

SECURITY REQUIREMENTS:
- Cookies are encrypted at rest before storage
- No plaintext cookies outside process memory
- Decryption failures are reported as such, never as "not found"

Usage:
    vault = CredentialVault(db_session, CredentialEncryptor.from_env())

    vault.save("42", "some uploader", cookie_json)
    cookie_json = vault.load("42")
    vault.delete("42")
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from bili_publisher.config.settings import DEFAULT_CREDENTIAL_TTL_DAYS
from bili_publisher.models.bili_credential import BiliCredential, as_utc
from bili_publisher.utils.encryption import (
    CredentialEncryptor,
    EncryptionError,
    DecryptionError,
)
from bili_publisher.credentials.redaction import CredentialAuditLogger, AuditEventType

logger = logging.getLogger(__name__)


class CredentialVaultError(Exception):
    """Base exception for credential vault errors."""
    pass


class CredentialNotFoundError(CredentialVaultError):
    """No credential stored for the account."""
    pass


class CredentialExpiredError(CredentialVaultError):
    """
    Stored credential is expired or no longer accepted upstream.

    Callers treat this as "please re-login".
    """
    pass


@dataclass
class CredentialMetadata:
    """
    Credential metadata safe for API responses and logging.

    SECURITY: Does NOT include the cookie.
    """
    account_id: str
    display_name: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    expires_at: Optional[datetime]


class CredentialVault:
    """
    Encrypted, durable store of Bilibili cookies keyed by account id.

    Every write commits immediately: operations are single-row and never
    need to participate in a wider transaction.
    """

    def __init__(
        self,
        db_session: Session,
        encryptor: CredentialEncryptor,
        ttl_days: int = DEFAULT_CREDENTIAL_TTL_DAYS,
    ):
        """
        Initialize credential vault.

        Args:
            db_session: Database session
            encryptor: AES-256-GCM encryptor holding the vault key
            ttl_days: Lifetime given to a cookie on every save
        """
        self.db = db_session
        self.encryptor = encryptor
        self.ttl_days = ttl_days
        self.audit = CredentialAuditLogger()

    def save(self, account_id: str, display_name: Optional[str], raw_credential: str) -> None:
        """
        Encrypt and upsert a credential, extending its expiry.

        SECURITY:
        - Cookie is encrypted before it reaches the session
        - Plaintext is not logged

        Args:
            account_id: Bilibili account id
            display_name: Display name, best-effort
            raw_credential: Plaintext cookie document

        Raises:
            ValueError: If account_id or raw_credential is empty
            EncryptionError: If encryption fails (nothing is written)
        """
        if not account_id:
            raise ValueError("account_id is required")
        if not raw_credential:
            raise ValueError("Cannot store empty credential")

        # Raises EncryptionError before any row is touched
        encrypted = self.encryptor.encrypt_to_blob(raw_credential)

        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(days=self.ttl_days)

        record = self._get_record(account_id)
        action = "updated"
        if record is None:
            action = "created"
            record = BiliCredential(account_id=account_id)
            self.db.add(record)

        record.encrypted_payload = encrypted
        record.expires_at = expires_at
        record.updated_at = now
        if display_name:
            record.display_name = display_name

        self.db.commit()

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_STORED,
            account_id=account_id,
            display_name=record.display_name,
            metadata={"action": action, "expires_at": expires_at.isoformat()},
        )

        logger.info(
            "Credential saved",
            extra={
                "account_id": account_id,
                "action": action,
                "expires_at": expires_at.isoformat(),
            }
        )

    def load(self, account_id: str) -> str:
        """
        Get the decrypted credential for use.

        SECURITY: The returned value must NEVER be logged.

        Raises:
            CredentialNotFoundError: If no record exists
            CredentialExpiredError: If the record is past expires_at
            DecryptionError: If the blob is tampered, corrupt, or the key changed
        """
        record = self._get_record(account_id)
        if record is None:
            raise CredentialNotFoundError(f"No credential stored for account: {account_id}")

        if record.is_expired():
            raise CredentialExpiredError(
                f"Credential expired for account: {account_id}, please re-login"
            )

        try:
            plaintext = self.encryptor.decrypt_blob(record.encrypted_payload)
        except DecryptionError:
            self.audit.log_error(
                account_id=account_id,
                error="stored credential failed to decrypt",
                display_name=record.display_name,
            )
            raise

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_LOADED,
            account_id=account_id,
            display_name=record.display_name,
        )
        return plaintext

    def is_valid(self, account_id: str) -> bool:
        """
        True iff a record exists and has not expired.

        Pure existence/expiry check; does not decrypt or touch upstream.
        """
        record = self._get_record(account_id)
        if record is None:
            return False
        return not record.is_expired()

    def delete(self, account_id: str, reason: str = "logout") -> None:
        """
        Remove the credential. Idempotent.

        Args:
            account_id: Bilibili account id
            reason: Why the credential is being removed (for the audit trail)
        """
        record = self._get_record(account_id)
        if record is None:
            logger.debug(
                "Credential already absent",
                extra={"account_id": account_id, "reason": reason},
            )
            return

        display_name = record.display_name
        self.db.delete(record)
        self.db.commit()

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_REVOKED,
            account_id=account_id,
            display_name=display_name,
            metadata={"reason": reason},
        )

        logger.info(
            "Credential deleted",
            extra={"account_id": account_id, "reason": reason},
        )

    def get_metadata(self, account_id: str) -> Optional[CredentialMetadata]:
        """
        Get metadata for a valid credential, or None if absent or expired.

        SECURITY: Does NOT include the cookie.
        """
        record = self._get_record(account_id)
        if record is None or record.is_expired():
            return None

        return CredentialMetadata(
            account_id=record.account_id,
            display_name=record.display_name,
            created_at=as_utc(record.created_at),
            updated_at=as_utc(record.updated_at),
            expires_at=as_utc(record.expires_at),
        )

    def update_display_name(self, account_id: str, display_name: str) -> bool:
        """
        Correct a stale display name without touching expiry.

        Returns:
            True if a record was updated
        """
        record = self._get_record(account_id)
        if record is None or not display_name or record.display_name == display_name:
            return False

        record.display_name = display_name
        self.db.commit()
        return True

    def _get_record(self, account_id: str) -> Optional[BiliCredential]:
        return self.db.query(BiliCredential).filter(
            BiliCredential.account_id == account_id,
        ).first()


__all__ = [
    "CredentialVault",
    "CredentialVaultError",
    "CredentialNotFoundError",
    "CredentialExpiredError",
    "CredentialMetadata",
    "EncryptionError",
    "DecryptionError",
]
