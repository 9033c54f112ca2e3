"""
BiliCredential model - Encrypted storage for Bilibili session cookies.

SECURITY REQUIREMENTS:
- The cookie is encrypted at rest (AES-256-GCM, see utils.encryption)
- No plaintext cookie outside process memory
- encrypted_payload is NEVER logged or returned by the API

Lifecycle:
- Created on first successful QR login
- Payload and expires_at refreshed on every subsequent QR login
- Deleted when biliup/Bilibili rejects the cookie, or on explicit logout
- Expired rows are treated as absent but are not swept eagerly
"""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Integer, String, DateTime, Text, Index

from bili_publisher.db_base import Base
from bili_publisher.models.base import TimestampMixin


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


class BiliCredential(Base, TimestampMixin):
    """
    One encrypted Bilibili session per external account id.

    SECURITY:
    - encrypted_payload is base64(nonce || ciphertext || tag)
    - display_name is allowed in logs
    """

    __tablename__ = "bili_credentials"

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
        comment="Surrogate primary key"
    )

    account_id = Column(
        String(64),
        nullable=False,
        unique=True,
        comment="Bilibili account id (mid)"
    )

    display_name = Column(
        String(128),
        nullable=True,
        comment="Bilibili display name, best-effort"
    )

    # Encrypted cookie - NEVER log this value
    encrypted_payload = Column(
        Text,
        nullable=False,
        comment="AES-256-GCM encrypted cookie - NEVER log plaintext"
    )

    expires_at = Column(
        DateTime(timezone=True),
        nullable=True,
        comment="When the stored cookie should be treated as absent (NULL = never)"
    )

    __table_args__ = (
        Index("idx_bili_credentials_expires_at", "expires_at"),
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True if expires_at is set and not in the future."""
        expires_at = as_utc(self.expires_at)
        if expires_at is None:
            return False
        return expires_at <= (now or datetime.now(timezone.utc))

    def __repr__(self) -> str:
        return (
            f"<BiliCredential(account_id={self.account_id}, "
            f"display_name={self.display_name}, expires_at={self.expires_at})>"
        )
