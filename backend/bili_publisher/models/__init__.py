"""
Database models for the credential vault.
"""

from bili_publisher.models.base import TimestampMixin
from bili_publisher.models.bili_credential import BiliCredential

__all__ = [
    "TimestampMixin",
    "BiliCredential",
]
