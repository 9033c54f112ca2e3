"""
Encryption utilities for secure credential storage.

Implements AES-256-GCM encryption for Bilibili session cookies at rest.

SECURITY:
- Uses AES-256-GCM for authenticated encryption
- Each encryption uses a unique random 96-bit nonce
- Authentication tag is 128 bits; any tampering fails decryption
- Key must be exactly 32 bytes (256 bits)

Stored format is a single opaque string:

    base64( nonce (12 bytes) || ciphertext || tag (16 bytes) )

Usage:
    from bili_publisher.utils.encryption import CredentialEncryptor

    encryptor = CredentialEncryptor(key_string=os.environ["CREDENTIAL_ENCRYPTION_KEY"])

    blob = encryptor.encrypt_to_blob("SESSDATA=...; bili_jct=...")
    cookie = encryptor.decrypt_blob(blob)
"""

import os
import secrets
import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Tuple, Optional

from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.exceptions import InvalidTag

logger = logging.getLogger(__name__)


# AES-GCM constants
NONCE_SIZE = 12  # 96 bits, recommended for AES-GCM
TAG_SIZE = 16    # 128 bits, standard for AES-GCM
KEY_SIZE = 32    # 256 bits for AES-256

DEFAULT_KEY_ENV_VAR = "CREDENTIAL_ENCRYPTION_KEY"


class EncryptionError(Exception):
    """Raised when encryption fails."""
    pass


class DecryptionError(Exception):
    """Raised when decryption fails (tampered, corrupt, or wrong key)."""
    pass


class InvalidKeyError(Exception):
    """Raised when encryption key is invalid."""
    pass


@dataclass
class EncryptedData:
    """Container for encrypted data with all components."""
    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def to_blob(self) -> str:
        """Pack as base64(nonce || ciphertext || tag)."""
        return base64.b64encode(self.nonce + self.ciphertext + self.tag).decode("ascii")

    @classmethod
    def from_blob(cls, blob: str) -> "EncryptedData":
        """
        Unpack a stored blob.

        Raises:
            DecryptionError: If the blob is not valid base64 or is too short
        """
        try:
            raw = base64.b64decode(blob, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecryptionError("Encrypted blob is not valid base64") from e

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise DecryptionError("Encrypted blob is truncated")

        return cls(
            nonce=raw[:NONCE_SIZE],
            ciphertext=raw[NONCE_SIZE:-TAG_SIZE],
            tag=raw[-TAG_SIZE:],
        )


class CredentialEncryptor:
    """
    AES-256-GCM encryptor for credential storage.

    SECURITY:
    - Key must be 32 bytes (256 bits)
    - Never reuse nonces with the same key
    - Store key securely (never in code or logs)
    """

    def __init__(self, key: Optional[bytes] = None, key_string: Optional[str] = None):
        """
        Initialize encryptor with encryption key.

        Args:
            key: 32-byte encryption key as bytes
            key_string: Base64-encoded or hex-encoded key string

        Raises:
            InvalidKeyError: If key is missing or wrong size
        """
        if key is not None:
            self._key = key
        elif key_string is not None:
            self._key = decode_key_string(key_string)
        else:
            raise InvalidKeyError("Encryption key is required")

        if len(self._key) != KEY_SIZE:
            raise InvalidKeyError(
                f"Encryption key must be {KEY_SIZE} bytes, got {len(self._key)}"
            )

        self._aesgcm = AESGCM(self._key)

    @classmethod
    def from_env(cls, env_var: str = DEFAULT_KEY_ENV_VAR) -> "CredentialEncryptor":
        """
        Build an encryptor from an environment variable.

        Raises:
            InvalidKeyError: If the variable is unset or does not hold a 32-byte key
        """
        key = get_encryption_key_from_env(env_var)
        if key is None:
            raise InvalidKeyError(
                f"{env_var} must hold a base64 or hex encoded {KEY_SIZE}-byte key"
            )
        return cls(key=key)

    @staticmethod
    def generate_key() -> bytes:
        """Generate a new random 256-bit encryption key."""
        return secrets.token_bytes(KEY_SIZE)

    @staticmethod
    def generate_key_string() -> str:
        """Generate a new random encryption key as base64 string."""
        return base64.b64encode(secrets.token_bytes(KEY_SIZE)).decode("utf-8")

    @staticmethod
    def generate_nonce() -> bytes:
        """Generate a new random 12-byte nonce."""
        return secrets.token_bytes(NONCE_SIZE)

    def encrypt(
        self,
        plaintext: str,
        associated_data: Optional[bytes] = None,
    ) -> Tuple[bytes, bytes, bytes]:
        """
        Encrypt a credential string using AES-256-GCM.

        Args:
            plaintext: Raw credential (cookie string or JSON document)
            associated_data: Optional additional data for authentication

        Returns:
            Tuple of (ciphertext, nonce, auth_tag)

        Raises:
            EncryptionError: If encryption fails
        """
        try:
            nonce = self.generate_nonce()

            # AESGCM.encrypt returns ciphertext + tag concatenated
            ciphertext_with_tag = self._aesgcm.encrypt(
                nonce,
                plaintext.encode("utf-8"),
                associated_data,
            )

            return ciphertext_with_tag[:-TAG_SIZE], nonce, ciphertext_with_tag[-TAG_SIZE:]

        except Exception as e:
            # Plaintext is never included in the error
            logger.error("Encryption failed", extra={"error_type": type(e).__name__})
            raise EncryptionError(f"Failed to encrypt data: {type(e).__name__}") from e

    def decrypt(
        self,
        ciphertext: bytes,
        nonce: bytes,
        auth_tag: bytes,
        associated_data: Optional[bytes] = None,
    ) -> str:
        """
        Decrypt a credential string using AES-256-GCM.

        Args:
            ciphertext: Encrypted data
            nonce: Nonce used for encryption (12 bytes)
            auth_tag: Authentication tag (16 bytes)
            associated_data: Optional additional data for authentication

        Returns:
            Decrypted plaintext

        Raises:
            DecryptionError: If decryption or authentication fails
        """
        try:
            plaintext = self._aesgcm.decrypt(
                nonce,
                ciphertext + auth_tag,
                associated_data,
            )
            return plaintext.decode("utf-8")

        except InvalidTag:
            logger.error("Decryption failed: authentication tag mismatch")
            raise DecryptionError(
                "Decryption failed: data may have been tampered with"
            )
        except UnicodeDecodeError as e:
            logger.error("Decryption failed: plaintext is not UTF-8")
            raise DecryptionError("Decrypted data is not valid UTF-8") from e
        except Exception as e:
            logger.error("Decryption failed", extra={"error_type": type(e).__name__})
            raise DecryptionError(f"Failed to decrypt data: {type(e).__name__}") from e

    def encrypt_to_blob(
        self,
        plaintext: str,
        associated_data: Optional[bytes] = None,
    ) -> str:
        """Encrypt and pack into the single opaque storage blob."""
        ciphertext, nonce, tag = self.encrypt(plaintext, associated_data)
        return EncryptedData(ciphertext=ciphertext, nonce=nonce, tag=tag).to_blob()

    def decrypt_blob(
        self,
        blob: str,
        associated_data: Optional[bytes] = None,
    ) -> str:
        """Unpack a storage blob and decrypt it."""
        encrypted = EncryptedData.from_blob(blob)
        return self.decrypt(
            encrypted.ciphertext,
            encrypted.nonce,
            encrypted.tag,
            associated_data,
        )


def decode_key_string(key_string: str) -> bytes:
    """
    Decode key from string format.

    Supports:
    - Base64 encoding (``openssl rand -base64 32``)
    - Hex encoding
    - Raw UTF-8 (if exactly 32 bytes)

    Raises:
        InvalidKeyError: If no encoding yields a 32-byte key
    """
    try:
        decoded = base64.b64decode(key_string, validate=True)
        if len(decoded) == KEY_SIZE:
            return decoded
    except (binascii.Error, ValueError):
        pass

    try:
        decoded = bytes.fromhex(key_string)
        if len(decoded) == KEY_SIZE:
            return decoded
    except ValueError:
        pass

    raw = key_string.encode("utf-8")
    if len(raw) == KEY_SIZE:
        return raw

    raise InvalidKeyError(
        f"Could not decode key string. Expected {KEY_SIZE} bytes after decoding."
    )


def get_encryption_key_from_env(
    env_var: str = DEFAULT_KEY_ENV_VAR,
) -> Optional[bytes]:
    """
    Get encryption key from environment variable.

    Returns:
        Decoded key bytes, or None if not set or malformed
    """
    key_string = os.environ.get(env_var)
    if not key_string:
        return None

    try:
        return decode_key_string(key_string)
    except InvalidKeyError:
        logger.warning(
            f"Environment variable {env_var} does not contain a valid {KEY_SIZE}-byte key"
        )
        return None


def validate_encryption_configured(env_var: str = DEFAULT_KEY_ENV_VAR) -> bool:
    """Return True if a usable encryption key is configured."""
    return get_encryption_key_from_env(env_var) is not None
