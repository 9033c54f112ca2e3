"""
Credential vault tests.

CRITICAL: These tests verify:
1. Cookies are encrypted at rest
2. Expired records are reported as expired, not as missing
3. Tampered records fail with DecryptionError, not as missing
4. Upsert keeps one row per account
"""

import base64
import logging
from datetime import datetime, timedelta, timezone

import pytest

from bili_publisher.credentials.vault import (
    CredentialExpiredError,
    CredentialNotFoundError,
    CredentialVault,
)
from bili_publisher.models.bili_credential import BiliCredential, as_utc
from bili_publisher.utils.encryption import DecryptionError, EncryptionError


def _record(db_session, account_id="42") -> BiliCredential:
    return db_session.query(BiliCredential).filter(
        BiliCredential.account_id == account_id,
    ).one()


# ============================================================================
# TEST SUITE: SAVE / LOAD
# ============================================================================

class TestSaveLoad:
    """Basic persistence behaviour."""

    def test_save_then_load(self, vault, sample_cookie):
        vault.save("42", "uploader", sample_cookie)
        assert vault.load("42") == sample_cookie

    def test_payload_encrypted_at_rest(self, vault, db_session, sample_cookie):
        vault.save("42", "uploader", sample_cookie)

        stored = _record(db_session).encrypted_payload
        assert "fake-sessdata-not-real" not in stored
        assert stored != sample_cookie

    def test_expiry_set_to_ttl(self, vault, db_session, sample_cookie):
        before = datetime.now(timezone.utc)
        vault.save("42", "uploader", sample_cookie)

        expires_at = as_utc(_record(db_session).expires_at)
        assert before + timedelta(days=29, hours=23) < expires_at
        assert expires_at <= datetime.now(timezone.utc) + timedelta(days=30)

    def test_upsert_keeps_single_row(self, vault, db_session, sample_cookie):
        vault.save("42", "old name", "first-cookie")
        vault.save("42", "new name", sample_cookie)

        rows = db_session.query(BiliCredential).filter(BiliCredential.account_id == "42").all()
        assert len(rows) == 1
        assert rows[0].display_name == "new name"
        assert vault.load("42") == sample_cookie

    def test_upsert_without_name_keeps_previous_name(self, vault, db_session):
        vault.save("42", "uploader", "first-cookie")
        vault.save("42", None, "second-cookie")

        assert _record(db_session).display_name == "uploader"

    def test_upsert_extends_expiry(self, vault, db_session):
        vault.save("42", "uploader", "cookie")
        record = _record(db_session)
        record.expires_at = datetime.now(timezone.utc) + timedelta(days=1)
        db_session.commit()

        vault.save("42", "uploader", "cookie")

        assert as_utc(_record(db_session).expires_at) > datetime.now(timezone.utc) + timedelta(days=29)

    def test_accounts_are_independent(self, vault):
        vault.save("1", "a", "cookie-1")
        vault.save("2", "b", "cookie-2")

        assert vault.load("1") == "cookie-1"
        assert vault.load("2") == "cookie-2"

    @pytest.mark.parametrize("account_id,cookie", [("", "cookie"), ("42", "")])
    def test_empty_input_rejected(self, vault, account_id, cookie):
        with pytest.raises(ValueError):
            vault.save(account_id, "name", cookie)

    def test_encryption_failure_writes_nothing(self, db_session, encryptor, monkeypatch):
        vault = CredentialVault(db_session, encryptor)

        def fail(*args, **kwargs):
            raise EncryptionError("boom")

        monkeypatch.setattr(encryptor, "encrypt_to_blob", fail)

        with pytest.raises(EncryptionError):
            vault.save("42", "uploader", "cookie")
        assert db_session.query(BiliCredential).count() == 0

    def test_custom_ttl(self, db_session, encryptor):
        vault = CredentialVault(db_session, encryptor, ttl_days=1)
        vault.save("42", "uploader", "cookie")

        assert as_utc(_record(db_session).expires_at) < datetime.now(timezone.utc) + timedelta(days=2)


# ============================================================================
# TEST SUITE: EXPIRY VS NOT FOUND
# ============================================================================

class TestExpiry:
    """A present-but-expired record is Expired, never NotFound."""

    def test_missing_is_not_found(self, vault):
        assert vault.is_valid("missing") is False
        with pytest.raises(CredentialNotFoundError):
            vault.load("missing")

    def test_one_second_past_is_expired(self, vault, db_session):
        vault.save("42", "uploader", "cookie")
        record = _record(db_session)
        record.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        db_session.commit()

        assert vault.is_valid("42") is False
        with pytest.raises(CredentialExpiredError):
            vault.load("42")

    def test_expired_record_not_deleted_eagerly(self, vault, db_session):
        vault.save("42", "uploader", "cookie")
        record = _record(db_session)
        record.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        db_session.commit()

        with pytest.raises(CredentialExpiredError):
            vault.load("42")
        assert db_session.query(BiliCredential).count() == 1

    def test_null_expiry_never_expires(self, vault, db_session):
        vault.save("42", "uploader", "cookie")
        record = _record(db_session)
        record.expires_at = None
        db_session.commit()

        assert vault.is_valid("42") is True
        assert vault.load("42") == "cookie"

    def test_metadata_hidden_when_expired(self, vault, db_session):
        vault.save("42", "uploader", "cookie")
        record = _record(db_session)
        record.expires_at = datetime.now(timezone.utc) - timedelta(minutes=5)
        db_session.commit()

        assert vault.get_metadata("42") is None


# ============================================================================
# TEST SUITE: TAMPER DETECTION
# ============================================================================

class TestTamperDetection:
    """Corrupt rows surface as DecryptionError."""

    @pytest.mark.parametrize("position", [0, 12, -17, -1])
    def test_flipped_bit_fails_load(self, vault, db_session, sample_cookie, position):
        vault.save("42", "uploader", sample_cookie)
        record = _record(db_session)
        raw = bytearray(base64.b64decode(record.encrypted_payload))
        raw[position] ^= 0x80
        record.encrypted_payload = base64.b64encode(bytes(raw)).decode("ascii")
        db_session.commit()

        with pytest.raises(DecryptionError):
            vault.load("42")

    def test_wrong_key_is_decryption_error(self, db_session, encryptor, sample_cookie):
        from bili_publisher.utils.encryption import CredentialEncryptor

        CredentialVault(db_session, encryptor).save("42", "uploader", sample_cookie)
        rotated = CredentialVault(db_session, CredentialEncryptor(key=CredentialEncryptor.generate_key()))

        with pytest.raises(DecryptionError):
            rotated.load("42")


# ============================================================================
# TEST SUITE: DELETE / METADATA
# ============================================================================

class TestDeleteAndMetadata:

    def test_delete_is_idempotent(self, vault):
        vault.save("42", "uploader", "cookie")

        vault.delete("42")
        vault.delete("42")

        assert vault.is_valid("42") is False

    def test_delete_missing_is_noop(self, vault):
        vault.delete("never-stored")

    def test_metadata_excludes_cookie(self, vault, sample_cookie):
        vault.save("42", "uploader", sample_cookie)

        metadata = vault.get_metadata("42")

        assert metadata.account_id == "42"
        assert metadata.display_name == "uploader"
        assert metadata.expires_at.tzinfo is not None
        assert "fake-sessdata" not in repr(metadata)

    def test_update_display_name(self, vault, db_session):
        vault.save("42", "old", "cookie")
        expires_before = _record(db_session).expires_at

        assert vault.update_display_name("42", "new") is True
        assert vault.update_display_name("42", "new") is False
        assert vault.update_display_name("missing", "new") is False

        record = _record(db_session)
        assert record.display_name == "new"
        assert record.expires_at == expires_before


# ============================================================================
# TEST SUITE: LOGGING
# ============================================================================

class TestVaultLogging:
    """Cookies never reach the log stream."""

    def test_cookie_not_logged(self, vault, sample_cookie, caplog):
        caplog.set_level(logging.DEBUG)

        vault.save("42", "uploader", sample_cookie)
        vault.load("42")
        vault.delete("42")

        assert "fake-sessdata-not-real" not in caplog.text
        for record in caplog.records:
            assert "fake-sessdata-not-real" not in str(record.__dict__)

    def test_audit_events_emitted(self, vault, caplog):
        caplog.set_level(logging.INFO, logger="bili_publisher.credentials.audit")

        vault.save("42", "uploader", "cookie")
        vault.delete("42")

        events = [r.event_type for r in caplog.records if hasattr(r, "event_type")]
        assert "credential.stored" in events
        assert "credential.revoked" in events
