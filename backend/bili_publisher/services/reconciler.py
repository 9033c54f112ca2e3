"""
Credential reconciliation between the vault and biliup.

biliup keeps each account's cookie as ``data/{account_id}.json`` on a
volume it shares with this service, and loses it whenever its container is
recreated. The vault is the durable copy. Before any call that needs an
account's cookie upstream, the reconciler makes sure the two agree:

1. The vault must hold a valid (present, unexpired) record
2. If the artifact is missing it is restored from the vault and
   re-registered with biliup
3. Optionally, a profile fetch confirms Bilibili still accepts the cookie;
   if not, the vault record and the artifact are removed

SECURITY:
- Cookie plaintext only passes between the vault and the artifact file
- A cookie Bilibili rejects is deleted, never retried

Usage:
    reconciler = CredentialReconciler(vault, client, ArtifactStore(root))
    ready = reconciler.ensure_ready("42")
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from bili_publisher.credentials.redaction import AuditEventType, CredentialAuditLogger
from bili_publisher.credentials.vault import (
    CredentialExpiredError,
    CredentialNotFoundError,
    CredentialVault,
)
from bili_publisher.integrations.biliup.client import BiliupClient, UserProfile, parse_profile
from bili_publisher.integrations.biliup.errors import UpstreamRequestError
from bili_publisher.storage.artifacts import ArtifactStore, artifact_path_for
from bili_publisher.utils.encryption import DecryptionError

logger = logging.getLogger(__name__)


class RecoveryFailedError(Exception):
    """The artifact could not be restored from the vault."""
    pass


@dataclass
class ReadyCredential:
    """Outcome of a successful ``ensure_ready``."""
    account_id: str
    credential_path: str
    recovered: bool = False
    profile: Optional[UserProfile] = None


class CredentialReconciler:
    """
    Keeps biliup's ephemeral cookie files in line with the vault.

    Safe to call before every publish or status call; concurrent calls for
    the same account may both restore the artifact, which is harmless.
    """

    def __init__(
        self,
        vault: CredentialVault,
        client: BiliupClient,
        artifacts: ArtifactStore,
        persist_attempts: int = 2,
        persist_delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.vault = vault
        self.client = client
        self.artifacts = artifacts
        self.persist_attempts = max(1, persist_attempts)
        self.persist_delay_seconds = persist_delay_seconds
        self._sleep = sleep
        self.audit = CredentialAuditLogger()

    def ensure_ready(self, account_id: str, probe_liveness: bool = True) -> ReadyCredential:
        """
        Guarantee biliup holds a usable cookie for ``account_id``.

        Args:
            account_id: Bilibili account id
            probe_liveness: Confirm with Bilibili that the cookie still works

        Returns:
            ReadyCredential with the relative credential path

        Raises:
            CredentialExpiredError: No usable credential; the user must log in again
            RecoveryFailedError: The artifact could not be written
            UpstreamUnavailableError: biliup unreachable during the probe
        """
        if not self.vault.is_valid(account_id):
            raise CredentialExpiredError(
                f"No valid credential for account: {account_id}, please re-login"
            )

        path = artifact_path_for(account_id)
        recovered = False

        if not self.artifacts.exists(account_id):
            self._restore_artifact(account_id, path)
            recovered = True

        ready = ReadyCredential(account_id=account_id, credential_path=path, recovered=recovered)
        if probe_liveness:
            ready.profile = self._probe(account_id, path)
        return ready

    def _restore_artifact(self, account_id: str, path: str) -> None:
        try:
            raw_credential = self.vault.load(account_id)
        except (CredentialNotFoundError, CredentialExpiredError, DecryptionError) as e:
            logger.warning(
                "Stored credential unusable, removing",
                extra={"account_id": account_id, "error_type": type(e).__name__},
            )
            self.vault.delete(account_id, reason="unreadable")
            raise CredentialExpiredError(
                f"Stored credential unusable for account: {account_id}, please re-login"
            ) from e

        try:
            self.artifacts.write(account_id, raw_credential)
        except OSError as e:
            logger.error(
                "Failed to restore credential artifact",
                extra={"account_id": account_id, "error": str(e)},
            )
            raise RecoveryFailedError(
                f"Could not restore credential artifact for account: {account_id}"
            ) from e

        self.client.register_credential_path(path)

        self.audit.log(
            event_type=AuditEventType.CREDENTIAL_RECOVERED,
            account_id=account_id,
            metadata={"artifact_path": path},
        )

    def _probe(self, account_id: str, path: str) -> UserProfile:
        try:
            profile = parse_profile(self.client.fetch_profile(path))
        except UpstreamRequestError as e:
            logger.info(
                "Profile fetch rejected",
                extra={"account_id": account_id, "status_code": e.status_code},
            )
            profile = None

        if profile is None:
            self.revoke(account_id, reason="rejected_upstream")
            raise CredentialExpiredError(
                f"Credential no longer accepted for account: {account_id}, please re-login"
            )

        if profile.name:
            self.vault.update_display_name(account_id, profile.name)
        return profile

    def persist_fresh_login(self, account_id: str, display_name: Optional[str]) -> bool:
        """
        Copy a cookie biliup just wrote into the vault.

        The credential path is registered with biliup first. biliup may write
        the artifact slightly after confirming the login, so the read is
        retried up to ``persist_attempts`` times; an unreadable artifact
        counts as absent.

        Returns:
            True if the vault was written; False if the artifact never
            appeared or could not be read (biliup stays the only holder
            until the next login)

        Raises:
            EncryptionError: If the vault cannot encrypt the cookie
        """
        path = artifact_path_for(account_id)
        self.client.register_credential_path(path)

        content = None
        for attempt in range(1, self.persist_attempts + 1):
            content = self._read_artifact(account_id)
            if content:
                break
            if attempt < self.persist_attempts:
                self._sleep(self.persist_delay_seconds)

        if not content:
            logger.warning(
                "Credential artifact not found after login, vault write skipped",
                extra={"account_id": account_id, "attempts": self.persist_attempts},
            )
            return False

        self.vault.save(account_id, display_name, content)
        return True

    def _read_artifact(self, account_id: str) -> Optional[str]:
        try:
            return self.artifacts.read(account_id)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(
                "Credential artifact unreadable",
                extra={"account_id": account_id, "error_type": type(e).__name__},
            )
            return None

    def revoke(self, account_id: str, reason: str = "logout") -> None:
        """Remove the vault record and the artifact. Idempotent."""
        self.vault.delete(account_id, reason=reason)
        self.artifacts.delete(account_id)
