"""
QR code login flow.

1. ``issue_qr_code`` asks biliup for a QR code and returns its URL and key
2. The front-end shows the code; the user scans and confirms on their phone
3. ``confirm_qr_login`` blocks on biliup (up to ~300s) until the login
   completes, times out, or reports progress (WAITING, SCANNED)
4. On success the cookie biliup wrote is copied into the vault

Each issued QR code is an independent session; a finished session never
changes state again, and the front-end issues a new code to retry.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from bili_publisher.credentials.vault import CredentialVault
from bili_publisher.integrations.biliup.client import (
    BiliupClient,
    ConfirmOutcome,
    ConfirmResult,
    parse_profile,
)
from bili_publisher.integrations.biliup.errors import BiliupError
from bili_publisher.services.login_state import (
    LOGIN_STATE_MESSAGES,
    LoginState,
    QrCodeTicket,
    carries_login_progress,
    derive_login_state,
    extract_qr_fields,
)
from bili_publisher.services.reconciler import CredentialReconciler
from bili_publisher.storage.artifacts import (
    ArtifactPathError,
    account_id_from_path,
    artifact_path_for,
)

logger = logging.getLogger(__name__)

TIMEOUT_MESSAGE = "登录超时，请重新获取二维码"
NOT_LOGGED_IN_MESSAGE = "未登录或登录已过期，请扫码登录"


@dataclass
class LoginResult:
    """Outcome of a confirm call or a login status check."""
    state: LoginState
    message: str
    account_id: Optional[str] = None
    display_name: Optional[str] = None
    persisted: bool = False


class QrLoginService:
    """Drives QR issuance and confirmation against biliup."""

    def __init__(
        self,
        client: BiliupClient,
        reconciler: CredentialReconciler,
        vault: CredentialVault,
    ):
        self.client = client
        self.reconciler = reconciler
        self.vault = vault

    def issue_qr_code(self) -> QrCodeTicket:
        """
        Start a new login session.

        Raises:
            UpstreamProtocolError: If biliup's payload has no URL or key
        """
        ticket = extract_qr_fields(self.client.issue_qr_code())
        logger.info("QR code issued")
        return ticket

    def confirm_qr_login(self, login_key: str) -> LoginResult:
        """
        Wait for the user to finish the login started by ``login_key``.

        Returns CONFIRMED when biliup reports a credential file. An answer
        that carries poll-style progress (status, code, message) is mapped
        through derive_login_state, so WAITING and SCANNED reach the caller;
        any timeout or other answer is EXPIRED.

        Raises:
            UpstreamUnavailableError: If biliup cannot be reached at all
            EncryptionError: If the fresh cookie cannot be stored
        """
        result = self.client.confirm_qr_login(login_key)

        if result.outcome == ConfirmOutcome.CREDENTIAL_ISSUED:
            account_id = account_id_from_path(result.filename)
            credential_path = result.filename
        elif self._is_progress_answer(result):
            poll = derive_login_state(result.payload)
            if poll.state != LoginState.CONFIRMED:
                logger.info("QR login in progress", extra={"login_state": poll.state.value})
                return LoginResult(state=poll.state, message=poll.message)
            account_id = poll.account_id
            credential_path = self._credential_path(account_id)
        else:
            logger.info(
                "QR login did not complete",
                extra={"outcome": result.outcome.value},
            )
            message = (
                TIMEOUT_MESSAGE
                if result.outcome in (ConfirmOutcome.UPSTREAM_TIMEOUT, ConfirmOutcome.TRANSPORT_TIMEOUT)
                else LOGIN_STATE_MESSAGES[LoginState.EXPIRED]
            )
            return LoginResult(state=LoginState.EXPIRED, message=message)

        if not account_id or not credential_path:
            logger.warning("Confirmed login without an account id", extra={"artifact_path": result.filename})
            return LoginResult(
                state=LoginState.EXPIRED,
                message=LOGIN_STATE_MESSAGES[LoginState.EXPIRED],
            )

        display_name = self._lookup_display_name(account_id, credential_path)
        persisted = self.reconciler.persist_fresh_login(account_id, display_name)

        logger.info(
            "QR login confirmed",
            extra={"account_id": account_id, "persisted": persisted},
        )
        return LoginResult(
            state=LoginState.CONFIRMED,
            message=LOGIN_STATE_MESSAGES[LoginState.CONFIRMED],
            account_id=account_id,
            display_name=display_name,
            persisted=persisted,
        )

    @staticmethod
    def _is_progress_answer(result: ConfirmResult) -> bool:
        """A successful answer without a filename that still reports login progress."""
        if result.outcome != ConfirmOutcome.UNRECOGNIZED:
            return False
        if result.status_code is not None and result.status_code >= 400:
            return False
        return carries_login_progress(result.payload)

    @staticmethod
    def _credential_path(account_id: Optional[str]) -> Optional[str]:
        if not account_id:
            return None
        try:
            return artifact_path_for(account_id)
        except ArtifactPathError:
            return None

    def _lookup_display_name(self, account_id: str, credential_path: str) -> Optional[str]:
        """Best-effort profile lookup; failures are logged and ignored."""
        try:
            profile = parse_profile(self.client.fetch_profile(credential_path))
        except BiliupError as e:
            logger.warning(
                "Display name lookup failed",
                extra={"account_id": account_id, "error": str(e)},
            )
            return None
        return profile.name if profile else None

    def check_login_status(self, account_id: str) -> LoginResult:
        """Vault-backed answer to "can this account publish without scanning again"."""
        metadata = self.vault.get_metadata(account_id)
        if metadata is None:
            return LoginResult(
                state=LoginState.EXPIRED,
                message=NOT_LOGGED_IN_MESSAGE,
                account_id=account_id,
            )
        return LoginResult(
            state=LoginState.CONFIRMED,
            message="已登录",
            account_id=account_id,
            display_name=metadata.display_name,
            persisted=True,
        )
