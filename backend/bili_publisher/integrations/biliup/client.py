"""
biliup API client.

Handles:
- Service-account handshake (probe, then register or login)
- Session cookie reuse with one transparent re-authentication on 401/403
- QR login, profile, credential registration, job submit and job status

SECURITY:
- The service-account password comes from the environment
- Session cookies and Bilibili cookies are never logged
- Every request carries the shared session cookie explicitly; the httpx
  cookie jar is cleared after each handshake so it never becomes a second
  token holder

Usage:
    client = BiliupClient(BiliupConfig.from_env())
    qr = client.issue_qr_code()
    result = client.confirm_qr_login(qr_key)
"""

import enum
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from bili_publisher.config.settings import BiliupConfig
from bili_publisher.integrations.biliup.auth import (
    AccountPresence,
    AuthToken,
    UpstreamAuthSession,
)
from bili_publisher.integrations.biliup.errors import (
    BiliupError,
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRequestError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from bili_publisher.integrations.biliup.jobs import PublishJobSpec
from bili_publisher.utils.payloads import as_int, as_text, extract_field

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUSES = frozenset({401, 403})

CREDENTIAL_PATH_KEY = "bilibili-cookies"

TIMEOUT_MARKERS = ("timeout", "timed out", "超时")


class ConfirmOutcome(str, enum.Enum):
    """How a blocking QR confirm call ended."""
    CREDENTIAL_ISSUED = "credential_issued"
    UPSTREAM_TIMEOUT = "upstream_timeout"
    TRANSPORT_TIMEOUT = "transport_timeout"
    UNRECOGNIZED = "unrecognized"


@dataclass(frozen=True)
class ConfirmResult:
    """
    Result of ``confirm_qr_login``.

    ``filename`` is set only when a credential was issued; ``payload`` keeps
    the body of an unrecognized answer for poll-style interpretation.
    """
    outcome: ConfirmOutcome
    filename: Optional[str] = None
    status_code: Optional[int] = None
    payload: Any = field(default=None, repr=False, compare=False)

    @property
    def succeeded(self) -> bool:
        return self.outcome == ConfirmOutcome.CREDENTIAL_ISSUED


@dataclass
class UserProfile:
    """Public Bilibili profile fields. Contains no credential material."""
    mid: Optional[int] = None
    name: Optional[str] = None
    face: Optional[str] = None
    level: Optional[int] = None
    vip_status: Optional[int] = None
    raw: dict = field(default_factory=dict, repr=False)


def classify_confirm_response(payload: Any, status_code: Optional[int] = None) -> ConfirmResult:
    """
    Map a ``/v1/login_by_qrcode`` response body onto a ConfirmResult.

    Only a ``filename`` counts as success; anything unrecognized is reported
    as such so callers never mistake an odd shape for a login.
    """
    filename = extract_field(payload, ("filename",))
    if filename:
        return ConfirmResult(ConfirmOutcome.CREDENTIAL_ISSUED, filename=filename, status_code=status_code)

    if isinstance(payload, dict):
        state = as_text(payload.get("status") or payload.get("state"))
        message = as_text(payload.get("message") or payload.get("msg") or payload.get("error"))
        if state == "timeout" or any(marker in message for marker in TIMEOUT_MARKERS):
            return ConfirmResult(ConfirmOutcome.UPSTREAM_TIMEOUT, status_code=status_code)

    return ConfirmResult(ConfirmOutcome.UNRECOGNIZED, status_code=status_code, payload=payload)


def parse_profile(payload: Any) -> Optional[UserProfile]:
    """
    Parse a space/myinfo response.

    Returns None when the payload says the cookie is not logged in
    (non-zero ``code``) or carries no identifying fields.
    """
    if not isinstance(payload, dict):
        return None

    code = as_int(payload.get("code"))
    data = payload.get("data") if isinstance(payload.get("data"), dict) else payload

    if code is not None and code != 0:
        return None
    if code is None and data.get("mid") is None and not data.get("name"):
        return None

    vip = data.get("vip") if isinstance(data.get("vip"), dict) else {}
    return UserProfile(
        mid=as_int(data.get("mid")),
        name=data.get("name") or None,
        face=data.get("face") or None,
        level=as_int(data.get("level")),
        vip_status=as_int(vip.get("status")),
        raw=data,
    )


class BiliupClient:
    """
    Client for the biliup REST API.

    Owns one UpstreamAuthSession shared by every thread using this instance.
    """

    def __init__(
        self,
        config: BiliupConfig,
        auth_session: Optional[UpstreamAuthSession] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Initialize client with biliup configuration.

        Args:
            config: BiliupConfig with base URL, service account and timeouts
            auth_session: Token holder; a fresh one is created if omitted
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.config = config
        self.auth_session = auth_session or UpstreamAuthSession()
        self._http_client = httpx.Client(
            base_url=config.base_url,
            timeout=httpx.Timeout(config.read_timeout, connect=config.connect_timeout),
            transport=transport,
        )

    # =========================================================================
    # Handshake
    # =========================================================================

    def probe_account(self) -> AccountPresence:
        """
        Check whether the service account exists on biliup.

        Raises:
            UpstreamUnavailableError: If biliup is unreachable
            UpstreamProtocolError: On any status other than 2xx or 404
        """
        response = self._send("GET", f"/v1/users/{self.config.auth_username}")
        if response.status_code == 404:
            return AccountPresence.ABSENT
        if response.is_success:
            return AccountPresence.PRESENT
        raise UpstreamProtocolError(
            f"Unexpected status probing biliup account: {response.status_code}",
            status_code=response.status_code,
        )

    def _handshake(self) -> str:
        """Register or log in the service account and return the session cookie."""
        presence = self.probe_account()
        path = "/v1/users/register" if presence == AccountPresence.ABSENT else "/v1/users/login"

        response = self._send(
            "POST",
            path,
            json={
                "username": self.config.auth_username,
                "password": self.config.auth_password,
            },
        )
        self._http_client.cookies.clear()

        if not response.is_success:
            logger.error(
                "biliup authentication failed",
                extra={"status_code": response.status_code, "presence": presence.value},
            )
            raise UpstreamAuthError(
                f"biliup {presence.value} handshake rejected",
                status_code=response.status_code,
            )

        cookie = self._extract_session_cookie(response)
        logger.info(
            "Authenticated with biliup",
            extra={"presence": presence.value, "username": self.config.auth_username},
        )
        return cookie

    def _extract_session_cookie(self, response: httpx.Response) -> str:
        prefix = f"{self.config.session_cookie_name}="
        for header in response.headers.get_list("set-cookie"):
            segment = header.split(";", 1)[0].strip()
            if segment.startswith(prefix):
                return segment
        raise UpstreamAuthError(
            f"biliup handshake returned no '{self.config.session_cookie_name}' cookie",
            status_code=response.status_code,
        )

    def ensure_authenticated(self) -> bool:
        """
        Acquire a session token if none is held.

        Best-effort: returns False instead of raising so that startup does
        not depend on biliup being up.
        """
        try:
            self.auth_session.get_or_refresh(self._handshake)
            return True
        except BiliupError as e:
            logger.warning(
                "biliup authentication deferred",
                extra={"error": str(e), "status_code": e.status_code},
            )
            return False

    # =========================================================================
    # Request envelope
    # =========================================================================

    def _send(
        self,
        method: str,
        path: str,
        token: Optional[AuthToken] = None,
        **kwargs,
    ) -> httpx.Response:
        headers = kwargs.pop("headers", None) or {}
        if token is not None:
            headers["Cookie"] = token.value
        try:
            return self._http_client.request(method, path, headers=headers, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(
                "biliup request timed out",
                extra={"method": method, "path": path},
            )
            raise UpstreamTimeoutError(f"biliup request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            logger.error(
                "biliup unreachable",
                extra={"method": method, "path": path, "error": str(e)},
            )
            raise UpstreamUnavailableError(f"biliup unreachable: {e}") from e

    def _request(
        self,
        method: str,
        path: str,
        allow_error_status: bool = False,
        **kwargs,
    ) -> httpx.Response:
        """
        Send an authenticated request, re-authenticating once on 401/403.

        Raises:
            UpstreamAuthError: If the retried call is also rejected
            UpstreamRequestError: On other non-2xx statuses, unless allowed
            UpstreamUnavailableError: On transport failure or timeout
        """
        token = self.auth_session.get_or_refresh(self._handshake)
        response = self._send(method, path, token, **kwargs)

        if response.status_code in AUTH_FAILURE_STATUSES:
            logger.info(
                "biliup session rejected, re-authenticating",
                extra={"path": path, "status_code": response.status_code},
            )
            token = self.auth_session.get_or_refresh(self._handshake, stale=token)
            response = self._send(method, path, token, **kwargs)
            if response.status_code in AUTH_FAILURE_STATUSES:
                raise UpstreamAuthError(
                    f"biliup rejected the session after re-authentication: {path}",
                    status_code=response.status_code,
                )

        if response.is_error and not allow_error_status:
            raise UpstreamRequestError(
                f"biliup returned {response.status_code} for {method} {path}",
                status_code=response.status_code,
            )
        return response

    @staticmethod
    def _json(response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamProtocolError(
                "biliup returned a non-JSON body",
                status_code=response.status_code,
            ) from e

    # =========================================================================
    # Primitives
    # =========================================================================

    def issue_qr_code(self) -> Any:
        """GET /v1/get_qrcode. Returns the raw payload; field extraction is the caller's."""
        return self._json(self._request("GET", "/v1/get_qrcode"))

    def confirm_qr_login(self, auth_code: str) -> ConfirmResult:
        """
        Block until biliup reports the outcome of a QR login (up to ~300s).

        A client-side timeout is returned as TRANSPORT_TIMEOUT and never
        retried. Other transport failures still raise UpstreamUnavailableError.
        """
        body = {"code": 0, "data": {"auth_code": auth_code}, "message": "0", "ttl": 1}
        timeout = httpx.Timeout(self.config.confirm_timeout, connect=self.config.connect_timeout)

        try:
            response = self._request(
                "POST",
                "/v1/login_by_qrcode",
                allow_error_status=True,
                json=body,
                timeout=timeout,
            )
        except UpstreamTimeoutError:
            return ConfirmResult(ConfirmOutcome.TRANSPORT_TIMEOUT)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        result = classify_confirm_response(payload, status_code=response.status_code)
        logger.info(
            "QR login confirm finished",
            extra={"outcome": result.outcome.value, "status_code": response.status_code},
        )
        return result

    def fetch_profile(self, credential_path: str) -> Any:
        """GET /bili/space/myinfo for the cookie at ``credential_path``."""
        response = self._request("GET", "/bili/space/myinfo", params={"user": credential_path})
        return self._json(response)

    def register_credential_path(self, credential_path: str) -> bool:
        """
        Tell biliup which cookie file to use. Best-effort.

        Returns:
            True on success, False (logged) on any biliup error
        """
        try:
            self._request(
                "POST",
                "/v1/users",
                json={"key": CREDENTIAL_PATH_KEY, "value": credential_path},
            )
        except BiliupError as e:
            logger.warning(
                "Failed to register credential path with biliup",
                extra={
                    "artifact_path": credential_path,
                    "error": str(e),
                    "status_code": e.status_code,
                },
            )
            return False
        return True

    def list_users(self) -> list:
        """GET /v1/users. Returns the configured biliup user entries."""
        payload = self._json(self._request("GET", "/v1/users"))
        if isinstance(payload, dict):
            payload = payload.get("data")
        if not isinstance(payload, list):
            raise UpstreamProtocolError("biliup user list is not a list")
        return payload

    def submit_job(self, job: PublishJobSpec) -> dict:
        """POST /v1/uploads. Returns biliup's response (task_id, state)."""
        logger.info(
            "Submitting publish job",
            extra={
                "account_id": job.account_id,
                "title": job.title,
                "video_path": job.video_path,
            },
        )
        payload = self._json(self._request("POST", "/v1/uploads", json=job.to_payload()))
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("biliup job response is not an object")
        return payload

    def query_job(self, job_id: str) -> dict:
        """GET /v1/status?task_id=..."""
        payload = self._json(self._request("GET", "/v1/status", params={"task_id": job_id}))
        if not isinstance(payload, dict):
            raise UpstreamProtocolError("biliup status response is not an object")
        return payload

    def health_check(self) -> bool:
        """True if biliup answers GET /v1/status. Never raises."""
        try:
            self._request("GET", "/v1/status")
            return True
        except (BiliupError, httpx.HTTPError) as e:
            logger.warning("biliup health check failed", extra={"error": str(e)})
            return False

    def close(self):
        """Close the HTTP client and drop the session token."""
        self.auth_session.clear()
        self._http_client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


# Module-level singleton for the biliup client
_biliup_client: Optional[BiliupClient] = None
_biliup_client_lock = threading.Lock()


def get_biliup_client() -> BiliupClient:
    """Get or create the biliup client singleton."""
    global _biliup_client

    if _biliup_client is None:
        with _biliup_client_lock:
            if _biliup_client is None:
                _biliup_client = BiliupClient(BiliupConfig.from_env())

    return _biliup_client


def close_biliup_client() -> None:
    """Close and drop the singleton (application shutdown)."""
    global _biliup_client

    with _biliup_client_lock:
        if _biliup_client is not None:
            _biliup_client.close()
            _biliup_client = None
