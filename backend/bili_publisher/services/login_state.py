"""
QR login states and the rules that derive them from biliup payloads.

biliup's response shapes are not stable across its own versions, so the
rules here try several field names and nesting levels and never raise on
an unrecognized payload. Everything in this module is pure.
"""

import enum
from dataclasses import dataclass
from typing import Any, Optional

from bili_publisher.integrations.biliup.errors import UpstreamProtocolError
from bili_publisher.storage.artifacts import account_id_from_path
from bili_publisher.utils.payloads import as_int, as_text, extract_field, has_any_field

QR_URL_FIELDS = ("url", "qrcode_url", "qrcodeUrl")
QR_KEY_FIELDS = ("auth_code", "qrcode_key", "qrcodeKey", "key")

CREDENTIAL_FIELDS = ("cookie", "cookies", "cookie_info", "filename")
ACCOUNT_ID_FIELDS = ("mid", "user_id", "userId", "DedeUserID")
DISPLAY_NAME_FIELDS = ("name", "username", "uname")
PROGRESS_FIELDS = ("status", "code", "message")

STATUS_SCANNED = 1
STATUS_EXPIRED = 2

# Bilibili passport poll codes
CODE_QR_EXPIRED = 86038
CODE_QR_SCANNED = 86090

SCANNED_MARKERS = ("scanned", "扫码")
NOT_SCANNED_MARKERS = ("not scanned", "未扫码")
EXPIRED_MARKERS = ("expired", "过期")


class LoginState(str, enum.Enum):
    """Canonical QR login states. CONFIRMED and EXPIRED are terminal."""
    WAITING = "WAITING"
    SCANNED = "SCANNED"
    CONFIRMED = "CONFIRMED"
    EXPIRED = "EXPIRED"

    @property
    def is_terminal(self) -> bool:
        return self in (LoginState.CONFIRMED, LoginState.EXPIRED)


LOGIN_STATE_MESSAGES = {
    LoginState.WAITING: "等待扫码",
    LoginState.SCANNED: "已扫码，等待确认",
    LoginState.CONFIRMED: "登录成功",
    LoginState.EXPIRED: "二维码已过期，请重新获取",
}


@dataclass(frozen=True)
class QrCodeTicket:
    """A freshly issued QR code: what to display and the key to confirm with."""
    url: str
    login_key: str


@dataclass(frozen=True)
class LoginPoll:
    """Canonical reading of one poll payload."""
    state: LoginState
    account_id: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def message(self) -> str:
        return LOGIN_STATE_MESSAGES[self.state]


def extract_qr_fields(payload: Any) -> QrCodeTicket:
    """
    Pull the display URL and login key out of a get_qrcode response.

    Raises:
        UpstreamProtocolError: If either field cannot be found
    """
    url = extract_field(payload, QR_URL_FIELDS)
    login_key = extract_field(payload, QR_KEY_FIELDS)
    if not url or not login_key:
        raise UpstreamProtocolError(
            "biliup QR code response is missing "
            + ("url" if not url else "login key")
        )
    return QrCodeTicket(url=url, login_key=login_key)


def _layers(payload: dict):
    """The payload itself and, if present, its nested ``data`` object."""
    yield payload
    data = payload.get("data")
    if isinstance(data, dict):
        yield data


def carries_login_progress(payload: Any) -> bool:
    """True if the payload has any field the poll-style rules read."""
    if not isinstance(payload, dict):
        return False
    return any(
        has_any_field(layer, PROGRESS_FIELDS + CREDENTIAL_FIELDS + ACCOUNT_ID_FIELDS)
        for layer in _layers(payload)
    )


def derive_login_state(payload: Any) -> LoginPoll:
    """
    Derive the canonical state from a poll-style payload.

    Precedence: credential present, then scanned, then expired, then WAITING.
    """
    if not isinstance(payload, dict):
        return LoginPoll(LoginState.WAITING)

    layers = list(_layers(payload))

    if any(has_any_field(layer, CREDENTIAL_FIELDS + ACCOUNT_ID_FIELDS) for layer in layers):
        account_id = extract_field(payload, ACCOUNT_ID_FIELDS)
        if account_id is None:
            account_id = account_id_from_path(extract_field(payload, ("filename",)) or "")
        return LoginPoll(
            LoginState.CONFIRMED,
            account_id=account_id,
            display_name=extract_field(payload, DISPLAY_NAME_FIELDS),
        )

    for layer in layers:
        status = as_int(layer.get("status"))
        code = as_int(layer.get("code"))
        message = as_text(layer.get("message"))
        if status == STATUS_SCANNED or code == CODE_QR_SCANNED:
            return LoginPoll(LoginState.SCANNED)
        if any(marker in message for marker in NOT_SCANNED_MARKERS):
            continue
        if any(marker in message for marker in SCANNED_MARKERS):
            return LoginPoll(LoginState.SCANNED)

    for layer in layers:
        status = as_int(layer.get("status"))
        code = as_int(layer.get("code"))
        message = as_text(layer.get("message"))
        if status == STATUS_EXPIRED or code == CODE_QR_EXPIRED:
            return LoginPoll(LoginState.EXPIRED)
        if any(marker in message for marker in EXPIRED_MARKERS):
            return LoginPoll(LoginState.EXPIRED)

    return LoginPoll(LoginState.WAITING)
