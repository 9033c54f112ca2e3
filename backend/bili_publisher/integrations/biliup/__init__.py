"""
biliup integration.

biliup is the upload-automation service that talks to Bilibili on our
behalf. Its own cookie store is ephemeral; see ``services.reconciler``.
"""

from bili_publisher.integrations.biliup.auth import (
    AccountPresence,
    AuthToken,
    UpstreamAuthSession,
)
from bili_publisher.integrations.biliup.client import (
    BiliupClient,
    ConfirmOutcome,
    ConfirmResult,
    UserProfile,
    classify_confirm_response,
    parse_profile,
    get_biliup_client,
    close_biliup_client,
)
from bili_publisher.integrations.biliup.errors import (
    BiliupError,
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRequestError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from bili_publisher.integrations.biliup.jobs import PublishJobSpec, split_tags

__all__ = [
    "AccountPresence",
    "AuthToken",
    "UpstreamAuthSession",
    "BiliupClient",
    "ConfirmOutcome",
    "ConfirmResult",
    "UserProfile",
    "classify_confirm_response",
    "parse_profile",
    "get_biliup_client",
    "close_biliup_client",
    "BiliupError",
    "UpstreamAuthError",
    "UpstreamProtocolError",
    "UpstreamRequestError",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "PublishJobSpec",
    "split_tags",
]
