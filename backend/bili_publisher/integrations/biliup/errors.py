"""
Errors raised by the biliup client.
"""

from typing import Optional


class BiliupError(Exception):
    """Base error for biliup interactions."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UpstreamUnavailableError(BiliupError):
    """biliup could not be reached (connection failure or transport timeout)."""
    pass


class UpstreamTimeoutError(UpstreamUnavailableError):
    """Our own client-side timeout fired before biliup answered."""
    pass


class UpstreamAuthError(BiliupError):
    """Authentication with biliup failed, including after one re-authentication."""
    pass


class UpstreamProtocolError(BiliupError):
    """biliup answered with a shape or status this client does not understand."""
    pass


class UpstreamRequestError(BiliupError):
    """biliup rejected an authenticated request with a non-auth error status."""
    pass
