"""
Process-wide biliup session token.

biliup runs with ``--auth`` and hands out a session cookie on
register/login. Every request from this process shares that one cookie, so
it lives in a single lock-guarded holder owned by the client instance.

Each replacement bumps a generation counter. A caller that saw a 401 passes
the token it used; if the generation has moved on, another thread already
re-authenticated and the fresh token is returned without a new handshake.
"""

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class AccountPresence(str, enum.Enum):
    """Result of probing biliup for the service account."""
    ABSENT = "absent"
    PRESENT = "present"


@dataclass(frozen=True)
class AuthToken:
    """
    A cookie header value (``name=value``) and the generation it belongs to.

    SECURITY: value is a live session credential; never log it.
    """
    value: str
    generation: int

    def __repr__(self) -> str:
        return f"AuthToken(generation={self.generation})"


class UpstreamAuthSession:
    """
    Mutex-guarded holder of the shared biliup session token.

    Lifecycle: empty -> acquired (lazily or at startup) -> read by many
    callers -> replaced after an authorization failure.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._token: Optional[AuthToken] = None
        self._generation = 0

    def current(self) -> Optional[AuthToken]:
        with self._lock:
            return self._token

    def replace(self, value: str) -> AuthToken:
        """Install a new token value and return it."""
        with self._lock:
            self._generation += 1
            self._token = AuthToken(value=value, generation=self._generation)
            return self._token

    def clear(self) -> None:
        """Forget the held token; the next call handshakes again."""
        with self._lock:
            self._token = None

    def get_or_refresh(
        self,
        authenticate: Callable[[], str],
        stale: Optional[AuthToken] = None,
    ) -> AuthToken:
        """
        Return a usable token, running ``authenticate`` only when needed.

        Args:
            authenticate: Performs the handshake and returns a cookie value
            stale: Token that was just rejected, if any

        Returns:
            A token different from ``stale``

        Raises:
            Whatever ``authenticate`` raises; the held token is left cleared
        """
        with self._lock:
            token = self._token
            if token is not None and (stale is None or token.generation != stale.generation):
                return token
            self._token = None

            # Handshakes are serialized; the lock is only ever contended by
            # callers that would otherwise start a redundant handshake.
            value = authenticate()

            self._generation += 1
            self._token = AuthToken(value=value, generation=self._generation)
            logger.info(
                "biliup session established",
                extra={"token_generation": self._generation},
            )
            return self._token
