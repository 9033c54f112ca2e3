"""
Runtime configuration loaded from environment variables.

Each collaborator gets its own small dataclass with a ``from_env`` loader
so that tests can construct configs directly without touching os.environ.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_BILIUP_BASE_URL = "http://biliup:19159"

# biliup holds /v1/login_by_qrcode open for up to 300 seconds
UPSTREAM_CONFIRM_WAIT_SECONDS = 300

DEFAULT_CREDENTIAL_TTL_DAYS = 30


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            "Ignoring non-numeric environment value",
            extra={"variable": name},
        )
        return default


def _env_int(name: str, default: int) -> int:
    return int(_env_float(name, default))


@dataclass
class BiliupConfig:
    """Connection settings for the biliup upload-automation service."""
    base_url: str = DEFAULT_BILIUP_BASE_URL
    auth_username: str = "biliup"
    auth_password: str = ""
    session_cookie_name: str = "session"
    connect_timeout: float = 5.0
    read_timeout: float = 30.0
    # Must exceed the upstream's own 300s wait so the upstream answers first
    confirm_timeout: float = UPSTREAM_CONFIRM_WAIT_SECONDS + 10.0

    @classmethod
    def from_env(cls) -> "BiliupConfig":
        """Load configuration from environment variables."""
        password = os.getenv("BILIUP_AUTH_PASSWORD", "")
        if not password:
            logger.warning(
                "biliup service account password not configured",
                extra={"has_password": False},
            )

        return cls(
            base_url=os.getenv("BILIUP_BASE_URL", DEFAULT_BILIUP_BASE_URL).rstrip("/"),
            auth_username=os.getenv("BILIUP_AUTH_USERNAME", "biliup"),
            auth_password=password,
            session_cookie_name=os.getenv("BILIUP_SESSION_COOKIE", "session"),
            connect_timeout=_env_float("BILIUP_CONNECT_TIMEOUT", 5.0),
            read_timeout=_env_float("BILIUP_READ_TIMEOUT", 30.0),
            confirm_timeout=_env_float(
                "BILIUP_CONFIRM_TIMEOUT", UPSTREAM_CONFIRM_WAIT_SECONDS + 10.0
            ),
        )


@dataclass
class CredentialConfig:
    """Vault and reconciliation settings."""
    artifact_root: str = "/opt/biliup"
    ttl_days: int = DEFAULT_CREDENTIAL_TTL_DAYS
    persist_attempts: int = 2
    persist_delay_seconds: float = 2.0
    encryption_key_env_var: str = "CREDENTIAL_ENCRYPTION_KEY"

    @classmethod
    def from_env(cls) -> "CredentialConfig":
        """Load configuration from environment variables."""
        return cls(
            artifact_root=os.getenv("BILIUP_ARTIFACT_ROOT", "/opt/biliup"),
            ttl_days=_env_int("CREDENTIAL_TTL_DAYS", DEFAULT_CREDENTIAL_TTL_DAYS),
            persist_attempts=max(1, _env_int("ARTIFACT_PERSIST_ATTEMPTS", 2)),
            persist_delay_seconds=_env_float("ARTIFACT_PERSIST_DELAY_SECONDS", 2.0),
        )


def get_database_url(default: Optional[str] = None) -> str:
    """Return the SQLAlchemy URL for the credential database."""
    return os.getenv("DATABASE_URL") or default or "sqlite:///./bili_publisher.db"
