"""Configuration module for the publish bridge."""

from bili_publisher.config.settings import (
    BiliupConfig,
    CredentialConfig,
    get_database_url,
    UPSTREAM_CONFIRM_WAIT_SECONDS,
)

__all__ = [
    "BiliupConfig",
    "CredentialConfig",
    "get_database_url",
    "UPSTREAM_CONFIRM_WAIT_SECONDS",
]
