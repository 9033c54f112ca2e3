"""
FastAPI dependencies wiring services to per-request database sessions.

The biliup client, encryptor and config are process-wide; the vault and the
services built on it are created per request around that request's session.
Tests replace any of these through ``app.dependency_overrides``.
"""

import threading
from typing import Optional

from fastapi import Depends
from sqlalchemy.orm import Session

from bili_publisher.config.settings import CredentialConfig
from bili_publisher.credentials.vault import CredentialVault
from bili_publisher.database.session import get_db_session
from bili_publisher.integrations.biliup.client import BiliupClient, get_biliup_client
from bili_publisher.services.publish_service import PublishService
from bili_publisher.services.qr_login_service import QrLoginService
from bili_publisher.services.reconciler import CredentialReconciler
from bili_publisher.storage.artifacts import ArtifactStore
from bili_publisher.utils.encryption import CredentialEncryptor

_credential_config: Optional[CredentialConfig] = None
_singleton_lock = threading.Lock()
_encryptor: Optional[CredentialEncryptor] = None


def get_credential_config() -> CredentialConfig:
    global _credential_config
    if _credential_config is None:
        with _singleton_lock:
            if _credential_config is None:
                _credential_config = CredentialConfig.from_env()
    return _credential_config


def get_encryptor(config: CredentialConfig = Depends(get_credential_config)) -> CredentialEncryptor:
    """
    Process-wide encryptor.

    Raises:
        InvalidKeyError: If the key env var is missing or malformed
    """
    global _encryptor
    if _encryptor is None:
        with _singleton_lock:
            if _encryptor is None:
                _encryptor = CredentialEncryptor.from_env(config.encryption_key_env_var)
    return _encryptor


def get_client() -> BiliupClient:
    return get_biliup_client()


def get_vault(
    db: Session = Depends(get_db_session),
    encryptor: CredentialEncryptor = Depends(get_encryptor),
    config: CredentialConfig = Depends(get_credential_config),
) -> CredentialVault:
    return CredentialVault(db, encryptor, ttl_days=config.ttl_days)


def get_reconciler(
    vault: CredentialVault = Depends(get_vault),
    client: BiliupClient = Depends(get_client),
    config: CredentialConfig = Depends(get_credential_config),
) -> CredentialReconciler:
    return CredentialReconciler(
        vault,
        client,
        ArtifactStore(config.artifact_root),
        persist_attempts=config.persist_attempts,
        persist_delay_seconds=config.persist_delay_seconds,
    )


def get_qr_login_service(
    client: BiliupClient = Depends(get_client),
    reconciler: CredentialReconciler = Depends(get_reconciler),
    vault: CredentialVault = Depends(get_vault),
) -> QrLoginService:
    return QrLoginService(client, reconciler, vault)


def get_publish_service(
    client: BiliupClient = Depends(get_client),
    reconciler: CredentialReconciler = Depends(get_reconciler),
) -> PublishService:
    return PublishService(client, reconciler)
