"""Shared artifact namespace."""

from bili_publisher.storage.artifacts import (
    ArtifactStore,
    ArtifactPathError,
    artifact_path_for,
    account_id_from_path,
)

__all__ = [
    "ArtifactStore",
    "ArtifactPathError",
    "artifact_path_for",
    "account_id_from_path",
]
