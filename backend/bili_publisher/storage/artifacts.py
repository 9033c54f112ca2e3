"""
Shared artifact namespace between this service and the biliup container.

biliup keeps each account's cookie in ``data/{account_id}.json`` relative
to its working directory. Both processes mount the same volume, so this
service can tell whether biliup still has a cookie and restore it after a
container restart.
"""

import os
import logging
import tempfile
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ARTIFACT_DIR = "data"
ARTIFACT_SUFFIX = ".json"


class ArtifactPathError(ValueError):
    """Raised when an account id cannot be mapped to a safe relative path."""
    pass


def artifact_path_for(account_id: str) -> str:
    """
    Relative credential path understood by biliup, e.g. ``data/42.json``.

    Raises:
        ArtifactPathError: If account_id is empty or contains path separators
    """
    if not account_id or "/" in account_id or "\\" in account_id or account_id in (".", ".."):
        raise ArtifactPathError(f"Invalid account id for artifact path: {account_id!r}")
    return f"{ARTIFACT_DIR}/{account_id}{ARTIFACT_SUFFIX}"


def account_id_from_path(path: str) -> Optional[str]:
    """
    Extract the account id from a credential path.

    Strips any directory prefix and the file extension:
    ``data/42.json`` -> ``42``. Returns None when nothing is left.
    """
    if not path:
        return None
    name = path.replace("\\", "/").rsplit("/", 1)[-1]
    stem = name.rsplit(".", 1)[0] if "." in name else name
    return stem or None


class ArtifactStore:
    """Filesystem view of the shared namespace rooted at ``root``."""

    def __init__(self, root: str):
        self.root = Path(root)

    def resolve(self, relative_path: str) -> Path:
        return self.root / relative_path

    def exists(self, account_id: str) -> bool:
        """Presence probe; never touches the network."""
        return self.resolve(artifact_path_for(account_id)).is_file()

    def read(self, account_id: str) -> Optional[str]:
        """Return the artifact content, or None if it is absent."""
        path = self.resolve(artifact_path_for(account_id))
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write(self, account_id: str, content: str) -> str:
        """
        Write the artifact, creating parent directories as needed.

        The file is written to a temporary sibling and renamed into place,
        so a concurrent reader never sees a partial document and duplicate
        writers of the same content are harmless.

        Returns:
            The relative credential path

        Raises:
            OSError: If the file cannot be written
        """
        relative = artifact_path_for(account_id)
        target = self.resolve(relative)
        target.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            dir=str(target.parent), prefix=f".{account_id}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(content)
            os.replace(tmp_name, target)
        except OSError:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

        logger.info(
            "Credential artifact written",
            extra={"account_id": account_id, "artifact_path": relative},
        )
        return relative

    def delete(self, account_id: str) -> bool:
        """Remove the artifact. Returns True if a file was removed."""
        path = self.resolve(artifact_path_for(account_id))
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info(
            "Credential artifact removed",
            extra={"account_id": account_id},
        )
        return True
