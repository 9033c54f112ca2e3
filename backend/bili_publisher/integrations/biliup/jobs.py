"""
Publish job description and the biliup ``/v1/uploads`` payload built from it.
"""

from dataclasses import dataclass
from typing import Any, Optional

from bili_publisher.storage.artifacts import artifact_path_for

COPYRIGHT_ORIGINAL = 1
COPYRIGHT_REPRINT = 2


def split_tags(tags: Optional[str]) -> list[str]:
    """Split a comma-separated tag string into trimmed, non-empty tags."""
    if not tags:
        return []
    return [tag.strip() for tag in tags.split(",") if tag.strip()]


@dataclass
class PublishJobSpec:
    """Everything biliup needs to upload one video for one account."""
    account_id: str
    video_path: str
    title: str
    tid: int
    tags: str = ""
    desc: str = ""
    copyright: int = COPYRIGHT_ORIGINAL
    source: str = ""
    dynamic: str = ""
    cover_path: Optional[str] = None
    dtime: Optional[int] = None
    dolby: Optional[int] = None
    open_subtitle: bool = False
    up_selection_reply: bool = False
    up_close_reply: bool = False
    up_close_danmu: bool = False

    def __post_init__(self):
        if self.copyright not in (COPYRIGHT_ORIGINAL, COPYRIGHT_REPRINT):
            raise ValueError(f"copyright must be 1 or 2, got {self.copyright}")
        if self.copyright == COPYRIGHT_REPRINT and not (self.source or "").strip():
            raise ValueError("source is required for reprinted videos")

    @property
    def credential_path(self) -> str:
        return artifact_path_for(self.account_id)

    def to_payload(self) -> dict[str, Any]:
        """Build the ``{"files": [...], "params": {...}}`` request body."""
        params: dict[str, Any] = {
            "title": self.title,
            "tid": self.tid,
            "copyright": self.copyright,
            "source": self.source or "",
            "tag": split_tags(self.tags),
            "desc": self.desc or "",
            "dynamic": self.dynamic or "",
            "open_subtitle": bool(self.open_subtitle),
            "up_selection_reply": bool(self.up_selection_reply),
            "up_close_reply": bool(self.up_close_reply),
            "up_close_danmu": bool(self.up_close_danmu),
            "user_cookie": self.credential_path,
        }
        # Zero or negative schedule means "publish now"
        if self.dtime is not None and self.dtime > 0:
            params["dtime"] = self.dtime
        if self.dolby is not None:
            params["dolby"] = self.dolby
        if self.cover_path and self.cover_path.strip():
            params["cover"] = self.cover_path

        return {"files": [self.video_path], "params": params}
