"""
Bilibili publish API schemas.

Field names on the wire are camelCase to match the existing front-end;
Python attributes are snake_case.

SECURITY:
- No schema carries a cookie or any other credential material
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, model_validator

from bili_publisher.integrations.biliup.jobs import (
    COPYRIGHT_ORIGINAL,
    COPYRIGHT_REPRINT,
    PublishJobSpec,
)

T = TypeVar("T")


class ApiResult(BaseModel, Generic[T]):
    """Envelope shared by every /api/bilibili response."""

    code: int = 200
    message: str = "success"
    data: Optional[T] = None

    @classmethod
    def success(cls, data: Optional[T] = None, message: str = "success") -> "ApiResult[T]":
        return cls(code=200, message=message, data=data)


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class QrCodeResponse(_CamelModel):
    qrcode_url: str = Field(..., alias="qrcodeUrl")
    qrcode_key: str = Field(..., alias="qrcodeKey")


class QrPollRequest(_CamelModel):
    qrcode_key: str = Field(..., alias="qrcodeKey", min_length=1)


class LoginStatusResponse(_CamelModel):
    """Login state: WAITING, SCANNED, CONFIRMED or EXPIRED."""

    status: str
    message: str
    user_id: Optional[str] = Field(None, alias="userId")
    username: Optional[str] = None


class UserInfoResponse(_CamelModel):
    mid: Optional[int] = None
    name: Optional[str] = None
    face: Optional[str] = None
    level: Optional[int] = None
    vip_status: Optional[int] = Field(None, alias="vipStatus")


class PublishRequest(_CamelModel):
    """Request to publish a video already on the shared volume."""

    user_id: str = Field(..., alias="userId", min_length=1, max_length=64)
    video_path: str = Field(..., alias="videoPath", min_length=1)
    cover_path: Optional[str] = Field(None, alias="coverPath")
    title: str = Field(..., min_length=1, max_length=80)
    desc: str = ""
    tag: str = Field(..., min_length=1)
    tid: int = Field(..., gt=0)
    copyright: int = Field(COPYRIGHT_ORIGINAL, ge=COPYRIGHT_ORIGINAL, le=COPYRIGHT_REPRINT)
    source: Optional[str] = None
    dynamic: Optional[str] = None
    dtime: Optional[int] = None
    dolby: Optional[int] = Field(None, ge=0, le=1)
    open_subtitle: bool = Field(False, alias="openSubtitle")
    up_selection_reply: bool = Field(False, alias="upSelectionReply")
    up_close_reply: bool = Field(False, alias="upCloseReply")
    up_close_danmu: bool = Field(False, alias="upCloseDanmu")

    @model_validator(mode="after")
    def validate_reprint_source(self) -> "PublishRequest":
        """Reprints must name their source."""
        if self.copyright == COPYRIGHT_REPRINT and not (self.source or "").strip():
            raise ValueError("source is required when copyright is 2 (reprint)")
        return self

    def to_job_spec(self) -> PublishJobSpec:
        return PublishJobSpec(
            account_id=self.user_id,
            video_path=self.video_path,
            title=self.title,
            tid=self.tid,
            tags=self.tag,
            desc=self.desc,
            copyright=self.copyright,
            source=self.source or "",
            dynamic=self.dynamic or "",
            cover_path=self.cover_path,
            dtime=self.dtime,
            dolby=self.dolby,
            open_subtitle=self.open_subtitle,
            up_selection_reply=self.up_selection_reply,
            up_close_reply=self.up_close_reply,
            up_close_danmu=self.up_close_danmu,
        )


class PublishResponse(_CamelModel):
    task_id: Optional[str] = Field(None, alias="taskId")
    status: str
    message: str
