"""
Canonical publish job statuses.

biliup reports job state as free text (mostly Chinese). This is a fixed
lookup, not a state machine; anything unknown is treated as still running
and the raw text is kept as the message.
"""

import enum
from typing import Optional


class PublishStatus(str, enum.Enum):
    COMPLETED = "COMPLETED"
    PROCESSING = "PROCESSING"
    COOKIE_MISSING = "COOKIE_MISSING"
    COOKIE_EXPIRED = "COOKIE_EXPIRED"
    VIDEO_NOT_FOUND = "VIDEO_NOT_FOUND"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    FAILED = "FAILED"


DEFAULT_PROCESSING_MESSAGE = "处理中"

_STATE_TABLE: dict[str, tuple[PublishStatus, str]] = {
    "已完成": (PublishStatus.COMPLETED, "发布成功"),
    "success": (PublishStatus.COMPLETED, "发布成功"),
    "进行中": (PublishStatus.PROCESSING, "视频上传中"),
    "processing": (PublishStatus.PROCESSING, "视频上传中"),
    "cookies.json不存在": (PublishStatus.COOKIE_MISSING, "Cookie 文件不存在"),
    "登录失败,请检查cookie": (PublishStatus.COOKIE_EXPIRED, "Cookie 已过期，请重新登录"),
    "视频文件不存在": (PublishStatus.VIDEO_NOT_FOUND, "视频文件不存在"),
    "任务不存在!": (PublishStatus.TASK_NOT_FOUND, "任务不存在"),
    "上传失败": (PublishStatus.FAILED, "上传失败"),
    "failed": (PublishStatus.FAILED, "上传失败"),
    "读取封面错误": (PublishStatus.PROCESSING, "封面路径错误"),
}


def map_job_state(state: Optional[str]) -> tuple[PublishStatus, str]:
    """Map biliup's state text to (canonical status, human-readable message)."""
    if state is None or not state.strip():
        return PublishStatus.PROCESSING, DEFAULT_PROCESSING_MESSAGE

    return _STATE_TABLE.get(state.strip(), (PublishStatus.PROCESSING, state))


def is_credential_failure(status: PublishStatus) -> bool:
    """Statuses that mean the account must log in again."""
    return status in (PublishStatus.COOKIE_MISSING, PublishStatus.COOKIE_EXPIRED)
