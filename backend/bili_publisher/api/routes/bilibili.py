"""
Bilibili login and publish API.

Endpoints:
- GET    /api/bilibili/qrcode               issue a login QR code
- POST   /api/bilibili/qrcode/poll          wait (up to ~300s) for the scan to finish
- GET    /api/bilibili/login/status         can this account publish without scanning
- DELETE /api/bilibili/login                forget the account's cookie
- GET    /api/bilibili/user/info            Bilibili profile for the account
- POST   /api/bilibili/publish              submit a publish job
- GET    /api/bilibili/upload/status/{id}   job progress

Handlers are plain ``def`` so the blocking biliup calls run on FastAPI's
worker threads. Failures are raised and rendered by platform.errors; a
credential failure is always 401 with error_code RELOGIN_REQUIRED.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from bili_publisher.api.dependencies import get_publish_service, get_qr_login_service
from bili_publisher.api.schemas.bilibili import (
    ApiResult,
    LoginStatusResponse,
    PublishRequest,
    PublishResponse,
    QrCodeResponse,
    QrPollRequest,
    UserInfoResponse,
)
from bili_publisher.services.login_state import LoginState
from bili_publisher.services.publish_service import PublishOutcome, PublishService
from bili_publisher.services.qr_login_service import LoginResult, QrLoginService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/bilibili", tags=["bilibili"])

LOGGED_OUT_MESSAGE = "已退出登录"


def _login_response(result: LoginResult) -> LoginStatusResponse:
    return LoginStatusResponse(
        status=result.state.value,
        message=result.message,
        user_id=result.account_id,
        username=result.display_name,
    )


def _publish_response(outcome: PublishOutcome) -> PublishResponse:
    return PublishResponse(
        task_id=outcome.task_id,
        status=outcome.status.value,
        message=outcome.message,
    )


# =============================================================================
# Login
# =============================================================================


@router.get("/qrcode", response_model=ApiResult[QrCodeResponse])
def get_qr_code(service: QrLoginService = Depends(get_qr_login_service)):
    """Issue a new QR code. Each call starts an independent login session."""
    ticket = service.issue_qr_code()
    return ApiResult[QrCodeResponse].success(
        QrCodeResponse(qrcode_url=ticket.url, qrcode_key=ticket.login_key)
    )


@router.post("/qrcode/poll", response_model=ApiResult[LoginStatusResponse])
def poll_qr_login(
    body: QrPollRequest,
    service: QrLoginService = Depends(get_qr_login_service),
):
    """
    Block until the user confirms the scan or the code expires.

    Clients must allow at least five minutes for this call.
    """
    logger.info("QR login poll started")
    result = service.confirm_qr_login(body.qrcode_key)
    return ApiResult[LoginStatusResponse].success(_login_response(result))


@router.get("/login/status", response_model=ApiResult[LoginStatusResponse])
def get_login_status(
    user_id: str = Query(..., alias="userId", min_length=1),
    service: QrLoginService = Depends(get_qr_login_service),
):
    """CONFIRMED if a valid cookie is stored for the account, else EXPIRED."""
    result = service.check_login_status(user_id)
    return ApiResult[LoginStatusResponse].success(_login_response(result))


@router.delete("/login", response_model=ApiResult[LoginStatusResponse])
def logout(
    user_id: str = Query(..., alias="userId", min_length=1),
    service: PublishService = Depends(get_publish_service),
):
    service.logout(user_id)
    return ApiResult[LoginStatusResponse].success(
        LoginStatusResponse(
            status=LoginState.EXPIRED.value,
            message=LOGGED_OUT_MESSAGE,
            user_id=user_id,
        )
    )


# =============================================================================
# User info
# =============================================================================


@router.get("/user/info", response_model=ApiResult[UserInfoResponse])
def get_user_info(
    user_id: str = Query(..., alias="userId", min_length=1),
    service: PublishService = Depends(get_publish_service),
):
    profile = service.get_user_info(user_id)
    return ApiResult[UserInfoResponse].success(
        UserInfoResponse(
            mid=profile.mid,
            name=profile.name,
            face=profile.face,
            level=profile.level,
            vip_status=profile.vip_status,
        )
    )


# =============================================================================
# Publish
# =============================================================================


@router.post("/publish", response_model=ApiResult[PublishResponse])
def publish_video(
    body: PublishRequest,
    service: PublishService = Depends(get_publish_service),
):
    """Reconcile the account's cookie, probe it, and submit the job to biliup."""
    logger.info(
        "Publish requested",
        extra={"account_id": body.user_id, "title": body.title},
    )
    outcome = service.publish(body.to_job_spec())
    return ApiResult[PublishResponse].success(_publish_response(outcome))


@router.get("/upload/status/{task_id}", response_model=ApiResult[PublishResponse])
def get_upload_status(
    task_id: str,
    user_id: Optional[str] = Query(None, alias="userId"),
    service: PublishService = Depends(get_publish_service),
):
    """
    Job progress in the canonical status taxonomy.

    Passing ``userId`` restores the account's cookie on biliup first.
    """
    outcome = service.get_status(task_id, account_id=user_id)
    return ApiResult[PublishResponse].success(_publish_response(outcome))
