"""
End-to-end tests for /api/bilibili against FakeBiliup.

The app runs without its lifespan; dependencies are overridden so every
request uses the test vault, reconciler and biliup client.
"""

import httpx
import pytest
from fastapi.testclient import TestClient

from bili_publisher.api.dependencies import get_client, get_reconciler, get_vault
from bili_publisher.main import create_app
from bili_publisher.platform.errors import CORRELATION_HEADER


@pytest.fixture
def api(biliup_client, vault, reconciler):
    app = create_app(use_lifespan=False)
    app.dependency_overrides[get_client] = lambda: biliup_client
    app.dependency_overrides[get_vault] = lambda: vault
    app.dependency_overrides[get_reconciler] = lambda: reconciler
    with TestClient(app) as client:
        yield client


@pytest.fixture
def logged_in(vault, artifact_store, fake_biliup, live_profile, sample_cookie):
    vault.save("42", "uploader", sample_cookie)
    artifact_store.write("42", sample_cookie)
    fake_biliup.route("GET", "/bili/space/myinfo", live_profile)
    fake_biliup.route("POST", "/v1/users", {})
    return fake_biliup


def _publish_body(**overrides):
    body = {
        "userId": "42",
        "videoPath": "/videos/a.mp4",
        "title": "测试视频",
        "tag": "游戏,测试",
        "tid": 171,
    }
    body.update(overrides)
    return body


# ============================================================================
# TEST SUITE: LOGIN
# ============================================================================

class TestLoginApi:

    def test_issue_qr_code(self, api, fake_biliup):
        fake_biliup.route("GET", "/v1/get_qrcode", {"url": "https://qr.test/a", "auth_code": "k1"})

        response = api.get("/api/bilibili/qrcode")

        assert response.status_code == 200
        assert response.json() == {
            "code": 200,
            "message": "success",
            "data": {"qrcodeUrl": "https://qr.test/a", "qrcodeKey": "k1"},
        }

    def test_poll_confirmed(self, api, fake_biliup, artifact_store, live_profile, sample_cookie, vault):
        def confirm(request):
            artifact_store.write("42", sample_cookie)
            return httpx.Response(200, json={"filename": "data/42.json"})

        fake_biliup.route("POST", "/v1/login_by_qrcode", confirm)
        fake_biliup.route("GET", "/bili/space/myinfo", live_profile)
        fake_biliup.route("POST", "/v1/users", {})

        response = api.post("/api/bilibili/qrcode/poll", json={"qrcodeKey": "k1"})

        data = response.json()["data"]
        assert data["status"] == "CONFIRMED"
        assert data["userId"] == "42"
        assert data["username"] == "uploader"
        assert "fake-sessdata" not in response.text
        assert vault.is_valid("42")

    def test_poll_timeout(self, api, fake_biliup):
        fake_biliup.route("POST", "/v1/login_by_qrcode", {"status": "TIMEOUT"})

        data = api.post("/api/bilibili/qrcode/poll", json={"qrcodeKey": "k1"}).json()["data"]

        assert data["status"] == "EXPIRED"

    def test_poll_reports_scanned(self, api, fake_biliup, vault):
        fake_biliup.route("POST", "/v1/login_by_qrcode", {"code": 86090, "message": "二维码已扫码未确认"})

        response = api.post("/api/bilibili/qrcode/poll", json={"qrcodeKey": "k1"})

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "SCANNED"
        assert data["message"] == "已扫码，等待确认"
        assert data.get("userId") is None

    def test_poll_reports_waiting(self, api, fake_biliup):
        fake_biliup.route("POST", "/v1/login_by_qrcode", {"code": 86101, "message": "未扫码"})

        data = api.post("/api/bilibili/qrcode/poll", json={"qrcodeKey": "k1"}).json()["data"]

        assert data["status"] == "WAITING"

    def test_poll_requires_key(self, api):
        response = api.post("/api/bilibili/qrcode/poll", json={"qrcodeKey": ""})

        assert response.status_code == 400
        assert response.json()["data"]["error_code"] == "VALIDATION_ERROR"

    def test_login_status(self, api, vault):
        vault.save("42", "uploader", "cookie")

        data = api.get("/api/bilibili/login/status", params={"userId": "42"}).json()["data"]

        assert data["status"] == "CONFIRMED"
        assert data["username"] == "uploader"

    def test_login_status_unknown_account(self, api):
        data = api.get("/api/bilibili/login/status", params={"userId": "7"}).json()["data"]
        assert data["status"] == "EXPIRED"

    def test_logout(self, api, logged_in, vault, artifact_store):
        response = api.delete("/api/bilibili/login", params={"userId": "42"})

        assert response.json()["data"]["status"] == "EXPIRED"
        assert vault.is_valid("42") is False
        assert artifact_store.exists("42") is False


# ============================================================================
# TEST SUITE: PUBLISH
# ============================================================================

class TestPublishApi:

    def test_publish(self, api, logged_in):
        logged_in.route("POST", "/v1/uploads", {"task_id": "t-1"})

        response = api.post("/api/bilibili/publish", json=_publish_body())

        assert response.status_code == 200
        assert response.json()["data"] == {
            "taskId": "t-1",
            "status": "PROCESSING",
            "message": "发布任务已提交",
        }

    def test_publish_without_login_is_relogin(self, api, fake_biliup):
        response = api.post("/api/bilibili/publish", json=_publish_body())

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == 401
        assert body["data"]["error_code"] == "RELOGIN_REQUIRED"
        assert response.headers[CORRELATION_HEADER]
        assert fake_biliup.count("POST", "/v1/uploads") == 0

    def test_publish_rejected_cookie_is_relogin(self, api, logged_in, vault):
        logged_in.route("POST", "/v1/uploads", {"task_id": "t-2", "state": "登录失败,请检查cookie"})

        response = api.post("/api/bilibili/publish", json=_publish_body())

        assert response.status_code == 401
        assert response.json()["data"]["error_code"] == "RELOGIN_REQUIRED"
        assert vault.is_valid("42") is False

    def test_publish_with_revoked_cookie(self, api, logged_in, dead_profile, vault):
        logged_in.route("GET", "/bili/space/myinfo", dead_profile)

        response = api.post("/api/bilibili/publish", json=_publish_body())

        assert response.status_code == 401
        assert vault.is_valid("42") is False

    def test_reprint_requires_source(self, api, logged_in):
        response = api.post("/api/bilibili/publish", json=_publish_body(copyright=2))

        assert response.status_code == 400
        assert logged_in.count("POST", "/v1/uploads") == 0

    @pytest.mark.parametrize("overrides", [
        {"title": "x" * 81},
        {"tid": 0},
        {"copyright": 3},
        {"tag": ""},
    ])
    def test_invalid_body(self, api, overrides):
        assert api.post("/api/bilibili/publish", json=_publish_body(**overrides)).status_code == 400

    def test_unsafe_user_id(self, api):
        response = api.post("/api/bilibili/publish", json=_publish_body(userId="../etc"))

        assert response.status_code in (400, 401)

    def test_biliup_down_is_503(self, api, vault, artifact_store, fake_biliup, sample_cookie):
        vault.save("42", "uploader", sample_cookie)
        artifact_store.write("42", sample_cookie)

        def down(request):
            raise httpx.ConnectError("refused", request=request)

        fake_biliup.route("GET", "/bili/space/myinfo", down)

        response = api.post("/api/bilibili/publish", json=_publish_body())

        assert response.status_code == 503
        assert vault.is_valid("42") is True

    def test_upload_status(self, api, fake_biliup):
        fake_biliup.route("GET", "/v1/status", {"state": "已完成"})

        data = api.get("/api/bilibili/upload/status/t-1").json()["data"]

        assert data["status"] == "COMPLETED"
        assert data["message"] == "发布成功"
        assert data["taskId"] == "t-1"

    def test_upload_status_restores_cookie(self, api, logged_in, artifact_store):
        artifact_store.delete("42")
        logged_in.route("GET", "/v1/status", {"state": "进行中"})

        response = api.get("/api/bilibili/upload/status/t-1", params={"userId": "42"})

        assert response.json()["data"]["status"] == "PROCESSING"
        assert artifact_store.exists("42")

    def test_user_info(self, api, logged_in):
        data = api.get("/api/bilibili/user/info", params={"userId": "42"}).json()["data"]

        assert data["mid"] == 42
        assert data["name"] == "uploader"
        assert data["vipStatus"] == 1
