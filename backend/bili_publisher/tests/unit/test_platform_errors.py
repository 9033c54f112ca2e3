"""
Error translation and envelope tests.

CRITICAL: These tests verify:
1. Credential problems always surface as RELOGIN_REQUIRED
2. biliup failures map onto 502/503, never 500
3. Unhandled exceptions return a generic 500 without internals
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from bili_publisher.credentials.vault import CredentialExpiredError, CredentialNotFoundError
from bili_publisher.integrations.biliup.errors import (
    UpstreamAuthError,
    UpstreamProtocolError,
    UpstreamRequestError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)
from bili_publisher.platform.errors import (
    CORRELATION_HEADER,
    AppError,
    ReloginRequiredError,
    envelope,
    register_error_handling,
    translate_exception,
)
from bili_publisher.services.reconciler import RecoveryFailedError
from bili_publisher.storage.artifacts import ArtifactPathError
from bili_publisher.utils.encryption import DecryptionError, EncryptionError


# ============================================================================
# TEST SUITE: TRANSLATION
# ============================================================================

class TestTranslateException:

    @pytest.mark.parametrize("exc,status_code,error_code", [
        (CredentialNotFoundError("x"), 401, "RELOGIN_REQUIRED"),
        (CredentialExpiredError("x"), 401, "RELOGIN_REQUIRED"),
        (DecryptionError("x"), 401, "RELOGIN_REQUIRED"),
        (EncryptionError("x"), 500, "ENCRYPTION_ERROR"),
        (RecoveryFailedError("x"), 500, "RECOVERY_FAILED"),
        (UpstreamUnavailableError("x"), 503, "SERVICE_UNAVAILABLE"),
        (UpstreamTimeoutError("x"), 503, "SERVICE_UNAVAILABLE"),
        (UpstreamAuthError("x", status_code=403), 502, "UPSTREAM_AUTH_FAILED"),
        (UpstreamProtocolError("x"), 502, "UPSTREAM_PROTOCOL_ERROR"),
        (UpstreamRequestError("x", status_code=500), 502, "UPSTREAM_REQUEST_FAILED"),
        (ArtifactPathError("x"), 400, "VALIDATION_ERROR"),
    ])
    def test_mapping(self, exc, status_code, error_code):
        error = translate_exception(exc)

        assert error.status_code == status_code
        assert error.code == error_code

    def test_unknown_exception_unmapped(self):
        assert translate_exception(RuntimeError("boom")) is None

    def test_upstream_status_in_details(self):
        error = translate_exception(UpstreamRequestError("x", status_code=500))
        assert error.to_dict()["data"]["upstream_status"] == 500

    def test_relogin_envelope(self):
        assert ReloginRequiredError().to_dict() == envelope(
            401, "Cookie 不存在或已过期，请重新登录", {"error_code": "RELOGIN_REQUIRED"},
        )


# ============================================================================
# TEST SUITE: HTTP HANDLING
# ============================================================================

@pytest.fixture
def error_client():
    app = FastAPI()
    register_error_handling(app)

    @app.get("/expired")
    def expired():
        raise CredentialExpiredError("secret detail")

    @app.get("/down")
    def down():
        raise UpstreamUnavailableError("connection refused to 10.0.0.5")

    @app.get("/app-error")
    def app_error():
        raise AppError("CUSTOM", "custom failure", status_code=409, details={"k": "v"})

    @app.get("/boom")
    def boom():
        raise RuntimeError("internal detail")

    @app.get("/ok")
    def ok():
        return envelope(200, "success", {"value": 1})

    return TestClient(app)


class TestErrorHandling:

    def test_credential_error(self, error_client):
        response = error_client.get("/expired")

        assert response.status_code == 401
        body = response.json()
        assert body["code"] == 401
        assert body["data"]["error_code"] == "RELOGIN_REQUIRED"
        assert "secret detail" not in response.text

    def test_upstream_down(self, error_client):
        response = error_client.get("/down")

        assert response.status_code == 503
        assert "10.0.0.5" not in response.text

    def test_app_error_details(self, error_client):
        body = error_client.get("/app-error").json()

        assert body["code"] == 409
        assert body["message"] == "custom failure"
        assert body["data"]["k"] == "v"

    def test_unhandled_is_generic_500(self, error_client):
        response = error_client.get("/boom")

        assert response.status_code == 500
        assert response.json()["data"]["error_code"] == "INTERNAL_ERROR"
        assert "internal detail" not in response.text

    def test_unknown_route_uses_envelope(self, error_client):
        response = error_client.get("/missing")

        assert response.status_code == 404
        assert response.json()["code"] == 404

    def test_correlation_id_echoed(self, error_client):
        response = error_client.get("/expired", headers={CORRELATION_HEADER: "corr-123"})

        assert response.headers[CORRELATION_HEADER] == "corr-123"
        assert response.json()["data"]["correlation_id"] == "corr-123"

    def test_correlation_id_generated_on_success(self, error_client):
        response = error_client.get("/ok")

        assert response.status_code == 200
        assert response.headers[CORRELATION_HEADER]
