"""
Health checks for the publish bridge.

Provides:
- Database connectivity and credential table presence
- biliup reachability
- Encryption key presence (never its value)
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from bili_publisher.integrations.biliup.client import BiliupClient
from bili_publisher.integrations.biliup.errors import BiliupError
from bili_publisher.utils.encryption import DEFAULT_KEY_ENV_VAR, validate_encryption_configured

logger = logging.getLogger(__name__)

SERVICE_NAME = "bili-publisher"

REQUIRED_TABLES = ("bili_credentials",)


class HealthChecker:
    """Aggregates component checks into one status document."""

    def __init__(
        self,
        engine_factory: Callable[[], Engine],
        client_factory: Callable[[], BiliupClient],
        key_env_var: str = DEFAULT_KEY_ENV_VAR,
    ):
        self._engine_factory = engine_factory
        self._client_factory = client_factory
        self.key_env_var = key_env_var

    def check_database(self) -> dict:
        """
        Check database connectivity and that the credential table exists.

        Returns:
            Dict with 'status' (ok/error) and 'message'
        """
        try:
            engine = self._engine_factory()
            with engine.connect() as conn:
                conn.execute(text("SELECT 1")).fetchone()
            missing = [
                table for table in REQUIRED_TABLES
                if not inspect(engine).has_table(table)
            ]
        except SQLAlchemyError as e:
            logger.error("Database connection failed", extra={"error": str(e)})
            return {
                "status": "error",
                "message": "Database connection failed",
            }

        if missing:
            return {
                "status": "error",
                "missing_tables": missing,
                "message": f"{len(missing)} required table(s) missing",
            }
        return {
            "status": "ok",
            "message": "Database connection successful",
        }

    def check_upstream(self) -> dict:
        """
        Check biliup answers an authenticated status call.

        When it does, the number of user entries biliup has configured is
        reported too; a failed listing does not fail the check.
        """
        client = self._client_factory()
        if not client.health_check():
            return {"status": "error", "message": "biliup unreachable"}

        result = {"status": "ok", "message": "biliup reachable"}
        try:
            result["configured_users"] = len(client.list_users())
        except BiliupError as e:
            logger.warning("biliup user listing failed", extra={"error": str(e)})
        return result

    def check_encryption(self) -> dict:
        """Check a usable credential key is configured, without reading it out."""
        if validate_encryption_configured(self.key_env_var):
            return {"status": "ok", "message": f"{self.key_env_var} configured"}
        return {"status": "error", "message": f"{self.key_env_var} missing or invalid"}

    def get_health_status(self) -> dict:
        """
        Get comprehensive health status.

        Returns:
            Dict with overall status and component checks
        """
        checks = {
            "database": self.check_database(),
            "upstream": self.check_upstream(),
            "encryption": self.check_encryption(),
        }

        overall_status = "ok"
        if any(check["status"] != "ok" for check in checks.values()):
            overall_status = "degraded"

        return {
            "status": overall_status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "service": SERVICE_NAME,
            "checks": checks,
        }


# Global health checker instance
_health_checker: Optional[HealthChecker] = None
_health_checker_lock = threading.Lock()


def get_health_checker() -> HealthChecker:
    """Get or create health checker instance."""
    global _health_checker
    if _health_checker is None:
        from bili_publisher.database.session import get_engine
        from bili_publisher.integrations.biliup.client import get_biliup_client

        with _health_checker_lock:
            if _health_checker is None:
                _health_checker = HealthChecker(get_engine, get_biliup_client)
    return _health_checker
