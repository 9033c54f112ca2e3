"""
Application entry point.

Run with:
    uvicorn bili_publisher.main:app --host 0.0.0.0 --port 8080
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from bili_publisher import __version__
from bili_publisher.api.routes import bilibili, health
from bili_publisher.credentials.redaction import setup_credential_logging
from bili_publisher.database.session import init_db
from bili_publisher.integrations.biliup.client import close_biliup_client, get_biliup_client
from bili_publisher.platform.errors import register_error_handling
from bili_publisher.utils.encryption import validate_encryption_configured

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_credential_logging()
    init_db()

    if not validate_encryption_configured():
        logger.warning("Credential encryption key not configured; logins cannot be stored")

    # Best-effort: a biliup outage at startup must not stop the service
    get_biliup_client().ensure_authenticated()

    yield

    close_biliup_client()


def create_app(use_lifespan: bool = True) -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Bilibili Publisher",
        version=__version__,
        lifespan=lifespan if use_lifespan else None,
    )
    register_error_handling(app)
    app.include_router(health.router)
    app.include_router(bilibili.router)
    return app


app = create_app()
