from fastapi import APIRouter
from fastapi.responses import JSONResponse

from bili_publisher.platform.health import get_health_checker

router = APIRouter()


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/api/health/readiness")
def readiness():
    """Readiness probe covering the database, biliup and the credential key."""
    result = get_health_checker().get_health_status()
    status_code = 200 if result["status"] == "ok" else 503
    return JSONResponse(status_code=status_code, content=result)
