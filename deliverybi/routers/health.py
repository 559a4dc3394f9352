from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from deliverybi.core.logging import app_logger
from deliverybi.infra.db import health_check

router = APIRouter(tags=["health"])

@router.get("/healthz")
def healthz():
    return {"status": "ok"}

@router.get("/readyz")
def readyz():
    """Readiness con conectividad a la base de datos."""
    try:
        return {"status": "ready", "database": health_check()}
    except SQLAlchemyError as exc:
        app_logger.error("Readiness check failed", exc=exc)
        return JSONResponse(status_code=503, content={"status": "not ready", "error": str(exc)})
