from fastapi import APIRouter, Depends, HTTPException, status
from loguru import logger
from sqlalchemy import text
from sqlmodel import Session

from app.core.config import settings
from app.db.core import get_session

router = APIRouter()


@router.get("/", status_code=status.HTTP_200_OK)
def index():
    return {"status": "API is running", "app": settings.app_name}


@router.get(
    "/readiness",
    status_code=status.HTTP_200_OK,
    summary="Readiness Probe",
    description="Checks the database and reports which delivery integrations are configured."
)
def readiness_check(session: Session = Depends(get_session)):
    try:
        session.execute(text("SELECT 1"))
    except Exception:
        logger.exception("Database readiness check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Database not ready"
        )

    return {
        "status": "ready",
        "database": "online",
        "payment_processor": settings.payment_processor,
        "push": "configured" if settings.fcm_server_key else "disabled",
        "email": "configured" if settings.resend_api_key else "disabled",
    }
