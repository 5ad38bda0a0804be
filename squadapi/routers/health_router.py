import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from squadapi.config import settings
from squadapi.database.session import get_db
from squadapi.schemas.health import HealthCheckResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(db: Session = Depends(get_db)) -> HealthCheckResponse:
    """Health check endpoint."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {str(e)}")
        return HealthCheckResponse(
            status="degraded",
            database="unavailable",
            environment=settings.ENVIRONMENT,
            error=type(e).__name__,
        )
    return HealthCheckResponse(environment=settings.ENVIRONMENT)
