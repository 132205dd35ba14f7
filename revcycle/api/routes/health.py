"""Health check endpoints."""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from revcycle import __version__
from revcycle.config.database import get_db
from revcycle.utils.logger import get_logger

router = APIRouter()
logger = get_logger(__name__)


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Basic liveness check."""
    return HealthResponse(status="healthy", version=__version__)


@router.get("/health/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Liveness plus a round trip to the database."""
    components = {}
    try:
        db.execute(text("SELECT 1"))
        components["database"] = {"status": "healthy"}
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        components["database"] = {"status": "unhealthy", "error": type(e).__name__}

    healthy = all(component["status"] == "healthy" for component in components.values())
    return {
        "status": "healthy" if healthy else "degraded",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": components,
    }
