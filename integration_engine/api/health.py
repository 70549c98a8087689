"""Health check endpoints."""

from fastapi import APIRouter, Depends
from datetime import datetime

from integration_engine.api.dependencies import get_engine
from integration_engine.services.integration_service import IntegrationEngine

router = APIRouter()


@router.get("/health")
async def health_check(engine: IntegrationEngine = Depends(get_engine)):
    """Basic health check with scheduler state."""
    return {
        "status": "healthy",
        "service": engine.settings.service_name,
        "environment": engine.settings.environment,
        "timestamp": datetime.utcnow().isoformat(),
        "scheduler": engine.scheduler.stats(),
    }
