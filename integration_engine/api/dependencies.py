"""API dependencies."""

from typing import Optional
import hmac
import logging

from fastapi import Depends, Header, HTTPException, Request, status

from integration_engine.services.integration_service import IntegrationEngine
from integration_engine.services.webhook_service import WebhookGateway

logger = logging.getLogger(__name__)


def get_engine(request: Request) -> IntegrationEngine:
    """Engine attached to the app by ``mount_gateway`` or the lifespan."""
    engine = getattr(request.app.state, "integration_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Integration engine is not running",
        )
    return engine


def get_gateway(engine: IntegrationEngine = Depends(get_engine)) -> WebhookGateway:
    return engine.gateway


async def verify_admin_key(
    engine: IntegrationEngine = Depends(get_engine),
    x_api_key: Optional[str] = Header(None),
) -> None:
    """Require ``X-API-Key`` when an admin key is configured."""
    expected = engine.settings.admin_api_key
    if not expected:
        return
    if not x_api_key or not hmac.compare_digest(x_api_key.encode(), expected.encode()):
        logger.warning("Rejected admin request with missing or invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )
