"""Inbound webhook endpoint."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
import logging

from integration_engine.api.dependencies import get_gateway
from integration_engine.services.webhook_service import WebhookGateway

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/{webhook_id}")
async def receive_webhook(
    webhook_id: str,
    request: Request,
    gateway: WebhookGateway = Depends(get_gateway),
):
    """Handle an incoming webhook push."""
    body = await request.body()
    result = await gateway.handle(
        webhook_id,
        request.headers,
        body,
        method=request.method,
        url=request.url.path,
        client_ip=request.client.host if request.client else None,
    )
    return JSONResponse(status_code=result.status_code, content=result.body)
