"""Integration management endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from typing import List, Optional
import logging

from integration_engine.api.dependencies import get_engine, verify_admin_key
from integration_engine.schemas.integration import (
    ActivityListResponse,
    IntegrationCreate,
    IntegrationResponse,
    IntegrationUpdate,
    SyncResponse,
    WebhookCreate,
    WebhookCreatedResponse,
    WebhookResponse,
)
from integration_engine.services.integration_service import IntegrationEngine

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(verify_admin_key)])


@router.post("/", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(
    integration_data: IntegrationCreate,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Create a new integration."""
    integration_id = await engine.create_integration(integration_data)
    integration = await engine.get_integration(integration_id)
    return IntegrationResponse.from_model(integration)


@router.get("/", response_model=List[IntegrationResponse])
async def list_integrations(
    owner_id: Optional[str] = None,
    engine: IntegrationEngine = Depends(get_engine),
):
    """List integrations, optionally for one owner."""
    integrations = await engine.list_integrations(owner_id=owner_id)
    return [IntegrationResponse.from_model(integration) for integration in integrations]


@router.get("/webhooks", response_model=List[WebhookResponse])
async def list_webhooks(
    owner_id: Optional[str] = None,
    engine: IntegrationEngine = Depends(get_engine),
):
    """List webhooks, optionally for one owner. Secrets are not included."""
    webhooks = await engine.list_webhooks(owner_id=owner_id)
    return [WebhookResponse.from_model(webhook) for webhook in webhooks]


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Get integration details, including error counters."""
    integration = await engine.get_integration(integration_id)
    if not integration:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )
    return IntegrationResponse.from_model(integration)


@router.patch("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: str,
    update_data: IntegrationUpdate,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Update integration configuration."""
    integration = await engine.update_integration(integration_id, update_data)
    if not integration:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )
    return IntegrationResponse.from_model(integration)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: str,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Delete an integration and stop its schedule."""
    if not await engine.delete_integration(integration_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )


@router.post("/{integration_id}/sync", response_model=SyncResponse)
async def trigger_sync(
    integration_id: str,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Run a sync now, outside the schedule."""
    if not await engine.get_integration(integration_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Integration not found"
        )

    outcome = await engine.manual_sync(integration_id)
    if outcome is None:
        return SyncResponse(integration_id=integration_id, status="already_running")

    return SyncResponse(
        integration_id=integration_id,
        status="success" if outcome.success else "failed",
        duration_ms=outcome.duration_ms,
        next_sync=outcome.next_sync,
        result=outcome.result,
        error=outcome.error,
        error_category=outcome.error_category,
    )


@router.get("/{integration_id}/activity", response_model=ActivityListResponse)
async def get_integration_activity(
    integration_id: str,
    limit: int = Query(50, ge=1, le=500),
    engine: IntegrationEngine = Depends(get_engine),
):
    """Recent sync attempts and webhook requests for an integration."""
    entries = await engine.get_activity(integration_id=integration_id, limit=limit)
    return ActivityListResponse(items=entries, total=len(entries))


@router.post("/webhooks", response_model=WebhookCreatedResponse, status_code=status.HTTP_201_CREATED)
async def create_webhook(
    webhook_data: WebhookCreate,
    engine: IntegrationEngine = Depends(get_engine),
):
    """Create an inbound webhook endpoint."""
    if webhook_data.integration_id and not await engine.get_integration(webhook_data.integration_id):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Linked integration not found"
        )

    webhook_id = await engine.create_webhook(webhook_data)
    webhook = await engine.get_webhook(webhook_id)
    return WebhookCreatedResponse.from_model(webhook, engine.settings.webhook_base_url)


@router.get("/webhooks/{webhook_id}/activity", response_model=ActivityListResponse)
async def get_webhook_activity(
    webhook_id: str,
    limit: int = Query(50, ge=1, le=500),
    engine: IntegrationEngine = Depends(get_engine),
):
    """Recent requests received by a webhook."""
    entries = await engine.get_activity(webhook_id=webhook_id, limit=limit)
    return ActivityListResponse(items=entries, total=len(entries))
