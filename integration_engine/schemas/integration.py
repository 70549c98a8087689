"""Integration and webhook API schemas."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, Field

from integration_engine.models import ActivityLogEntry, Integration, IntegrationType, Webhook


class IntegrationCreate(BaseModel):
    """Schema for creating an integration."""
    owner_id: str
    name: str
    integration_type: IntegrationType
    provider: str = ""
    config: Dict[str, Any] = Field(default_factory=dict)
    credentials: Optional[Dict[str, Any]] = None
    destination_id: Optional[str] = None
    message_template: Optional[str] = None
    embed_template: Optional[Dict[str, Any]] = None
    is_active: bool = True
    sync_interval: Optional[int] = Field(default=None, gt=0)
    filter_config: Optional[Dict[str, Any]] = None
    transform_config: Optional[Dict[str, Any]] = None
    created_by: str = ""


class IntegrationUpdate(BaseModel):
    """Schema for updating an integration; only set fields are applied."""
    name: Optional[str] = None
    provider: Optional[str] = None
    config: Optional[Dict[str, Any]] = None
    credentials: Optional[Dict[str, Any]] = None
    destination_id: Optional[str] = None
    message_template: Optional[str] = None
    embed_template: Optional[Dict[str, Any]] = None
    is_active: Optional[bool] = None
    sync_interval: Optional[int] = Field(default=None, gt=0)
    filter_config: Optional[Dict[str, Any]] = None
    transform_config: Optional[Dict[str, Any]] = None


class IntegrationResponse(BaseModel):
    """Integration response schema; credentials are never returned."""
    id: str
    owner_id: str
    name: str
    integration_type: IntegrationType
    provider: str
    config: Dict[str, Any]
    has_credentials: bool
    destination_id: Optional[str] = None
    is_active: bool
    sync_interval: Optional[int] = None
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None
    sync_count: int
    error_count: int
    last_error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, integration: Integration) -> "IntegrationResponse":
        data = integration.model_dump(exclude={"credentials_encrypted"})
        return cls(**data, has_credentials=bool(integration.credentials_encrypted))


class WebhookCreate(BaseModel):
    """Schema for creating a webhook."""
    owner_id: str
    name: str
    integration_id: Optional[str] = None
    secret_token: Optional[str] = None
    generate_secret: bool = False
    events: List[str] = Field(default_factory=lambda: ["*"])
    destination_id: Optional[str] = None
    is_active: bool = True
    max_payload_size: int = Field(default=1024 * 1024, gt=0)
    rate_limit_per_minute: int = Field(default=60, ge=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    created_by: str = ""


class WebhookCreatedResponse(BaseModel):
    """Returned once at creation; the secret is not shown again."""
    id: str
    webhook_url: str
    secret_token: Optional[str] = None
    events: List[str]

    @classmethod
    def from_model(cls, webhook: Webhook, base_url: str) -> "WebhookCreatedResponse":
        return cls(
            id=webhook.id,
            webhook_url=f"{base_url.rstrip('/')}/{webhook.id}",
            secret_token=webhook.secret_token,
            events=webhook.events,
        )


class WebhookResponse(BaseModel):
    """Webhook response schema; the secret is never returned."""
    id: str
    owner_id: str
    integration_id: Optional[str] = None
    name: str
    events: List[str]
    destination_id: Optional[str] = None
    is_active: bool
    has_secret: bool
    success_count: int
    failure_count: int
    last_triggered_at: Optional[datetime] = None
    last_error: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_model(cls, webhook: Webhook) -> "WebhookResponse":
        data = webhook.model_dump(exclude={"secret_token"})
        return cls(**data, has_secret=bool(webhook.secret_token))


class SyncResponse(BaseModel):
    """Outcome of a manual sync."""
    integration_id: str
    status: str
    duration_ms: float = 0.0
    next_sync: Optional[datetime] = None
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    error_category: Optional[str] = None


class ActivityListResponse(BaseModel):
    """Activity log entries, newest first."""
    items: List[ActivityLogEntry]
    total: int
