"""Integration and webhook models."""

from datetime import datetime
from typing import Optional, Dict, Any, List
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class IntegrationType(str, Enum):
    """Types of integrations."""
    WEBHOOK = "webhook"
    REST_API = "rest_api"
    FEED = "feed"
    CODE_HOSTING = "code_hosting"
    WEATHER = "weather"
    CUSTOM = "custom"


class Integration(BaseModel):
    """A configured connector between an external source and a destination."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    owner_id: str
    name: str
    integration_type: IntegrationType
    provider: str = ""

    # Source configuration
    config: Dict[str, Any] = Field(default_factory=dict)
    credentials_encrypted: Optional[str] = None

    # Delivery
    destination_id: Optional[str] = None
    message_template: Optional[str] = None
    embed_template: Optional[Dict[str, Any]] = None

    # Scheduling
    is_active: bool = True
    sync_interval: Optional[int] = None
    last_sync_at: Optional[datetime] = None
    next_sync_at: Optional[datetime] = None

    # Statistics
    sync_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None

    # Pipeline
    filter_config: Optional[Dict[str, Any]] = None
    transform_config: Optional[Dict[str, Any]] = None

    # Metadata
    created_by: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def polls(self) -> bool:
        """Whether the scheduler fires this integration on its own."""
        return bool(self.sync_interval and self.sync_interval > 0)


class Webhook(BaseModel):
    """An inbound endpoint that external senders push events to."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    owner_id: str
    integration_id: Optional[str] = None
    name: str
    secret_token: Optional[str] = None
    events: List[str] = Field(default_factory=lambda: ["*"])
    destination_id: Optional[str] = None
    is_active: bool = True

    # Security limits
    max_payload_size: int = 1024 * 1024
    rate_limit_per_minute: int = 60
    timeout_seconds: float = 30.0

    # Statistics
    success_count: int = 0
    failure_count: int = 0
    last_triggered_at: Optional[datetime] = None
    last_success_at: Optional[datetime] = None
    last_failure_at: Optional[datetime] = None
    last_error: Optional[str] = None

    # Metadata
    created_by: str = ""
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def subscribes_to(self, event: str) -> bool:
        """Check whether an inbound event type is in the subscribed set."""
        return "*" in self.events or event in self.events
