"""Activity log models."""

from datetime import datetime
from typing import Optional, Dict, Any
from pydantic import BaseModel, ConfigDict, Field
from enum import Enum


class ActivitySource(str, Enum):
    """What produced an activity entry."""
    SYNC = "sync"
    WEBHOOK = "webhook"


class ActivityStatus(str, Enum):
    """Outcome of a sync attempt or webhook request."""
    SUCCESS = "success"
    FAILED = "failed"
    PENDING = "pending"
    CANCELLED = "cancelled"


class ActivityLogEntry(BaseModel):
    """Append-only record of one sync attempt or one webhook request."""

    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, alias="_id")
    owner_id: Optional[str] = None
    integration_id: Optional[str] = None
    webhook_id: Optional[str] = None

    source: ActivitySource
    event_type: str
    event_source: Optional[str] = None
    status: ActivityStatus

    # Request snapshot
    request_method: Optional[str] = None
    request_url: Optional[str] = None
    request_headers: Dict[str, str] = Field(default_factory=dict)
    request_body: Optional[Any] = None

    # Response snapshot
    response_status: Optional[int] = None
    response_body: Optional[Any] = None

    processing_time_ms: float = 0.0
    error_message: Optional[str] = None
    error_category: Optional[str] = None
    retry_count: int = 0

    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    created_at: datetime = Field(default_factory=datetime.utcnow)
