"""Activity logging for sync attempts and webhook requests."""

from typing import Any, Dict, Mapping, Optional
import logging

from integration_engine.core.exceptions import error_category as categorize
from integration_engine.models import ActivityLogEntry, ActivitySource, ActivityStatus, Integration
from integration_engine.store.base import Store

logger = logging.getLogger(__name__)

SENSITIVE_HEADERS = {
    "authorization",
    "proxy-authorization",
    "cookie",
    "set-cookie",
    "x-api-key",
    "x-secret-token",
}
SENSITIVE_MARKERS = ("secret", "token", "api-key", "password", "signature")


def sanitize_headers(headers: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Drop credential-bearing headers before they are persisted."""
    if not headers:
        return {}
    sanitized = {}
    for name, value in headers.items():
        lowered = name.lower()
        if lowered in SENSITIVE_HEADERS or any(marker in lowered for marker in SENSITIVE_MARKERS):
            continue
        sanitized[lowered] = value
    return sanitized


class ActivityLogger:
    """Writes one activity entry per sync attempt or webhook request."""

    def __init__(self, store: Store):
        self.store = store

    async def record(self, entry: ActivityLogEntry) -> Optional[str]:
        """Persist an entry; a store failure is logged, never raised."""
        try:
            return await self.store.append_activity(entry)
        except Exception as e:
            logger.error(f"Failed to write activity log entry: {e}")
            return None

    async def record_sync(
        self,
        integration: Integration,
        status: ActivityStatus,
        processing_time_ms: float,
        result: Optional[Dict[str, Any]] = None,
        error: Optional[BaseException] = None,
        manual: bool = False,
    ) -> Optional[str]:
        entry = ActivityLogEntry(
            owner_id=integration.owner_id,
            integration_id=integration.id,
            source=ActivitySource.SYNC,
            event_type="manual_sync" if manual else "sync",
            event_source=integration.integration_type.value,
            status=status,
            response_body=result,
            processing_time_ms=processing_time_ms,
            error_message=str(error) if error else None,
            error_category=categorize(error) if error else None,
            metadata={"provider": integration.provider} if integration.provider else {},
        )
        return await self.record(entry)

    async def record_webhook(
        self,
        webhook_id: Optional[str],
        event_type: str,
        status: ActivityStatus,
        response_status: int,
        processing_time_ms: float,
        headers: Optional[Mapping[str, str]] = None,
        body: Any = None,
        response_body: Any = None,
        method: str = "POST",
        url: Optional[str] = None,
        client_ip: Optional[str] = None,
        owner_id: Optional[str] = None,
        integration_id: Optional[str] = None,
        error_message: Optional[str] = None,
        error_category: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[str]:
        sanitized = sanitize_headers(headers)
        entry = ActivityLogEntry(
            owner_id=owner_id,
            integration_id=integration_id,
            webhook_id=webhook_id,
            source=ActivitySource.WEBHOOK,
            event_type=event_type,
            event_source="webhook",
            status=status,
            request_method=method,
            request_url=url,
            request_headers=sanitized,
            request_body=body,
            response_status=response_status,
            response_body=response_body,
            processing_time_ms=processing_time_ms,
            error_message=error_message,
            error_category=error_category,
            user_agent=sanitized.get("user-agent"),
            ip_address=client_ip,
            metadata=metadata or {},
        )
        return await self.record(entry)
