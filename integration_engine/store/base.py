"""Persistence contract the engine depends on."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from integration_engine.models import ActivityLogEntry, Integration, Webhook


class Store(ABC):
    """CRUD over integrations, webhooks and the activity log."""

    # Integrations

    @abstractmethod
    async def create_integration(self, integration: Integration) -> Integration:
        """Persist a new integration and return it with its id assigned."""
        pass

    @abstractmethod
    async def get_integration(self, integration_id: str) -> Optional[Integration]:
        pass

    @abstractmethod
    async def list_integrations(
        self,
        owner_id: Optional[str] = None,
        active_only: bool = False,
    ) -> List[Integration]:
        pass

    @abstractmethod
    async def update_integration(
        self,
        integration_id: str,
        updates: Dict[str, Any],
    ) -> Optional[Integration]:
        """Apply a partial update; returns None if the integration is gone."""
        pass

    @abstractmethod
    async def record_sync_result(
        self,
        integration_id: str,
        success: bool,
        synced_at: datetime,
        next_sync_at: Optional[datetime],
        error: Optional[str] = None,
    ) -> None:
        """Bump sync or error counters and store the next schedule."""
        pass

    @abstractmethod
    async def delete_integration(self, integration_id: str) -> bool:
        pass

    # Webhooks

    @abstractmethod
    async def create_webhook(self, webhook: Webhook) -> Webhook:
        pass

    @abstractmethod
    async def get_webhook(self, webhook_id: str) -> Optional[Webhook]:
        pass

    @abstractmethod
    async def list_webhooks(self, owner_id: Optional[str] = None) -> List[Webhook]:
        pass

    @abstractmethod
    async def update_webhook_stats(
        self,
        webhook_id: str,
        success: bool,
        error: Optional[str] = None,
    ) -> None:
        pass

    @abstractmethod
    async def delete_webhook(self, webhook_id: str) -> bool:
        pass

    # Activity log

    @abstractmethod
    async def append_activity(self, entry: ActivityLogEntry) -> str:
        """Append an entry and return its id."""
        pass

    @abstractmethod
    async def list_activity(
        self,
        integration_id: Optional[str] = None,
        webhook_id: Optional[str] = None,
        limit: int = 100,
    ) -> List[ActivityLogEntry]:
        """Most recent entries first."""
        pass

    async def close(self) -> None:
        pass
