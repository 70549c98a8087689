"""Connector registry and the executor that dispatches through it."""

from typing import Any, Dict, Optional, Type
import logging
import httpx

from integration_engine.connectors.base import BaseConnector
from integration_engine.core.config import Settings
from integration_engine.core.exceptions import ConfigurationError
from integration_engine.delivery import DeliverySink
from integration_engine.models import Integration, IntegrationType
from integration_engine.utils.crypto import CredentialVault

logger = logging.getLogger(__name__)


class ConnectorRegistry:
    """Registry for connector implementations."""

    _connectors: Dict[IntegrationType, Type[BaseConnector]] = {}

    @classmethod
    def register(cls, integration_type: IntegrationType):
        """Decorator to register a connector class."""
        def decorator(connector_class: Type[BaseConnector]):
            cls._connectors[integration_type] = connector_class
            return connector_class
        return decorator

    @classmethod
    def get(cls, integration_type: IntegrationType) -> Optional[Type[BaseConnector]]:
        """Get connector class by type."""
        return cls._connectors.get(integration_type)

    @classmethod
    def list_types(cls) -> list[IntegrationType]:
        """List all registered integration types."""
        return list(cls._connectors.keys())


class ConnectorExecutor:
    """Runs the registered connector for an integration."""

    def __init__(
        self,
        vault: CredentialVault,
        sink: DeliverySink,
        settings: Settings,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.vault = vault
        self.sink = sink
        self.user_agent = settings.user_agent
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            follow_redirects=True,
        )

    async def execute(self, integration: Integration) -> Dict[str, Any]:
        connector_class = ConnectorRegistry.get(integration.integration_type)
        if connector_class is None:
            raise ConfigurationError(
                f"No connector registered for integration type {integration.integration_type.value}"
            )

        connector = connector_class(integration, self.vault, self.http_client, self.user_agent)
        return await connector.execute(self.sink)

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()
