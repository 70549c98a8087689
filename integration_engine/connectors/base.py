"""Base connector class and utilities."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Optional
import logging
import httpx

from integration_engine.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    ParseError,
    RateLimitError,
)
from integration_engine.delivery import DeliverySink, Message, format_message
from integration_engine.models import Integration
from integration_engine.services.transformation_service import NOT_FOUND, run_pipeline
from integration_engine.utils.crypto import CredentialVault

logger = logging.getLogger(__name__)


class BaseConnector(ABC):
    """Fetches and normalizes data for one polling integration.

    Subclasses implement :meth:`fetch`. :meth:`execute` runs the normalized
    result through the shared pipeline and hands it to the delivery sink.
    """

    def __init__(
        self,
        integration: Integration,
        vault: CredentialVault,
        http_client: httpx.AsyncClient,
        user_agent: str = "Integration-Engine/1.0 Integration",
    ):
        self.integration = integration
        self.vault = vault
        self.http_client = http_client
        self.user_agent = user_agent

    @property
    def config(self) -> Dict[str, Any]:
        return self.integration.config or {}

    def credentials(self) -> Dict[str, Any]:
        """Decrypted credentials for this integration."""
        return self.vault.decrypt_credentials(self.integration.credentials_encrypted)

    def require(self, *names: str) -> Any:
        """First non-empty config value among ``names``."""
        for name in names:
            value = self.config.get(name)
            if value:
                return value
        raise ConfigurationError(
            f"Integration {self.integration.id} is missing required config: {' or '.join(names)}"
        )

    # Abstract methods that must be implemented

    @abstractmethod
    async def fetch(self) -> Any:
        """Fetch from the source and return the normalized result."""
        pass

    # Hooks with sensible defaults

    def is_empty(self, result: Any) -> bool:
        return result is None

    def summarize(self, result: Any, delivered: bool) -> Dict[str, Any]:
        return {"delivered": delivered}

    def format(self, data: Any) -> Message:
        return format_message(data, self.integration)

    async def execute(self, sink: DeliverySink) -> Dict[str, Any]:
        """Fetch, reshape, deliver, and return a summary of the run."""
        result = await self.fetch()
        if self.is_empty(result):
            logger.info(f"Integration {self.integration.id} produced no data")
            return self.summarize(result, delivered=False)

        data = run_pipeline(
            result,
            data_path=self.config.get("data_path"),
            filter_spec=self.integration.filter_config,
            transform_spec=self.integration.transform_config,
        )
        if data is NOT_FOUND:
            return self.summarize(result, delivered=False)

        if not self.integration.destination_id:
            logger.debug(f"Integration {self.integration.id} has no destination; skipping delivery")
            return self.summarize(result, delivered=False)

        await sink.send(self.integration.destination_id, self.format(data))
        return self.summarize(result, delivered=True)

    async def make_request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[str] = None,
        auth: Optional[httpx.Auth] = None,
        ok_statuses: Iterable[int] = (),
    ) -> httpx.Response:
        """Make an outbound request, mapping failures onto the error taxonomy."""
        request_headers = {"User-Agent": self.user_agent}
        request_headers.update(headers or {})

        try:
            response = await self.http_client.request(
                method=method,
                url=url,
                headers=request_headers,
                params=params,
                json=json,
                content=content,
                auth=auth,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request to {url} timed out") from e
        except httpx.RequestError as e:
            raise NetworkError(f"Request to {url} failed: {e}") from e

        status_code = response.status_code
        if status_code < 400 or status_code in ok_statuses:
            return response
        if status_code in (401, 403):
            raise AuthenticationError(f"{url} rejected credentials (HTTP {status_code})")
        if status_code == 429:
            raise RateLimitError(f"{url} is rate limiting requests")
        raise NetworkError(f"{url} returned HTTP {status_code}")

    def parse_json(self, response: httpx.Response, expected: type = object) -> Any:
        """Decode a JSON body, raising ParseError if it is not ``expected``."""
        try:
            data = response.json()
        except ValueError as e:
            # JSONDecodeError and UnicodeDecodeError are both ValueErrors
            raise ParseError(f"{response.request.url} returned a non-JSON body") from e
        if not isinstance(data, expected):
            raise ParseError(
                f"{response.request.url} returned JSON {type(data).__name__}, expected {expected.__name__}"
            )
        return data
