"""Delivery sinks and message formatting for the destination surface."""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Union
import json
import logging
import re
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type
import httpx

from integration_engine.models import Integration

logger = logging.getLogger(__name__)

Message = Union[str, Dict[str, Any]]

MAX_MESSAGE_LENGTH = 2000

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


class DeliverySink(ABC):
    """Destination-facing collaborator that accepts formatted messages."""

    @abstractmethod
    async def send(self, destination_id: str, message: Message) -> None:
        """Deliver one message to a destination."""
        pass

    async def close(self) -> None:
        pass


class HttpDeliverySink(DeliverySink):
    """Relays messages to a bot or gateway over HTTP."""

    def __init__(
        self,
        delivery_url: str,
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.delivery_url = delivery_url
        self.api_key = api_key
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def send(self, destination_id: str, message: Message) -> None:
        headers = {"X-API-Key": self.api_key} if self.api_key else {}
        response = await self.http_client.post(
            self.delivery_url,
            json={"destination_id": destination_id, "message": message},
            headers=headers,
        )
        response.raise_for_status()
        logger.debug(f"Delivered message to {destination_id}")

    async def close(self) -> None:
        if self._owns_client:
            await self.http_client.aclose()


class LoggingDeliverySink(DeliverySink):
    """Writes messages to the log; used when no relay is configured."""

    async def send(self, destination_id: str, message: Message) -> None:
        logger.info(f"Delivery to {destination_id}: {message}")


def truncate(text: str, limit: int = MAX_MESSAGE_LENGTH) -> str:
    """Clip text to the message limit, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit - 3] + "..."


def to_json(data: Any) -> str:
    return json.dumps(data, indent=2, default=str, ensure_ascii=False)


def render_template(template: str, data: Any) -> str:
    """Fill ``{data}`` and top-level ``{key}`` placeholders; unknown ones stay."""
    def replace(match: re.Match) -> str:
        name = match.group(1)
        if name == "data":
            return data if isinstance(data, str) else to_json(data)
        if isinstance(data, dict) and name in data:
            value = data[name]
            return value if isinstance(value, str) else json.dumps(value, default=str)
        return match.group(0)

    return _PLACEHOLDER_RE.sub(replace, template)


def _render_embed(template: Any, data: Any) -> Any:
    if isinstance(template, str):
        return render_template(template, data)
    if isinstance(template, dict):
        return {key: _render_embed(value, data) for key, value in template.items()}
    if isinstance(template, list):
        return [_render_embed(item, data) for item in template]
    return template


def format_message(data: Any, integration: Integration) -> Message:
    """Turn pipeline output into a deliverable message for an integration."""
    if integration.message_template:
        return truncate(render_template(integration.message_template, data))
    if integration.embed_template:
        return _render_embed(integration.embed_template, data)
    if isinstance(data, str):
        return truncate(data)
    return truncate(f"**{integration.name}:**\n```json\n{to_json(data)}\n```")
