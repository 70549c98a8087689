"""Generic REST API connector."""

from typing import Any, Dict, Optional, Tuple
import json
import logging
import httpx

from integration_engine.connectors.base import BaseConnector
from integration_engine.connectors.registry import ConnectorRegistry
from integration_engine.core.exceptions import ConfigurationError
from integration_engine.models import IntegrationType

logger = logging.getLogger(__name__)

BODY_METHODS = {"POST", "PUT", "PATCH"}


class AuthMode:
    """Authentication modes understood by the REST connector."""
    NONE = "none"
    BEARER = "bearer"
    API_KEY = "api_key"
    BASIC = "basic"
    CUSTOM_HEADER = "custom_header"


def resolve_auth(
    auth_config: Dict[str, Any],
    credentials: Dict[str, Any],
) -> Tuple[Dict[str, str], Optional[httpx.Auth]]:
    """Turn an auth config plus decrypted credentials into headers or an httpx auth."""
    mode = auth_config.get("type")
    if mode is None:
        # Legacy configs only stored an api_key and sent it as a bearer token
        mode = AuthMode.BEARER if credentials.get("api_key") or credentials.get("token") else AuthMode.NONE

    if mode == AuthMode.NONE:
        return {}, None

    if mode == AuthMode.BEARER:
        token = credentials.get("token") or credentials.get("api_key")
        if not token:
            raise ConfigurationError("Bearer authentication requires a token credential")
        return {"Authorization": f"Bearer {token}"}, None

    if mode == AuthMode.API_KEY:
        key = credentials.get("api_key")
        if not key:
            raise ConfigurationError("API key authentication requires an api_key credential")
        return {auth_config.get("header_name", "X-API-Key"): key}, None

    if mode == AuthMode.BASIC:
        username = credentials.get("username")
        if username is None:
            raise ConfigurationError("Basic authentication requires a username credential")
        return {}, httpx.BasicAuth(username, credentials.get("password", ""))

    if mode == AuthMode.CUSTOM_HEADER:
        header_name = auth_config.get("header_name")
        value = credentials.get("header_value") or credentials.get("api_key")
        if not header_name or not value:
            raise ConfigurationError("Custom header authentication requires header_name and header_value")
        return {header_name: value}, None

    raise ConfigurationError(f"Unsupported authentication mode: {mode}")


@ConnectorRegistry.register(IntegrationType.REST_API)
class RestApiConnector(BaseConnector):
    """Calls a configured endpoint and delivers the (optionally narrowed) JSON."""

    response_size = 0

    async def fetch(self) -> Any:
        url = self.require("api_url")
        method = str(self.config.get("method", "GET")).upper()
        headers = dict(self.config.get("headers") or {})
        auth_headers, auth = resolve_auth(self.config.get("auth") or {}, self.credentials())
        headers.update(auth_headers)

        body = self.config.get("body") if method in BODY_METHODS else None
        response = await self.make_request(
            method,
            url,
            headers=headers,
            params=self.config.get("params"),
            json=body if isinstance(body, (dict, list)) else None,
            content=body if isinstance(body, str) else None,
            auth=auth,
        )
        self.response_size = len(response.content)

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.info(f"Non-JSON response from {url}; wrapping body as message")
            return {"message": response.text}

    def is_empty(self, result: Any) -> bool:
        return False

    def summarize(self, result: Any, delivered: bool) -> Dict[str, Any]:
        return {
            "data_received": True,
            "response_size": self.response_size,
            "delivered": delivered,
        }
