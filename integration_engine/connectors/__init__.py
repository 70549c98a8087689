"""Connector implementations."""

from .base import BaseConnector
from .registry import ConnectorExecutor, ConnectorRegistry
from .feed import FeedConnector
from .rest_api import RestApiConnector
from .weather import WeatherConnector
from .github import CodeHostingConnector

__all__ = [
    "BaseConnector",
    "ConnectorExecutor",
    "ConnectorRegistry",
    "FeedConnector",
    "RestApiConnector",
    "WeatherConnector",
    "CodeHostingConnector",
]
