"""Tests for models, settings and logging setup."""

import json
import logging

import pytest

from integration_engine.core.exceptions import (
    ConfigurationError,
    CredentialError,
    WebhookVerificationError,
    error_category,
)
from integration_engine.utils.logging import JSONFormatter


class TestModels:
    """Test model helpers."""

    @pytest.mark.parametrize("interval,expected", [(None, False), (0, False), (60, True)])
    def test_polls(self, make_integration, interval, expected):
        assert make_integration(sync_interval=interval).polls is expected

    def test_id_alias(self, make_integration):
        integration = make_integration(id="abc")
        assert integration.model_dump(by_alias=True)["_id"] == "abc"

    def test_subscriptions(self, make_webhook):
        assert make_webhook().subscribes_to("anything")
        picky = make_webhook(events=["push", "issues"])
        assert picky.subscribes_to("push")
        assert not picky.subscribes_to("star")


class TestErrorCategories:
    """Test error category labels."""

    def test_categories(self):
        assert error_category(ConfigurationError("x")) == "config"
        assert error_category(CredentialError("x")) == "auth"
        assert error_category(WebhookVerificationError("x")) == "auth"
        assert error_category(KeyError("x")) == "internal"


class TestJSONFormatter:
    """Test structured log output."""

    def test_format(self):
        formatter = JSONFormatter(service="integration-engine", environment="test")
        record = logging.LogRecord("integration_engine.test", logging.INFO, __file__, 1, "synced %s", ("x",), None)
        record.integration_id = "abc"

        output = json.loads(formatter.format(record))

        assert output["message"] == "synced x"
        assert output["level"] == "INFO"
        assert output["service"] == "integration-engine"
        assert output["environment"] == "test"
        assert output["integration_id"] == "abc"
