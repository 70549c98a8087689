"""Code-hosting (GitHub-compatible) repository events connector."""

from typing import Any, Dict, List
import logging

from integration_engine.connectors.base import BaseConnector
from integration_engine.connectors.registry import ConnectorRegistry
from integration_engine.core.exceptions import ParseError
from integration_engine.delivery import Message, truncate
from integration_engine.models import IntegrationType

logger = logging.getLogger(__name__)

DEFAULT_API_BASE_URL = "https://api.github.com"


def describe_event(event: Dict[str, Any]) -> str:
    """One-line summary of a repository event."""
    actor = (event.get("actor") or {}).get("login", "someone")
    event_type = event.get("type", "Event")
    payload = event.get("payload") or {}

    if event_type == "PushEvent":
        branch = str(payload.get("ref", "")).replace("refs/heads/", "")
        count = payload.get("size", len(payload.get("commits") or []))
        return f"**{actor}** pushed {count} commit(s) to **{branch}**"
    if event_type == "PullRequestEvent":
        title = (payload.get("pull_request") or {}).get("title", "")
        return f"**{actor}** {payload.get('action', 'updated')} pull request **{title}**"
    if event_type == "IssuesEvent":
        title = (payload.get("issue") or {}).get("title", "")
        return f"**{actor}** {payload.get('action', 'updated')} issue **{title}**"
    return f"**{actor}** triggered {event_type}"


@ConnectorRegistry.register(IntegrationType.CODE_HOSTING)
class CodeHostingConnector(BaseConnector):
    """Fetches recent repository events and delivers a short digest."""

    async def fetch(self) -> List[Dict[str, Any]]:
        owner = self.require("repo_owner", "owner")
        name = self.require("repo_name", "repo")
        base_url = str(self.config.get("api_base_url", DEFAULT_API_BASE_URL)).rstrip("/")

        headers = {"Accept": "application/vnd.github.v3+json"}
        token = self.credentials().get("token")
        if token:
            headers["Authorization"] = f"token {token}"

        response = await self.make_request(
            "GET",
            f"{base_url}/repos/{owner}/{name}/events",
            headers=headers,
            params={"per_page": self.config.get("per_page", 30)},
        )
        events = self.parse_json(response)
        if not isinstance(events, list):
            raise ParseError(f"Expected a list of events for {owner}/{name}")
        return events

    def is_empty(self, result: Any) -> bool:
        return not result

    def format(self, data: Any) -> Message:
        if self.integration.message_template or self.integration.embed_template:
            return super().format(data)
        if not isinstance(data, list):
            return super().format(data)

        repo = f"{self.require('repo_owner', 'owner')}/{self.require('repo_name', 'repo')}"
        limit = int(self.config.get("max_events", 5))
        lines = [f"**Recent activity in {repo}:**"]
        lines.extend(f"- {describe_event(event)}" for event in data[:limit] if isinstance(event, dict))
        return truncate("\n".join(lines))

    def summarize(self, result: Any, delivered: bool) -> Dict[str, Any]:
        events = result or []
        return {
            "events_processed": len(events),
            "last_event": events[0].get("created_at") if events else None,
            "delivered": delivered,
        }
