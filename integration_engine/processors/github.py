"""Code-hosting webhook processor."""

import json
from typing import Any, Dict

from integration_engine.delivery import Message
from integration_engine.models import IntegrationType
from integration_engine.processors.base import DeliveryContext, WebhookPayload, WebhookProcessor

EXCERPT_LENGTH = 200


def _excerpt(text: Any) -> str:
    return str(text or "")[:EXCERPT_LENGTH]


class CodeHostingProcessor(WebhookProcessor):
    """Formats push, pull request and issue events."""

    processor_type = IntegrationType.CODE_HOSTING.value

    def build_messages(self, payload: WebhookPayload, context: DeliveryContext) -> list[Message]:
        data: Dict[str, Any] = payload.data if isinstance(payload.data, dict) else {}
        embed: Dict[str, Any] = {
            "color": 0x333333,
            "timestamp": payload.timestamp,
            "footer": {"text": "GitHub"},
        }

        if payload.event == "push":
            repository = (data.get("repository") or {}).get("name", "repository")
            pusher = (data.get("pusher") or {}).get("name", "someone")
            branch = str(data.get("ref", "")).replace("refs/heads/", "")
            commits = data.get("commits") or []
            embed["title"] = f"Push to {repository}"
            embed["description"] = f"**{pusher}** pushed {len(commits)} commit(s) to **{branch}**"
            embed["url"] = data.get("compare")
        elif payload.event == "pull_request":
            pull_request = data.get("pull_request") or {}
            embed["title"] = f"Pull Request {data.get('action', 'updated')}"
            embed["description"] = f"**{pull_request.get('title', '')}**\n{_excerpt(pull_request.get('body'))}"
            embed["url"] = pull_request.get("html_url")
        elif payload.event in ("issues", "issue"):
            issue = data.get("issue") or {}
            embed["title"] = f"Issue {data.get('action', 'updated')}"
            embed["description"] = f"**{issue.get('title', '')}**\n{_excerpt(issue.get('body'))}"
            embed["url"] = issue.get("html_url")
        else:
            embed["title"] = f"GitHub {payload.event}"
            embed["description"] = _excerpt(json.dumps(data, default=str)) + "..."

        return [{key: value for key, value in embed.items() if value is not None}]
