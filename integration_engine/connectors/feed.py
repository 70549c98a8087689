"""RSS and Atom feed connector."""

from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, List, Optional
import logging
import xml.etree.ElementTree as ET

from bs4 import BeautifulSoup

from integration_engine.connectors.base import BaseConnector
from integration_engine.connectors.registry import ConnectorRegistry
from integration_engine.core.exceptions import ParseError
from integration_engine.models import IntegrationType

logger = logging.getLogger(__name__)

SUMMARY_LENGTH = 500


def _local(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child(element: ET.Element, *names: str) -> Optional[ET.Element]:
    for name in names:
        for child in element:
            if _local(child.tag) == name:
                return child
    return None


def _text(element: ET.Element, *names: str) -> str:
    child = _child(element, *names)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _link(entry: ET.Element) -> str:
    # Atom keeps the URL in href; RSS keeps it as text
    for child in entry:
        if _local(child.tag) != "link":
            continue
        href = child.get("href")
        if href and child.get("rel", "alternate") == "alternate":
            return href
        if child.text and child.text.strip():
            return child.text.strip()
    return ""


def _parse_date(value: str) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _clean_html(html: str) -> str:
    """Remove HTML tags from a summary."""
    soup = BeautifulSoup(html, "html.parser")
    return soup.get_text(" ", strip=True)


def parse_feed(document: str) -> List[Dict[str, Any]]:
    """Parse RSS 1.0/2.0 or Atom into entries in document order."""
    try:
        root = ET.fromstring(document)
    except ET.ParseError as e:
        raise ParseError(f"Feed is not well-formed XML: {e}") from e

    entries = []
    for element in root.iter():
        if _local(element.tag) not in ("item", "entry"):
            continue
        published = _text(element, "pubDate", "published", "updated", "date")
        summary = _text(element, "description", "summary", "content", "encoded")
        entries.append({
            "title": _text(element, "title"),
            "link": _link(element),
            "summary": _clean_html(summary)[:SUMMARY_LENGTH] if summary else "",
            "published": published or None,
            "_published_at": _parse_date(published),
        })
    return entries


def newest_entry(entries: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Latest dated entry, or the first one when no entry carries a usable date."""
    if not entries:
        return None
    dated = [entry for entry in entries if entry["_published_at"] is not None]
    chosen = max(dated, key=lambda entry: entry["_published_at"]) if dated else entries[0]
    return {key: value for key, value in chosen.items() if not key.startswith("_")}


@ConnectorRegistry.register(IntegrationType.FEED)
class FeedConnector(BaseConnector):
    """Polls a feed and delivers only its newest entry.

    No cursor is kept between runs, so every poll re-evaluates the latest
    item.
    """

    async def fetch(self) -> Optional[Dict[str, Any]]:
        url = self.require("feed_url", "url")
        response = await self.make_request(
            "GET",
            url,
            headers={"Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml"},
        )
        entries = parse_feed(response.text)
        logger.debug(f"Feed {url} returned {len(entries)} entries")
        return newest_entry(entries)

    def summarize(self, result: Any, delivered: bool) -> Dict[str, Any]:
        if result is None:
            return {"items_processed": 0}
        return {
            "items_processed": 1,
            "title": result["title"],
            "link": result["link"],
            "delivered": delivered,
        }
