"""OPML export/import for feed subscriptions.

Import pairs the Nth xmlUrl attribute with the Nth text attribute found in
the document instead of walking the XML tree. Malformed or reordered
outlines can therefore end up with the wrong title; the URLs themselves are
still picked up.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from backend.storage import Storage, StorageError

logger = logging.getLogger(__name__)

XML_URL_RE = re.compile(r'xmlUrl="([^"]+)"')
TEXT_RE = re.compile(r'text="([^"]+)"')

OPML_TITLE = "RSS Reader Subscriptions"

_ESCAPES = (("&", "&amp;"), ("<", "&lt;"), (">", "&gt;"), ('"', "&quot;"), ("'", "&apos;"))


def escape_xml(value: Optional[str]) -> str:
	"""Escape for use inside a double-quoted attribute value only."""
	out = value or ""
	for raw, entity in _ESCAPES:
		out = out.replace(raw, entity)
	return out


def unescape_xml(value: str) -> str:
	out = value
	for raw, entity in reversed(_ESCAPES):
		out = out.replace(entity, raw)
	return out


def export_opml(feeds: Iterable[Dict[str, Any]], now: Optional[datetime] = None) -> str:
	now = now or datetime.now(timezone.utc)
	outlines = []
	for feed in feeds:
		label = escape_xml(feed.get("title") or feed.get("url"))
		outlines.append(
			f'    <outline text="{label}" title="{label}" type="rss" '
			f'xmlUrl="{escape_xml(feed.get("url"))}" htmlUrl="{escape_xml(feed.get("site_url"))}"/>'
		)
	body = "\n".join(outlines)
	return (
		'<?xml version="1.0" encoding="UTF-8"?>\n'
		'<opml version="2.0">\n'
		"  <head>\n"
		f"    <title>{OPML_TITLE}</title>\n"
		f"    <dateCreated>{now.isoformat()}</dateCreated>\n"
		"  </head>\n"
		"  <body>\n"
		f"{body}\n"
		"  </body>\n"
		"</opml>\n"
	)


@dataclass
class OpmlEntry:
	url: str
	title: str = ""


def parse_opml(text: str) -> List[OpmlEntry]:
	urls = [unescape_xml(m) for m in XML_URL_RE.findall(text or "")]
	titles = [unescape_xml(m) for m in TEXT_RE.findall(text or "")]
	return [OpmlEntry(url=url, title=titles[i] if i < len(titles) else "") for i, url in enumerate(urls)]


@dataclass
class ImportResult:
	imported: int = 0
	failed: int = 0
	errors: List[str] = field(default_factory=list)

	def to_dict(self) -> Dict[str, Any]:
		return {"imported": self.imported, "failed": self.failed, "errors": list(self.errors)}


def import_opml(user_id: int, entries: Iterable[OpmlEntry], storage: Storage) -> ImportResult:
	"""Subscribe the user to every entry they do not have yet; failures are counted, not raised."""
	result = ImportResult()
	for entry in entries:
		try:
			if storage.find_feed_by_url(user_id, entry.url):
				continue
			storage.create_feed(user_id, entry.url, title=entry.title or None)
			result.imported += 1
		except StorageError as e:
			result.failed += 1
			result.errors.append(f"Failed to import {entry.url}: {e}")
	if result.failed:
		logger.warning("opml import for user %s: %d failed", user_id, result.failed)
	return result
