from __future__ import annotations

import urllib.parse
from typing import Optional

from bs4 import BeautifulSoup
from bs4.element import PreformattedString

TRACKING_PARAMS = {
	"utm_source", "utm_medium", "utm_campaign", "utm_content", "utm_term",
	"fbclid", "gclid", "ref", "source", "mc_cid", "mc_eid", "yclid",
}

# removed together with everything inside them
REMOVE_ELEMENTS = ("script", "style", "iframe", "form", "object", "embed", "noscript")

ALLOWED_TAGS = {
	"p", "br", "strong", "em", "b", "i", "u", "h1", "h2", "h3", "h4", "h5", "h6",
	"ul", "ol", "li", "a", "img", "blockquote", "pre", "code", "figure", "figcaption",
}

ALLOWED_ATTRS = {"href", "src", "alt", "title", "class", "target"}

URL_ATTRS = ("href", "src")
UNSAFE_SCHEMES = ("javascript:", "vbscript:", "data:")


def clean_url(url: str) -> str:
	"""Drop tracking query parameters, keep everything else in place."""
	if not url:
		return url
	try:
		u = urllib.parse.urlsplit(url)
		if not u.scheme or not u.netloc:
			return url
		q = urllib.parse.parse_qsl(u.query, keep_blank_values=True)
		q = [(k, v) for k, v in q if k not in TRACKING_PARAMS]
		return urllib.parse.urlunsplit((u.scheme, u.netloc, u.path, urllib.parse.urlencode(q), u.fragment))
	except ValueError:
		return url


def _is_unsafe_url(value: str) -> bool:
	compact = "".join(value.split()).lower()
	if compact.startswith("data:image/"):
		return False
	return compact.startswith(UNSAFE_SCHEMES)


def sanitize_html(html: Optional[str]) -> str:
	"""Reduce an untrusted HTML fragment to the allow-listed tags and attributes.

	Script-like elements are dropped with their subtree, any other disallowed
	element is unwrapped so that allowed markup nested inside it survives.
	"""
	if not html:
		return ""
	soup = BeautifulSoup(html, "html.parser")
	for tag in soup(list(REMOVE_ELEMENTS)):
		tag.decompose()
	# comments and CDATA sections would otherwise be serialized verbatim
	for node in soup.find_all(string=lambda s: isinstance(s, PreformattedString)):
		node.extract()
	for tag in soup.find_all(True):
		if tag.name not in ALLOWED_TAGS:
			tag.unwrap()
	for tag in soup.find_all(True):
		for attr in list(tag.attrs):
			if attr not in ALLOWED_ATTRS:
				del tag[attr]
			elif attr in URL_ATTRS and _is_unsafe_url(str(tag[attr])):
				del tag[attr]
	return str(soup).strip()


def html_to_text(html: Optional[str]) -> str:
	if not html:
		return ""
	return BeautifulSoup(html, "html.parser").get_text().strip()


def extract_summary(html: Optional[str], max_length: int = 200) -> str:
	text = html_to_text(html)
	if len(text) <= max_length:
		return text
	return text[:max_length].strip() + "..."


def extract_image(html: Optional[str]) -> Optional[str]:
	if not html:
		return None
	img = BeautifulSoup(html, "html.parser").find("img")
	if img is None:
		return None
	return img.get("src") or None
