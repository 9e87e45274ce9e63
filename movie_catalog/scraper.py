"""Extract movie metadata from arbitrary web pages."""

from __future__ import annotations

import html
import json
import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import urljoin

import requests

from .errors import UpstreamError
from .records import slugify

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)

# ---------- Regex patterns ---------------------------------------------
_META_RE = re.compile(r"<meta\s+[^>]*>", re.IGNORECASE)
_ATTR_RE = re.compile(r"""([\w:-]+)\s*=\s*(?:"([^"]*)"|'([^']*)'|([^\s>]+))""")
_TITLE_RE = re.compile(r"<title[^>]*>(.*?)</title>", re.IGNORECASE | re.DOTALL)
_JSON_LD_RE = re.compile(
    r"<script[^>]+type\s*=\s*[\"']application/ld\+json[\"'][^>]*>(.*?)</script>",
    re.IGNORECASE | re.DOTALL,
)
_VIDEO_SRC_RE = re.compile(r"<(?:video|source)\s+[^>]*\bsrc\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_POSTER_RE = re.compile(r"<video\s+[^>]*\bposter\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_IFRAME_RE = re.compile(r"<iframe\s+[^>]*\bsrc\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_YOUTUBE_ID_RE = re.compile(
    r"(?:youtube\.com/(?:watch\?v=|embed/|shorts/)|youtu\.be/)([A-Za-z0-9_-]{11})"
)
_YEAR_RE = re.compile(r"\b(19[0-9]{2}|20[0-9]{2})\b")
_ISO_DURATION_RE = re.compile(r"^P(?:T)?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$", re.IGNORECASE)

_VIDEO_TYPES = {"videoobject", "movie", "tvepisode", "episode", "creativework"}


def _attributes(tag: str) -> Dict[str, str]:
    attrs = {}
    for name, double, single, bare in _ATTR_RE.findall(tag):
        attrs[name.lower()] = html.unescape(double or single or bare)
    return attrs


def _meta_tags(document: str) -> Dict[str, str]:
    """Map ``property``/``name``/``itemprop`` keys (lower-cased) to content."""

    found: Dict[str, str] = {}
    for tag in _META_RE.findall(document):
        attrs = _attributes(tag)
        key = attrs.get("property") or attrs.get("name") or attrs.get("itemprop")
        content = attrs.get("content")
        if key and content and key.lower() not in found:
            found[key.lower()] = content.strip()
    return found


def _iter_json_ld(document: str) -> Iterable[Dict[str, Any]]:
    for block in _JSON_LD_RE.findall(document):
        try:
            payload = json.loads(block.strip())
        except json.JSONDecodeError:
            logger.debug("Ignoring unparseable JSON-LD block")
            continue
        stack = payload if isinstance(payload, list) else [payload]
        while stack:
            item = stack.pop(0)
            if not isinstance(item, dict):
                continue
            if isinstance(item.get("@graph"), list):
                stack.extend(item["@graph"])
            yield item


def _json_ld_video(document: str) -> Optional[Dict[str, Any]]:
    for item in _iter_json_ld(document):
        types = item.get("@type")
        types = types if isinstance(types, list) else [types]
        if any(str(kind).lower() in _VIDEO_TYPES for kind in types if kind):
            return item
    return None


def _first_text(value: Any) -> str:
    if isinstance(value, list):
        value = value[0] if value else ""
    if isinstance(value, dict):
        value = value.get("url") or value.get("name") or ""
    return str(value or "").strip()


def humanize_iso_duration(value: str) -> str:
    """``PT1H45M`` -> ``1h 45 minutes``; anything else is returned unchanged."""

    match = _ISO_DURATION_RE.match(value.strip())
    if not match or not any(match.groups()):
        return value
    hours, minutes, _ = (int(part) if part else 0 for part in match.groups())
    if hours and minutes:
        return f"{hours}h {minutes} minutes"
    if hours:
        return f"{hours * 60} minutes"
    if minutes:
        return f"{minutes} minutes"
    return value


def youtube_id(url: str) -> Optional[str]:
    match = _YOUTUBE_ID_RE.search(url or "")
    return match.group(1) if match else None


def extract_movie_data(document: str, url: Optional[str] = None) -> Tuple[Dict[str, Any], List[str]]:
    """Build a movie payload from an HTML document.

    Returns the extracted fields (camelCase keys, matching the save-movie
    payload) and the list of sources that contributed to them.
    """

    sources: List[str] = []
    data: Dict[str, Any] = {}

    def offer(key: str, value: Any, source: str) -> None:
        if value in (None, "", []) or data.get(key):
            return
        data[key] = value
        if source not in sources:
            sources.append(source)

    structured = _json_ld_video(document)
    if structured:
        offer("title", _first_text(structured.get("name")), "json-ld")
        offer("description", _first_text(structured.get("description")), "json-ld")
        offer("posterUrl", _first_text(structured.get("thumbnailUrl") or structured.get("image")), "json-ld")
        offer("videoUrl", _first_text(structured.get("contentUrl") or structured.get("embedUrl")), "json-ld")
        if structured.get("duration"):
            offer("duration", humanize_iso_duration(_first_text(structured["duration"])), "json-ld")
        offer("category", _first_text(structured.get("genre")).lower(), "json-ld")
        offer("language", _first_text(structured.get("inLanguage")), "json-ld")
        director = structured.get("director")
        offer("director", _first_text(director), "json-ld")
        published = _first_text(structured.get("datePublished") or structured.get("uploadDate"))
        year = _YEAR_RE.search(published)
        if year:
            offer("releaseYear", int(year.group(1)), "json-ld")

    meta = _meta_tags(document)
    offer("title", meta.get("og:title") or meta.get("twitter:title"), "open-graph")
    offer("description", meta.get("og:description") or meta.get("twitter:description"), "open-graph")
    offer("posterUrl", meta.get("og:image") or meta.get("twitter:image"), "open-graph")
    offer(
        "videoUrl",
        meta.get("og:video:secure_url") or meta.get("og:video:url") or meta.get("og:video"),
        "open-graph",
    )

    title_match = _TITLE_RE.search(document)
    if title_match:
        offer("title", html.unescape(" ".join(title_match.group(1).split())), "html")
    offer("description", meta.get("description"), "html")

    video_src = _VIDEO_SRC_RE.search(document)
    if video_src:
        offer("videoUrl", video_src.group(1), "html")
    for frame in _IFRAME_RE.findall(document):
        if youtube_id(frame):
            offer("videoUrl", frame, "html")
            break
    poster = _POSTER_RE.search(document)
    if poster:
        offer("posterUrl", poster.group(1), "html")

    keywords = meta.get("keywords")
    if keywords:
        offer("tags", [tag.strip() for tag in keywords.split(",") if tag.strip()], "html")

    if url:
        for key in ("videoUrl", "posterUrl"):
            if data.get(key):
                data[key] = urljoin(url, data[key])

    if "releaseYear" not in data:
        year = _YEAR_RE.search(data.get("title", ""))
        if year:
            data["releaseYear"] = int(year.group(1))
    video_id = youtube_id(data.get("videoUrl", "")) or youtube_id(url or "")
    if video_id:
        data["youtubeVideoId"] = video_id
        data.setdefault("videoUrl", f"https://www.youtube.com/watch?v={video_id}")
    if data.get("title"):
        data["slug"] = slugify(data["title"])
    if url:
        data["sourceUrl"] = url
    return data, sources


class MovieScraper:
    """Fetch a page and extract movie metadata from it."""

    def __init__(self, *, timeout: float = 30.0, session: Optional[requests.Session] = None) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": BROWSER_USER_AGENT})
        self.timeout = timeout

    def fetch(self, url: str) -> str:
        try:
            response = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamError(f"Failed to fetch {url}: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamError(
                f"Failed to fetch {url}: HTTP {response.status_code}", status=response.status_code
            )
        return response.text

    def scrape(self, url: str) -> Tuple[Dict[str, Any], List[str]]:
        document = self.fetch(url)
        data, sources = extract_movie_data(document, url)
        logger.info("Scraped %s fields from %s (%s)", len(data), url, ", ".join(sources) or "none")
        return data, sources
