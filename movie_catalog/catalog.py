"""Markdown-backed movie records stored under ``content/movies/<category>/``."""

from __future__ import annotations

import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from .channel_index import CollectionIndex
from .config import CatalogConfig
from .errors import Conflict, MalformedRecord, NotFound
from .frontmatter import parse_movie, render_movie_markdown
from .paginated import AppendResult, CollectionWriter
from .records import MovieRecord, isoformat, movie_path, slugify, utcnow
from .store import KeyedObjectStore, WriteResult

logger = logging.getLogger(__name__)

MOVIES_ROOT = "content/movies"
CATEGORY_COLLECTIONS_ROOT = "categories"
CATEGORY_INDEX_PATH = "categories/index.json"
REQUIRED_MOVIE_FIELDS = ("title", "category", "videoUrl", "posterUrl")
META_DESCRIPTION_LENGTH = 157
MIN_QUERY_LENGTH = 2


@dataclass
class SaveResult:
    record: MovieRecord
    file_path: str
    view_url: str
    html_url: Optional[str]
    collection: AppendResult


# Pure helpers ----------------------------------------------------------
def _matches(record: MovieRecord, term: str) -> bool:
    haystacks = [record.title, record.description, record.meta_description, record.category]
    if any(term in (value or "").lower() for value in haystacks):
        return True
    return any(term in tag.lower() for tag in record.tags)


def search_movies(
    records: Iterable[MovieRecord], query: str, limit: Optional[int] = None
) -> List[MovieRecord]:
    """Case-insensitive substring match on title, descriptions, tags and category."""

    term = (query or "").strip().lower()
    if len(term) < MIN_QUERY_LENGTH:
        return []
    results = []
    for record in records:
        if _matches(record, term):
            results.append(record)
            if limit is not None and len(results) >= limit:
                break
    return results


def newest_first(records: Iterable[MovieRecord]) -> List[MovieRecord]:
    return sorted(records, key=lambda record: record.sort_key, reverse=True)


def latest_by_category(
    records: Iterable[MovieRecord], limit: int = 5
) -> "OrderedDict[str, List[MovieRecord]]":
    grouped: "OrderedDict[str, List[MovieRecord]]" = OrderedDict()
    for record in records:
        grouped.setdefault(record.category, []).append(record)
    for category, items in grouped.items():
        grouped[category] = newest_first(items)[:limit]
    return grouped


def categories_of(records: Iterable[MovieRecord]) -> List[str]:
    return list(OrderedDict.fromkeys(record.category for record in records if record.category))


def _truncate(text: str, length: int) -> str:
    text = text.strip()
    if len(text) <= length:
        return text
    return text[:length].rstrip() + "..."


def normalize_tags(raw: Any) -> List[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, (list, tuple, set)):
        items = list(raw)
    else:
        raise ValueError("tags must be a list or a comma separated string.")
    tags: List[str] = []
    for item in items:
        tag = str(item).strip()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def _safe_segment(value: str, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned or "/" in cleaned or "\\" in cleaned or cleaned in {".", ".."}:
        raise ValueError(f"{label} must be a single, non-empty path segment.")
    return cleaned


class MovieCatalog:
    """Read, search and write movie records in the backing repository."""

    def __init__(
        self,
        store: KeyedObjectStore,
        config: CatalogConfig,
        *,
        clock=utcnow,
    ) -> None:
        self.store = store
        self.config = config
        self._clock = clock
        index = CollectionIndex(
            store,
            CATEGORY_INDEX_PATH,
            attempts=config.conflict_retries,
            describe=lambda name: f"{name.title()} movies",
            clock=clock,
        )
        self.category_collections = CollectionWriter(
            store,
            index,
            root=CATEGORY_COLLECTIONS_ROOT,
            capacity=config.collection_capacity,
            attempts=config.conflict_retries,
            clock=clock,
        )

    # Reads ------------------------------------------------------------
    def list_categories(self) -> List[str]:
        try:
            entries = self.store.list_dir(MOVIES_ROOT)
        except NotFound:
            return []
        return sorted(entry.name for entry in entries if entry.type == "dir")

    def load_category(self, category: str) -> List[MovieRecord]:
        try:
            entries = self.store.list_dir(f"{MOVIES_ROOT}/{category}")
        except NotFound:
            return []

        records = []
        for entry in entries:
            if entry.type != "file" or not entry.name.endswith(".md"):
                continue
            slug = entry.name[: -len(".md")]
            try:
                stored = self.store.get(entry.path)
                records.append(parse_movie(stored.text(), category, slug))
            except NotFound:
                logger.warning("Movie file disappeared while loading: %s", entry.path)
            except (MalformedRecord, UnicodeDecodeError) as exc:
                logger.warning("Skipping malformed movie file %s: %s", entry.path, exc)
        return newest_first(records)

    def load_all(self) -> List[MovieRecord]:
        records: List[MovieRecord] = []
        for category in self.list_categories():
            records.extend(self.load_category(category))
        return newest_first(records)

    def get_movie(self, category: str, slug: str) -> MovieRecord:
        stored = self.store.get(movie_path(category, slug))
        return parse_movie(stored.text(), category, slug)

    def related(self, category: str, slug: str, limit: int = 2) -> List[MovieRecord]:
        others = [record for record in self.load_category(category) if record.slug != slug]
        return others[:limit]

    def search(self, query: str, limit: Optional[int] = None) -> List[MovieRecord]:
        return search_movies(
            self.load_all(), query, self.config.search_limit if limit is None else limit
        )

    def search_index(self) -> List[Dict[str, str]]:
        return [
            {
                "title": record.title,
                "category": record.category,
                "slug": record.slug,
                "url": f"/{record.category}/{record.slug}",
            }
            for record in self.load_all()
        ]

    # Writes -----------------------------------------------------------
    def _build_record(self, payload: Mapping[str, Any]) -> MovieRecord:
        missing = [name for name in REQUIRED_MOVIE_FIELDS if not str(payload.get(name) or "").strip()]
        if missing:
            raise ValueError(f"Missing required fields: {', '.join(missing)}")

        data = dict(payload)
        now = self._clock()
        title = str(data["title"]).strip()
        category = slugify(str(data["category"]))
        slug = slugify(str(data.get("slug") or title))
        if not category or not slug:
            raise ValueError("title and category must contain letters or digits.")

        description = str(data.get("description") or "")
        tags = normalize_tags(data.get("tags"))
        extra_tags = list(self.config.default_tags) + [category]
        if data.get("channelName"):
            extra_tags.append(slugify(str(data["channelName"])))
        for tag in extra_tags:
            if tag and tag not in tags:
                tags.append(tag)

        data.update(
            title=title,
            category=category,
            slug=slug,
            tags=tags,
            metaTitle=data.get("metaTitle") or title,
            metaDescription=data.get("metaDescription")
            or _truncate(description, META_DESCRIPTION_LENGTH),
            releaseYear=data.get("releaseYear") or now.year,
            date=isoformat(now),
            lastUpdated=isoformat(now),
        )
        try:
            return MovieRecord.model_validate(data)
        except ValidationError as exc:
            problems = ", ".join(
                ".".join(str(part) for part in error["loc"]) for error in exc.errors()
            )
            raise ValueError(f"Invalid movie data: {problems}") from exc

    def view_url(self, record: MovieRecord) -> str:
        return f"{self.config.site_url}/{record.category}/{record.slug}"

    def save_movie(self, payload: Mapping[str, Any]) -> SaveResult:
        """Create the markdown file for a new movie and list it in its category.

        Raises:
            ValueError: If required fields are missing or invalid.
            Conflict: If a movie with the same category and slug already exists.
        """

        record = self._build_record(payload)
        try:
            written = self.store.put(
                record.path,
                render_movie_markdown(record).encode("utf-8"),
                message=f"Add {record.category}: {record.title}",
            )
        except Conflict as exc:
            raise Conflict(
                "A movie with this title already exists. Please use a different title or slug."
            ) from exc
        logger.info("Saved movie %s", record.path)

        view_url = self.view_url(record)
        collection = self.category_collections.append(
            record.category,
            {
                "title": record.title,
                "description": record.meta_description or record.description,
                "category": record.category,
                "duration": record.duration,
                "quality": record.quality or "HD",
                "releaseYear": record.release_year,
                "websiteUrl": view_url,
                "youtubeId": record.youtube_video_id or "",
                "thumbnail": record.poster_url,
            },
        )
        return SaveResult(
            record=record,
            file_path=record.path,
            view_url=view_url,
            html_url=written.html_url,
            collection=collection,
        )

    def create_markdown(
        self, file_name: str, channel_name: str, content: Optional[str] = None
    ) -> WriteResult:
        """Create ``channels/<channel>/<file>.md``; existing files are not overwritten."""

        file_name = _safe_segment(file_name, "fileName")
        channel_name = _safe_segment(channel_name, "channelName")
        path = f"channels/{channel_name}/{file_name}.md"
        body = content or (
            f"# {file_name}\n\nChannel: {channel_name}\n\nCreated: {isoformat(self._clock())}"
        )
        return self.store.put(
            path,
            body.encode("utf-8"),
            message=f"Create MD file: {file_name} for channel {channel_name}",
        )
