"""Data models for catalog records and collection index entries."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SLUG_MAX_LENGTH = 50


def slugify(value: str, *, max_length: int = SLUG_MAX_LENGTH) -> str:
    """Return a lowercase, hyphenated identifier safe for paths and URLs."""

    text = value.lower().strip()
    text = re.sub(r"[^\w\s-]", "", text)
    text = re.sub(r"[\s_-]+", "-", text)
    text = text.strip("-")
    return text[:max_length].rstrip("-")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_datetime(value: str) -> Optional[datetime]:
    """Parse the date formats found in hand-edited front matter.

    Unparseable values yield ``None`` rather than an error; a bad date only
    affects ordering.
    """

    text = value.strip()
    if not text:
        return None
    if len(text) == 10:
        text = f"{text}T00:00:00"
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        moment = datetime.fromisoformat(text)
    except ValueError:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def isoformat(moment: datetime) -> str:
    """ISO-8601 with millisecond precision and a ``Z`` suffix."""

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


class CamelModel(BaseModel):
    """Stored documents use camelCase keys; Python code uses snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_document(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MovieRecord(CamelModel):
    """Markdown-backed movie entry, identified by ``(category, slug)``."""

    title: str
    slug: str = ""
    category: str
    video_url: str
    poster_url: str = ""
    release_year: Optional[int] = None
    duration: str = ""
    language: str = ""
    rating: str = ""
    quality: str = ""
    description: str = ""
    meta_title: str = ""
    meta_description: str = ""
    tags: List[str] = Field(default_factory=list)
    director: str = ""
    producer: str = ""
    main_cast: str = ""
    supporting_cast: str = ""
    channel_name: str = ""
    keywords: str = ""
    focus_keyword: str = ""
    youtube_video_id: Optional[str] = None
    date: Optional[datetime] = None
    last_updated: Optional[datetime] = None

    @field_validator("title", "category", "video_url")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("must not be empty")
        return value.strip()

    @field_validator("date", "last_updated", mode="before")
    @classmethod
    def _lenient_datetime(cls, value):
        if not isinstance(value, str):
            return value
        return parse_datetime(value)

    @field_validator("release_year", mode="before")
    @classmethod
    def _blank_year(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @property
    def path(self) -> str:
        return movie_path(self.category, self.slug)

    @property
    def sort_key(self) -> float:
        return self.date.timestamp() if self.date else 0.0


def movie_path(category: str, slug: str) -> str:
    return f"content/movies/{category}/{slug}.md"


class CollectionVideo(CamelModel):
    """One entry of a paginated collection file (``videos-<n>.json``)."""

    id: str
    title: str
    description: str = ""
    category: str = "general"
    duration: str = ""
    quality: str = "HD"
    release_year: Optional[int] = None
    website_url: str = ""
    youtube_id: str = ""
    channel_name: str
    channel_slug: str
    thumbnail: str = ""
    views: int = 0
    likes: int = 0
    upload_date: str
    last_updated: str
    idempotency_key: Optional[str] = None


class LatestVideo(CamelModel):
    title: str
    url: str = ""
    date: str = ""
    thumbnail: str = ""


class CollectionSummary(CamelModel):
    """Denormalized rollup of every collection file for one slug."""

    name: str
    slug: str
    description: str = ""
    total_videos: int = 0
    latest_video: Optional[LatestVideo] = None
    categories: List[str] = Field(default_factory=list)
    last_updated: str = ""
    created: str = ""


class CollectionIndexDocument(CamelModel):
    channels: List[CollectionSummary] = Field(default_factory=list)
