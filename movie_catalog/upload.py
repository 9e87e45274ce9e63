"""Relay uploaded video and thumbnail files to Bunny.net storage."""

from __future__ import annotations

import logging
import re
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Mapping, Optional, Tuple

import requests

from .config import CatalogConfig
from .errors import UploadError
from .frontmatter import render_movie_markdown
from .records import MovieRecord, slugify

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^\.[a-z0-9]{1,8}$")
DEFAULT_UPLOAD_CATEGORY = "general"
DEFAULT_UPLOAD_QUALITY = "1080p"
DEFAULT_UPLOAD_DURATION = "28 minutes"


@dataclass
class StagedFile:
    """An upload already written to local disk, ready to stream out."""

    path: Path
    filename: Optional[str] = None
    content_type: Optional[str] = None

    def extension(self, default: str) -> str:
        suffix = Path(self.filename or "").suffix.lower()
        return suffix if _EXTENSION_RE.match(suffix) else default


@dataclass
class UploadResult:
    slug: str
    video_key: str
    thumbnail_key: str
    video_url: str
    thumbnail_url: str


def storage_keys(
    title: str,
    timestamp_ms: int,
    *,
    video_ext: str = ".mp4",
    thumbnail_ext: str = ".jpg",
) -> Tuple[str, str, str]:
    """Derive ``(slug, video_key, thumbnail_key)`` from a title and upload time."""

    slug = slugify(title) or "upload"
    return (
        slug,
        f"{slug}-{timestamp_ms}{video_ext}",
        f"{slug}-thumbnail-{timestamp_ms}{thumbnail_ext}",
    )


def upload_record(
    result: UploadResult, title: str, metadata: Mapping[str, Any], now: datetime
) -> Tuple[MovieRecord, str]:
    """Build the catalog record for a relayed upload and its markdown document.

    ``metadata`` carries the optional form fields (category, description,
    language, quality, releaseYear, duration); the CDN URLs become the video
    and poster URLs so the markdown can be committed as-is.

    Raises:
        ValueError: If ``releaseYear`` is not a whole number.
    """

    def field(name: str, default: str = "") -> str:
        return str(metadata.get(name) or "").strip() or default

    raw_year = field("releaseYear")
    try:
        release_year = int(raw_year) if raw_year else now.year
    except ValueError as exc:
        raise ValueError(f"releaseYear must be a whole number, got {raw_year!r}.") from exc

    category = slugify(field("category")) or DEFAULT_UPLOAD_CATEGORY
    description = field("description")
    record = MovieRecord(
        title=title.strip(),
        slug=result.slug,
        category=category,
        video_url=result.video_url,
        poster_url=result.thumbnail_url,
        description=description,
        meta_title=title.strip(),
        meta_description=description[:157],
        language=field("language"),
        quality=field("quality", DEFAULT_UPLOAD_QUALITY),
        release_year=release_year,
        duration=field("duration", DEFAULT_UPLOAD_DURATION),
        tags=[category],
        date=now,
        last_updated=now,
    )
    return record, render_movie_markdown(record)


class BunnyUploader:
    """PUT files into a Bunny.net storage zone and return their CDN URLs."""

    def __init__(
        self,
        config: CatalogConfig,
        session: Optional[requests.Session] = None,
        *,
        clock=time.time,
    ) -> None:
        self.config = config
        self.session = session or requests.Session()
        self._clock = clock

    def storage_url(self, key: str) -> str:
        return f"https://{self.config.bunny_storage_host}/{self.config.bunny_storage_zone}/{key}"

    def public_url(self, key: str) -> str:
        return f"https://{self.config.cdn_host}/{key}"

    def upload_file(self, staged: StagedFile, key: str) -> str:
        """Stream one local file to storage under ``key``.

        Raises:
            ConfigError: If the storage zone or access key is missing.
            UploadError: On transport failure or a non-2xx response.
        """

        self.config.require_bunny()
        headers = {
            "AccessKey": self.config.bunny_api_key,
            "Content-Type": staged.content_type or "application/octet-stream",
        }
        try:
            with staged.path.open("rb") as handle:
                response = self.session.put(
                    self.storage_url(key),
                    data=handle,
                    headers=headers,
                    timeout=self.config.http_timeout,
                )
        except (OSError, requests.RequestException) as exc:
            raise UploadError(f"Bunny.net upload of {key} failed: {exc}") from exc
        if response.status_code >= 400:
            raise UploadError(f"Bunny.net upload of {key} failed: HTTP {response.status_code}")
        return self.public_url(key)

    def relay(self, title: str, video: StagedFile, thumbnail: StagedFile) -> UploadResult:
        """Upload a video and its thumbnail under keys derived from ``title``.

        The two PUTs are independent. When the thumbnail fails after the video
        succeeded, the stored video is left in place and reported in the error.
        """

        if not title or not title.strip():
            raise ValueError("Title cannot be empty.")
        slug, video_key, thumbnail_key = storage_keys(
            title,
            int(self._clock() * 1000),
            video_ext=video.extension(".mp4"),
            thumbnail_ext=thumbnail.extension(".jpg"),
        )

        video_url = self.upload_file(video, video_key)
        try:
            thumbnail_url = self.upload_file(thumbnail, thumbnail_key)
        except UploadError as exc:
            logger.warning("Thumbnail upload failed; video %s is orphaned in storage", video_key)
            raise UploadError(f"{exc} (video already stored as {video_key})") from exc

        logger.info("Relayed %s and %s to CDN storage", video_key, thumbnail_key)
        return UploadResult(
            slug=slug,
            video_key=video_key,
            thumbnail_key=thumbnail_key,
            video_url=video_url,
            thumbnail_url=thumbnail_url,
        )
