"""Append-only paginated JSON collections (``<root>/<slug>/videos-<n>.json``).

Each collection file holds at most ``capacity`` records, newest first. When
the highest-numbered file is full the next append starts ``videos-<n+1>.json``;
records are never dropped to make room.
"""

from __future__ import annotations

import json
import logging
import re
import uuid
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from .channel_index import CollectionIndex
from .errors import Conflict, MalformedRecord, NotFound
from .records import CollectionSummary, CollectionVideo, isoformat, slugify, utcnow
from .store import KeyedObjectStore, WriteResult, dumps_json

logger = logging.getLogger(__name__)

FILE_NAME_RE = re.compile(r"^videos-(\d+)\.json$")


def collection_file_name(number: int) -> str:
    return f"videos-{number}.json"


@dataclass
class AppendResult:
    collection_slug: str
    file_path: str
    file_number: int
    video_count: int
    next_file: Optional[str]
    record: CollectionVideo
    html_url: Optional[str] = None
    summary: Optional[CollectionSummary] = None
    duplicate: bool = False


def _int_or_none(value: Any) -> Optional[int]:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class CollectionWriter:
    """Append records to a slug's numbered collection files and its index."""

    def __init__(
        self,
        store: KeyedObjectStore,
        index: CollectionIndex,
        *,
        root: str = "channels",
        capacity: int = 100,
        attempts: int = 3,
        clock=utcnow,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.store = store
        self.index = index
        self.root = root.strip("/")
        self.capacity = capacity
        self.attempts = max(1, attempts)
        self._clock = clock

    # Internal helpers -------------------------------------------------
    def _directory(self, slug: str) -> str:
        return f"{self.root}/{slug}"

    def file_path(self, slug: str, number: int) -> str:
        return f"{self._directory(slug)}/{collection_file_name(number)}"

    def file_numbers(self, slug: str) -> List[int]:
        try:
            entries = self.store.list_dir(self._directory(slug))
        except NotFound:
            return []
        numbers = []
        for entry in entries:
            match = FILE_NAME_RE.match(entry.name)
            if match and entry.type == "file":
                numbers.append(int(match.group(1)))
        return sorted(numbers)

    def stored_count(self, slug: str) -> int:
        return sum(len(self.read_file(slug, number)[0]) for number in self.file_numbers(slug))

    def read_file(self, slug: str, number: int) -> Tuple[List[dict], Optional[str]]:
        path = self.file_path(slug, number)
        try:
            stored = self.store.get(path)
        except NotFound:
            return [], None
        try:
            videos = json.loads(stored.text())
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise MalformedRecord(f"{path} is not valid JSON: {exc}") from exc
        if not isinstance(videos, list):
            raise MalformedRecord(f"{path} must contain a JSON array.")
        return videos, stored.sha

    def _locate_target(self, slug: str) -> Tuple[int, List[dict], Optional[str]]:
        numbers = self.file_numbers(slug)
        if not numbers:
            return 1, [], None
        highest = numbers[-1]
        videos, sha = self.read_file(slug, highest)
        if len(videos) < self.capacity:
            return highest, videos, sha
        return highest + 1, [], None

    def _build_record(
        self,
        name: str,
        slug: str,
        video_data: Mapping[str, Any],
        idempotency_key: Optional[str],
    ) -> CollectionVideo:
        now = self._clock()
        stamp = isoformat(now)
        return CollectionVideo(
            id=f"vid_{int(now.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
            title=video_data.get("videoTitle") or video_data.get("title") or "Video Title",
            description=video_data.get("description") or "",
            category=video_data.get("category") or "general",
            duration=str(video_data.get("duration") or ""),
            quality=video_data.get("quality") or "HD",
            release_year=_int_or_none(video_data.get("releaseYear")) or now.year,
            website_url=video_data.get("websiteUrl") or "",
            youtube_id=video_data.get("youtubeId") or "",
            channel_name=name,
            channel_slug=slug,
            thumbnail=video_data.get("thumbnail") or "",
            views=_int_or_none(video_data.get("views")) or 0,
            likes=_int_or_none(video_data.get("likes")) or 0,
            upload_date=stamp,
            last_updated=stamp,
            idempotency_key=idempotency_key,
        )

    def _result(
        self,
        slug: str,
        number: int,
        videos: List[dict],
        record: CollectionVideo,
        written: Optional[WriteResult] = None,
        duplicate: bool = False,
    ) -> AppendResult:
        count = len(videos)
        return AppendResult(
            collection_slug=slug,
            file_path=self.file_path(slug, number),
            file_number=number,
            video_count=count,
            next_file=collection_file_name(number + 1) if count >= self.capacity else None,
            record=record,
            html_url=written.html_url if written else None,
            duplicate=duplicate,
        )

    # Public API -------------------------------------------------------
    def append(
        self,
        name: str,
        video_data: Mapping[str, Any],
        *,
        idempotency_key: Optional[str] = None,
    ) -> AppendResult:
        """Prepend one record to the slug's current collection file.

        With an ``idempotency_key``, a record already carrying the same key in
        the current file is returned instead of writing a second copy. The index
        is reconciled first, since the earlier attempt may have stored the
        record and then failed to count it.
        """

        slug = slugify(name)
        if not slug:
            raise ValueError("Collection name must contain at least one letter or digit.")

        for attempt in range(1, self.attempts + 1):
            number, videos, sha = self._locate_target(slug)

            if idempotency_key:
                existing = self._find_by_key(slug, number, videos, idempotency_key)
                if existing is not None:
                    logger.info("Duplicate append to %s ignored (key %s)", slug, idempotency_key)
                    existing.summary = self.index.reconcile(
                        slug, name, existing.record, self.stored_count(slug)
                    )
                    return existing

            record = self._build_record(name, slug, video_data, idempotency_key)
            videos.insert(0, record.to_document())
            path = self.file_path(slug, number)
            try:
                written = self.store.put(
                    path,
                    dumps_json(videos),
                    sha=sha,
                    message=f"Add {record.title} to {path}",
                )
            except Conflict:
                if attempt == self.attempts:
                    raise
                logger.warning(
                    "Concurrent append on %s (attempt %s/%s), retrying...",
                    path,
                    attempt,
                    self.attempts,
                )
                continue
            break

        result = self._result(slug, number, videos, record, written)
        result.summary = self.index.upsert(slug, name, record)
        return result

    def _find_by_key(
        self, slug: str, number: int, videos: List[dict], key: str
    ) -> Optional[AppendResult]:
        candidates = [(number, videos)]
        if not videos and number > 1:
            # Just rolled over; the previous file is the one that may hold it.
            previous, _ = self.read_file(slug, number - 1)
            candidates.append((number - 1, previous))
        for file_number, items in candidates:
            for item in items:
                if item.get("idempotencyKey") == key:
                    record = CollectionVideo.model_validate(item)
                    return self._result(slug, file_number, items, record, duplicate=True)
        return None

    def load(self, slug: str, number: int) -> List[CollectionVideo]:
        videos, _ = self.read_file(slug, number)
        return [CollectionVideo.model_validate(item) for item in videos]
