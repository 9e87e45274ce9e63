"""Denormalized rollup of every paginated collection under one namespace."""

from __future__ import annotations

import logging
from typing import Callable, Optional

from .records import (
    CollectionIndexDocument,
    CollectionSummary,
    CollectionVideo,
    LatestVideo,
    isoformat,
    utcnow,
)
from .store import KeyedObjectStore, read_json, update_json

logger = logging.getLogger(__name__)


def _empty_index() -> dict:
    return {"channels": []}


class CollectionIndex:
    """Read and upsert the index document (e.g. ``channels/index.json``)."""

    def __init__(
        self,
        store: KeyedObjectStore,
        path: str,
        *,
        attempts: int = 3,
        describe: Optional[Callable[[str], str]] = None,
        clock=utcnow,
    ) -> None:
        self.store = store
        self.path = path
        self.attempts = attempts
        self._describe = describe or (lambda name: f"{name} videos")
        self._clock = clock

    def load(self) -> CollectionIndexDocument:
        data, _ = read_json(self.store, self.path, _empty_index)
        return CollectionIndexDocument.model_validate(data)

    def get(self, slug: str) -> Optional[CollectionSummary]:
        for entry in self.load().channels:
            if entry.slug == slug:
                return entry
        return None

    @staticmethod
    def _latest(video: CollectionVideo) -> LatestVideo:
        return LatestVideo(
            title=video.title,
            url=video.website_url,
            date=video.upload_date,
            thumbnail=video.thumbnail,
        )

    def _new_entry(self, slug: str, name: str, video: CollectionVideo) -> CollectionSummary:
        now = isoformat(self._clock())
        return CollectionSummary(
            name=name,
            slug=slug,
            description=self._describe(name),
            total_videos=1,
            latest_video=self._latest(video),
            categories=[video.category] if video.category else [],
            last_updated=now,
            created=now,
        )

    def upsert(self, slug: str, name: str, video: CollectionVideo) -> CollectionSummary:
        """Count one more record for ``slug`` and point its latest entry at ``video``."""

        def apply(data: dict) -> CollectionSummary:
            channels = data.setdefault("channels", [])
            for position, raw in enumerate(channels):
                if raw.get("slug") != slug:
                    continue
                entry = CollectionSummary.model_validate(raw)
                entry.total_videos += 1
                entry.latest_video = self._latest(video)
                if video.category and video.category not in entry.categories:
                    entry.categories.append(video.category)
                entry.last_updated = isoformat(self._clock())
                channels[position] = entry.to_document()
                return entry

            entry = self._new_entry(slug, name, video)
            channels.append(entry.to_document())
            return entry

        summary, _ = update_json(
            self.store,
            self.path,
            apply,
            default=_empty_index,
            attempts=self.attempts,
            message=f"Update {self.path} for {slug}",
        )
        logger.info("Index %s: %s now has %s videos", self.path, slug, summary.total_videos)
        return summary

    def reconcile(
        self, slug: str, name: str, video: CollectionVideo, stored_total: int
    ) -> CollectionSummary:
        """Raise ``totalVideos`` to ``stored_total`` when an earlier upsert was lost.

        Used when a retried append finds its record already stored; the index
        is only rewritten if it counts fewer records than the collection holds.
        """

        existing = self.get(slug)
        if existing is not None and existing.total_videos >= stored_total:
            return existing

        def apply(data: dict) -> CollectionSummary:
            channels = data.setdefault("channels", [])
            for position, raw in enumerate(channels):
                if raw.get("slug") != slug:
                    continue
                entry = CollectionSummary.model_validate(raw)
                if entry.total_videos < stored_total:
                    entry.total_videos = stored_total
                    if video.category and video.category not in entry.categories:
                        entry.categories.append(video.category)
                    entry.last_updated = isoformat(self._clock())
                    channels[position] = entry.to_document()
                return entry

            entry = self._new_entry(slug, name, video)
            entry.total_videos = stored_total
            channels.append(entry.to_document())
            return entry

        summary, _ = update_json(
            self.store,
            self.path,
            apply,
            default=_empty_index,
            attempts=self.attempts,
            message=f"Reconcile {self.path} for {slug}",
        )
        logger.warning("Index %s: %s reconciled to %s videos", self.path, slug, summary.total_videos)
        return summary
