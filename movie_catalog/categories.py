"""Flat list of permitted category tags stored at ``data/categories.json``."""

from __future__ import annotations

import logging
from typing import Iterable, List

from .errors import NotFound
from .records import isoformat, utcnow
from .store import KeyedObjectStore, dumps_json, read_json

logger = logging.getLogger(__name__)

CATEGORIES_PATH = "data/categories.json"
DEFAULT_CATEGORIES = ["drama", "comedy", "documentary", "historical"]


def normalize_categories(values: Iterable[object]) -> List[str]:
    """Trim, lower-case and dedupe while preserving order; drop non-strings."""

    seen = set()
    result: List[str] = []
    for value in values:
        if not isinstance(value, str):
            continue
        cleaned = value.strip().lower()
        if not cleaned or cleaned in seen:
            continue
        seen.add(cleaned)
        result.append(cleaned)
    return result


class CategorySet:
    def __init__(self, store: KeyedObjectStore, path: str = CATEGORIES_PATH, *, clock=utcnow) -> None:
        self.store = store
        self.path = path
        self._clock = clock

    def load(self) -> List[str]:
        data, _ = read_json(self.store, self.path, dict)
        categories = normalize_categories(data.get("categories") or []) if isinstance(data, dict) else []
        return categories or list(DEFAULT_CATEGORIES)

    def save(self, values: Iterable[object]) -> List[str]:
        """Replace the stored set.

        Raises:
            ValueError: If no valid category remains after normalization.
        """

        categories = normalize_categories(values)
        if not categories:
            raise ValueError("No valid categories provided.")
        try:
            sha = self.store.get(self.path).sha
        except NotFound:
            sha = None
        self.store.put(
            self.path,
            dumps_json(
                {
                    "categories": categories,
                    "lastUpdated": isoformat(self._clock()),
                    "totalCategories": len(categories),
                }
            ),
            sha=sha,
            message="Update categories",
        )
        logger.info("Saved %s categories", len(categories))
        return categories
