from __future__ import annotations

import unittest
from datetime import datetime, timezone

from movie_catalog.categories import CATEGORIES_PATH, DEFAULT_CATEGORIES, CategorySet, normalize_categories

from tests.fakes import InMemoryStore


class CategorySetTest(unittest.TestCase):
    def test_defaults_when_file_is_absent(self) -> None:
        self.assertEqual(CategorySet(InMemoryStore()).load(), DEFAULT_CATEGORIES)

    def test_load_stored_list(self) -> None:
        store = InMemoryStore({CATEGORIES_PATH: {"categories": ["Horror", "drama"]}})
        self.assertEqual(CategorySet(store).load(), ["horror", "drama"])

    def test_normalize_trims_lowercases_and_dedupes(self) -> None:
        self.assertEqual(
            normalize_categories([" Drama ", "drama", "", 3, None, "Sci-Fi"]),
            ["drama", "sci-fi"],
        )

    def test_save_creates_and_replaces(self) -> None:
        store = InMemoryStore()
        categories = CategorySet(store, clock=lambda: datetime(2024, 2, 3, tzinfo=timezone.utc))

        categories.save(["Action"])
        saved = categories.save(["Comedy", "Action", "comedy"])

        self.assertEqual(saved, ["comedy", "action"])
        self.assertEqual(
            store.json(CATEGORIES_PATH),
            {
                "categories": ["comedy", "action"],
                "lastUpdated": "2024-02-03T00:00:00.000Z",
                "totalCategories": 2,
            },
        )
        self.assertEqual(categories.load(), ["comedy", "action"])

    def test_save_rejects_empty_result(self) -> None:
        with self.assertRaises(ValueError):
            CategorySet(InMemoryStore()).save(["  ", 5])


if __name__ == "__main__":
    unittest.main()
