from __future__ import annotations

import unittest
from datetime import datetime, timezone

from movie_catalog.channel_index import CollectionIndex
from movie_catalog.errors import MalformedRecord
from movie_catalog.records import CollectionVideo

from tests.fakes import InMemoryStore

NOW = datetime(2024, 6, 1, tzinfo=timezone.utc)


def _video(title: str, category: str) -> CollectionVideo:
    return CollectionVideo(
        id=f"vid_{title}",
        title=title,
        category=category,
        website_url=f"https://site.test/{title}",
        channel_name="Nature",
        channel_slug="nature",
        thumbnail=f"https://cdn.test/{title}.jpg",
        upload_date="2024-06-01T00:00:00.000Z",
        last_updated="2024-06-01T00:00:00.000Z",
    )


class CollectionIndexTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore()
        self.index = CollectionIndex(self.store, "channels/index.json", clock=lambda: NOW)

    def test_missing_index_loads_empty(self) -> None:
        self.assertEqual(self.index.load().channels, [])
        self.assertIsNone(self.index.get("nature"))

    def test_upsert_creates_then_updates_entry(self) -> None:
        self.index.upsert("nature", "Nature", _video("one", "documentary"))
        summary = self.index.upsert("nature", "Nature", _video("two", "wildlife"))

        self.assertEqual(summary.total_videos, 2)
        self.assertEqual(summary.latest_video.title, "two")
        self.assertEqual(summary.categories, ["documentary", "wildlife"])
        stored = self.store.json("channels/index.json")
        self.assertEqual(len(stored["channels"]), 1)
        entry = stored["channels"][0]
        self.assertEqual(entry["totalVideos"], 2)
        self.assertEqual(entry["latestVideo"]["url"], "https://site.test/two")
        self.assertEqual(entry["created"], "2024-06-01T00:00:00.000Z")

    def test_entries_for_other_slugs_are_untouched(self) -> None:
        self.store.seed(
            "channels/index.json",
            {"channels": [{"name": "Other", "slug": "other", "totalVideos": 7, "featured": True}]},
        )

        self.index.upsert("nature", "Nature", _video("one", "documentary"))

        stored = self.store.json("channels/index.json")["channels"]
        self.assertEqual([entry["slug"] for entry in stored], ["other", "nature"])
        self.assertEqual(stored[0]["totalVideos"], 7)
        self.assertTrue(stored[0]["featured"])

    def test_corrupt_index_is_not_replaced(self) -> None:
        self.store.seed("channels/index.json", "not json")
        with self.assertRaises(MalformedRecord):
            self.index.upsert("nature", "Nature", _video("one", "documentary"))


if __name__ == "__main__":
    unittest.main()
