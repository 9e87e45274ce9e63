from __future__ import annotations

import unittest
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from movie_catalog.categories import CATEGORIES_PATH
from movie_catalog.config import CatalogConfig
from movie_catalog.scraper import MovieScraper
from movie_catalog.server import create_app
from movie_catalog.upload import UploadResult

from tests.fakes import FakeResponse, FakeSession, InMemoryStore, movie_markdown

NOW = datetime(2024, 10, 1, 12, 0, tzinfo=timezone.utc)
CONFIG = CatalogConfig(site_url="https://films.test", site_name="Films", collection_capacity=2)

MOVIE = {
    "title": "Harbour Lights",
    "category": "drama",
    "videoUrl": "https://cdn.test/harbour.mp4",
    "posterUrl": "https://cdn.test/harbour.jpg",
    "description": "Boats at night.",
    "tags": ["sea"],
}


class RecordingUploader:
    def __init__(self) -> None:
        self.received = {}

    def relay(self, title, video, thumbnail) -> UploadResult:
        self.received = {
            "title": title,
            "video": video.path.read_bytes(),
            "thumbnail": thumbnail.path.read_bytes(),
            "video_type": video.content_type,
        }
        return UploadResult(
            slug="night-train",
            video_key="night-train-1.mp4",
            thumbnail_key="night-train-thumbnail-1.jpg",
            video_url="https://films.b-cdn.net/night-train-1.mp4",
            thumbnail_url="https://films.b-cdn.net/night-train-thumbnail-1.jpg",
        )


class CatalogApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryStore(
            {
                "content/movies/comedy/laugh-lines.md": movie_markdown(
                    "Laugh Lines", tags='["standup", "hidden-gem"]'
                ),
            }
        )
        self.uploader = RecordingUploader()
        self.scrape_session = FakeSession()
        self.app = create_app(
            CONFIG,
            store=self.store,
            uploader=self.uploader,
            scraper=MovieScraper(session=self.scrape_session),
            clock=lambda: NOW,
        )
        self.client = TestClient(self.app)

    def test_health(self) -> None:
        self.assertEqual(self.client.get("/health").json(), {"status": "ok"})

    def test_save_movie_then_view_it(self) -> None:
        response = self.client.post("/api/save-movie", json={"movieData": MOVIE})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body["success"])
        self.assertEqual(body["filePath"], "content/movies/drama/harbour-lights.md")
        self.assertEqual(body["viewUrl"], "https://films.test/drama/harbour-lights")
        self.assertEqual(body["videoCount"], 1)
        self.assertIn("categories/drama/videos-1.json", self.store.files)

        page = self.client.get("/drama/harbour-lights")
        self.assertEqual(page.status_code, 200)
        self.assertIn("Harbour Lights", page.text)
        self.assertIn("application/ld+json", page.text)

    def test_save_movie_conflict_and_validation(self) -> None:
        self.client.post("/api/upload-movie", json=MOVIE)

        duplicate = self.client.post("/api/save-movie", json={"movieData": MOVIE})
        missing = self.client.post("/api/save-movie", json={"movieData": {"title": "No video"}})

        self.assertEqual(duplicate.status_code, 409)
        self.assertFalse(duplicate.json()["success"])
        self.assertEqual(missing.status_code, 400)
        self.assertIn("videoUrl", missing.json()["error"])

    def test_add_to_channel_counts_every_append(self) -> None:
        video = {"title": "Episode", "category": "documentary"}
        first = self.client.post("/api/add-to-channel", json={"channelName": "Nature", "videoData": video})
        second = self.client.post("/api/add-to-channel-json", json={"channelName": "Nature", "videoData": video})
        third = self.client.post("/api/add-to-channel", json={"channelName": "Nature", "videoData": video})

        self.assertEqual(first.json()["jsonFile"], "channels/nature/videos-1.json")
        self.assertNotEqual(first.json()["videoAdded"]["id"], second.json()["videoAdded"]["id"])
        self.assertEqual(second.json()["nextFile"], "videos-2.json")
        self.assertEqual(third.json()["jsonFile"], "channels/nature/videos-2.json")

        channels = self.client.get("/api/channels").json()["channels"]
        self.assertEqual(channels[0]["slug"], "nature")
        self.assertEqual(channels[0]["totalVideos"], 3)

    def test_add_to_channel_idempotency_header(self) -> None:
        payload = {"channelName": "Nature", "videoData": {"title": "Once"}}
        headers = {"Idempotency-Key": "abc"}

        first = self.client.post("/api/add-to-channel", json=payload, headers=headers)
        again = self.client.post("/api/add-to-channel", json=payload, headers=headers)

        self.assertFalse(first.json()["duplicate"])
        self.assertTrue(again.json()["duplicate"])
        self.assertEqual(again.json()["videoCount"], 1)

    def test_invalid_body_is_400(self) -> None:
        response = self.client.post("/api/add-to-channel", json={"videoData": {}})
        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.json()["success"])
        self.assertIn("channelName", response.json()["error"])

    def test_categories(self) -> None:
        self.assertEqual(
            self.client.get("/api/get-categories").json()["categories"],
            ["drama", "comedy", "documentary", "historical"],
        )

        saved = self.client.post("/api/save-categories", json={"categories": [" Horror ", "horror", "Drama"]})
        empty = self.client.post("/api/save-categories", json={"categories": [""]})

        self.assertEqual(saved.json()["categories"], ["horror", "drama"])
        stored = self.store.json(CATEGORIES_PATH)
        self.assertEqual(stored["categories"], ["horror", "drama"])
        self.assertEqual(stored["totalCategories"], 2)
        self.assertEqual(stored["lastUpdated"], "2024-10-01T12:00:00.000Z")
        self.assertEqual(empty.status_code, 400)

    def test_search_and_index(self) -> None:
        hits = self.client.get("/api/search", params={"q": "hidden"})
        short = self.client.get("/api/search", params={"q": "h"})
        index = self.client.get("/api/search-index")

        self.assertEqual([hit["slug"] for hit in hits.json()], ["laugh-lines"])
        self.assertIn("max-age", hits.headers["cache-control"])
        self.assertEqual(short.json(), [])
        self.assertEqual(index.json()[0]["url"], "/comedy/laugh-lines")

    def test_create_md(self) -> None:
        response = self.client.post(
            "/api/create-md", json={"fileName": "about", "channelName": "nature", "content": "# About"}
        )
        self.assertEqual(response.json()["filePath"], "channels/nature/about.md")
        self.assertEqual(self.store.text("channels/nature/about.md"), "# About")

    def test_pages(self) -> None:
        home = self.client.get("/")
        missing = self.client.get("/comedy/nope")

        self.assertEqual(home.status_code, 200)
        self.assertIn("Laugh Lines", home.text)
        self.assertEqual(missing.status_code, 404)
        self.assertIn("Content Not Found", missing.text)

    def test_unmatched_routes_follow_page_or_api_errors(self) -> None:
        page = self.client.get("/a/b/c")
        api = self.client.get("/api/nope/deeper/x")

        self.assertEqual(page.status_code, 404)
        self.assertTrue(page.headers["content-type"].startswith("text/html"))
        self.assertIn("Content Not Found", page.text)
        self.assertEqual(api.status_code, 404)
        self.assertFalse(api.json()["success"])

    def test_sitemaps(self) -> None:
        sitemap = self.client.get("/sitemap.xml")
        categories = self.client.get("/sitemap-categories.xml")
        beyond = self.client.get("/sitemap-5.xml")

        self.assertEqual(sitemap.status_code, 200)
        self.assertTrue(sitemap.headers["content-type"].startswith("application/xml"))
        self.assertIn("https://films.test/comedy/laugh-lines", sitemap.text)
        self.assertIn("category=comedy", categories.text)
        self.assertEqual(beyond.status_code, 404)

    def test_upload_relays_staged_files(self) -> None:
        response = self.client.post(
            "/upload",
            data={"title": "Night Train"},
            files={
                "video": ("train.mp4", b"frames", "video/mp4"),
                "thumbnail": ("train.jpg", b"pixels", "image/jpeg"),
            },
        )

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["videoUrl"], "https://films.b-cdn.net/night-train-1.mp4")
        self.assertEqual(self.uploader.received["video"], b"frames")
        self.assertEqual(self.uploader.received["thumbnail"], b"pixels")
        self.assertEqual(self.uploader.received["video_type"], "video/mp4")

    def test_upload_returns_markdown_for_metadata(self) -> None:
        response = self.client.post(
            "/upload",
            data={"title": "Night Train", "category": "Thriller", "quality": "720p", "releaseYear": "2001"},
            files={
                "video": ("train.mp4", b"frames", "video/mp4"),
                "thumbnail": ("train.jpg", b"pixels", "image/jpeg"),
            },
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["details"]["category"], "thriller")
        self.assertIn('videoUrl: "https://films.b-cdn.net/night-train-1.mp4"', body["markdown"])
        self.assertIn('posterUrl: "https://films.b-cdn.net/night-train-thumbnail-1.jpg"', body["markdown"])
        self.assertIn('quality: "720p"', body["markdown"])
        self.assertIn("releaseYear: 2001", body["markdown"])

    def test_upload_rejects_bad_year_before_relaying(self) -> None:
        response = self.client.post(
            "/upload",
            data={"title": "Night Train", "releaseYear": "soon"},
            files={
                "video": ("train.mp4", b"frames", "video/mp4"),
                "thumbnail": ("train.jpg", b"pixels", "image/jpeg"),
            },
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.uploader.received, {})

    def test_upload_requires_thumbnail(self) -> None:
        response = self.client.post(
            "/upload", data={"title": "x"}, files={"video": ("a.mp4", b"1", "video/mp4")}
        )
        self.assertEqual(response.status_code, 400)

    def test_scrape(self) -> None:
        self.scrape_session.responses.append(
            FakeResponse(200, text='<meta property="og:title" content="Scraped">')
        )
        self.scrape_session.responses.append(FakeResponse(404, text="gone"))

        ok = self.client.post("/api/scrape", json={"url": "https://films.test/a"})
        failed = self.client.post("/api/scrape", json={"url": "https://films.test/b"})
        invalid = self.client.post("/api/scrape", json={"url": "ftp://films.test/c"})

        self.assertEqual(ok.json()["movieData"]["title"], "Scraped")
        self.assertEqual(ok.json()["extractedFrom"], ["open-graph"])
        self.assertEqual(failed.status_code, 502)
        self.assertFalse(failed.json()["success"])
        self.assertEqual(invalid.status_code, 400)

    def test_process_html(self) -> None:
        response = self.client.post("/api/process-html", json={"html": "<title>Local Copy</title>"})
        self.assertEqual(response.json()["movieData"]["slug"], "local-copy")
        empty = self.client.post("/api/process-html", json={"html": "  "})
        self.assertEqual(empty.status_code, 400)


class UnconfiguredApiTest(unittest.TestCase):
    def setUp(self) -> None:
        self.client = TestClient(create_app(CatalogConfig()))

    def test_api_reports_missing_credentials(self) -> None:
        response = self.client.get("/api/get-categories")
        self.assertEqual(response.status_code, 500)
        self.assertIn("GITHUB_TOKEN", response.json()["error"])

    def test_pages_degrade_to_error_page(self) -> None:
        response = self.client.get("/")
        self.assertEqual(response.status_code, 500)
        self.assertIn("Something Went Wrong", response.text)

    def test_upload_reports_missing_cdn(self) -> None:
        response = self.client.post(
            "/upload",
            data={"title": "x"},
            files={"video": ("a.mp4", b"1", "video/mp4"), "thumbnail": ("a.jpg", b"2", "image/jpeg")},
        )
        self.assertEqual(response.status_code, 500)
        self.assertIn("BUNNY_API_KEY", response.json()["error"])


if __name__ == "__main__":
    unittest.main()
