from __future__ import annotations

import unittest
from datetime import datetime, timezone

from movie_catalog.errors import MalformedRecord
from movie_catalog.frontmatter import (
    parse_front_matter,
    parse_movie,
    render_movie_markdown,
    split_front_matter,
)
from movie_catalog.records import MovieRecord

from tests.fakes import movie_markdown


class FrontMatterTest(unittest.TestCase):
    def _record(self, **overrides) -> MovieRecord:
        data = dict(
            title='The "Great" Escape',
            slug="the-great-escape",
            category="drama",
            video_url="https://www.youtube.com/watch?v=abcdefghijk",
            poster_url="https://cdn.test/poster.jpg",
            release_year=1963,
            duration="1h 45 minutes",
            description="Prisoners plan a break: out, over and under.",
            tags=["drama", "classic", "war"],
            director="John Sturges",
            main_cast="Steve McQueen, James Garner",
            youtube_video_id="abcdefghijk",
            date=datetime(2024, 5, 1, 12, 30, tzinfo=timezone.utc),
            last_updated=datetime(2024, 5, 2, 8, 0, tzinfo=timezone.utc),
        )
        data.update(overrides)
        return MovieRecord(**data)

    def test_round_trip_preserves_coerced_values(self) -> None:
        record = self._record()

        parsed = parse_movie(render_movie_markdown(record), "drama", "the-great-escape")

        self.assertEqual(parsed.title, record.title)
        self.assertEqual(parsed.release_year, 1963)
        self.assertEqual(parsed.tags, ["drama", "classic", "war"])
        self.assertEqual(parsed.video_url, record.video_url)
        self.assertEqual(parsed.description, record.description)
        self.assertEqual(parsed.date, record.date)
        self.assertEqual(parsed.last_updated, record.last_updated)
        self.assertEqual(parsed.director, "John Sturges")

    def test_seo_flag_is_boolean(self) -> None:
        fields = parse_front_matter(render_movie_markdown(self._record()))
        self.assertIs(fields["seoOptimized"], True)
        self.assertIsInstance(fields["releaseYear"], int)

    def test_crlf_and_single_quoted_tags(self) -> None:
        text = "---\r\ntitle: 'Night'\r\ntags: ['a', 'b']\r\n---\r\nBody text\r\n"

        fields, body = split_front_matter(text)
        parsed = parse_front_matter(text)

        self.assertEqual(fields["title"], "'Night'")
        self.assertEqual(parsed["title"], "Night")
        self.assertEqual(parsed["tags"], ["a", "b"])
        self.assertIn("Body text", body)

    def test_comma_separated_tags_are_accepted(self) -> None:
        parsed = parse_front_matter('---\ntags: "one, two"\n---\n')
        self.assertEqual(parsed["tags"], ["one", "two"])

    def test_malformed_tags_raise(self) -> None:
        with self.assertRaises(MalformedRecord):
            parse_front_matter("---\ntitle: x\ntags: [drama, \n---\n")

    def test_missing_delimiter_raises(self) -> None:
        with self.assertRaises(MalformedRecord):
            split_front_matter("title: no header\n")

    def test_missing_video_url_raises(self) -> None:
        with self.assertRaises(MalformedRecord):
            parse_movie('---\ntitle: "Only a title"\n---\n', "drama", "only-a-title")

    def test_location_overrides_header(self) -> None:
        text = movie_markdown("Moved").replace("---\n\n", 'category: "comedy"\nslug: "old"\n---\n\n', 1)

        parsed = parse_movie(text, "drama", "moved")

        self.assertEqual(parsed.category, "drama")
        self.assertEqual(parsed.slug, "moved")
        self.assertEqual(parsed.path, "content/movies/drama/moved.md")

    def test_unparseable_date_does_not_fail(self) -> None:
        parsed = parse_movie(movie_markdown("Undated", date="sometime"), "drama", "undated")
        self.assertIsNone(parsed.date)
        self.assertEqual(parsed.sort_key, 0.0)


if __name__ == "__main__":
    unittest.main()
