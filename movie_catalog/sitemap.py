"""XML sitemaps, paginated at a fixed number of URLs per file."""

from __future__ import annotations

import math
from datetime import date
from typing import List, Sequence
from urllib.parse import quote, urlencode
from xml.sax.saxutils import escape

from .catalog import categories_of
from .errors import NotFound
from .records import MovieRecord

SITEMAP_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"
MAX_URLS_PER_SITEMAP = 1000


def _url(loc: str, lastmod: str, changefreq: str, priority: str) -> str:
    return (
        "\n    <url>"
        f"\n        <loc>{escape(loc)}</loc>"
        f"\n        <lastmod>{lastmod}</lastmod>"
        f"\n        <changefreq>{changefreq}</changefreq>"
        f"\n        <priority>{priority}</priority>"
        "\n    </url>"
    )


def _urlset(entries: List[str]) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<urlset xmlns="{SITEMAP_NS}">' + "".join(entries) + "\n</urlset>"
    )


def _home_and_categories(records: Sequence[MovieRecord], base_url: str, today: str) -> List[str]:
    entries = [_url(f"{base_url}/", today, "daily", "1.0")]
    for category in categories_of(records):
        entries.append(
            _url(f"{base_url}/?{urlencode({'category': category})}", today, "weekly", "0.8")
        )
    return entries


def _movie_entries(records: Sequence[MovieRecord], base_url: str, today: str) -> List[str]:
    return [
        _url(f"{base_url}/{quote(record.category)}/{quote(record.slug)}", today, "monthly", "0.7")
        for record in records
    ]


def page_count(total_records: int, page_size: int = MAX_URLS_PER_SITEMAP) -> int:
    return math.ceil(total_records / page_size)


def build_sitemap(
    records: Sequence[MovieRecord],
    base_url: str,
    today: date,
    page_size: int = MAX_URLS_PER_SITEMAP,
) -> str:
    """Return ``/sitemap.xml``.

    A single ``<urlset>`` when the homepage, category pages and movie pages
    fit in one file; otherwise a ``<sitemapindex>`` pointing at the
    categories sitemap and ``ceil(len(records) / page_size)`` movie sitemaps.
    """

    stamp = today.isoformat()
    categories = categories_of(records)
    if 1 + len(categories) + len(records) <= page_size:
        return _urlset(
            _home_and_categories(records, base_url, stamp)
            + _movie_entries(records, base_url, stamp)
        )

    parts = [
        '<?xml version="1.0" encoding="UTF-8"?>\n',
        f'<sitemapindex xmlns="{SITEMAP_NS}">',
        "\n    <sitemap>"
        f"\n        <loc>{escape(base_url)}/sitemap-categories.xml</loc>"
        f"\n        <lastmod>{stamp}</lastmod>"
        "\n    </sitemap>",
    ]
    for number in range(1, page_count(len(records), page_size) + 1):
        parts.append(
            "\n    <sitemap>"
            f"\n        <loc>{escape(base_url)}/sitemap-{number}.xml</loc>"
            f"\n        <lastmod>{stamp}</lastmod>"
            "\n    </sitemap>"
        )
    parts.append("\n</sitemapindex>")
    return "".join(parts)


def build_sitemap_page(
    records: Sequence[MovieRecord],
    number: int,
    base_url: str,
    today: date,
    page_size: int = MAX_URLS_PER_SITEMAP,
) -> str:
    """Return ``/sitemap-<number>.xml`` (1-based).

    Raises:
        NotFound: If the page holds no records.
    """

    start = (number - 1) * page_size
    chunk = list(records[start:start + page_size]) if number >= 1 else []
    if not chunk:
        raise NotFound(f"Sitemap page {number} does not exist.")
    return _urlset(_movie_entries(chunk, base_url, today.isoformat()))


def build_categories_sitemap(records: Sequence[MovieRecord], base_url: str, today: date) -> str:
    return _urlset(_home_and_categories(records, base_url, today.isoformat()))
