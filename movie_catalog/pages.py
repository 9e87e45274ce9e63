"""Server-rendered HTML pages built from movie records."""

from __future__ import annotations

import html
import json
import re
from datetime import datetime
from typing import Iterable, List, Optional
from urllib.parse import quote, urlencode

from .catalog import categories_of, latest_by_category, search_movies
from .records import MovieRecord, isoformat

DEFAULT_ISO_DURATION = "PT28M"
DESCRIPTION_PREVIEW_LENGTH = 250

_MINUTES_RE = re.compile(r"^\s*(\d+)\s*(?:minutes?|mins?)\s*$", re.IGNORECASE)
_HOURS_MINUTES_RE = re.compile(r"(\d+)\s*h(?:ours?)?\s*(\d+)\s*(?:minutes?|mins?)", re.IGNORECASE)
_CLOCK_RE = re.compile(r"^\s*(?:(\d+):)?(\d{1,2}):(\d{2})\s*$")

_STYLE = """
body { background: #0a0a0a; color: #e0e0e0; font-family: system-ui, sans-serif; margin: 0; }
a { color: inherit; }
.container { max-width: 1200px; margin: 0 auto; padding: 0 1rem; }
.header { background: #008753; padding: 1rem 0; }
.movies-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 1.5rem; }
.movie-card { background: #1a1a1a; border-radius: 12px; overflow: hidden; }
.movie-card img { width: 100%; aspect-ratio: 16 / 9; object-fit: cover; }
.movie-info { padding: 0.75rem; }
.movie-meta span { margin-right: 0.75rem; font-size: 0.85rem; }
"""


def escape_html(value: object) -> str:
    if value is None:
        return ""
    return html.escape(str(value), quote=True)


def capitalize_first(value: str) -> str:
    return value[:1].upper() + value[1:] if value else ""


def format_iso_duration(duration: Optional[str]) -> str:
    """Convert free-text durations ("28 minutes", "1h 45 minutes", "1:30:00") to ISO-8601."""

    if not duration:
        return DEFAULT_ISO_DURATION
    complex_match = _HOURS_MINUTES_RE.search(duration)
    if complex_match:
        return f"PT{int(complex_match.group(1))}H{int(complex_match.group(2))}M"
    minutes_match = _MINUTES_RE.match(duration)
    if minutes_match:
        return f"PT{int(minutes_match.group(1))}M"
    clock_match = _CLOCK_RE.match(duration)
    if clock_match:
        hours = int(clock_match.group(1) or 0)
        minutes = int(clock_match.group(2))
        seconds = int(clock_match.group(3))
        parts = "".join(
            f"{value}{unit}" for value, unit in ((hours, "H"), (minutes, "M"), (seconds, "S")) if value
        )
        return f"PT{parts}" if parts else DEFAULT_ISO_DURATION
    return DEFAULT_ISO_DURATION


def movie_url(record: MovieRecord, base_url: str) -> str:
    return f"{base_url}/{quote(record.category)}/{quote(record.slug)}"


def movie_json_ld(record: MovieRecord, base_url: str, now: datetime) -> dict:
    page_url = movie_url(record, base_url)
    data = {
        "@context": "https://schema.org",
        "@type": "VideoObject",
        "name": record.title,
        "description": record.meta_description or record.description or record.title,
        "thumbnailUrl": record.poster_url or f"{base_url}/images/default-poster.jpg",
        "uploadDate": isoformat(record.date or now),
        "duration": format_iso_duration(record.duration),
        "contentUrl": record.video_url,
        "embedUrl": record.video_url,
        "url": page_url,
        "genre": capitalize_first(record.category),
        "inLanguage": record.language or None,
        "keywords": ", ".join(record.tags) or None,
    }
    if record.director:
        data["director"] = {"@type": "Person", "name": record.director}
    if record.main_cast:
        data["actor"] = [
            {"@type": "Person", "name": name.strip()}
            for name in record.main_cast.split(",")
            if name.strip()
        ]
    return {key: value for key, value in data.items() if value is not None}


def _json_ld_script(data: dict) -> str:
    payload = json.dumps(data, ensure_ascii=False, indent=2).replace("</", "<\\/")
    return f'<script type="application/ld+json">\n{payload}\n</script>'


def _layout(title: str, description: str, body: str, *, site_name: str, head: str = "", year: int) -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{escape_html(title)}</title>
    <meta name="description" content="{escape_html(description)}">
    <style>{_STYLE}</style>
    {head}
</head>
<body>
    <header class="header">
        <div class="container">
            <a href="/" class="logo">{escape_html(site_name)}</a>
            <form action="/" method="get" class="search-form">
                <input type="search" name="search" placeholder="Search movies...">
                <button type="submit">Search</button>
            </form>
        </div>
    </header>
    <main class="container">
{body}
    </main>
    <footer class="container">
        <p>&copy; {year} {escape_html(site_name)}</p>
    </footer>
</body>
</html>"""


def render_movie_card(record: MovieRecord, base_url: str) -> str:
    poster = record.poster_url or f"{base_url}/images/default-poster.jpg"
    description = record.meta_description or record.description
    return f"""
        <div class="movie-card" data-category="{escape_html(record.category)}">
            <a href="{escape_html(movie_url(record, base_url))}" class="movie-link">
                <img src="{escape_html(poster)}" alt="{escape_html(record.title)}" loading="lazy">
                <div class="movie-info">
                    <h3 class="movie-title">{escape_html(record.title)}</h3>
                    <p class="movie-description">{escape_html(description[:100])}</p>
                    <div class="movie-meta">
                        <span class="movie-year">{escape_html(record.release_year or '')}</span>
                        <span class="movie-duration">{escape_html(record.duration)}</span>
                        <span class="movie-category">{escape_html(capitalize_first(record.category))}</span>
                        <span class="movie-quality">{escape_html(record.quality or 'HD')}</span>
                    </div>
                </div>
            </a>
        </div>"""


def _grid(records: Iterable[MovieRecord], base_url: str) -> str:
    cards = "".join(render_movie_card(record, base_url) for record in records)
    return f'<div class="movies-grid">{cards}\n        </div>'


def render_homepage(
    records: List[MovieRecord],
    *,
    base_url: str,
    site_name: str,
    now: datetime,
    search_query: str = "",
    category_filter: str = "",
    per_category: int = 5,
) -> str:
    """Homepage with optional search/category filters and latest-per-category sections."""

    categories = categories_of(records)
    nav = " ".join(
        f'<a class="nav-link{" active" if category == category_filter else ""}" '
        f'href="/?{urlencode({"category": category})}">{escape_html(capitalize_first(category))}</a>'
        for category in categories
    )
    sections = [f'<nav class="nav"><a class="nav-link" href="/">All</a> {nav}</nav>']

    if search_query or category_filter:
        filtered = records
        if search_query:
            filtered = search_movies(filtered, search_query)
        if category_filter:
            filtered = [record for record in filtered if record.category == category_filter]
        label = f'Results for "{search_query}"' if search_query else capitalize_first(category_filter)
        sections.append(f'<section class="results"><h2>{escape_html(label)} ({len(filtered)})</h2>')
        if filtered:
            sections.append(_grid(filtered, base_url))
        else:
            sections.append('<p class="empty">No movies found.</p>')
        sections.append("</section>")
    else:
        for category, items in latest_by_category(records, per_category).items():
            sections.append(
                f'<section class="category-section"><h2 class="section-title">'
                f"{escape_html(capitalize_first(category))}</h2>"
                f'<a class="view-all" href="/?{urlencode({"category": category})}">View all</a>'
            )
            sections.append(_grid(items, base_url))
            sections.append("</section>")
        if not records:
            sections.append('<p class="empty">No movies have been published yet.</p>')

    list_ld = {
        "@context": "https://schema.org",
        "@type": "ItemList",
        "itemListElement": [
            {"@type": "ListItem", "position": position, "url": movie_url(record, base_url)}
            for position, record in enumerate(records[:20], start=1)
        ],
    }
    return _layout(
        f"{site_name} - Watch Movies Online",
        f"Watch the latest movies on {site_name}.",
        "\n".join(sections),
        site_name=site_name,
        head=_json_ld_script(list_ld),
        year=now.year,
    )


def render_movie_page(
    record: MovieRecord,
    related: Iterable[MovieRecord],
    latest: Iterable[MovieRecord],
    *,
    base_url: str,
    site_name: str,
    now: datetime,
) -> str:
    """Detail page with player, metadata and embedded ``VideoObject`` JSON-LD."""

    description = record.description or ""
    preview = description
    if len(description) > DESCRIPTION_PREVIEW_LENGTH:
        preview = description[:DESCRIPTION_PREVIEW_LENGTH] + "..."

    if record.youtube_video_id:
        player = (
            f'<iframe src="https://www.youtube.com/embed/{escape_html(record.youtube_video_id)}" '
            'width="100%" height="500" frameborder="0" allowfullscreen></iframe>'
        )
    elif record.video_url.endswith((".mp4", ".webm", ".m3u8")):
        player = (
            f'<video controls width="100%" poster="{escape_html(record.poster_url)}">'
            f'<source src="{escape_html(record.video_url)}"></video>'
        )
    else:
        player = (
            f'<iframe src="{escape_html(record.video_url)}" width="100%" height="500" '
            'frameborder="0" allowfullscreen></iframe>'
        )

    details = "".join(
        f"<li><strong>{label}:</strong> {escape_html(value)}</li>"
        for label, value in (
            ("Release Year", record.release_year),
            ("Duration", record.duration),
            ("Language", record.language),
            ("Rating", record.rating),
            ("Quality", record.quality),
            ("Director", record.director),
            ("Producer", record.producer),
            ("Main Cast", record.main_cast),
        )
        if value
    )
    tags = " ".join(f'<span class="tag">{escape_html(tag)}</span>' for tag in record.tags)

    body = f"""
        <article class="movie">
            <div class="player">{player}</div>
            <h1>{escape_html(record.title)}</h1>
            <p class="description">{escape_html(preview)}</p>
            <ul class="details">{details}</ul>
            <div class="tags">{tags}</div>
        </article>
        <section class="related"><h2>Related</h2>{_grid(related, base_url)}</section>
        <section class="latest"><h2>More {escape_html(capitalize_first(record.category))}</h2>{_grid(latest, base_url)}</section>"""

    page_url = movie_url(record, base_url)
    head = "\n    ".join(
        [
            f'<link rel="canonical" href="{escape_html(page_url)}">',
            f'<meta property="og:title" content="{escape_html(record.meta_title or record.title)}">',
            '<meta property="og:type" content="video.movie">',
            f'<meta property="og:url" content="{escape_html(page_url)}">',
            f'<meta property="og:image" content="{escape_html(record.poster_url)}">',
            _json_ld_script(movie_json_ld(record, base_url, now)),
        ]
    )
    return _layout(
        f"{record.meta_title or record.title} - {site_name}",
        record.meta_description or description[:160],
        body,
        site_name=site_name,
        head=head,
        year=now.year,
    )


def render_error_page(site_name: str = "Movie Catalog") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <title>Error - {escape_html(site_name)}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body>
    <h1>Something Went Wrong</h1>
    <p>We're having trouble loading the content. Please try again later.</p>
    <a href="/">Go Back Home</a>
</body>
</html>"""


def render_not_found_page(site_name: str = "Movie Catalog") -> str:
    return f"""<!DOCTYPE html>
<html lang="en">
<head>
    <title>Not Found - {escape_html(site_name)}</title>
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body>
    <h1>Content Not Found</h1>
    <p>The movie you are looking for does not exist or has been removed.</p>
    <a href="/">Go Back Home</a>
</body>
</html>"""
