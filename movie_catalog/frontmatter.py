"""Front-matter parsing and rendering for markdown-backed movie records."""

from __future__ import annotations

import json
import re
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from pydantic import ValidationError

from .errors import MalformedRecord
from .records import MovieRecord, isoformat, utcnow

_BLOCK_RE = re.compile(r"\A---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)
_LINE_RE = re.compile(r"^(\w+):\s*(.*)$")
_ESCAPE_RE = re.compile(r'\\(["\\])')


def _unquote(value: str) -> str:
    """Strip one layer of matching quotes and undo the escapes we write."""

    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        inner = value[1:-1]
        if value[0] == '"':
            inner = _ESCAPE_RE.sub(r"\1", inner)
        return inner.strip()
    return value


def _coerce_int(key: str, value: str) -> Optional[int]:
    if not value:
        return None
    try:
        return int(value)
    except ValueError as exc:
        raise MalformedRecord(f"{key} must be an integer, got {value!r}.") from exc


def _coerce_tags(key: str, value: str) -> list:
    if not value:
        return []
    if not value.startswith("["):
        return [tag.strip() for tag in value.split(",") if tag.strip()]
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        try:
            parsed = json.loads(value.replace("'", '"'))
        except json.JSONDecodeError as exc:
            raise MalformedRecord(f"{key} is not a valid JSON array: {value!r}") from exc
    if not isinstance(parsed, list):
        raise MalformedRecord(f"{key} must be an array, got {value!r}.")
    return [str(tag) for tag in parsed]


def _coerce_bool(key: str, value: str) -> bool:
    return value.lower() in {"true", "yes", "1"}


COERCIONS: Dict[str, Callable[[str, str], Any]] = {
    "releaseYear": _coerce_int,
    "tags": _coerce_tags,
    "seoOptimized": _coerce_bool,
}


def split_front_matter(text: str) -> Tuple[Dict[str, str], str]:
    """Return the raw ``key: value`` header fields and the markdown body.

    Raises:
        MalformedRecord: If the document does not open with a ``---`` block.
    """

    text = text.lstrip("\ufeff")
    match = _BLOCK_RE.match(text)
    if not match:
        raise MalformedRecord("Document does not start with a front-matter block.")

    fields: Dict[str, str] = {}
    for line in match.group(1).splitlines():
        line_match = _LINE_RE.match(line.strip())
        if line_match:
            key, value = line_match.groups()
            fields[key] = value
    return fields, text[match.end():]


def parse_front_matter(text: str) -> Dict[str, Any]:
    """Parse the header block, applying the coercion table to known keys."""

    raw_fields, _ = split_front_matter(text)
    parsed: Dict[str, Any] = {}
    for key, raw_value in raw_fields.items():
        coerce = COERCIONS.get(key)
        if coerce is not None and raw_value.strip().startswith("["):
            value = raw_value.strip()
        else:
            value = _unquote(raw_value)
        parsed[key] = coerce(key, value) if coerce else value
    return parsed


def parse_movie(text: str, category: str, slug: str) -> MovieRecord:
    """Parse a markdown document into a typed record.

    ``category`` and ``slug`` come from the file's location and take
    precedence over any values written in the header.

    Raises:
        MalformedRecord: If the header is missing, a coercion fails, or a
            required field (title, videoUrl) is absent.
    """

    data = parse_front_matter(text)
    data["category"] = category
    data["slug"] = slug
    try:
        return MovieRecord.model_validate(data)
    except ValidationError as exc:
        problems = ", ".join(
            ".".join(str(part) for part in error["loc"]) for error in exc.errors()
        )
        raise MalformedRecord(f"Invalid record {category}/{slug}: {problems}") from exc


def escape_value(value: Any) -> str:
    text = str(value)
    text = text.replace("\\", "\\\\").replace('"', '\\"')
    text = text.replace("\r", "").replace("\n", " ").replace("\t", " ")
    return text


def _render_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), ensure_ascii=False)
    return f'"{escape_value(value)}"'


def render_front_matter(fields: Mapping[str, Any]) -> str:
    """Render a ``---`` delimited header; ``None`` values are omitted."""

    lines = ["---"]
    for key, value in fields.items():
        if value is None:
            continue
        lines.append(f"{key}: {_render_value(value)}")
    lines.append("---")
    return "\n".join(lines) + "\n"


def _video_section(record: MovieRecord) -> str:
    if record.youtube_video_id:
        return (
            '<iframe width="100%" height="500" '
            f'src="https://www.youtube.com/embed/{record.youtube_video_id}" '
            'frameborder="0" allowfullscreen></iframe>'
        )
    if "youtube.com" in record.video_url or "youtu.be" in record.video_url:
        embed = record.video_url.replace("watch?v=", "embed/")
        return f'<iframe width="100%" height="500" src="{embed}" frameborder="0" allowfullscreen></iframe>'
    return f"[Watch Now]({record.video_url})"


def render_movie_markdown(record: MovieRecord) -> str:
    """Serialize a record to the markdown layout stored in the repository."""

    now = utcnow()
    date = record.date or now
    last_updated = record.last_updated or now
    fields = {
        "title": record.title,
        "metaTitle": record.meta_title or record.title,
        "releaseYear": record.release_year,
        "duration": record.duration,
        "language": record.language,
        "category": record.category,
        "rating": record.rating,
        "quality": record.quality,
        "description": record.description,
        "metaDescription": record.meta_description,
        "videoUrl": record.video_url,
        "posterUrl": record.poster_url,
        "youtubeVideoId": record.youtube_video_id,
        "director": record.director,
        "producer": record.producer,
        "mainCast": record.main_cast,
        "supportingCast": record.supporting_cast,
        "channelName": record.channel_name,
        "keywords": record.keywords,
        "focusKeyword": record.focus_keyword,
        "tags": record.tags,
        "slug": record.slug,
        "date": isoformat(date),
        "lastUpdated": isoformat(last_updated),
        "seoOptimized": True,
    }

    cast = [
        f"- **{label}**: {value}"
        for label, value in (
            ("Director", record.director),
            ("Producer", record.producer),
            ("Main Cast", record.main_cast),
            ("Supporting Cast", record.supporting_cast),
        )
        if value
    ]
    details = [
        f"- **Release Year**: {record.release_year or ''}",
        f"- **Duration**: {record.duration or 'Not specified'}",
        f"- **Language**: {record.language or 'Not specified'}",
        f"- **Category**: {record.category}",
        f"- **Content Rating**: {record.rating or 'Not rated'}",
        f"- **Quality**: {record.quality or 'HD'}",
    ]
    if record.channel_name:
        details.append(f"- **Channel/Studio**: {record.channel_name}")

    body = [
        f"# {record.meta_title or record.title}",
        "",
        record.description,
        "",
        "## Movie Details",
        "",
        *details,
        "",
        "## Cast & Crew",
        "",
        "\n".join(cast) if cast else "Not specified",
        "",
        "## Video",
        "",
        _video_section(record),
        "",
        "## Tags",
        "",
        "\n".join(f"- {tag}" for tag in record.tags),
        "",
    ]
    return render_front_matter(fields) + "\n" + "\n".join(body)
