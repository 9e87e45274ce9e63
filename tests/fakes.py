"""In-memory doubles for the repository store and outbound HTTP sessions."""

from __future__ import annotations

import itertools
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

from movie_catalog.errors import Conflict, NotFound
from movie_catalog.store import DirEntry, StoredFile, WriteResult


class InMemoryStore:
    """KeyedObjectStore that enforces sha preconditions like the Contents API.

    ``before_put`` is a one-shot hook called with the path right before the
    next write is applied; tests use it to slip in a concurrent writer.
    """

    def __init__(self, files: Optional[Dict[str, Any]] = None) -> None:
        self.files: Dict[str, Tuple[bytes, str]] = {}
        self.before_put: Optional[Callable[[str], None]] = None
        self.writes: List[str] = []
        self._shas = itertools.count(1)
        for path, content in (files or {}).items():
            self.seed(path, content)

    def _next_sha(self) -> str:
        return f"sha{next(self._shas)}"

    def seed(self, path: str, content: Any) -> str:
        if isinstance(content, str):
            data = content.encode("utf-8")
        elif isinstance(content, bytes):
            data = content
        else:
            data = json.dumps(content).encode("utf-8")
        sha = self._next_sha()
        self.files[path] = (data, sha)
        return sha

    def json(self, path: str) -> Any:
        return json.loads(self.files[path][0].decode("utf-8"))

    def text(self, path: str) -> str:
        return self.files[path][0].decode("utf-8")

    def get(self, path: str) -> StoredFile:
        if path not in self.files:
            raise NotFound(path)
        content, sha = self.files[path]
        return StoredFile(path=path, content=content, sha=sha)

    def put(
        self,
        path: str,
        content: bytes,
        sha: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        hook, self.before_put = self.before_put, None
        if hook is not None:
            hook(path)
        current = self.files.get(path)
        if current is None and sha:
            raise Conflict(f"{path} no longer exists")
        if current is not None and sha != current[1]:
            raise Conflict(f"{path} does not match {sha}")
        new_sha = self._next_sha()
        self.files[path] = (content, new_sha)
        self.writes.append(path)
        return WriteResult(
            path=path,
            sha=new_sha,
            commit_url=f"https://github.test/commit/{new_sha}",
            html_url=f"https://github.test/blob/main/{path}",
        )

    def list_dir(self, path: str) -> List[DirEntry]:
        prefix = path.strip("/") + "/"
        children: Dict[str, str] = {}
        for stored_path in self.files:
            if not stored_path.startswith(prefix):
                continue
            rest = stored_path[len(prefix):]
            name = rest.split("/", 1)[0]
            children[name] = "dir" if "/" in rest else "file"
        if not children:
            raise NotFound(path)
        return [
            DirEntry(name=name, path=prefix + name, type=kind)
            for name, kind in sorted(children.items())
        ]


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        text: str = "",
        content: bytes = b"",
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = text or (json.dumps(payload) if payload is not None else "")
        self.content = content

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Replays queued responses and records every call made through it."""

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.headers: Dict[str, str] = {}

    def _next(self, call: Dict[str, Any]) -> FakeResponse:
        self.calls.append(call)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {call['method']} {call['url']}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        return self._next({"method": method, "url": url, **kwargs})

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next({"method": "GET", "url": url, **kwargs})

    def put(self, url: str, **kwargs: Any) -> FakeResponse:
        data = kwargs.get("data")
        if hasattr(data, "read"):
            kwargs["body"] = data.read()
        return self._next({"method": "PUT", "url": url, **kwargs})


def movie_markdown(
    title: str,
    *,
    video_url: str = "https://cdn.test/video.mp4",
    date: str = "2024-01-01T00:00:00.000Z",
    tags: str = '["drama"]',
    description: str = "",
) -> str:
    return (
        "---\n"
        f'title: "{title}"\n'
        f'videoUrl: "{video_url}"\n'
        f'description: "{description}"\n'
        f"tags: {tags}\n"
        f'date: "{date}"\n'
        "---\n\n"
        f"# {title}\n"
    )
