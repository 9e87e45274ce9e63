"""GitHub repository used as a keyed object store.

Every file is addressed by its repository path and versioned by the blob
``sha`` GitHub returns. Writers pass the ``sha`` they read back on ``put`` so
the remote rejects the write when another request changed the file in the
meantime; :func:`update_json` wraps that read-modify-write cycle with a
bounded retry.
"""

from __future__ import annotations

import base64
import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Protocol, Tuple, TypeVar

import requests

from .config import CatalogConfig
from .errors import Conflict, MalformedRecord, NotFound, UpstreamError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class StoredFile:
    path: str
    content: bytes
    sha: str

    def text(self) -> str:
        return self.content.decode("utf-8")


@dataclass(frozen=True)
class WriteResult:
    path: str
    sha: str
    commit_url: Optional[str] = None
    html_url: Optional[str] = None


@dataclass(frozen=True)
class DirEntry:
    name: str
    path: str
    type: str  # "file" or "dir"


class KeyedObjectStore(Protocol):
    """Minimal interface the rest of the project depends on."""

    def get(self, path: str) -> StoredFile:
        ...

    def put(
        self,
        path: str,
        content: bytes,
        sha: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        ...

    def list_dir(self, path: str) -> List[DirEntry]:
        ...


def decode_content(encoded: str) -> bytes:
    """Decode a Contents API payload; GitHub wraps base64 at 60 columns."""

    return base64.b64decode("".join(encoded.split()))


def encode_content(content: bytes) -> str:
    return base64.b64encode(content).decode("ascii")


class GitHubFileStore:
    """`KeyedObjectStore` backed by the GitHub REST Contents API."""

    def __init__(self, config: CatalogConfig, session: Optional[requests.Session] = None) -> None:
        config.require_github()
        self.config = config
        self.session = session or requests.Session()
        self._base_url = (
            f"{config.github_api_url.rstrip('/')}/repos/{config.repository}/contents"
        )

    # Internal helpers -------------------------------------------------
    def _headers(self) -> dict:
        return {
            "Authorization": f"token {self.config.github_token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": self.config.user_agent,
        }

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.strip('/')}"

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        try:
            return self.session.request(
                method,
                self._url(path),
                headers=self._headers(),
                timeout=self.config.http_timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise UpstreamError(f"GitHub request for {path} failed: {exc}") from exc

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return response.text

    def _raise_for_status(self, response: requests.Response, path: str) -> None:
        if response.status_code < 400:
            return
        message = self._error_message(response)
        if response.status_code == 404:
            raise NotFound(f"GitHub path not found: {path}")
        if response.status_code == 409 or (
            response.status_code == 422 and "sha" in message.lower()
        ):
            raise Conflict(f"GitHub rejected write to {path}: {message}")
        raise UpstreamError(
            f"GitHub API error ({response.status_code}) for {path}: {message}",
            status=response.status_code,
        )

    # Public API -------------------------------------------------------
    def get(self, path: str) -> StoredFile:
        response = self._request("GET", path, params={"ref": self.config.github_branch})
        self._raise_for_status(response, path)
        data = response.json()
        if isinstance(data, list) or data.get("type") != "file":
            raise NotFound(f"GitHub path is not a file: {path}")

        if data.get("content"):
            content = decode_content(data["content"])
        elif data.get("download_url"):
            # Files above 1 MB come back without inline content.
            try:
                raw = self.session.get(
                    data["download_url"],
                    headers=self._headers(),
                    timeout=self.config.http_timeout,
                )
            except requests.RequestException as exc:
                raise UpstreamError(f"GitHub download for {path} failed: {exc}") from exc
            self._raise_for_status(raw, path)
            content = raw.content
        else:
            content = b""
        return StoredFile(path=path, content=content, sha=data["sha"])

    def put(
        self,
        path: str,
        content: bytes,
        sha: Optional[str] = None,
        message: Optional[str] = None,
    ) -> WriteResult:
        body = {
            "message": message or f"Update {path}",
            "content": encode_content(content),
            "branch": self.config.github_branch,
        }
        if sha:
            body["sha"] = sha
        response = self._request("PUT", path, json=body)
        self._raise_for_status(response, path)
        data = response.json()
        content_info = data.get("content") or {}
        commit_info = data.get("commit") or {}
        logger.debug("Committed %s (%s)", path, commit_info.get("sha"))
        return WriteResult(
            path=path,
            sha=content_info.get("sha", ""),
            commit_url=commit_info.get("html_url"),
            html_url=content_info.get("html_url"),
        )

    def list_dir(self, path: str) -> List[DirEntry]:
        response = self._request("GET", path, params={"ref": self.config.github_branch})
        self._raise_for_status(response, path)
        data = response.json()
        if not isinstance(data, list):
            raise NotFound(f"GitHub path is not a directory: {path}")
        return [
            DirEntry(name=item["name"], path=item["path"], type=item.get("type", "file"))
            for item in data
        ]


# JSON documents --------------------------------------------------------
def dumps_json(data: Any) -> bytes:
    return json.dumps(data, ensure_ascii=False, indent=2).encode("utf-8")


def read_json(store: KeyedObjectStore, path: str, default: Callable[[], T]) -> Tuple[T, Optional[str]]:
    """Return ``(data, sha)``; only a confirmed 404 falls back to ``default()``."""

    try:
        stored = store.get(path)
    except NotFound:
        return default(), None
    try:
        return json.loads(stored.text()), stored.sha
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise MalformedRecord(f"{path} is not valid JSON: {exc}") from exc


def update_json(
    store: KeyedObjectStore,
    path: str,
    mutate: Callable[[Any], T],
    *,
    default: Callable[[], Any],
    attempts: int = 3,
    message: Optional[str] = None,
) -> Tuple[T, WriteResult]:
    """Read-modify-write a JSON document, retrying when the sha goes stale.

    ``mutate`` receives the decoded document, changes it in place and returns
    whatever the caller wants back. It may run more than once.
    """

    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        data, sha = read_json(store, path, default)
        result = mutate(data)
        try:
            written = store.put(path, dumps_json(data), sha=sha, message=message)
        except Conflict:
            if attempt == attempts:
                raise
            logger.warning(
                "Concurrent update on %s (attempt %s/%s), retrying...", path, attempt, attempts
            )
            continue
        return result, written
    raise AssertionError("unreachable")  # pragma: no cover
