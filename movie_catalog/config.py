"""Runtime configuration for the catalog, resolved once at process start."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Mapping, Optional, Tuple

from .errors import ConfigError


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}.") from exc


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be a number, got {raw!r}.") from exc


@dataclass(frozen=True)
class CatalogConfig:
    """Credentials, repository coordinates and tunables for every adapter."""

    github_owner: Optional[str] = None
    github_repo: Optional[str] = None
    github_token: Optional[str] = None
    github_branch: str = "main"
    github_api_url: str = "https://api.github.com"
    bunny_storage_zone: Optional[str] = None
    bunny_api_key: Optional[str] = None
    bunny_storage_host: str = "storage.bunnycdn.com"
    bunny_cdn_host: Optional[str] = None
    site_url: str = "http://localhost:8000"
    site_name: str = "Movie Catalog"
    user_agent: str = "Movie-Catalog"
    collection_capacity: int = 100
    sitemap_page_size: int = 1000
    search_limit: int = 10
    http_timeout: float = 30.0
    conflict_retries: int = 3
    default_tags: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CatalogConfig":
        """Build a configuration from environment variables.

        ``GITHUB_REPO`` may be given as ``owner/repo`` when ``GITHUB_OWNER`` is
        not set. Missing credentials are not an error here; see
        :meth:`require_github` and :meth:`require_bunny`.
        """

        env = os.environ if environ is None else environ
        owner = env.get("GITHUB_OWNER") or env.get("GITHUB_USERNAME") or None
        repo = env.get("GITHUB_REPO") or None
        if repo and "/" in repo and not owner:
            owner, repo = repo.split("/", maxsplit=1)

        tags = tuple(
            tag.strip().lower()
            for tag in (env.get("DEFAULT_TAGS") or "").split(",")
            if tag.strip()
        )

        return cls(
            github_owner=owner,
            github_repo=repo,
            github_token=env.get("GITHUB_TOKEN") or None,
            github_branch=env.get("GITHUB_BRANCH") or "main",
            bunny_storage_zone=env.get("BUNNY_STORAGE_ZONE") or None,
            bunny_api_key=env.get("BUNNY_API_KEY") or None,
            bunny_storage_host=env.get("BUNNY_STORAGE_HOST") or "storage.bunnycdn.com",
            bunny_cdn_host=env.get("BUNNY_CDN_HOST") or None,
            site_url=(env.get("SITE_URL") or "http://localhost:8000").rstrip("/"),
            site_name=env.get("SITE_NAME") or "Movie Catalog",
            collection_capacity=_int_env(env, "COLLECTION_CAPACITY", 100),
            sitemap_page_size=_int_env(env, "SITEMAP_PAGE_SIZE", 1000),
            search_limit=_int_env(env, "SEARCH_LIMIT", 10),
            http_timeout=_float_env(env, "HTTP_TIMEOUT", 30.0),
            conflict_retries=_int_env(env, "CONFLICT_RETRIES", 3),
            default_tags=tags,
        )

    @property
    def repository(self) -> str:
        return f"{self.github_owner}/{self.github_repo}"

    @property
    def cdn_host(self) -> str:
        return self.bunny_cdn_host or f"{self.bunny_storage_zone}.b-cdn.net"

    def require_github(self) -> None:
        missing = [
            name
            for name, value in (
                ("GITHUB_OWNER", self.github_owner),
                ("GITHUB_REPO", self.github_repo),
                ("GITHUB_TOKEN", self.github_token),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                "GitHub storage is not configured. Missing environment variables: "
                + ", ".join(missing)
            )

    def require_bunny(self) -> None:
        missing = [
            name
            for name, value in (
                ("BUNNY_STORAGE_ZONE", self.bunny_storage_zone),
                ("BUNNY_API_KEY", self.bunny_api_key),
            )
            if not value
        ]
        if missing:
            raise ConfigError(
                "CDN storage is not configured. Missing environment variables: "
                + ", ".join(missing)
            )
