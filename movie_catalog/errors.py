"""Exception taxonomy shared by the store, catalog and HTTP layers."""

from __future__ import annotations


class CatalogError(RuntimeError):
    """Base class for every failure the catalog reports to callers."""

    status_code = 500


class NotFound(CatalogError):
    """Raised when a path or record does not exist in the backing store."""

    status_code = 404


class Conflict(CatalogError):
    """Raised when a write precondition (sha) no longer matches the remote."""

    status_code = 409


class UpstreamError(CatalogError):
    """Raised for non-2xx responses from GitHub, the CDN or a scraped site."""

    status_code = 502

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class MalformedRecord(CatalogError):
    """Raised when front matter or a stored JSON document cannot be parsed."""

    status_code = 422


class ConfigError(CatalogError):
    """Raised when a required credential or identifier is missing."""

    status_code = 500


class UploadError(CatalogError):
    """Raised when relaying a binary to CDN storage fails."""

    status_code = 502
