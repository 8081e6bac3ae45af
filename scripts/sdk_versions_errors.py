"""Error types shared by the version resolver and its transport.

Fetch failures are split into "the document does not exist" and "the request
did not complete" so the resolver can decide whether the lockfile fallback
applies. Everything the resolver cannot recover from is reported as a
:class:`ResolutionError`.
"""

from __future__ import annotations

import enum

__all__ = [
    "DocumentNotFound",
    "FetchError",
    "NetworkFailure",
    "ResolutionError",
    "ResolutionErrorKind",
]


class FetchError(Exception):
    """Base class for transport failures raised by ``fetch_text``."""

    def __init__(self, url: str, detail: str) -> None:
        super().__init__(f"{detail}: {url}")
        self.url = url
        self.detail = detail


class DocumentNotFound(FetchError):
    """The remote document does not exist (HTTP 404)."""


class NetworkFailure(FetchError):
    """The request failed, timed out, or returned a non-success status."""


class ResolutionErrorKind(enum.StrEnum):
    """Categories of terminal resolution failures."""

    NOT_FOUND = "not found"
    NETWORK_FAILURE = "network failure"
    MALFORMED_DOCUMENT = "malformed document"
    UNKNOWN_FAMILY_MAPPING = "unknown family mapping"


class ResolutionError(Exception):
    """Terminal failure while resolving the crate versions of a release."""

    def __init__(
        self,
        release: str,
        kind: ResolutionErrorKind,
        cause: str,
    ) -> None:
        message = f"cannot resolve crate versions for {release!r} ({kind}): {cause}"
        super().__init__(message)
        self.release = release
        self.kind = kind
        self.cause = cause
