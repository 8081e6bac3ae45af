"""HTTP transport used to download release documents.

The resolver only needs ``fetch_text(url) -> str``. This module supplies the
``requests`` implementation and maps its failures onto
:class:`~sdk_versions_errors.DocumentNotFound` and
:class:`~sdk_versions_errors.NetworkFailure`.
"""

from __future__ import annotations

import logging
import typing as typ

import requests
from sdk_versions_errors import DocumentNotFound, NetworkFailure

__all__ = [
    "DEFAULT_FETCH_TIMEOUT_SECS",
    "Fetcher",
    "build_document_url",
    "fetch_text",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_SECS: typ.Final[int] = 30

Fetcher = typ.Callable[[str], str]


def build_document_url(
    base_url: str, repository: str, branch: str, filename: str
) -> str:
    """Return the raw-content URL of ``filename`` on ``branch`` of ``repository``.

    Examples
    --------
    >>> build_document_url(
    ...     "https://example.com/",
    ...     "paritytech/polkadot-sdk",
    ...     "release-v1.6.0",
    ...     "Plan.toml",
    ... )
    'https://example.com/paritytech/polkadot-sdk/release-v1.6.0/Plan.toml'
    """
    return f"{base_url.rstrip('/')}/{repository}/{branch}/{filename}"


def fetch_text(url: str, *, timeout_secs: int | None = None) -> str:
    """Download ``url`` and return the response body as text.

    Parameters
    ----------
    url : str
        Location of the document.
    timeout_secs : int | None, optional
        Request timeout; :data:`DEFAULT_FETCH_TIMEOUT_SECS` when omitted.

    Returns
    -------
    str
        Decoded response body.

    Raises
    ------
    DocumentNotFound
        The server answered 404.
    NetworkFailure
        The request timed out, could not connect, or returned any other
        non-success status.
    """
    timeout = DEFAULT_FETCH_TIMEOUT_SECS if timeout_secs is None else timeout_secs
    LOGGER.debug("GET %s (timeout %ss)", url, timeout)
    try:
        response = requests.get(url, timeout=timeout)
    except requests.Timeout as error:
        detail = f"request timed out after {timeout} seconds"
        raise NetworkFailure(url, detail) from error
    except requests.RequestException as error:
        raise NetworkFailure(url, f"request failed ({error})") from error

    if response.status_code == requests.codes.not_found:
        raise DocumentNotFound(url, "document not found")
    if not response.ok:
        raise NetworkFailure(url, f"unexpected HTTP status {response.status_code}")

    LOGGER.debug("GET %s -> %s", url, response.status_code)
    return response.text
