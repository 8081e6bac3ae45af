"""List the releases available for version resolution.

Releases are the branches of the upstream repository whose names start with a
release prefix (``release-crates-io-v`` for the Polkadot SDK, ``polkadot-v``
for ORML). Branches are read from the GitHub REST API; when the anonymous rate
limit is exhausted the authenticated ``gh`` CLI is used instead.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import re
import typing as typ

import requests
from plumbum import local
from plumbum.commands import CommandNotFound
from plumbum.commands.processes import ProcessTimedOut

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "GITHUB_API_URL",
    "ORML_RELEASES",
    "SDK_RELEASES",
    "RateLimited",
    "ReleaseSource",
    "list_releases",
    "release_sort_key",
]

LOGGER = logging.getLogger(__name__)

GITHUB_API_URL: typ.Final[str] = "https://api.github.com"
BRANCHES_PER_PAGE: typ.Final[int] = 100
GH_TIMEOUT_S: typ.Final[int] = 120
REQUEST_TIMEOUT_S: typ.Final[int] = 30


@dc.dataclass(frozen=True)
class ReleaseSource:
    """Repository and branch prefix that identify a family of releases."""

    repository: str
    prefix: str


SDK_RELEASES: typ.Final[ReleaseSource] = ReleaseSource(
    repository="paritytech/polkadot-sdk",
    prefix="release-crates-io-v",
)
ORML_RELEASES: typ.Final[ReleaseSource] = ReleaseSource(
    repository="open-web3-stack/open-runtime-module-library",
    prefix="polkadot-v",
)


class RateLimited(Exception):
    """The GitHub API refused the request because of rate limiting."""


def release_sort_key(release: str) -> tuple[tuple[int, ...], str]:
    """Order releases numerically, falling back to the raw text.

    Examples
    --------
    >>> sorted(["1.10.0", "1.9.0", "1.3.0"], key=release_sort_key)
    ['1.3.0', '1.9.0', '1.10.0']
    """
    numbers = tuple(int(part) for part in re.findall(r"\d+", release))
    return numbers, release


def _releases_from_branches(
    branches: cabc.Iterable[str], prefix: str
) -> list[str]:
    releases = {
        branch.removeprefix(prefix) for branch in branches if branch.startswith(prefix)
    }
    return sorted(releases, key=release_sort_key)


def _is_rate_limited(response: requests.Response) -> bool:
    if response.status_code == requests.codes.too_many_requests:
        return True
    if response.status_code != requests.codes.forbidden:
        return False
    return response.headers.get("X-RateLimit-Remaining") == "0" or (
        "rate limit" in response.text.casefold()
    )


def _branches_from_api(repository: str, api_url: str) -> list[str]:
    """Page through the branches endpoint and return every branch name."""
    names: list[str] = []
    page = 1
    while True:
        url = f"{api_url}/repos/{repository}/branches"
        params = {"per_page": BRANCHES_PER_PAGE, "page": page}
        LOGGER.debug("GET %s page %s", url, page)
        try:
            response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT_S)
        except requests.RequestException as error:
            message = f"failed to list branches of {repository}: {error}"
            raise SystemExit(message) from error

        if _is_rate_limited(response):
            raise RateLimited(repository)
        if not response.ok:
            message = (
                f"failed to list branches of {repository}: "
                f"HTTP {response.status_code}"
            )
            raise SystemExit(message)

        batch = response.json()
        names.extend(entry["name"] for entry in batch)
        if len(batch) < BRANCHES_PER_PAGE:
            return names
        page += 1


def _branches_from_gh(repository: str) -> list[str]:
    """Return every branch name of ``repository`` using the ``gh`` CLI."""
    try:
        gh_api = local["gh"][
            "api", "--paginate", "--jq", ".[].name", f"repos/{repository}/branches"
        ]
        return_code, stdout, stderr = gh_api.run(timeout=GH_TIMEOUT_S, retcode=None)
    except CommandNotFound as error:
        message = (
            "GitHub API rate limit exceeded and gh not found on PATH; "
            "install and authenticate the GitHub CLI to list releases"
        )
        raise SystemExit(message) from error
    except ProcessTimedOut as error:
        message = f"gh api timed out after {GH_TIMEOUT_S} seconds"
        raise SystemExit(message) from error
    if return_code != 0:
        diagnostics = (stderr or stdout or "").strip()
        detail = f": {diagnostics}" if diagnostics else ""
        message = f"gh api failed with exit code {return_code}{detail}"
        raise SystemExit(message)
    return [line.strip() for line in stdout.splitlines() if line.strip()]


def list_releases(
    source: ReleaseSource = SDK_RELEASES,
    *,
    api_url: str = GITHUB_API_URL,
) -> list[str]:
    """Return the releases published as branches of ``source.repository``.

    Parameters
    ----------
    source : ReleaseSource, optional
        Repository and branch prefix to list; the Polkadot SDK by default.
    api_url : str, optional
        Base URL of the GitHub REST API.

    Returns
    -------
    list[str]
        Release identifiers with the prefix stripped, in ascending order.

    Raises
    ------
    SystemExit
        When neither the API nor the ``gh`` fallback can list the branches.
    """
    try:
        branches = _branches_from_api(source.repository, api_url)
    except RateLimited:
        LOGGER.warning(
            "GitHub API rate limit exceeded; listing %s branches with gh",
            source.repository,
        )
        branches = _branches_from_gh(source.repository)
    return _releases_from_branches(branches, source.prefix)
