"""Local persistence for release lists and offline version snapshots.

Two kinds of JSON documents live here:

* the release-list cache, ``{"data": ["1.3.0", ...]}``, so releases can be
  listed without querying GitHub;
* version snapshots, one ``release-crates-io-v<release>.json`` per release
  holding a ``crate -> version`` object, used when resolving offline.
"""

from __future__ import annotations

import json
import logging
import typing as typ
from pathlib import Path
from types import MappingProxyType

from sdk_versions_errors import ResolutionError, ResolutionErrorKind
from sdk_versions_releases import list_releases

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "CACHE_FILENAME",
    "DEFAULT_CACHE_DIR",
    "SNAPSHOT_DIR",
    "load_release_cache",
    "load_snapshot",
    "releases_from_cache",
    "save_release_cache",
    "save_snapshot",
    "snapshot_path",
    "update_release_cache",
]

LOGGER = logging.getLogger(__name__)

CACHE_FILENAME: typ.Final[str] = "releases.json"
DEFAULT_CACHE_DIR: typ.Final[Path] = Path.home() / ".cache" / "sdk-versions"
SNAPSHOT_DIR: typ.Final[Path] = Path(__file__).resolve().parent / "versions"


def load_release_cache(cache_dir: Path) -> list[str]:
    """Return the cached release list.

    Raises
    ------
    OSError
        When the cache file cannot be read.
    ValueError
        When the cache is not a ``{"data": [str, ...]}`` document.
    """
    cache_file = Path(cache_dir) / CACHE_FILENAME
    payload = json.loads(cache_file.read_text(encoding="utf-8"))
    data = payload.get("data") if isinstance(payload, dict) else None
    if not isinstance(data, list) or not all(isinstance(item, str) for item in data):
        message = f"malformed release cache in {cache_dir}"
        raise ValueError(message)
    return data


def save_release_cache(cache_dir: Path, releases: cabc.Sequence[str]) -> Path:
    """Write ``releases`` to the cache in ``cache_dir`` and return its path."""
    cache_dir = Path(cache_dir)
    cache_dir.mkdir(parents=True, exist_ok=True)
    cache_file = cache_dir / CACHE_FILENAME
    cache_file.write_text(json.dumps({"data": list(releases)}), encoding="utf-8")
    return cache_file


def update_release_cache(
    cache_dir: Path,
    lister: cabc.Callable[[], list[str]] = list_releases,
) -> list[str]:
    """Fetch the release list afresh and store it in the cache."""
    releases = lister()
    cache_file = save_release_cache(cache_dir, releases)
    LOGGER.info("cached %d releases in %s", len(releases), cache_file)
    return releases


def releases_from_cache(
    cache_dir: Path,
    lister: cabc.Callable[[], list[str]] = list_releases,
) -> list[str]:
    """Return cached releases, refreshing the cache when it cannot be loaded."""
    try:
        return load_release_cache(cache_dir)
    except (OSError, ValueError) as error:
        LOGGER.info("release cache unavailable (%s); fetching releases", error)
    return update_release_cache(cache_dir, lister)


def snapshot_path(release: str, directory: Path = SNAPSHOT_DIR) -> Path:
    """Return the snapshot file for ``release`` in ``directory``."""
    return Path(directory) / f"release-crates-io-v{release}.json"


def load_snapshot(
    release: str, directory: Path = SNAPSHOT_DIR
) -> cabc.Mapping[str, str]:
    """Return the bundled ``crate -> version`` snapshot of ``release``.

    Raises
    ------
    ResolutionError
        ``NOT_FOUND`` when no snapshot exists, ``MALFORMED_DOCUMENT`` when it
        is not a JSON object of strings.
    """
    path = snapshot_path(release, directory)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as error:
        cause = f"no offline snapshot at {path}"
        raise ResolutionError(release, ResolutionErrorKind.NOT_FOUND, cause) from error

    try:
        versions = json.loads(text)
    except json.JSONDecodeError as error:
        raise ResolutionError(
            release, ResolutionErrorKind.MALFORMED_DOCUMENT, f"{path}: {error}"
        ) from error
    if not isinstance(versions, dict) or not all(
        isinstance(value, str) for value in versions.values()
    ):
        cause = f"{path} is not an object of crate versions"
        raise ResolutionError(release, ResolutionErrorKind.MALFORMED_DOCUMENT, cause)
    return MappingProxyType(versions)


def save_snapshot(
    release: str,
    versions: cabc.Mapping[str, str],
    directory: Path = SNAPSHOT_DIR,
) -> Path:
    """Write ``versions`` as the snapshot of ``release`` and return its path."""
    path = snapshot_path(release, directory)
    path.parent.mkdir(parents=True, exist_ok=True)
    rendered = json.dumps(dict(sorted(versions.items())), indent=3)
    path.write_text(f"{rendered}\n", encoding="utf-8")
    return path
