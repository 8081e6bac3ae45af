"""Resolve the published crate versions of a release.

The resolver downloads the release's publish plan, falls back to its lockfile
when no plan exists, and optionally merges companion crate families. Each call
fetches afresh and returns a new read-only mapping.
"""

from __future__ import annotations

import dataclasses as dc
import logging
import typing as typ
from types import MappingProxyType

from sdk_versions_errors import (
    DocumentNotFound,
    FetchError,
    ResolutionError,
    ResolutionErrorKind,
)
from sdk_versions_families import family_release_for, parse_family_manifest
from sdk_versions_fetch import Fetcher, build_document_url, fetch_text
from sdk_versions_sources import (
    SourceKind,
    SourcePolicy,
    build_version_map,
    parse_source,
)

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sdk_versions_families import FamilyConfig

__all__ = [
    "DEFAULT_BASE_URL",
    "DEFAULT_CONFIG",
    "CrateVersionMap",
    "ResolverConfig",
    "merge_family_versions",
    "resolve",
    "resolve_family",
]

LOGGER = logging.getLogger(__name__)

DEFAULT_BASE_URL: typ.Final[str] = "https://raw.githubusercontent.com"

CrateVersionMap = typ.Mapping[str, str]


@dc.dataclass(frozen=True)
class ResolverConfig:
    """Locations and policies used when resolving a main release."""

    base_url: str = DEFAULT_BASE_URL
    repository: str = "paritytech/polkadot-sdk"
    branch_template: str = "release-crates-io-v{release}"
    policy: SourcePolicy = dc.field(default_factory=SourcePolicy)

    def document_url(self, release: str, kind: SourceKind) -> str:
        """Return the URL of the ``kind`` document for ``release``."""
        branch = self.branch_template.format(release=release)
        return build_document_url(self.base_url, self.repository, branch, kind.value)


DEFAULT_CONFIG: typ.Final[ResolverConfig] = ResolverConfig()


def _fetch(fetch: Fetcher, url: str, release: str) -> str:
    """Fetch ``url``, converting transport failures into resolution errors."""
    try:
        return fetch(url)
    except DocumentNotFound as error:
        raise ResolutionError(
            release, ResolutionErrorKind.NOT_FOUND, str(error)
        ) from error
    except FetchError as error:
        raise ResolutionError(
            release, ResolutionErrorKind.NETWORK_FAILURE, str(error)
        ) from error


def _fetch_source(
    release: str,
    source_kind: SourceKind | None,
    fetch: Fetcher,
    config: ResolverConfig,
) -> tuple[SourceKind, str]:
    """Return the document kind that was found together with its text."""
    if source_kind is not None:
        url = config.document_url(release, source_kind)
        return source_kind, _fetch(fetch, url, release)

    plan_url = config.document_url(release, SourceKind.PLAN)
    try:
        return SourceKind.PLAN, fetch(plan_url)
    except DocumentNotFound:
        LOGGER.warning(
            "%s not found for release %s; falling back to %s. Versions read from "
            "the lockfile may include crates that were never published.",
            SourceKind.PLAN,
            release,
            SourceKind.LOCKFILE,
        )
    except FetchError as error:
        raise ResolutionError(
            release, ResolutionErrorKind.NETWORK_FAILURE, str(error)
        ) from error

    lockfile_url = config.document_url(release, SourceKind.LOCKFILE)
    return SourceKind.LOCKFILE, _fetch(fetch, lockfile_url, release)


def resolve_family(
    family: FamilyConfig,
    release: str,
    *,
    fetch: Fetcher = fetch_text,
    base_url: str = DEFAULT_BASE_URL,
) -> dict[str, str]:
    """Return the crate versions of the ``family`` release tracking ``release``.

    Raises
    ------
    ResolutionError
        When no family release tracks ``release``, the manifest cannot be
        fetched, or it cannot be parsed.
    """
    family_release = family_release_for(family, release)
    url = build_document_url(
        base_url, family.repository, family_release, family.manifest
    )
    text = _fetch(fetch, url, release)
    try:
        return parse_family_manifest(text, family)
    except ValueError as error:
        raise ResolutionError(
            release, ResolutionErrorKind.MALFORMED_DOCUMENT, str(error)
        ) from error


def merge_family_versions(
    versions: cabc.MutableMapping[str, str],
    family_versions: cabc.Mapping[str, str],
) -> None:
    """Add ``family_versions`` to ``versions`` without overriding existing names."""
    for name, version in family_versions.items():
        versions.setdefault(name, version)


def resolve(
    release: str,
    source_kind: SourceKind | None = None,
    *,
    families: cabc.Sequence[FamilyConfig] = (),
    fetch: Fetcher = fetch_text,
    config: ResolverConfig = DEFAULT_CONFIG,
) -> CrateVersionMap:
    """Resolve ``crate -> version`` for ``release``.

    Parameters
    ----------
    release : str
        Release identifier, interpolated into ``config.branch_template``.
    source_kind : SourceKind | None, optional
        Fetch only this document. When omitted the publish plan is tried first
        and the lockfile is used if the plan does not exist.
    families : cabc.Sequence[FamilyConfig], optional
        Companion families merged into the result. Entries of the main release
        win on name collisions.
    fetch : Fetcher, optional
        Transport returning the text at a URL.
    config : ResolverConfig, optional
        Repository location and inclusion policy.

    Returns
    -------
    CrateVersionMap
        Read-only mapping built from the fetched documents.

    Raises
    ------
    ResolutionError
        On any missing or malformed document, transport failure, or a family
        with no release tracking ``release``.
    """
    kind, text = _fetch_source(release, source_kind, fetch, config)
    try:
        entries = parse_source(kind, text)
    except ValueError as error:
        cause = f"{kind}: {error}"
        raise ResolutionError(
            release, ResolutionErrorKind.MALFORMED_DOCUMENT, cause
        ) from error

    versions = build_version_map(entries, config.policy)
    LOGGER.debug("resolved %d crates for %s from %s", len(versions), release, kind)

    for family in families:
        family_versions = resolve_family(
            family, release, fetch=fetch, base_url=config.base_url
        )
        merge_family_versions(versions, family_versions)

    return MappingProxyType(versions)
