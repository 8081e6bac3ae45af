#!/usr/bin/env -S uv run python
"""Update Cargo.toml dependencies to the crate versions of an SDK release.

The command resolves the published version of every crate in a Polkadot SDK
release (optionally merged with the matching ORML release) and rewrites the
dependency declarations of a manifest to use those versions. Git and registry
declarations are always normalised; local ``path`` declarations are kept
unless ``--overwrite`` is given. ``--check`` reports differences without
touching the manifest and exits non-zero when any are found.

Every option can also be set through an ``SDK_VERSIONS_<OPTION>`` environment
variable; explicit arguments take precedence.

Examples
--------
Bump a workspace to the 1.6.0 release::

    python scripts/run_sdk_versions.py --version 1.6.0 --path ../my-parachain

Verify a manifest in CI without modifying it::

    SDK_VERSIONS_CHECK=1 python scripts/run_sdk_versions.py --version 1.6.0
"""

# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "cyclopts>=2.9,<4",
#     "plumbum",
#     "requests",
#     "tomlkit",
# ]
# ///
from __future__ import annotations

import dataclasses as dc
import functools
import logging
import typing as typ
from pathlib import Path

import cyclopts
from cyclopts import App, Parameter
from sdk_versions_cache import (
    DEFAULT_CACHE_DIR,
    SNAPSHOT_DIR,
    load_snapshot,
    releases_from_cache,
    save_snapshot,
    update_release_cache,
)
from sdk_versions_errors import ResolutionError
from sdk_versions_families import ORML_FAMILY
from sdk_versions_fetch import DEFAULT_FETCH_TIMEOUT_SECS, fetch_text
from sdk_versions_manifest import resolve_manifest_path, update_manifest
from sdk_versions_releases import ORML_RELEASES, SDK_RELEASES, list_releases
from sdk_versions_resolver import DEFAULT_BASE_URL, ResolverConfig, resolve
from sdk_versions_sources import SourceKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from sdk_versions_resolver import CrateVersionMap
    from sdk_versions_rewrite import RewriteOutcome

LOGGER = logging.getLogger(__name__)

SourceName = typ.Literal["plan", "lockfile"]

SOURCE_KINDS: typ.Final[dict[str, SourceKind]] = {
    "plan": SourceKind.PLAN,
    "lockfile": SourceKind.LOCKFILE,
}

app = App(
    version_flags=(),
    config=cyclopts.config.Env("SDK_VERSIONS_", command=False),
)


@dc.dataclass(frozen=True)
class RunOptions:
    """Options for one invocation of the version manager.

    Parameters
    ----------
    path : Path
        Manifest, or directory containing ``Cargo.toml``, to update.
    version : str | None
        Release to resolve. Required unless listing or refreshing the cache.
    overwrite : bool
        Replace local ``path`` dependencies too.
    list_releases : bool
        Print the available releases instead of updating a manifest.
    check : bool
        Only report mismatching dependencies.
    orml : bool
        Merge ORML crates, or list ORML releases together with
        ``list_releases``.
    cache : bool
        List releases from the local cache.
    update_cache : bool
        Refresh the release cache and exit.
    offline : bool
        Resolve from a bundled snapshot instead of the network.
    source : SourceKind | None
        Resolve only from this document, bypassing the plan-to-lockfile
        fallback.
    store_snapshot : bool
        Store the resolved versions as the offline snapshot of ``version``.
    """

    path: Path = Path("Cargo.toml")
    version: str | None = None
    overwrite: bool = False
    list_releases: bool = False
    check: bool = False
    orml: bool = False
    cache: bool = False
    update_cache: bool = False
    offline: bool = False
    source: SourceKind | None = None
    store_snapshot: bool = False
    base_url: str = DEFAULT_BASE_URL
    timeout_secs: int = DEFAULT_FETCH_TIMEOUT_SECS
    cache_dir: Path = DEFAULT_CACHE_DIR
    snapshot_dir: Path = SNAPSHOT_DIR


def print_release_list(releases: cabc.Iterable[str]) -> None:
    """Print ``releases`` as a bulleted list."""
    print("Available versions:")
    for release in releases:
        print(f"- {release}")


def _list(options: RunOptions) -> None:
    if options.orml:
        print_release_list(list_releases(ORML_RELEASES))
    elif options.cache:
        LOGGER.info("reading releases from cache")
        print_release_list(
            releases_from_cache(
                options.cache_dir, functools.partial(list_releases, SDK_RELEASES)
            )
        )
    else:
        LOGGER.info("fetching releases from GitHub")
        print_release_list(list_releases(SDK_RELEASES))


def resolve_versions(options: RunOptions, release: str) -> CrateVersionMap:
    """Return the crate versions of ``release`` according to ``options``.

    Raises
    ------
    SystemExit
        When the versions cannot be resolved.
    """
    if options.offline and options.orml:
        message = "--orml needs network access and cannot be combined with --offline"
        raise SystemExit(message)

    try:
        if options.offline:
            return load_snapshot(release, options.snapshot_dir)
        versions = resolve(
            release,
            options.source,
            families=(ORML_FAMILY,) if options.orml else (),
            fetch=functools.partial(fetch_text, timeout_secs=options.timeout_secs),
            config=ResolverConfig(base_url=options.base_url),
        )
    except ResolutionError as error:
        LOGGER.exception("failed to resolve crate versions for %s", release)
        raise SystemExit(str(error)) from error

    if options.store_snapshot:
        path = save_snapshot(release, versions, options.snapshot_dir)
        print(f"Saved snapshot of {release} to {path}")
    return versions


def _report(options: RunOptions, manifest: Path, outcome: RewriteOutcome) -> None:
    if options.check:
        for mismatch in outcome.mismatches:
            LOGGER.error(
                "dependency version mismatch for %s in %s: expected %s, found %s",
                mismatch.crate,
                manifest,
                mismatch.expected,
                mismatch.actual,
            )
        if outcome.mismatches:
            message = f"dependencies in {manifest} are not up to date"
            raise SystemExit(message)
        print(f"Checked dependencies in {manifest}: all up to date")
    elif outcome.changed:
        print(f"Updated dependencies in {manifest}")
    else:
        print(f"Dependencies in {manifest} are already up to date")


def run_sdk_versions(options: RunOptions) -> None:
    """Run the version manager described by ``options``.

    Raises
    ------
    SystemExit
        On invalid option combinations, resolution failures, a missing
        manifest, or check-mode mismatches.
    """
    if options.update_cache:
        LOGGER.info("updating release cache from GitHub")
        update_release_cache(
            options.cache_dir, functools.partial(list_releases, SDK_RELEASES)
        )
        return

    if options.list_releases:
        _list(options)
        return

    if options.version is None:
        message = "--version is required unless --list or --update-cache is given"
        raise SystemExit(message)

    manifest = resolve_manifest_path(options.path)
    versions = resolve_versions(options, options.version)
    outcome = update_manifest(
        manifest,
        versions,
        overwrite_local_paths=options.overwrite,
        check_only=options.check,
    )
    if not outcome.governed:
        LOGGER.warning(
            "no dependency in %s belongs to release %s", manifest, options.version
        )
    _report(options, manifest, outcome)


@app.default
def main(
    *,
    path: typ.Annotated[Path, Parameter(name=("--path", "-p"))] = Path("Cargo.toml"),
    version: typ.Annotated[str | None, Parameter(name=("--version", "-v"))] = None,
    overwrite: typ.Annotated[
        bool,
        Parameter(name=("--overwrite", "-o"), env_var="SDK_VERSIONS_OVERWRITE"),
    ] = False,
    list_: typ.Annotated[bool, Parameter(name=("--list", "-l"))] = False,
    check: typ.Annotated[
        bool,
        Parameter(name=("--check", "-c"), env_var="SDK_VERSIONS_CHECK"),
    ] = False,
    orml: typ.Annotated[bool, Parameter(name=("--orml", "-O"))] = False,
    cache: typ.Annotated[bool, Parameter(name=("--cache", "-C"))] = False,
    update_cache: typ.Annotated[
        bool, Parameter(name=("--update-cache", "-u"))
    ] = False,
    offline: bool = False,
    source: SourceName | None = None,
    store_snapshot: bool = False,
    base_url: str = DEFAULT_BASE_URL,
    timeout_secs: typ.Annotated[
        int,
        Parameter(env_var="SDK_VERSIONS_TIMEOUT_SECS"),
    ] = DEFAULT_FETCH_TIMEOUT_SECS,
    cache_dir: Path = DEFAULT_CACHE_DIR,
    snapshot_dir: Path = SNAPSHOT_DIR,
) -> None:
    """Update Cargo.toml dependencies to the versions of an SDK release.

    Parameters
    ----------
    path : Path, optional
        Path to a crate folder or Cargo.toml file.
    version : str, optional
        SDK release to use. Use ``--list`` to display available releases.
    overwrite : bool, optional
        Overwrite local dependencies (using ``path``) that share a name with a
        release crate.
    list_ : bool, optional
        List available releases.
    check : bool, optional
        Check whether dependency versions match the release without updating
        the manifest.
    orml : bool, optional
        Include ORML crates, or list ORML releases together with ``--list``.
    cache : bool, optional
        Read the list of releases from the cache.
    update_cache : bool, optional
        Refresh the cached list of releases.
    offline : bool, optional
        Use the bundled snapshot of the release instead of the network.
    source : {"plan", "lockfile"}, optional
        Resolve only from this document instead of trying the plan first.
    store_snapshot : bool, optional
        Store the resolved versions as the offline snapshot of the release.
    base_url : str, optional
        Host serving raw repository files.
    timeout_secs : int, optional
        Timeout in seconds for each document download.
    cache_dir : Path, optional
        Directory holding the release cache.
    snapshot_dir : Path, optional
        Directory holding offline snapshots.
    """
    run_sdk_versions(
        RunOptions(
            path=path,
            version=version,
            overwrite=overwrite,
            list_releases=list_,
            check=check,
            orml=orml,
            cache=cache,
            update_cache=update_cache,
            offline=offline,
            source=SOURCE_KINDS[source] if source is not None else None,
            store_snapshot=store_snapshot,
            base_url=base_url,
            timeout_secs=timeout_secs,
            cache_dir=cache_dir,
            snapshot_dir=snapshot_dir,
        )
    )


if __name__ == "__main__":
    app()
