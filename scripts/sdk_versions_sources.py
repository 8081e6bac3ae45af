"""Release source documents and the crate-version map built from them.

A release publishes its crate versions in one of two documents:

``Plan.toml``
    The publish plan. Each ``[[crate]]`` row names a crate, the version the
    release ships (``to``) and whether it is published at all.
``Cargo.lock``
    The workspace lockfile. Rows carry a name and version but no publish
    status, so a map built from it can include crates that were never
    published.

Both row shapes are normalised into a single map by :func:`build_version_map`.
"""

from __future__ import annotations

import dataclasses as dc
import enum
import tomllib
import typing as typ

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "EXCLUDED_LOCKFILE_NAMES",
    "EXCLUDED_LOCKFILE_SUFFIXES",
    "TRUSTED_OWNERS",
    "LockfileEntry",
    "PublishPlanEntry",
    "SourceEntry",
    "SourceKind",
    "SourcePolicy",
    "build_version_map",
    "parse_lockfile",
    "parse_plan",
    "parse_source",
]

# Crates owned by these accounts are released independently of the plan and
# stay in the map even when the plan marks them ``publish = false``.
TRUSTED_OWNERS: typ.Final[frozenset[str]] = frozenset({"parity-crate-owner"})

# Umbrella runtime packages live in the lockfile but are never dependency
# targets.
EXCLUDED_LOCKFILE_NAMES: typ.Final[frozenset[str]] = frozenset(
    {"polkadot-runtime", "kusama-runtime"}
)
EXCLUDED_LOCKFILE_SUFFIXES: typ.Final[tuple[str, ...]] = (
    "-polkadot-runtime",
    "-kusama-runtime",
)


class SourceKind(enum.StrEnum):
    """Document formats a release can be resolved from."""

    PLAN = "Plan.toml"
    LOCKFILE = "Cargo.lock"


@dc.dataclass(frozen=True)
class PublishPlanEntry:
    """One ``[[crate]]`` row of a publish plan."""

    name: str
    version: str
    published: bool = True
    owner: str | None = None


@dc.dataclass(frozen=True)
class LockfileEntry:
    """One workspace ``[[package]]`` row of a lockfile."""

    name: str
    version: str


SourceEntry = PublishPlanEntry | LockfileEntry


@dc.dataclass(frozen=True)
class SourcePolicy:
    """Allow and deny lists applied while building a version map."""

    trusted_owners: frozenset[str] = TRUSTED_OWNERS
    excluded_names: frozenset[str] = EXCLUDED_LOCKFILE_NAMES
    excluded_suffixes: tuple[str, ...] = EXCLUDED_LOCKFILE_SUFFIXES


def _rows(document: dict[str, typ.Any], key: str) -> list[dict[str, typ.Any]]:
    """Return the array of tables stored under ``key``."""
    rows = document.get(key, [])
    if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
        message = f"expected [[{key}]] to be an array of tables"
        raise ValueError(message)
    return rows


def _required_string(row: dict[str, typ.Any], key: str, table: str) -> str:
    value = row.get(key)
    if not isinstance(value, str):
        name = row.get("name", "<unnamed>")
        message = f"[[{table}]] entry {name!r} has no string {key!r}"
        raise ValueError(message)
    return value


def _optional_value(
    row: dict[str, typ.Any], key: str, expected: type, table: str
) -> typ.Any:  # noqa: ANN401
    """Return ``row[key]`` when present, rejecting values of another type."""
    value = row.get(key)
    if value is not None and not isinstance(value, expected):
        name = row.get("name", "<unnamed>")
        message = (
            f"[[{table}]] entry {name!r} has {key!r} of type "
            f"{type(value).__name__}, expected {expected.__name__}"
        )
        raise ValueError(message)
    return value


def parse_plan(text: str) -> list[PublishPlanEntry]:
    r"""Parse ``Plan.toml`` into plan entries, keeping document order.

    Raises
    ------
    ValueError
        When the document is not valid TOML, a row lacks ``name`` or ``to``,
        or ``publish`` or ``owner`` has the wrong type.

    Examples
    --------
    >>> parse_plan('[[crate]]\nname = "sp-io"\nto = "30.0.0"\npublish = false\n')
    [PublishPlanEntry(name='sp-io', version='30.0.0', published=False, owner=None)]
    """
    document = tomllib.loads(text)
    entries: list[PublishPlanEntry] = []
    for row in _rows(document, "crate"):
        publish = _optional_value(row, "publish", bool, "crate")
        owner = _optional_value(row, "owner", str, "crate")
        entries.append(
            PublishPlanEntry(
                name=_required_string(row, "name", "crate"),
                version=_required_string(row, "to", "crate"),
                published=publish is not False,
                owner=owner,
            )
        )
    return entries


def parse_lockfile(text: str) -> list[LockfileEntry]:
    """Parse ``Cargo.lock`` into entries for the workspace's own packages.

    Packages with a ``source`` were pulled from a registry or git remote and
    are not part of the release, so they are skipped.
    """
    document = tomllib.loads(text)
    return [
        LockfileEntry(
            name=_required_string(row, "name", "package"),
            version=_required_string(row, "version", "package"),
        )
        for row in _rows(document, "package")
        if "source" not in row
    ]


def parse_source(kind: SourceKind, text: str) -> list[SourceEntry]:
    """Dispatch to the parser for ``kind``."""
    if kind is SourceKind.PLAN:
        return list(parse_plan(text))
    return list(parse_lockfile(text))


def _should_include(entry: SourceEntry, policy: SourcePolicy) -> bool:
    if isinstance(entry, PublishPlanEntry):
        return entry.published or entry.owner in policy.trusted_owners
    if entry.name in policy.excluded_names:
        return False
    return not entry.name.endswith(policy.excluded_suffixes)


def build_version_map(
    entries: cabc.Iterable[SourceEntry],
    policy: SourcePolicy | None = None,
) -> dict[str, str]:
    """Return ``name -> version`` for every entry the policy admits.

    Plan entries are kept when published or owned by a trusted account;
    lockfile entries are kept unless excluded by name or suffix. Later entries
    overwrite earlier ones with the same name.

    Examples
    --------
    >>> build_version_map(
    ...     [
    ...         PublishPlanEntry("frame-support", "28.0.0"),
    ...         PublishPlanEntry("node-template", "0.1.0", published=False),
    ...         LockfileEntry("westend-runtime", "7.0.0"),
    ...     ]
    ... )
    {'frame-support': '28.0.0', 'westend-runtime': '7.0.0'}
    """
    policy = policy or SourcePolicy()
    versions: dict[str, str] = {}
    for entry in entries:
        if _should_include(entry, policy):
            versions[entry.name] = entry.version
    return versions
