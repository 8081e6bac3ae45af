"""Rewrite Cargo dependency declarations to match a crate-version map.

Declarations are tomlkit items, so edits keep the surrounding manifest intact.
A declaration is governed by the map when its package name (the ``package``
key for renamed dependencies, otherwise the dependency key) is in the map.
Governed declarations are normalised to a plain registry version:

* git sources always lose ``git``/``branch``/``tag``/``rev``;
* local ``path`` sources are only replaced when overwriting is requested;
* registry versions are replaced when they differ from the map.

In check mode nothing is mutated and every pending change is reported as a
:class:`Mismatch` instead.
"""

from __future__ import annotations

import collections.abc as cabc
import dataclasses as dc
import enum
import logging
import typing as typ

from tomlkit import inline_table
from tomlkit.items import InlineTable

if typ.TYPE_CHECKING:
    from tomlkit.toml_document import TOMLDocument

__all__ = [
    "DEPENDENCY_SECTIONS",
    "SOURCE_KEYS",
    "DeclarationSource",
    "Mismatch",
    "RewriteOutcome",
    "apply_versions",
    "build_inline_dependency",
    "classify_declaration",
    "describe_declaration",
    "extract_existing_items",
    "lookup_name",
    "update_manifest_document",
]

LOGGER = logging.getLogger(__name__)

DEPENDENCY_SECTIONS: typ.Final[tuple[str, ...]] = (
    "dependencies",
    "dev-dependencies",
    "build-dependencies",
)

SOURCE_KEYS: typ.Final[frozenset[str]] = frozenset(
    {"git", "branch", "tag", "rev", "path"}
)

_GIT_REFERENCE_KEYS: typ.Final[tuple[str, ...]] = ("branch", "tag", "rev")


class DeclarationSource(enum.Enum):
    """Where a dependency declaration currently points."""

    REGISTRY = "registry"
    GIT = "git"
    PATH = "path"
    WORKSPACE = "workspace"
    UNKNOWN = "unknown"


@dc.dataclass(frozen=True)
class Mismatch:
    """A declaration that differs from the resolved version.

    ``crate`` is the package name looked up in the version map, so a renamed
    dependency reports its ``package`` value rather than the manifest key.
    """

    crate: str
    expected: str
    actual: str


@dc.dataclass(frozen=True)
class RewriteOutcome:
    """Result of applying a version map to one or more dependency tables.

    Attributes
    ----------
    changed : bool
        ``True`` when any declaration was mutated. Always ``False`` in check
        mode.
    mismatches : tuple[Mismatch, ...]
        Declarations that would change, in table order. Always empty outside
        check mode.
    governed : tuple[str, ...]
        Dependency keys whose package name appears in the map.
    """

    changed: bool = False
    mismatches: tuple[Mismatch, ...] = ()
    governed: tuple[str, ...] = ()

    def __add__(self, other: RewriteOutcome) -> RewriteOutcome:
        return RewriteOutcome(
            changed=self.changed or other.changed,
            mismatches=self.mismatches + other.mismatches,
            governed=self.governed + other.governed,
        )


def lookup_name(key: str, declaration: object) -> str:
    """Return the package name used to look ``declaration`` up in the map."""
    if isinstance(declaration, cabc.Mapping):
        package = declaration.get("package")
        if isinstance(package, str):
            return str(package)
    return key


def classify_declaration(declaration: object) -> DeclarationSource:
    """Return the source variant of ``declaration``."""
    if isinstance(declaration, str):
        return DeclarationSource.REGISTRY
    if not isinstance(declaration, cabc.Mapping):
        return DeclarationSource.UNKNOWN
    if declaration.get("workspace") is True:
        return DeclarationSource.WORKSPACE
    if "path" in declaration:
        return DeclarationSource.PATH
    if "git" in declaration:
        return DeclarationSource.GIT
    return DeclarationSource.REGISTRY


def describe_declaration(declaration: object) -> str:
    """Summarise where ``declaration`` currently points.

    Examples
    --------
    >>> describe_declaration({"git": "https://example.com/sdk", "branch": "main"})
    'git https://example.com/sdk (branch main)'
    >>> describe_declaration({"path": "../bar"})
    'path ../bar'
    """
    if isinstance(declaration, str):
        return str(declaration)
    if not isinstance(declaration, cabc.Mapping):
        return repr(declaration)
    source = classify_declaration(declaration)
    if source is DeclarationSource.PATH:
        return f"path {declaration['path']}"
    if source is DeclarationSource.GIT:
        description = f"git {declaration['git']}"
        for key in _GIT_REFERENCE_KEYS:
            if key in declaration:
                return f"{description} ({key} {declaration[key]})"
        return description
    version = declaration.get("version")
    return str(version) if version is not None else "no version"


def _current_version(declaration: object) -> str | None:
    if isinstance(declaration, str):
        return str(declaration)
    if isinstance(declaration, cabc.Mapping):
        version = declaration.get("version")
        return str(version) if version is not None else None
    return None


def _needs_update(
    source: DeclarationSource,
    declaration: object,
    version: str,
    *,
    overwrite_local_paths: bool,
) -> bool:
    """Return ``True`` when ``declaration`` must be rewritten to ``version``."""
    if source is DeclarationSource.GIT:
        return True
    if source is DeclarationSource.PATH:
        return overwrite_local_paths
    if source is DeclarationSource.REGISTRY:
        return _current_version(declaration) != version
    return False


def extract_existing_items(value: object) -> tuple[tuple[str, object], ...]:
    r"""Return the metadata of ``value`` that survives a rewrite.

    Source keys and the previous version are dropped; everything else
    (``package``, ``features``, ``default-features``, ``optional``...) is kept
    in its original order.

    Examples
    --------
    >>> from tomlkit import parse
    >>> table = parse(
    ...     '[dependencies]\nfoo = { git = "https://example.com", '
    ...     'branch = "main", default-features = false }'
    ... )
    >>> dict(extract_existing_items(table['dependencies']['foo']))
    {'default-features': False}
    """
    if isinstance(value, cabc.Mapping):
        return tuple(
            (key, item)
            for key, item in value.items()
            if key not in SOURCE_KEYS and key != "version"
        )
    return ()


def build_inline_dependency(
    extra_items: cabc.Iterable[tuple[str, object]],
    version: str,
) -> InlineTable:
    """Construct an inline dependency table with ``version`` first.

    Examples
    --------
    >>> dict(build_inline_dependency((("optional", True),), "1.0.0"))
    {'version': '1.0.0', 'optional': True}
    """
    dependency = inline_table()
    dependency["version"] = version
    for key, item in extra_items:
        dependency[key] = item
    return dependency


def _rewrite_declaration(
    dependencies: cabc.MutableMapping[str, typ.Any],
    key: str,
    declaration: object,
    version: str,
) -> None:
    """Replace ``dependencies[key]`` with a registry declaration of ``version``."""
    if isinstance(declaration, str):
        dependencies[key] = version
    elif isinstance(declaration, InlineTable):
        extra_items = extract_existing_items(declaration)
        dependencies[key] = build_inline_dependency(extra_items, version)
    else:
        table = typ.cast("cabc.MutableMapping[str, typ.Any]", declaration)
        for source_key in SOURCE_KEYS.intersection(table):
            del table[source_key]
        table["version"] = version


def apply_versions(
    versions: cabc.Mapping[str, str],
    dependencies: cabc.MutableMapping[str, typ.Any],
    *,
    overwrite_local_paths: bool,
    check_only: bool,
) -> RewriteOutcome:
    r"""Apply ``versions`` to every declaration in ``dependencies``.

    Parameters
    ----------
    versions : cabc.Mapping[str, str]
        Resolved ``crate -> version`` map.
    dependencies : cabc.MutableMapping[str, typ.Any]
        A dependency table, typically a tomlkit table, mutated in place unless
        ``check_only`` is set.
    overwrite_local_paths : bool
        Replace ``path`` declarations too. Off by default on the command line
        so intentional local overrides survive.
    check_only : bool
        Report pending changes as mismatches without mutating the table.

    Returns
    -------
    RewriteOutcome
        Whether anything changed, and the mismatches found in check mode.

    Examples
    --------
    >>> from tomlkit import parse
    >>> doc = parse(
    ...     '[dependencies]\n'
    ...     'pallet-foo = { git = "https://example.com/sdk", branch = "main" }\n'
    ... )
    >>> outcome = apply_versions(
    ...     {"pallet-foo": "4.2.0"},
    ...     doc["dependencies"],
    ...     overwrite_local_paths=False,
    ...     check_only=False,
    ... )
    >>> outcome.changed, dict(doc["dependencies"]["pallet-foo"])
    (True, {'version': '4.2.0'})
    """
    changed = False
    mismatches: list[Mismatch] = []
    governed: list[str] = []
    for key, declaration in list(dependencies.items()):
        name = lookup_name(key, declaration)
        version = versions.get(name)
        if version is None:
            LOGGER.debug("no version for %s", name)
            continue

        governed.append(key)
        source = classify_declaration(declaration)
        if source is DeclarationSource.UNKNOWN:
            LOGGER.debug("unexpected dependency value type for %s", key)
            continue
        if not _needs_update(
            source,
            declaration,
            version,
            overwrite_local_paths=overwrite_local_paths,
        ):
            continue

        if check_only:
            actual = describe_declaration(declaration)
            mismatches.append(Mismatch(crate=name, expected=version, actual=actual))
            continue

        _rewrite_declaration(dependencies, key, declaration, version)
        LOGGER.debug("setting %s to %s", key, version)
        changed = True

    return RewriteOutcome(
        changed=changed,
        mismatches=tuple(mismatches),
        governed=tuple(governed),
    )


def _dependency_tables(
    document: TOMLDocument,
) -> cabc.Iterator[cabc.MutableMapping[str, typ.Any]]:
    """Yield the dependency tables of the workspace or the single crate."""
    workspace = document.get("workspace")
    root = workspace if isinstance(workspace, cabc.MutableMapping) else document

    candidates: list[object] = [root.get(section) for section in DEPENDENCY_SECTIONS]
    targets = root.get("target")
    if isinstance(targets, cabc.Mapping):
        for target in targets.values():
            if isinstance(target, cabc.Mapping):
                candidates.extend(
                    target.get(section) for section in DEPENDENCY_SECTIONS
                )

    for candidate in candidates:
        if isinstance(candidate, cabc.MutableMapping):
            yield candidate


def update_manifest_document(
    document: TOMLDocument,
    versions: cabc.Mapping[str, str],
    *,
    overwrite_local_paths: bool,
    check_only: bool,
) -> RewriteOutcome:
    """Apply ``versions`` to every dependency table in ``document``.

    When ``[workspace]`` exists its dependency tables are rewritten, otherwise
    the crate's own. ``[target.<cfg>]`` dependency tables are included.
    """
    outcome = RewriteOutcome()
    for table in _dependency_tables(document):
        outcome += apply_versions(
            versions,
            table,
            overwrite_local_paths=overwrite_local_paths,
            check_only=check_only,
        )
    return outcome
