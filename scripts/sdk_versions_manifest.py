"""Read, rewrite and persist Cargo manifests.

tomlkit keeps comments, formatting and unrelated sections intact, so only the
dependency declarations touched by :mod:`sdk_versions_rewrite` change on disk.
"""

from __future__ import annotations

import typing as typ
from pathlib import Path

from sdk_versions_rewrite import RewriteOutcome, update_manifest_document
from tomlkit import dumps, parse

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from tomlkit.toml_document import TOMLDocument

__all__ = [
    "read_manifest",
    "resolve_manifest_path",
    "update_manifest",
    "write_manifest",
]


def resolve_manifest_path(path: Path) -> Path:
    """Return the ``Cargo.toml`` designated by ``path``.

    ``path`` may name the manifest itself or the directory containing it.

    Raises
    ------
    SystemExit
        When no manifest exists at the resulting location.
    """
    path = Path(path)
    if path.is_dir():
        path = path / "Cargo.toml"

    if not path.exists():
        message = f"could not find workspace root Cargo.toml file at {path}"
        raise SystemExit(message)

    return path


def read_manifest(manifest: Path) -> TOMLDocument:
    """Parse ``manifest`` into a tomlkit document."""
    return parse(Path(manifest).read_text(encoding="utf-8"))


def write_manifest(document: TOMLDocument, manifest: Path) -> None:
    """Serialise ``document`` to ``manifest`` and ensure a trailing newline."""
    rendered = dumps(document)
    if not rendered.endswith("\n"):
        rendered = f"{rendered}\n"

    Path(manifest).write_text(rendered, encoding="utf-8")


def update_manifest(
    manifest: Path,
    versions: cabc.Mapping[str, str],
    *,
    overwrite_local_paths: bool = False,
    check_only: bool = False,
) -> RewriteOutcome:
    """Rewrite the dependencies of ``manifest`` to match ``versions``.

    The file is only written when a declaration changed and ``check_only`` is
    unset.
    """
    document = read_manifest(manifest)
    outcome = update_manifest_document(
        document,
        versions,
        overwrite_local_paths=overwrite_local_paths,
        check_only=check_only,
    )
    if outcome.changed:
        write_manifest(document, manifest)
    return outcome
