"""Companion crate families merged into a main release mapping.

A family is a separate repository whose crates are versioned independently
but track main releases, such as ORML. Each family carries a static registry
of ``family release -> main release`` so the resolver can find the family
branch that matches the requested main release. New families or releases are
added here without touching the resolution flow.
"""

from __future__ import annotations

import dataclasses as dc
import tomllib
import typing as typ
from pathlib import PurePosixPath
from types import MappingProxyType

from sdk_versions_errors import ResolutionError, ResolutionErrorKind

if typ.TYPE_CHECKING:
    import collections.abc as cabc

__all__ = [
    "FAMILIES",
    "ORML_FAMILY",
    "FamilyConfig",
    "family_release_for",
    "parse_family_manifest",
]


@dc.dataclass(frozen=True)
class FamilyConfig:
    """Describe where a crate family publishes its workspace manifest.

    Attributes
    ----------
    name : str
        Short identifier used on the command line.
    repository : str
        ``owner/name`` of the family repository.
    manifest : str
        Workspace manifest listing the family's members.
    crate_prefix : str
        Prefix turning a workspace member directory into its crate name.
    releases : cabc.Mapping[str, str]
        Family release branch mapped to the main release it tracks.
    """

    name: str
    repository: str
    manifest: str
    crate_prefix: str
    releases: cabc.Mapping[str, str]


ORML_FAMILY: typ.Final[FamilyConfig] = FamilyConfig(
    name="orml",
    repository="open-web3-stack/open-runtime-module-library",
    manifest="Cargo.dev.toml",
    crate_prefix="orml-",
    releases=MappingProxyType(
        {
            "polkadot-v1.1.0": "1.1.0",
            "polkadot-v1.3.0": "1.3.0",
            "polkadot-v1.4.0": "1.4.0",
            "polkadot-v1.5.0": "1.5.0",
            "polkadot-v1.6.0": "1.6.0",
            "polkadot-v1.7.0": "1.7.0",
            "polkadot-v1.9.0": "1.9.0",
            "polkadot-v1.10.0": "1.10.0",
        }
    ),
)

FAMILIES: typ.Final[cabc.Mapping[str, FamilyConfig]] = MappingProxyType(
    {ORML_FAMILY.name: ORML_FAMILY}
)


def family_release_for(family: FamilyConfig, release: str) -> str:
    """Return the ``family`` branch that tracks main ``release``.

    Raises
    ------
    ResolutionError
        With kind ``UNKNOWN_FAMILY_MAPPING`` when no branch tracks ``release``.
    """
    for family_release, main_release in family.releases.items():
        if main_release == release:
            return family_release
    cause = f"no {family.name} release tracks this release"
    raise ResolutionError(release, ResolutionErrorKind.UNKNOWN_FAMILY_MAPPING, cause)


def parse_family_manifest(text: str, family: FamilyConfig) -> dict[str, str]:
    r"""Map every workspace member of ``family`` to the workspace version.

    Raises
    ------
    ValueError
        When the manifest is not valid TOML, lacks ``[workspace].members`` or
        lacks ``[workspace.package].version``.

    Examples
    --------
    >>> parse_family_manifest(
    ...     '[workspace]\nmembers = ["tokens", "xcm-support"]\n'
    ...     '[workspace.package]\nversion = "0.7.0"\n',
    ...     ORML_FAMILY,
    ... )
    {'orml-tokens': '0.7.0', 'orml-xcm-support': '0.7.0'}
    """
    data = tomllib.loads(text)
    workspace = data.get("workspace")
    if not isinstance(workspace, dict):
        message = f"expected a [workspace] table in {family.manifest}"
        raise ValueError(message)

    members = workspace.get("members")
    if not isinstance(members, list):
        message = f"expected [workspace].members in {family.manifest}"
        raise ValueError(message)

    try:
        version = workspace["package"]["version"]
    except (KeyError, TypeError) as err:
        message = f"expected [workspace.package].version in {family.manifest}"
        if snippet := _workspace_section_excerpt(text):
            indented_snippet = "\n".join(f"    {line}" for line in snippet)
            message = f"{message}\n\nWorkspace manifest excerpt:\n{indented_snippet}"
        raise ValueError(message) from err

    return {
        family.crate_prefix + name: version
        for name in _member_names(members)
    }


def _member_names(members: cabc.Iterable[object]) -> list[str]:
    """Return the directory names of string ``members``."""
    return [
        PurePosixPath(member).name
        for member in members
        if isinstance(member, str) and member
    ]


def _workspace_section_excerpt(manifest_text: str) -> list[str] | None:
    """Return the lines around the ``[workspace]`` section for diagnostics."""
    lines = manifest_text.splitlines()
    for index, line in enumerate(lines):
        if line.strip().startswith("[workspace"):
            start = max(index - 1, 0)
            return lines[start : index + 8]
    return None
