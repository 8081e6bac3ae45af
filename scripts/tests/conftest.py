"""Shared fixtures for SDK version manager tests."""

from __future__ import annotations

import dataclasses as dc
import sys
import typing as typ
from pathlib import Path

import pytest

SCRIPTS_DIR = Path(__file__).resolve().parents[1]
if str(SCRIPTS_DIR) not in sys.path:
    sys.path.insert(0, str(SCRIPTS_DIR))

from sdk_versions_errors import DocumentNotFound, NetworkFailure  # noqa: E402
from sdk_versions_resolver import ResolverConfig  # noqa: E402

RAW_BASE: typ.Final[str] = "https://raw.example.test"
SDK_BRANCH_URL: typ.Final[str] = (
    f"{RAW_BASE}/paritytech/polkadot-sdk/release-crates-io-v{{release}}"
)
ORML_BRANCH_URL: typ.Final[str] = (
    f"{RAW_BASE}/open-web3-stack/open-runtime-module-library/polkadot-v{{release}}"
)


@dc.dataclass
class FakeFetcher:
    """Serve canned documents by URL and record every request."""

    documents: dict[str, str] = dc.field(default_factory=dict)
    failing: set[str] = dc.field(default_factory=set)
    calls: list[str] = dc.field(default_factory=list)

    def __call__(self, url: str) -> str:
        self.calls.append(url)
        if url in self.failing:
            raise NetworkFailure(url, "request timed out after 30 seconds")
        try:
            return self.documents[url]
        except KeyError as error:
            raise DocumentNotFound(url, "document not found") from error

    def serve_sdk(self, release: str, filename: str, text: str) -> str:
        """Register ``text`` as ``filename`` on the SDK branch of ``release``."""
        url = f"{SDK_BRANCH_URL.format(release=release)}/{filename}"
        self.documents[url] = text
        return url

    def serve_orml(self, release: str, text: str) -> str:
        """Register ``text`` as the ORML manifest tracking ``release``."""
        url = f"{ORML_BRANCH_URL.format(release=release)}/Cargo.dev.toml"
        self.documents[url] = text
        return url


@pytest.fixture
def fake_fetch() -> FakeFetcher:
    """Provide an empty :class:`FakeFetcher`."""
    return FakeFetcher()


@pytest.fixture
def resolver_config() -> ResolverConfig:
    """Resolver configuration pointing at the fake raw-content host."""
    return ResolverConfig(base_url=RAW_BASE)


PLAN_TOML: typ.Final[str] = """
[[crate]]
name = "frame-support"
from = "27.0.0"
to = "28.0.0"
bump = "major"

[[crate]]
name = "sp-core"
from = "27.0.0"
to = "28.0.0"
bump = "major"
publish = true

[[crate]]
name = "parachain-template-node"
from = "0.1.0"
to = "0.1.0"
bump = "major"
publish = false

[[crate]]
name = "sp-crypto-ec-utils"
from = "0.9.0"
to = "0.10.0"
bump = "minor"
publish = false
owner = "parity-crate-owner"
"""

LOCKFILE: typ.Final[str] = """
version = 3

[[package]]
name = "frame-support"
version = "28.0.0"

[[package]]
name = "rococo-runtime"
version = "7.0.0"

[[package]]
name = "polkadot-runtime"
version = "1.0.0"

[[package]]
name = "staging-kusama-runtime"
version = "1.0.0"

[[package]]
name = "serde"
version = "1.0.197"
source = "registry+https://github.com/rust-lang/crates.io-index"
"""

ORML_MANIFEST: typ.Final[str] = """
[workspace]
members = [
    "tokens",
    "xtokens",
    "xcm-support",
    "sp-core",
]
resolver = "2"

[workspace.package]
version = "0.7.0"
"""
