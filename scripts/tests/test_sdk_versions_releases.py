"""Tests for release listing via the GitHub API and the ``gh`` fallback."""

from __future__ import annotations

import dataclasses as dc
import logging
import typing as typ

import pytest
import requests
import sdk_versions_releases
from plumbum.commands import CommandNotFound
from plumbum.commands.processes import ProcessTimedOut
from sdk_versions_releases import (
    ORML_RELEASES,
    SDK_RELEASES,
    list_releases,
    release_sort_key,
)

API_URL = "https://api.example.test"


@dc.dataclass
class FakeResponse:
    """Minimal stand-in for a GitHub API response."""

    status_code: int
    payload: list[dict[str, str]] = dc.field(default_factory=list)
    headers: dict[str, str] = dc.field(default_factory=dict)
    text: str = ""

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> list[dict[str, str]]:
        return self.payload


@dc.dataclass
class FakeApi:
    """Serve pages of branches keyed by page number."""

    pages: dict[int, FakeResponse]
    requested: list[tuple[str, int]] = dc.field(default_factory=list)

    def __call__(
        self, url: str, *, params: dict[str, int], timeout: int
    ) -> FakeResponse:
        self.requested.append((url, params["page"]))
        return self.pages[params["page"]]


class FakeGhCommand:
    """Bound ``gh`` invocation that replays a canned result."""

    def __init__(self, fake: FakeLocal, args: tuple[str, ...]) -> None:
        self.fake = fake
        self.args = args

    def run(
        self, *, timeout: int, retcode: int | None
    ) -> tuple[int, str, str]:
        self.fake.invocations.append(self.args)
        if isinstance(self.fake.result, Exception):
            raise self.fake.result
        return self.fake.result


class FakeGh:
    """Callable proxy returned by ``local["gh"]``."""

    def __init__(self, fake: FakeLocal) -> None:
        self.fake = fake

    def __getitem__(self, args: tuple[str, ...]) -> FakeGhCommand:
        return FakeGhCommand(self.fake, args)


class FakeLocal:
    """Mimic plumbum's ``local`` for the ``gh`` command only."""

    def __init__(self, result: tuple[int, str, str] | Exception) -> None:
        self.result = result
        self.invocations: list[tuple[str, ...]] = []

    def __getitem__(self, command: str) -> FakeGh:
        if command != "gh":
            msg = f"FakeLocal only understands the 'gh' command, received {command!r}"
            raise RuntimeError(msg)
        return FakeGh(self)


def _branches(*names: str) -> list[dict[str, str]]:
    return [{"name": name} for name in names]


@pytest.fixture
def install_api(monkeypatch: pytest.MonkeyPatch) -> typ.Callable[..., FakeApi]:
    """Install a :class:`FakeApi` serving ``pages``."""

    def _install(pages: dict[int, FakeResponse]) -> FakeApi:
        fake = FakeApi(pages)
        monkeypatch.setattr(sdk_versions_releases.requests, "get", fake)
        return fake

    return _install


@pytest.fixture
def install_gh(monkeypatch: pytest.MonkeyPatch) -> typ.Callable[..., FakeLocal]:
    """Install a :class:`FakeLocal` answering ``gh api`` with ``result``."""

    def _install(result: tuple[int, str, str] | Exception) -> FakeLocal:
        fake = FakeLocal(result)
        monkeypatch.setattr(sdk_versions_releases, "local", fake)
        return fake

    return _install


def test_release_sort_key_is_numeric() -> None:
    """Releases sort by their numeric components."""
    releases = ["stable2407", "1.10.0", "1.9.0", "1.13.0"]

    assert sorted(releases, key=release_sort_key) == [
        "1.9.0",
        "1.10.0",
        "1.13.0",
        "stable2407",
    ]


def test_lists_releases_across_pages(install_api: typ.Callable[..., FakeApi]) -> None:
    """Every page is read and only prefixed branches are returned."""
    first = [f"feature-{index}" for index in range(98)]
    fake = install_api(
        {
            1: FakeResponse(
                200,
                _branches(*first, "release-crates-io-v1.9.0", "master"),
            ),
            2: FakeResponse(
                200,
                _branches("release-crates-io-v1.10.0", "release-crates-io-v1.3.0"),
            ),
        }
    )

    releases = list_releases(SDK_RELEASES, api_url=API_URL)

    assert releases == ["1.3.0", "1.9.0", "1.10.0"]
    assert fake.requested == [
        (f"{API_URL}/repos/paritytech/polkadot-sdk/branches", 1),
        (f"{API_URL}/repos/paritytech/polkadot-sdk/branches", 2),
    ]


def test_lists_orml_releases(install_api: typ.Callable[..., FakeApi]) -> None:
    """The ORML source strips its own prefix."""
    install_api({1: FakeResponse(200, _branches("polkadot-v1.6.0", "master"))})

    assert list_releases(ORML_RELEASES, api_url=API_URL) == ["1.6.0"]


def test_rate_limit_falls_back_to_gh(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
    caplog: pytest.LogCaptureFixture,
) -> None:
    """A rate-limited API response switches to the authenticated CLI."""
    install_api(
        {1: FakeResponse(403, headers={"X-RateLimit-Remaining": "0"})}
    )
    fake_gh = install_gh(
        (0, "release-crates-io-v1.6.0\nmaster\nrelease-crates-io-v1.5.0\n", "")
    )

    with caplog.at_level(logging.WARNING, logger="sdk_versions_releases"):
        releases = list_releases(SDK_RELEASES, api_url=API_URL)

    assert releases == ["1.5.0", "1.6.0"]
    assert fake_gh.invocations == [
        (
            "api",
            "--paginate",
            "--jq",
            ".[].name",
            "repos/paritytech/polkadot-sdk/branches",
        )
    ]
    assert "rate limit exceeded" in caplog.text


def test_too_many_requests_counts_as_rate_limited(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
) -> None:
    """HTTP 429 also triggers the fallback."""
    install_api({1: FakeResponse(429)})
    install_gh((0, "polkadot-v1.7.0\n", ""))

    assert list_releases(ORML_RELEASES, api_url=API_URL) == ["1.7.0"]


def test_missing_gh_aborts(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
) -> None:
    """Without ``gh`` on PATH the rate limit is fatal."""
    install_api({1: FakeResponse(403, text="API rate limit exceeded")})
    install_gh(CommandNotFound("gh", ["/usr/bin"]))

    with pytest.raises(SystemExit, match="gh not found on PATH"):
        list_releases(SDK_RELEASES, api_url=API_URL)


def test_gh_timeout_aborts(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
) -> None:
    """A hung ``gh`` process aborts the listing."""
    install_api({1: FakeResponse(429)})
    install_gh(ProcessTimedOut("timed out", ["gh", "api"]))

    with pytest.raises(SystemExit, match="timed out"):
        list_releases(SDK_RELEASES, api_url=API_URL)


def test_gh_failure_reports_stderr(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
) -> None:
    """A non-zero ``gh`` exit surfaces its diagnostics."""
    install_api({1: FakeResponse(429)})
    install_gh((4, "", "authentication required\n"))

    with pytest.raises(
        SystemExit, match="exit code 4: authentication required"
    ):
        list_releases(SDK_RELEASES, api_url=API_URL)


def test_forbidden_without_rate_limit_is_fatal(
    install_api: typ.Callable[..., FakeApi],
    install_gh: typ.Callable[..., FakeLocal],
) -> None:
    """Other API failures abort without consulting ``gh``."""
    install_api({1: FakeResponse(403, text="Resource not accessible")})
    fake_gh = install_gh((0, "", ""))

    with pytest.raises(SystemExit, match="HTTP 403"):
        list_releases(SDK_RELEASES, api_url=API_URL)

    assert fake_gh.invocations == []


def test_transport_errors_abort(monkeypatch: pytest.MonkeyPatch) -> None:
    """Connection failures abort with the repository in the message."""

    def _raise(*_args: object, **_kwargs: object) -> FakeResponse:
        message = "connection refused"
        raise requests.ConnectionError(message)

    monkeypatch.setattr(sdk_versions_releases.requests, "get", _raise)

    with pytest.raises(SystemExit, match="paritytech/polkadot-sdk"):
        list_releases(SDK_RELEASES, api_url=API_URL)
