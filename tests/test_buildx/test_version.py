"""Unit tests for buildx version detection and feature gates (setup_buildx.buildx.version).

Tests cover:
- parse_version on real-world ``docker buildx version`` outputs
- VersionParseError when no version is present
- satisfies() boundaries for >=0.3.0 and >=0.4.0, the ≥ spelling, prereleases
- supports() lookups in FEATURE_GATES
- get_version running ``docker buildx version``
"""

from __future__ import annotations

import pytest
from packaging.version import Version

from setup_buildx.buildx.version import (
    FEATURE_GATES,
    get_version,
    parse_version,
    satisfies,
    supports,
)
from setup_buildx.errors import CommandExecutionError, VersionParseError


# ---------------------------------------------------------------------------
# parse_version
# ---------------------------------------------------------------------------


class TestParseVersion:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("github.com/docker/buildx v0.4.1 bda4882a65349ca359216b135896bddc1d92461c", "0.4.1"),
            ("github.com/docker/buildx 0.3.1+azure c9b3b4b", "0.3.1"),
            ("github.com/docker/buildx v0.10.4 c513d34", "0.10.4"),
            ("v0.2.0", "0.2.0"),
            ("0.3.0\n", "0.3.0"),
            ("github.com/docker/buildx v0.12.0-docker 542e5d8", "0.12.0"),
            ("buildx1.2.3", "1.2.3"),
            ("tool_v0.4.1", "0.4.1"),
            ("release.0.4.1", "0.4.1"),
            ("buildx-0.5.1-linux-amd64", "0.5.1"),
        ],
    )
    def test_extracts_embedded_version(self, raw, expected):
        assert parse_version(raw) == Version(expected)

    @pytest.mark.unit
    def test_prerelease_kept(self):
        version = parse_version("github.com/docker/buildx v0.5.0-rc1 abcdef0")
        assert version == Version("0.5.0rc1")
        assert version.is_prerelease

    @pytest.mark.unit
    def test_first_version_wins(self):
        assert parse_version("buildx v0.4.2 (buildkit 0.8.1)") == Version("0.4.2")

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "raw",
        ["", "github.com/docker/buildx", "buildx v1.2 abcdef", "bda4882a65349ca359216b135896bddc1d92461c"],
    )
    def test_unparseable_raises(self, raw):
        with pytest.raises(VersionParseError, match="Cannot parse buildx version"):
            parse_version(raw)


# ---------------------------------------------------------------------------
# satisfies / supports
# ---------------------------------------------------------------------------


class TestSatisfies:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "version, constraint, expected",
        [
            ("0.3.0", ">=0.3.0", True),
            ("0.2.9", ">=0.3.0", False),
            ("0.2.0", ">=0.3.0", False),
            ("0.3.1", ">=0.3.0", True),
            ("0.4.0", ">=0.4.0", True),
            ("0.3.9", ">=0.4.0", False),
            ("1.0.0", ">=0.4.0", True),
            ("0.10.0", ">=0.4.0", True),
        ],
    )
    def test_minimum_version(self, version, constraint, expected):
        assert satisfies(Version(version), constraint) is expected

    @pytest.mark.unit
    def test_unicode_spelling(self):
        assert satisfies(Version("0.4.0"), "≥0.4.0") is True
        assert satisfies(Version("0.3.0"), "≥0.4.0") is False

    @pytest.mark.unit
    def test_spaces_allowed(self):
        assert satisfies(Version("0.4.0"), ">= 0.4.0") is True

    @pytest.mark.unit
    def test_prerelease_of_gated_release_is_below(self):
        assert satisfies(Version("0.4.0rc1"), ">=0.4.0") is False

    @pytest.mark.unit
    def test_prerelease_of_later_release_is_above(self):
        assert satisfies(Version("0.5.0rc1"), ">=0.4.0") is True

    @pytest.mark.unit
    def test_invalid_constraint(self):
        with pytest.raises(ValueError, match="Invalid version constraint"):
            satisfies(Version("0.4.0"), "at least 0.4")


class TestSupports:
    @pytest.mark.unit
    def test_gate_table(self):
        assert FEATURE_GATES["create --driver-opt"] == ">=0.3.0"
        assert FEATURE_GATES["create --buildkitd-flags"] == ">=0.3.0"
        assert FEATURE_GATES["inspect --builder"] == ">=0.4.0"

    @pytest.mark.unit
    def test_each_call_uses_given_version(self):
        assert supports(Version("0.2.0"), "create --driver-opt") is False
        assert supports(Version("0.3.0"), "create --driver-opt") is True
        assert supports(Version("0.2.0"), "create --driver-opt") is False

    @pytest.mark.unit
    def test_unknown_feature(self):
        with pytest.raises(KeyError):
            supports(Version("1.0.0"), "create --frobnicate")


# ---------------------------------------------------------------------------
# get_version
# ---------------------------------------------------------------------------


class TestGetVersion:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_runs_buildx_version(self, fake_runner):
        fake_runner.respond(
            "docker", "buildx", "version",
            stdout="github.com/docker/buildx v0.4.1 bda4882a65349ca359216b135896bddc1d92461c\n",
        )
        assert await get_version(fake_runner) == Version("0.4.1")
        assert fake_runner.calls == [["docker", "buildx", "version"]]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_garbage_output(self, fake_runner):
        fake_runner.respond("docker", "buildx", "version", stdout="unknown\n")
        with pytest.raises(VersionParseError):
            await get_version(fake_runner)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_command_failure(self, fake_runner):
        fake_runner.respond(
            "docker", "buildx", "version",
            stderr="docker: 'buildx' is not a docker command.", exit_code=1,
        )
        with pytest.raises(CommandExecutionError):
            await get_version(fake_runner)
