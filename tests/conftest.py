"""Shared pytest fixtures for the setup-buildx test suite.

Provides reusable fixtures for:
- An isolated runner environment (no leaking INPUT_* / GITHUB_* variables)
- Settings pointing at temporary directories
- A recording fake ``ExecRunner`` with scripted responses
- Mock asyncio subprocesses
- Sample ``docker buildx inspect`` reports
"""

from __future__ import annotations

import os
import textwrap
from collections.abc import Sequence
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from setup_buildx.config import Settings
from setup_buildx.errors import CommandExecutionError
from setup_buildx.runner import ExecResult, ExecRunner


# ---------------------------------------------------------------------------
# Environment
# ---------------------------------------------------------------------------

_RUNNER_PREFIXES = ("INPUT_", "STATE_", "GITHUB_", "RUNNER_")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Strip runner variables so tests never see the real CI environment."""
    for key in list(os.environ):
        if key.startswith(_RUNNER_PREFIXES) or key == "DOCKER_CONFIG":
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings rooted in tmp_path, with output and state files configured."""
    return Settings(
        config_home=tmp_path / "docker-config",
        state_dir=tmp_path / "runner-temp",
        output_file=tmp_path / "github-output",
        state_env_file=tmp_path / "github-state",
        action_id="test",
    )


# ---------------------------------------------------------------------------
# Fake runner
# ---------------------------------------------------------------------------

class RecordingRunner(ExecRunner):
    """``ExecRunner`` that records argv lists instead of spawning processes.

    Responses are matched on an argv prefix; the most recently registered
    matching response wins. Unmatched commands succeed with empty output.
    """

    def __init__(self) -> None:
        self.calls: list[list[str]] = []
        self._responses: list[tuple[list[str], str, str, int]] = []

    def respond(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
    ) -> None:
        self._responses.append((list(prefix), stdout, stderr, exit_code))

    def commands(self, *prefix: str) -> list[list[str]]:
        """Recorded calls starting with *prefix*."""
        return [c for c in self.calls if c[: len(prefix)] == list(prefix)]

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        ignore_failure: bool = False,
        silent: bool = False,
    ) -> ExecResult:
        argv = [command, *args]
        self.calls.append(argv)

        stdout, stderr, exit_code = "", "", 0
        for prefix, out, err, code in reversed(self._responses):
            if argv[: len(prefix)] == prefix:
                stdout, stderr, exit_code = out, err, code
                break

        if exit_code != 0 and not ignore_failure:
            raise CommandExecutionError(argv, exit_code, stderr)
        return ExecResult(command=argv, exit_code=exit_code, stdout=stdout, stderr=stderr)


@pytest.fixture
def fake_runner() -> RecordingRunner:
    return RecordingRunner()


# ---------------------------------------------------------------------------
# Mock Subprocess (generic)
# ---------------------------------------------------------------------------

class _FakeStream:
    """Minimal ``asyncio.StreamReader`` stand-in serving canned lines."""

    def __init__(self, data: str) -> None:
        self._lines = [line.encode("utf-8") for line in data.splitlines(keepends=True)]

    async def readline(self) -> bytes:
        return self._lines.pop(0) if self._lines else b""


@pytest.fixture
def mock_subprocess():
    """Mock asyncio subprocess for testing command execution.

    Returns a factory that creates mock subprocess instances with configurable
    stdout, stderr, and return codes.

    Usage:
        def test_command(mock_subprocess):
            proc = mock_subprocess(stdout="output", returncode=0)
            with patch("asyncio.create_subprocess_exec", AsyncMock(return_value=proc)):
                ...
    """
    def factory(
        stdout: str = "",
        stderr: str = "",
        returncode: int = 0,
    ) -> AsyncMock:
        mock_proc = AsyncMock()
        mock_proc.stdout = _FakeStream(stdout)
        mock_proc.stderr = _FakeStream(stderr)
        mock_proc.returncode = returncode
        mock_proc.pid = 99999
        mock_proc.kill = MagicMock()
        mock_proc.wait = AsyncMock(return_value=returncode)
        return mock_proc

    return factory


# ---------------------------------------------------------------------------
# buildx inspect reports
# ---------------------------------------------------------------------------

@pytest.fixture
def inspect_output() -> str:
    """A docker-container builder with one running node."""
    return textwrap.dedent(
        """\
        Name:   builder-test
        Driver: docker-container

        Nodes:
        Name:      builder-test0
        Endpoint:  unix:///var/run/docker.sock
        Status:    running
        Flags:     --allow-insecure-entitlement security.insecure --allow-insecure-entitlement network.host
        Platforms: linux/amd64, linux/386
        """
    )


@pytest.fixture
def inspect_output_debug() -> str:
    """A builder whose BuildKit daemon runs with --debug."""
    return textwrap.dedent(
        """\
        Name:   builder-test
        Driver: docker-container

        Nodes:
        Name:      builder-test0
        Endpoint:  unix:///var/run/docker.sock
        Status:    running
        Flags:     --debug --allow-insecure-entitlement security.insecure
        Platforms: linux/amd64
        """
    )


@pytest.fixture
def inspect_output_default() -> str:
    """The daemon's implicit default builder (docker driver)."""
    return textwrap.dedent(
        """\
        Name:   default
        Driver: docker

        Nodes:
        Name:      default
        Endpoint:  default
        Status:    running
        Platforms: linux/amd64, linux/arm64
        """
    )
