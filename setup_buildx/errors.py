"""Exception hierarchy for setup-buildx.

Every error raised during the setup phase derives from ``SetupError`` so the
entry point can report it as a single failure message. The cleanup phase
never raises these; it downgrades failures to warnings instead.
"""

from __future__ import annotations


class SetupError(Exception):
    """Raised when the setup phase cannot continue."""


class VersionParseError(SetupError):
    """Raised when no semantic version can be found in buildx output."""

    def __init__(self, raw: str):
        self.raw = raw
        super().__init__(f"Cannot parse buildx version from: {raw.strip()!r}")


class UnsupportedPlatformError(SetupError):
    """Raised when buildx cannot be installed on this OS/architecture."""


class InstallError(SetupError):
    """Raised when downloading, building or installing buildx fails."""


class InspectParseError(SetupError):
    """Raised when ``docker buildx inspect`` output cannot be parsed."""


class CommandExecutionError(SetupError):
    """Raised when an external command exits non-zero and failure is fatal."""

    def __init__(self, command: list[str], exit_code: int, stderr: str = ""):
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        cmd_str = " ".join(command)
        message = f"Command failed (exit {exit_code}): {cmd_str}"
        if stderr.strip():
            message += f"\n{stderr.strip()}"
        super().__init__(message)
