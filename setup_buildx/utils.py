"""Shared console helpers for setup-buildx.

Everything the action prints goes through a single Rich ``Console``. GitHub
workflow commands (``::group::``, ``::warning::``...) are printed verbatim with
markup, highlighting and wrapping disabled so the runner can recognise them.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from urllib.parse import urlparse

from rich.console import Console
from rich.table import Table

console = Console()


# ---------------------------------------------------------------------------
# Workflow commands
# ---------------------------------------------------------------------------


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def workflow_command(command: str, message: str = "") -> None:
    """Print a ``::command::message`` line understood by the Actions runner."""
    console.print(
        f"::{command}::{_escape_data(message)}",
        markup=False,
        highlight=False,
        emoji=False,
        soft_wrap=True,
    )


@contextmanager
def group(title: str) -> Iterator[None]:
    """Fold everything printed inside the block into a collapsible log group.

    Example::

        with group("Booting builder"):
            await lifecycle.boot(name, version)
    """
    workflow_command("group", title)
    try:
        yield
    finally:
        workflow_command("endgroup")


def print_debug(message: str) -> None:
    """Print a message only visible when runner debug logging is enabled."""
    workflow_command("debug", message)


def print_info(message: str) -> None:
    """Print a plain log line."""
    console.print(message, markup=False, highlight=False, emoji=False, soft_wrap=True)


def print_success(message: str) -> None:
    """Print a green success message."""
    console.print(f"[bold green]{message}[/bold green]")


def print_error(message: str) -> None:
    """Annotate the job with an error."""
    workflow_command("error", message)


def print_warning(message: str) -> None:
    """Annotate the job with a warning."""
    workflow_command("warning", message)


def print_summary_table(data: dict[str, str], title: str = "Summary") -> None:
    """Print a two-column key/value summary table.

    Args:
        data: Mapping of label -> value.
        title: Table title.
    """
    table = Table(title=title, show_header=True, header_style="bold cyan")
    table.add_column("Item", style="dim", no_wrap=True)
    table.add_column("Value")

    for key, value in data.items():
        table.add_row(key, str(value))

    console.print(table)


# ---------------------------------------------------------------------------
# Input helpers
# ---------------------------------------------------------------------------


def is_valid_url(value: str) -> bool:
    """Return ``True`` if *value* looks like an absolute URL.

    Plain versions such as ``latest`` or ``v0.4.1`` are not URLs; a git
    source like ``https://github.com/docker/buildx.git#master`` is.
    """
    if not value:
        return False
    try:
        parsed = urlparse(value)
    except ValueError:
        return False
    return bool(parsed.scheme) and bool(parsed.netloc)
