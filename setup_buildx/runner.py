"""External command execution.

``ExecRunner`` spawns one process at a time, streams its output to the job
log line by line and keeps the full text for callers that need to parse it
(version detection, builder inspection).

Two result types keep the failure policies apart:

* ``ExecRunner.run`` raises ``CommandExecutionError`` on a non-zero exit
  unless ``ignore_failure`` is set. Setup uses it.
* ``ExecRunner.run_best_effort`` never raises and returns a
  ``BestEffortResult`` whose ``warn_on_failure`` turns a failure into a job
  warning. Cleanup uses it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .errors import CommandExecutionError
from .utils import print_debug, print_info, print_warning

COMMAND_NOT_EXECUTABLE = 126
COMMAND_NOT_FOUND = 127


@dataclass
class ExecResult:
    """Outcome of a finished external command."""

    command: list[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass
class BestEffortResult(ExecResult):
    """Result of a command whose failure must never fail the job."""

    warnings: list[str] = field(default_factory=list)

    def warn_on_failure(self) -> bool:
        """Emit a warning if the command failed.

        The warning carries the captured stderr, or the command and its exit
        code when nothing was written to stderr.

        Returns:
            ``True`` if a warning was emitted.
        """
        if self.success:
            return False
        message = self.stderr.strip() or (
            f"{' '.join(self.command)} exited with code {self.exit_code}"
        )
        self.warnings.append(message)
        print_warning(message)
        return True


async def _pump(
    stream: asyncio.StreamReader | None,
    chunks: list[str],
    echo: Callable[[str], None] | None,
) -> None:
    """Read *stream* until EOF, buffering every line and optionally echoing it."""
    if stream is None:
        return
    while True:
        line = await stream.readline()
        if not line:
            break
        text = line.decode("utf-8", errors="replace")
        chunks.append(text)
        if echo is not None:
            echo(text.rstrip("\r\n"))


class ExecRunner:
    """Runs external commands given as argument arrays (never shell strings)."""

    async def run(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        ignore_failure: bool = False,
        silent: bool = False,
    ) -> ExecResult:
        """Run ``command`` with ``args`` and wait for it to finish.

        Args:
            command: Executable name or path (e.g. ``docker``).
            args: Arguments passed verbatim.
            ignore_failure: Return the result instead of raising on a
                non-zero exit.
            silent: Do not echo output to the job log (it is still captured).

        Returns:
            The captured ``ExecResult``.

        Raises:
            CommandExecutionError: If the command fails and ``ignore_failure``
                is ``False``. A missing executable counts as exit code 127.
        """
        argv = [command, *args]
        print_debug(f"exec: {' '.join(argv)}")
        echo = None if silent else print_info

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            result = ExecResult(
                command=argv,
                exit_code=COMMAND_NOT_FOUND,
                stderr=f"Command not found: {command}",
            )
        except OSError as exc:
            result = ExecResult(
                command=argv,
                exit_code=COMMAND_NOT_EXECUTABLE,
                stderr=f"Cannot execute {command}: {exc}",
            )
        else:
            out_chunks: list[str] = []
            err_chunks: list[str] = []
            await asyncio.gather(
                _pump(process.stdout, out_chunks, echo),
                _pump(process.stderr, err_chunks, echo),
            )
            exit_code = await process.wait()
            result = ExecResult(
                command=argv,
                exit_code=exit_code,
                stdout="".join(out_chunks),
                stderr="".join(err_chunks),
            )

        if not result.success and not ignore_failure:
            raise CommandExecutionError(argv, result.exit_code, result.stderr)
        return result

    async def run_best_effort(
        self,
        command: str,
        args: Sequence[str] = (),
        *,
        silent: bool = False,
    ) -> BestEffortResult:
        """Run a command whose failure is reported but never raised."""
        result = await self.run(command, args, ignore_failure=True, silent=silent)
        return BestEffortResult(
            command=result.command,
            exit_code=result.exit_code,
            stdout=result.stdout,
            stderr=result.stderr,
        )
