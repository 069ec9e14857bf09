"""Step outputs (``steps.<id>.outputs.<name>``)."""

from __future__ import annotations

import uuid
from pathlib import Path

from .utils import print_info

OUTPUT_KEYS = ("name", "driver", "endpoint", "status", "flags", "platforms")


class OutputSink:
    """Writes named string outputs to the runner's ``GITHUB_OUTPUT`` file.

    Each value uses the heredoc form so multi-line values survive::

        name<<ghadelimiter_<uuid>
        value
        ghadelimiter_<uuid>

    Without an output file (local runs) values are echoed as ``name=value``.
    Everything written is also kept in ``values``.
    """

    def __init__(self, output_file: Path | None = None):
        self.output_file = output_file
        self.values: dict[str, str] = {}

    def set(self, name: str, value: str | None) -> None:
        if name not in OUTPUT_KEYS:
            raise ValueError(f"Unknown output {name!r}; expected one of {', '.join(OUTPUT_KEYS)}")
        value = value or ""
        self.values[name] = value

        if self.output_file is None:
            print_info(f"{name}={value}")
            return

        delimiter = f"ghadelimiter_{uuid.uuid4()}"
        self.output_file.parent.mkdir(parents=True, exist_ok=True)
        with self.output_file.open("a", encoding="utf-8") as fh:
            fh.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
