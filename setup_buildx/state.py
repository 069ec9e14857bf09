"""State handed from the setup phase to the post (cleanup) phase.

The runner invokes the same entry point twice per job. Setup records what it
created in a ``RunState`` JSON file under ``RUNNER_TEMP``; the post phase loads
it back instead of re-inspecting anything. The runner tells the two
invocations apart through the ``STATE_isPost`` variable, which it exports on
the post run because setup wrote ``isPost=true`` to ``GITHUB_STATE``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from pydantic import BaseModel, Field

from .config import Settings

POST_MARKER = "STATE_isPost"


class RunState(BaseModel):
    """Identifiers setup created and cleanup must act on."""

    builder_name: str = Field(default="", description="Builder to remove; empty for the docker driver")
    container_name: str = Field(default="", description="BuildKit container whose logs to dump")
    debug: bool = Field(default=False, description="Dump BuildKit logs during cleanup")

    def save(self, path: Path) -> Path:
        """Persist the state as JSON, creating parent directories."""
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Path) -> "RunState":
        """Load state written by setup; a missing file means nothing was created."""
        if not path.exists():
            return cls()
        return cls.model_validate_json(path.read_text(encoding="utf-8"))


def is_post(environ: Mapping[str, str] | None = None) -> bool:
    """Return ``True`` when running as the post (cleanup) invocation."""
    env = os.environ if environ is None else environ
    return env.get(POST_MARKER) == "true"


def mark_post(settings: Settings) -> None:
    """Ask the runner to flag the next invocation of this step as the post phase."""
    if settings.state_env_file is None:
        return
    settings.state_env_file.parent.mkdir(parents=True, exist_ok=True)
    with settings.state_env_file.open("a", encoding="utf-8") as fh:
        fh.write("isPost=true\n")
