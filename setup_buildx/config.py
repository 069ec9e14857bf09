"""setup-buildx configuration.

Two typed Pydantic v2 models describe a run:

* ``Inputs`` is what the workflow author asked for (``with:`` values), read
  from ``INPUT_*`` environment variables the way the Actions runner passes
  them. It is immutable once built.
* ``Settings`` is what the host environment provides: docker config home,
  runner temp directory, debug mode and the files the runner reads outputs
  and state back from.
"""

from __future__ import annotations

import os
import tempfile
import uuid
from collections.abc import Mapping
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BUILDKITD_FLAGS = (
    "--allow-insecure-entitlement security.insecure "
    "--allow-insecure-entitlement network.host"
)


class Driver(str, Enum):
    """Builder drivers accepted by ``docker buildx create``."""

    DOCKER = "docker"
    DOCKER_CONTAINER = "docker-container"
    KUBERNETES = "kubernetes"
    REMOTE = "remote"


# ---------------------------------------------------------------------------
# Boundary coercion
# ---------------------------------------------------------------------------


def get_input(name: str, environ: Mapping[str, str] | None = None) -> str:
    """Return the raw value of an action input, stripped, or ``""``.

    The runner exposes ``with: {driver-opts: ...}`` as ``INPUT_DRIVER-OPTS``:
    spaces become underscores, hyphens are kept.
    """
    env = os.environ if environ is None else environ
    key = f"INPUT_{name.replace(' ', '_').upper()}"
    return env.get(key, "").strip()


def parse_bool(value: str) -> bool:
    """Only the exact literal ``true`` is true."""
    return value == "true"


def parse_list(value: str) -> list[str]:
    """Split newline-delimited text into stripped, non-empty entries."""
    return [line.strip() for line in value.splitlines() if line.strip()]


def plugins_dir(config_home: Path) -> Path:
    """Directory under *config_home* the docker CLI scans for ``docker-*`` plugins."""
    return config_home / "cli-plugins"


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class Inputs(BaseModel):
    """Desired builder setup.

    ``driver`` decides which other fields matter: with the ``docker`` driver
    the builder is the daemon's implicit default, so ``driver_opts``,
    ``buildkitd_flags``, ``endpoint`` and ``config`` are ignored.
    """

    model_config = ConfigDict(frozen=True)

    version: str = Field(default="", description="Semver, 'latest', or a git source URL")
    driver: Driver = Field(default=Driver.DOCKER_CONTAINER)
    driver_opts: tuple[str, ...] = Field(default=())
    buildkitd_flags: str = Field(default=DEFAULT_BUILDKITD_FLAGS)
    endpoint: str = Field(default="")
    config: str = Field(default="", description="Path to a BuildKit config file")
    use: bool = Field(default=False, description="Switch to the new builder")
    install: bool = Field(default=False, description="Alias 'docker build' to buildx")
    builder_name: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        description="Suffix for the builder-<suffix> instance name",
    )

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Inputs":
        """Build ``Inputs`` from ``INPUT_*`` environment variables.

        Empty inputs fall back to the model defaults.

        Raises:
            pydantic.ValidationError: If ``driver`` is not a known driver.
        """
        kwargs: dict[str, object] = {
            "version": get_input("version", environ),
            "driver_opts": tuple(parse_list(get_input("driver-opts", environ))),
            "endpoint": get_input("endpoint", environ),
            "config": get_input("config", environ),
            "use": parse_bool(get_input("use", environ)),
            "install": parse_bool(get_input("install", environ)),
        }
        if driver := get_input("driver", environ):
            kwargs["driver"] = driver
        if flags := get_input("buildkitd-flags", environ):
            kwargs["buildkitd_flags"] = flags
        if name := get_input("builder-name", environ):
            kwargs["builder_name"] = name
        return cls(**kwargs)


class Settings(BaseModel):
    """Host-provided environment for a run."""

    config_home: Path = Field(default_factory=lambda: Path.home() / ".docker")
    state_dir: Path = Field(default_factory=lambda: Path(tempfile.gettempdir()))
    debug: bool = Field(default=False)
    output_file: Path | None = Field(default=None, description="GITHUB_OUTPUT")
    state_env_file: Path | None = Field(default=None, description="GITHUB_STATE")
    action_id: str = Field(default="setup-buildx")

    @property
    def state_path(self) -> Path:
        """Where setup leaves ``RunState`` for the post phase."""
        return self.state_dir / f"setup-buildx-{self.action_id}.json"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        """Build ``Settings`` from the runner environment.

        Recognised variables (all optional):
            DOCKER_CONFIG, RUNNER_TEMP, RUNNER_DEBUG, GITHUB_OUTPUT,
            GITHUB_STATE, GITHUB_ACTION.
        """
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {"debug": env.get("RUNNER_DEBUG") == "1"}
        if env.get("DOCKER_CONFIG"):
            kwargs["config_home"] = Path(env["DOCKER_CONFIG"])
        if env.get("RUNNER_TEMP"):
            kwargs["state_dir"] = Path(env["RUNNER_TEMP"])
        if env.get("GITHUB_OUTPUT"):
            kwargs["output_file"] = Path(env["GITHUB_OUTPUT"])
        if env.get("GITHUB_STATE"):
            kwargs["state_env_file"] = Path(env["GITHUB_STATE"])
        if env.get("GITHUB_ACTION"):
            kwargs["action_id"] = env["GITHUB_ACTION"]
        return cls(**kwargs)
