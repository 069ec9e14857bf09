"""Buildx builder lifecycle.

Creates, boots, inspects and removes a named builder instance::

    Uninitialized -> Provisioned -> Created -> Booted -> Installed? -> Inspected
                                                         ... later: Removed

With the ``docker`` driver the builder is the daemon's implicit ``default``:
no create/boot commands are issued and nothing is removed afterwards.

Which flags ``create`` and ``boot`` may pass depends on the installed buildx
version; see ``version.FEATURE_GATES``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from packaging.version import Version

from ..config import Driver, Inputs
from ..errors import InspectParseError, SetupError
from ..runner import BestEffortResult, ExecRunner
from ..utils import console
from .version import supports

DEFAULT_BUILDER = "default"
DEBUG_FLAG = "--debug"


@dataclass
class BuilderNode:
    """One node of a builder as reported by ``docker buildx inspect``."""

    name: str
    endpoint: str = ""
    status: str = ""
    flags: str = ""
    platforms: str = ""


@dataclass
class Builder:
    """Inspected state of a builder instance.

    The ``node_*`` properties summarise the first node, which is what the
    step outputs report. A builder without nodes reports empty strings.
    """

    name: str
    driver: str = ""
    nodes: list[BuilderNode] = field(default_factory=list)

    def _first(self, attr: str) -> str:
        return getattr(self.nodes[0], attr) if self.nodes else ""

    @property
    def node_name(self) -> str:
        return self._first("name")

    @property
    def node_endpoint(self) -> str:
        return self._first("endpoint")

    @property
    def node_status(self) -> str:
        return self._first("status")

    @property
    def node_flags(self) -> str:
        return self._first("flags")

    @property
    def node_platforms(self) -> str:
        return self._first("platforms")

    @property
    def debug(self) -> bool:
        """``True`` if BuildKit on the first node runs with ``--debug``."""
        return DEBUG_FLAG in self.node_flags

    def outputs(self) -> dict[str, str]:
        """Values published as step outputs, keyed by output name."""
        return {
            "driver": self.driver,
            "endpoint": self.node_endpoint,
            "status": self.node_status,
            "flags": self.node_flags,
            "platforms": self.node_platforms,
        }


_NODE_KEYS = {"endpoint", "status", "flags", "platforms"}


def parse_inspect(text: str) -> Builder:
    """Parse ``docker buildx inspect`` output.

    Expected shape::

        Name:   builder-1
        Driver: docker-container

        Nodes:
        Name:      builder-10
        Endpoint:  unix:///var/run/docker.sock
        Status:    running
        Flags:     --debug
        Platforms: linux/amd64, linux/386

    Keys before ``Nodes:`` describe the builder, every ``Name:`` after it opens
    a new node. Indented lines (labels, GC policies) and unknown keys are
    skipped.

    Raises:
        InspectParseError: On empty output, a top-level line without a colon,
            or when no builder name is reported.
    """
    if not text.strip():
        raise InspectParseError("docker buildx inspect returned no output")

    name = ""
    driver = ""
    nodes: list[BuilderNode] = []
    in_nodes = False

    for lineno, raw in enumerate(text.splitlines(), start=1):
        if not raw.strip() or raw[0].isspace():
            continue
        key, sep, value = raw.partition(":")
        if not sep:
            raise InspectParseError(f"Line {lineno}: expected 'Key: value', got {raw!r}")
        key = key.strip().lower()
        value = value.strip()

        if key == "nodes":
            in_nodes = True
            continue

        if key == "name" and (in_nodes or name):
            # Older buildx releases omit the "Nodes:" header.
            in_nodes = True
            nodes.append(BuilderNode(name=value))
        elif not in_nodes:
            if key == "name":
                name = value
            elif key == "driver":
                driver = value
        elif key in _NODE_KEYS and nodes:
            setattr(nodes[-1], key, value)

    if not name:
        raise InspectParseError("docker buildx inspect output has no builder name")

    return Builder(name=name, driver=driver, nodes=nodes)


class LifecycleState(str, Enum):
    UNINITIALIZED = "uninitialized"
    PROVISIONED = "provisioned"
    CREATED = "created"
    BOOTED = "booted"
    INSTALLED = "installed"
    INSPECTED = "inspected"
    REMOVED = "removed"


_ALLOWED_FROM: dict[LifecycleState, set[LifecycleState]] = {
    LifecycleState.PROVISIONED: {LifecycleState.UNINITIALIZED},
    LifecycleState.CREATED: {LifecycleState.PROVISIONED},
    LifecycleState.BOOTED: {LifecycleState.CREATED},
    LifecycleState.INSTALLED: {LifecycleState.PROVISIONED, LifecycleState.BOOTED},
    LifecycleState.INSPECTED: {
        LifecycleState.PROVISIONED,
        LifecycleState.BOOTED,
        LifecycleState.INSTALLED,
        LifecycleState.INSPECTED,
    },
}


class BuilderLifecycle:
    """Drives one builder through create/boot/inspect and, later, removal.

    Setup and cleanup run in separate processes, so ``remove`` is accepted
    from any state; every other step must follow the order above.
    """

    def __init__(
        self,
        runner: ExecRunner,
        state: LifecycleState = LifecycleState.UNINITIALIZED,
    ) -> None:
        self.runner = runner
        self.state = state

    def _advance(self, target: LifecycleState) -> None:
        allowed = _ALLOWED_FROM.get(target)
        if allowed is not None and self.state not in allowed:
            raise SetupError(
                f"Cannot move builder from {self.state.value} to {target.value}"
            )
        self.state = target

    def mark_provisioned(self) -> None:
        """Record that a usable buildx binary is in place."""
        self._advance(LifecycleState.PROVISIONED)

    # ------------------------------------------------------------------
    # Command construction
    # ------------------------------------------------------------------

    @staticmethod
    def builder_name_for(inputs: Inputs) -> str:
        if inputs.driver is Driver.DOCKER:
            return DEFAULT_BUILDER
        return f"builder-{inputs.builder_name}"

    @staticmethod
    def create_args(name: str, inputs: Inputs, version: Version) -> list[str]:
        """Arguments for ``docker buildx create``.

        Driver options and BuildKit daemon flags are dropped on buildx
        releases that predate them. The endpoint is positional and always last.
        """
        args = ["buildx", "create", "--name", name, "--driver", inputs.driver.value]
        if supports(version, "create --driver-opt"):
            for opt in inputs.driver_opts:
                args.extend(["--driver-opt", opt])
        if inputs.buildkitd_flags and supports(version, "create --buildkitd-flags"):
            args.extend(["--buildkitd-flags", inputs.buildkitd_flags])
        if inputs.use:
            args.append("--use")
        if inputs.config:
            args.extend(["--config", inputs.config])
        if inputs.endpoint:
            args.append(inputs.endpoint)
        return args

    @staticmethod
    def boot_args(name: str, version: Version) -> list[str]:
        """Arguments for ``docker buildx inspect --bootstrap``.

        Before buildx 0.4.0 ``inspect`` has no ``--builder`` flag and boots the
        current builder.
        """
        args = ["buildx", "inspect", "--bootstrap"]
        if supports(version, "inspect --builder"):
            args.extend(["--builder", name])
        return args

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def create(self, name: str, inputs: Inputs, version: Version) -> None:
        """Create the builder instance.

        Raises:
            SetupError: For the ``docker`` driver, which has nothing to create.
            CommandExecutionError: If ``docker buildx create`` fails.
        """
        if inputs.driver is Driver.DOCKER:
            raise SetupError("The docker driver uses the default builder; nothing to create")
        self._advance(LifecycleState.CREATED)
        await self.runner.run("docker", self.create_args(name, inputs, version))

    async def boot(self, name: str, version: Version) -> None:
        self._advance(LifecycleState.BOOTED)
        await self.runner.run("docker", self.boot_args(name, version))

    async def install_as_default(self) -> None:
        """Make ``docker build`` an alias of ``docker buildx build``."""
        self._advance(LifecycleState.INSTALLED)
        await self.runner.run("docker", ["buildx", "install"])

    async def inspect(self, name: str) -> Builder:
        self._advance(LifecycleState.INSPECTED)
        result = await self.runner.run("docker", ["buildx", "inspect", name], silent=True)
        builder = parse_inspect(result.stdout)
        console.print(f"[cyan]Inspected builder[/cyan] [bold]{builder.name}[/bold]")
        return builder

    async def buildkit_version(self, container: str) -> str:
        """Report the BuildKit version running in a ``docker-container`` builder."""
        image = await self.runner.run(
            "docker", ["inspect", "--format", "{{.Config.Image}}", container], silent=True
        )
        result = await self.runner.run(
            "docker", ["run", "--rm", image.stdout.strip(), "--version"], silent=True
        )
        return result.stdout.strip()

    # ------------------------------------------------------------------
    # Cleanup (never raises)
    # ------------------------------------------------------------------

    async def dump_logs(self, container: str) -> BestEffortResult:
        """Print the BuildKit container logs."""
        result = await self.runner.run_best_effort("docker", ["logs", container])
        result.warn_on_failure()
        return result

    async def remove(self, name: str) -> BestEffortResult:
        """Remove the builder; a failure becomes a warning."""
        self.state = LifecycleState.REMOVED
        result = await self.runner.run_best_effort("docker", ["buildx", "rm", name])
        result.warn_on_failure()
        return result
