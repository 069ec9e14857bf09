"""setup-buildx orchestrator.

The runner calls the same entry point twice per job:

Setup -- install buildx if needed, create and boot the builder, publish its
         outputs and record what was created.
Post  -- load that record, dump BuildKit logs in debug mode and remove the
         builder. Nothing in this phase can fail the job.

Usage::

    python -m setup_buildx          # phase chosen from STATE_isPost
    python -m setup_buildx --post   # force the cleanup phase
"""

from __future__ import annotations

import asyncio
import sys

from pydantic import ValidationError

from setup_buildx.buildx import BuilderLifecycle, ToolProvisioner, get_version
from setup_buildx.config import Driver, Inputs, Settings
from setup_buildx.outputs import OutputSink
from setup_buildx.runner import ExecRunner
from setup_buildx.state import RunState, is_post, mark_post
from setup_buildx.utils import (
    group,
    print_error,
    print_info,
    print_success,
    print_summary_table,
    print_warning,
)


class Pipeline:
    """Runs the setup or the cleanup phase of one job.

    Attributes:
        inputs: Workflow inputs; only needed for setup.
        settings: Host environment.
        state: What setup created, persisted at ``settings.state_path``.
    """

    def __init__(
        self,
        settings: Settings,
        inputs: Inputs | None = None,
        runner: ExecRunner | None = None,
        provisioner: ToolProvisioner | None = None,
        lifecycle: BuilderLifecycle | None = None,
        outputs: OutputSink | None = None,
    ) -> None:
        self.settings = settings
        self.inputs = inputs
        self.runner = runner or ExecRunner()
        self.provisioner = provisioner or ToolProvisioner(self.runner)
        self.lifecycle = lifecycle or BuilderLifecycle(self.runner)
        self.outputs = outputs or OutputSink(settings.output_file)
        self.state = RunState()

    def _save_state(self) -> None:
        self.state.save(self.settings.state_path)

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    async def setup(self) -> bool:
        """Run the setup phase.

        The first error stops setup and is reported as the job's only
        failure message.

        Returns:
            ``True`` on success.
        """
        try:
            await self._setup()
        except Exception as exc:  # noqa: BLE001
            print_error(str(exc))
            return False
        return True

    async def _setup(self) -> None:
        if self.inputs is None:
            raise ValueError("Setup requires inputs")
        inputs = self.inputs
        mark_post(self.settings)

        with group("Docker info"):
            await self.runner.run("docker", ["version"])
            await self.runner.run("docker", ["info"])

        await self.provisioner.ensure_available(inputs.version, self.settings.config_home)
        version = await get_version(self.runner)
        print_info(f"Using buildx {version}")
        self.lifecycle.mark_provisioned()

        name = self.lifecycle.builder_name_for(inputs)
        self.outputs.set("name", name)

        if inputs.driver is not Driver.DOCKER:
            # Recorded before creation so a half-created builder is still removed.
            self.state.builder_name = name
            self._save_state()

            with group("Creating a new builder instance"):
                await self.lifecycle.create(name, inputs, version)
            with group("Booting builder"):
                await self.lifecycle.boot(name, version)

        if inputs.install:
            with group("Setting buildx as default builder"):
                await self.lifecycle.install_as_default()

        with group("Inspect builder"):
            builder = await self.lifecycle.inspect(name)
            print_summary_table(
                {"name": builder.name, **builder.outputs()}, title="Builder"
            )
            for key, value in builder.outputs().items():
                self.outputs.set(key, value)

        if inputs.driver is Driver.DOCKER_CONTAINER:
            container = f"buildx_buildkit_{builder.node_name}"
            self.state.container_name = container
            with group("BuildKit version"):
                print_info(await self.lifecycle.buildkit_version(container))

        self.state.debug = self.settings.debug or builder.debug
        self._save_state()
        print_success(f"Builder {builder.name} is ready")

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    async def cleanup(self) -> None:
        """Run the post phase. Never raises; problems become warnings."""
        path = self.settings.state_path
        try:
            self.state = RunState.load(path)
        except (ValueError, OSError) as exc:
            print_warning(f"Cannot read state from {path}: {exc}")
            return

        if self.state.debug and self.state.container_name:
            with group("BuildKit container logs"):
                await self.lifecycle.dump_logs(self.state.container_name)

        if self.state.builder_name:
            with group("Removing builder"):
                await self.lifecycle.remove(self.state.builder_name)

        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            print_warning(f"Cannot remove state file {path}: {exc}")

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def run(self, post: bool = False) -> int:
        """Run the requested phase and return the process exit code."""
        if post:
            await self.cleanup()
            return 0
        return 0 if await self.setup() else 1


# ---------------------------------------------------------------------------
# CLI entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """CLI entry point for ``python -m setup_buildx``."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Set up (or, in the post phase, remove) a Docker Buildx builder",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "Inputs are read from INPUT_* environment variables, e.g.\n"
            "  INPUT_DRIVER=docker-container INPUT_USE=true python -m setup_buildx\n"
        ),
    )
    parser.add_argument(
        "--post",
        action="store_true",
        help="Run the cleanup phase regardless of STATE_isPost",
    )
    args = parser.parse_args()

    settings = Settings.from_env()
    post = args.post or is_post()

    inputs: Inputs | None = None
    if not post:
        try:
            inputs = Inputs.from_env()
        except ValidationError as exc:
            print_error(f"Invalid input: {exc}")
            sys.exit(1)

    pipeline = Pipeline(settings, inputs=inputs)
    sys.exit(asyncio.run(pipeline.run(post=post)))


if __name__ == "__main__":
    main()
