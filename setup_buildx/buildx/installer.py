"""Make sure a usable ``docker buildx`` plugin is installed.

Three ways to end up with a binary, decided by ``ToolProvisioner.ensure_available``:

1. ``version`` is a git URL: build buildx from that source with the current
   buildx and install the result.
2. buildx is missing, or a version was asked for explicitly: download the
   GitHub release for this OS/architecture.
3. Otherwise keep the binary that is already there.

Installed binaries land in ``<config_home>/cli-plugins/docker-buildx`` where
the docker CLI discovers them as the ``buildx`` subcommand.
"""

from __future__ import annotations

import os
import platform
import shutil
import stat
import sys
import tempfile
from enum import Enum
from pathlib import Path

import httpx

from ..config import plugins_dir
from ..errors import CommandExecutionError, InstallError, UnsupportedPlatformError
from ..runner import ExecRunner
from ..utils import console, group, is_valid_url

RELEASES_API = "https://api.github.com/repos/docker/buildx/releases"
DOWNLOAD_URL = "https://github.com/docker/buildx/releases/download/{tag}/{filename}"
PLUGIN_NAME = "docker-buildx"

_ARCHITECTURES: dict[str, str] = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv7l": "arm-v7",
    "armv6l": "arm-v6",
    "ppc64le": "ppc64le",
    "s390x": "s390x",
    "riscv64": "riscv64",
}


class ProvisionAction(str, Enum):
    """What ``ensure_available`` ended up doing."""

    BUILT = "built"
    INSTALLED = "installed"
    SKIPPED = "skipped"


def release_platform(system: str | None = None, machine: str | None = None) -> str:
    """Return the ``<os>-<arch>`` suffix of the release asset for this host.

    Raises:
        UnsupportedPlatformError: On anything but Linux, or an unknown CPU.
    """
    system = system if system is not None else sys.platform
    machine = (machine if machine is not None else platform.machine()).lower()

    if not system.lower().startswith("linux"):
        raise UnsupportedPlatformError(
            f"Installing buildx is only supported on Linux (got {system!r})"
        )
    arch = _ARCHITECTURES.get(machine)
    if arch is None:
        raise UnsupportedPlatformError(f"Unsupported CPU architecture: {machine!r}")
    return f"linux-{arch}"


class ReleaseDownloader:
    """Fetches buildx release binaries from GitHub."""

    def __init__(
        self,
        timeout: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=10.0),
            follow_redirects=True,
            headers={"Accept": "application/vnd.github+json"},
            transport=self.transport,
        )

    async def resolve_tag(self, client: httpx.AsyncClient, version: str) -> str:
        """Map ``latest`` or ``0.4.1``/``v0.4.1`` to the release tag name."""
        if version == "latest":
            url = f"{RELEASES_API}/latest"
        else:
            url = f"{RELEASES_API}/tags/v{version.lstrip('v')}"

        response = await client.get(url)
        if response.status_code == 404:
            raise InstallError(f"Cannot find buildx {version} release")
        response.raise_for_status()
        tag = response.json().get("tag_name", "")
        if not tag:
            raise InstallError(f"Release metadata for buildx {version} has no tag name")
        return tag

    async def fetch(self, version: str, platform_suffix: str, dest_dir: Path) -> Path:
        """Download the release binary for *version* into *dest_dir*.

        Returns:
            Path of the downloaded file.

        Raises:
            InstallError: If the release or asset does not exist, or on any
                network or filesystem error.
        """
        try:
            async with self._client() as client:
                tag = await self.resolve_tag(client, version)
                filename = f"buildx-{tag}.{platform_suffix}"
                url = DOWNLOAD_URL.format(tag=tag, filename=filename)
                console.print(f"Downloading [bold]{url}[/bold]")

                dest_dir.mkdir(parents=True, exist_ok=True)
                target = dest_dir / filename
                async with client.stream("GET", url) as response:
                    if response.status_code == 404:
                        raise InstallError(f"Release asset not found: {url}")
                    response.raise_for_status()
                    with target.open("wb") as fh:
                        async for chunk in response.aiter_bytes():
                            fh.write(chunk)
        except httpx.HTTPStatusError as exc:
            raise InstallError(
                f"GitHub returned HTTP {exc.response.status_code} for {exc.request.url}"
            ) from exc
        except httpx.HTTPError as exc:
            raise InstallError(f"Failed to download buildx {version}: {exc}") from exc
        except OSError as exc:
            raise InstallError(f"Failed to write buildx {version}: {exc}") from exc

        return target


class ToolProvisioner:
    """Guarantees a buildx plugin the rest of the run can call."""

    def __init__(
        self,
        runner: ExecRunner,
        downloader: ReleaseDownloader | None = None,
        system: str | None = None,
        machine: str | None = None,
    ) -> None:
        self.runner = runner
        self.downloader = downloader or ReleaseDownloader()
        self.system = system
        self.machine = machine

    async def is_available(self) -> bool:
        """Return ``True`` if ``docker buildx`` exits 0; warnings on stderr are ignored."""
        result = await self.runner.run_best_effort("docker", ["buildx"], silent=True)
        return result.success

    async def ensure_available(self, requested_version: str, config_home: Path) -> ProvisionAction:
        """Build, install or keep buildx according to *requested_version*.

        An already installed binary is trusted as-is when no version is
        requested; its version is not checked.
        """
        if is_valid_url(requested_version):
            with group("Build and install buildx"):
                await self.build(requested_version, config_home)
            return ProvisionAction.BUILT

        if requested_version or not await self.is_available():
            with group("Download and install buildx"):
                await self.install(requested_version or "latest", config_home)
            return ProvisionAction.INSTALLED

        return ProvisionAction.SKIPPED

    async def build(self, source_url: str, config_home: Path) -> Path:
        """Build buildx from a git source (``https://...git#ref``) and install it."""
        release_platform(self.system, self.machine)

        with tempfile.TemporaryDirectory(prefix="setup-buildx-") as tmp:
            out_dir = Path(tmp) / "out"
            try:
                await self.runner.run(
                    "docker",
                    [
                        "buildx", "build",
                        "--target", "binaries",
                        "--build-arg", "BUILDKIT_CONTEXT_KEEP_GIT_DIR=1",
                        "--output", f"type=local,dest={out_dir}",
                        source_url,
                    ],
                )
            except CommandExecutionError as exc:
                raise InstallError(f"Failed to build buildx from {source_url}: {exc}") from exc

            for name in (PLUGIN_NAME, "buildx"):
                candidate = out_dir / name
                if candidate.is_file():
                    return self.install_plugin(candidate, config_home)
        raise InstallError(f"Build of {source_url} produced no buildx binary")

    async def install(self, version: str, config_home: Path) -> Path:
        """Download the buildx release *version* (or ``latest``) and install it."""
        suffix = release_platform(self.system, self.machine)
        with tempfile.TemporaryDirectory(prefix="setup-buildx-") as tmp:
            binary = await self.downloader.fetch(version, suffix, Path(tmp))
            return self.install_plugin(binary, config_home)

    def install_plugin(self, binary: Path, config_home: Path) -> Path:
        """Copy *binary* into the docker CLI plugin directory and make it executable.

        Raises:
            InstallError: If the copy fails or the result is not executable.
        """
        directory = plugins_dir(config_home)
        target = directory / PLUGIN_NAME
        try:
            directory.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(binary, target)
            mode = target.stat().st_mode
            target.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH | stat.S_IRUSR)
        except OSError as exc:
            raise InstallError(f"Failed to install buildx plugin to {target}: {exc}") from exc

        if target.stat().st_size == 0 or not os.access(target, os.X_OK):
            raise InstallError(f"Installed buildx plugin is not executable: {target}")

        console.print(f"[green]Plugin installed to[/green] [bold]{target}[/bold]")
        return target
