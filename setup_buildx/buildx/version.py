"""Installed buildx version and the feature gates that depend on it.

``docker buildx version`` does not print a bare semver::

    github.com/docker/buildx v0.4.1 bda4882a65349ca359216b135896bddc1d92461c
    github.com/docker/buildx 0.3.1+azure c9b3b4b

so the first ``MAJOR.MINOR.PATCH`` token is extracted and compared with
``packaging``. Flags introduced by newer buildx releases are listed once in
``FEATURE_GATES``; command builders ask ``supports()`` instead of comparing
versions themselves.
"""

from __future__ import annotations

import re

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from ..errors import VersionParseError
from ..runner import ExecRunner

_VERSION_RE = re.compile(
    r"(?<!\d)v?(?P<core>\d+\.\d+\.\d+)(?:-(?P<pre>[0-9A-Za-z.]+))?"
)

FEATURE_GATES: dict[str, str] = {
    "create --driver-opt": ">=0.3.0",
    "create --buildkitd-flags": ">=0.3.0",
    "inspect --builder": ">=0.4.0",
}


def parse_version(text: str) -> Version:
    """Extract the first semantic version embedded in *text*.

    A prerelease suffix (``-rc1``) is kept when ``packaging`` understands it,
    otherwise only the ``MAJOR.MINOR.PATCH`` core is used.

    Raises:
        VersionParseError: If *text* holds no ``X.Y.Z`` version.
    """
    match = _VERSION_RE.search(text)
    if match is None:
        raise VersionParseError(text)

    core = match.group("core")
    pre = match.group("pre")
    if pre:
        try:
            return Version(f"{core}-{pre}")
        except InvalidVersion:
            pass
    return Version(core)


async def get_version(runner: ExecRunner) -> Version:
    """Ask the installed buildx for its version."""
    result = await runner.run("docker", ["buildx", "version"], silent=True)
    return parse_version(result.stdout)


def satisfies(version: Version, constraint: str) -> bool:
    """Return ``True`` if *version* meets a constraint such as ``>=0.3.0``.

    The ``≥`` spelling is accepted as well. Prereleases are compared by
    ordering alone, so ``0.5.0-rc1`` satisfies ``>=0.4.0``.
    """
    normalized = constraint.replace("≥", ">=").replace(" ", "")
    try:
        specifier = SpecifierSet(normalized)
    except InvalidSpecifier as exc:
        raise ValueError(f"Invalid version constraint: {constraint!r}") from exc
    return specifier.contains(version, prereleases=True)


def supports(version: Version, feature: str) -> bool:
    """Return ``True`` if buildx *version* understands *feature*.

    Raises:
        KeyError: If *feature* has no entry in ``FEATURE_GATES``.
    """
    return satisfies(version, FEATURE_GATES[feature])
