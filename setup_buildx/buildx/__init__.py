"""Buildx tooling: version gates, binary provisioning and builder lifecycle.

Key classes:
    ToolProvisioner   - Build, download or keep the buildx plugin
    ReleaseDownloader - GitHub release lookup and download
    BuilderLifecycle  - Create/boot/inspect/remove a builder instance
    Builder           - Parsed ``docker buildx inspect`` report
"""

from .builder import (
    DEFAULT_BUILDER,
    Builder,
    BuilderLifecycle,
    BuilderNode,
    LifecycleState,
    parse_inspect,
)
from .installer import ProvisionAction, ReleaseDownloader, ToolProvisioner, release_platform
from .version import FEATURE_GATES, get_version, parse_version, satisfies, supports

__all__ = [
    # Version gates
    "FEATURE_GATES",
    "get_version",
    "parse_version",
    "satisfies",
    "supports",
    # Provisioning
    "ToolProvisioner",
    "ReleaseDownloader",
    "ProvisionAction",
    "release_platform",
    # Builder lifecycle
    "BuilderLifecycle",
    "LifecycleState",
    "Builder",
    "BuilderNode",
    "DEFAULT_BUILDER",
    "parse_inspect",
]
