"""
Bootstrap-time notices.

Collected when the tool starts (``driftfix check``) so an operator learns
about a version mismatch or unapplied migrations. Never runs migrations.
"""

from dataclasses import dataclass

from packaging.version import InvalidVersion, Version

from driftfix.migrations.runner import MigrationRunner
from driftfix.scopes import Scope
from driftfix.utils.logging import get_logger

logger = get_logger("driftfix.bootstrap")


@dataclass(frozen=True)
class Notice:
    level: str  # "error" | "warning" | "info"
    message: str
    scope_id: str | None = None


def release_line(version: Version) -> tuple[int, int]:
    return version.major, version.minor


def check_version_alignment(latest: Version, companion_version: str | None) -> Notice | None:
    """
    Compare the newest migration release line with the companion plugin's.

    Returns:
        An error notice when they differ, otherwise None
    """
    if not companion_version:
        return None
    try:
        companion = Version(str(companion_version))
    except InvalidVersion:
        return Notice("error", f"Companion version '{companion_version}' is not a valid version")
    if release_line(companion) != release_line(latest):
        return Notice(
            "error",
            f"GatherPress {companion} and driftfix migrations {latest} must be the same version "
            f"({companion.major}.{companion.minor} != {latest.major}.{latest.minor})",
        )
    return None


def collect_notices(
    runner: MigrationRunner,
    scopes: list[Scope],
    companion_version: str | None = None,
) -> list[Notice]:
    """
    Gather notices for the operator.

    Args:
        runner: Runner whose registry and state are inspected
        scopes: Scopes to check for pending steps
        companion_version: Installed companion plugin version, if known
    """
    notices: list[Notice] = []
    alignment = check_version_alignment(runner.registry.latest_version(), companion_version)
    if alignment:
        notices.append(alignment)

    for scope in scopes:
        status = runner.status(scope)
        if status.pending:
            notices.append(
                Notice(
                    "warning",
                    f"{len(status.pending)} migration step(s) pending for {scope.id} "
                    f"(at {status.watermark.version}); run 'driftfix migrate run'",
                    scope.id,
                )
            )

    for notice in notices:
        logger.debug(f"Notice [{notice.level}] {notice.message}")
    return notices
