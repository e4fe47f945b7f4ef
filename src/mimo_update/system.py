"""
Host preparation outside the transaction: package dependencies and
cloud-init. Both are idempotent and safe to re-run.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from .context import UpdateContext
from .runner import CommandRunner

logger = logging.getLogger(__name__)

CLOUD_INIT_SERVICES = [
    "cloud-init",
    "cloud-final",
    "cloud-config",
    "cloud-init-local",
]


def find_pkgdep_script(context: UpdateContext) -> Optional[Path]:
    """
    Locate pkgdep.sh, preferring the freshly unpacked bundle over the
    copy installed by a previous run.
    """
    candidates = [
        context.work_dir / "file" / "SPDK_for_MIMO" / "scripts" / "pkgdep.sh",
        context.mimo_root / "scripts" / "pkgdep.sh",
    ]
    for path in candidates:
        if path.is_file():
            return path
    return None


def install_dependencies(context: UpdateContext, runner: CommandRunner) -> bool:
    """
    Refresh apt metadata and run pkgdep.sh.

    Failures are logged as warnings; the update continues either way.

    Returns:
        True if the dependency script ran and exited 0.
    """
    script = find_pkgdep_script(context)
    if script is None:
        logger.warning("Dependency script not found, skipping")
        return False

    logger.info("Running 'apt update'...")
    if runner.stream(["apt", "update"]) != 0:
        logger.warning("'apt update' failed")
    else:
        logger.info("'apt update' completed")

    logger.info("Installing package dependencies; this may take some time...")
    if runner.stream(["bash", str(script)]) != 0:
        logger.warning("Dependency installation failed")
        return False

    logger.info("Dependencies installed")
    return True


def disable_cloud_init(context: UpdateContext, runner: CommandRunner) -> Path:
    """
    Stop and disable cloud-init and drop its ``cloud-init.disabled`` marker.

    stop/disable results are ignored (the units may not exist); only
    failing to write the marker is an error.

    Returns:
        Path of the marker file.

    Raises:
        OSError: the marker could not be written.
    """
    for service in CLOUD_INIT_SERVICES:
        runner.succeeds(["systemctl", "stop", service])
        runner.succeeds(["systemctl", "disable", service])

    context.cloud_dir.mkdir(parents=True, exist_ok=True)
    marker = context.cloud_dir / "cloud-init.disabled"
    marker.write_text("disabled\n")
    logger.info("cloud-init disabled")
    return marker
