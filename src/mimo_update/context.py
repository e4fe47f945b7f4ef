"""
Per-run installer context.

All host paths the installer touches are collected in one UpdateContext that
is built once at start-up and passed explicitly to every collaborator.
Tests construct it with ``tmp_path`` roots instead of the real system paths.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, MutableMapping, Optional

from mimo_utils.atomic_write import atomic_write_text, unique_backup_dir

from .templates import TemplateLoader

logger = logging.getLogger(__name__)

DEFAULT_MIMO_ROOT = Path("/usr/local/mimo")
DEFAULT_WORK_DIR = Path("/tmp/mimo-output")
PROFILE_PATH = Path("/etc/profile.d/mimo_root.sh")
MIMO_ROOT_VAR = "MIMO_ROOT"


@dataclass
class UpdateContext:
    """Host paths and settings for one installer run."""

    mimo_root: Path = DEFAULT_MIMO_ROOT
    work_dir: Path = DEFAULT_WORK_DIR
    grub_file: Path = Path("/etc/default/grub")
    initramfs_script: Path = Path("/etc/initramfs-tools/scripts/init-top/mimo-msg")
    motd_dir: Path = Path("/etc/update-motd.d")
    backup_root: Path = Path("/var/lib/mimo/backup")
    profile_path: Path = PROFILE_PATH
    target_socket: Path = Path("/var/tmp/spdk.sock")
    target_config_path: Path = Path("/tmp/spdk_full_config.json")
    cloud_dir: Path = Path("/etc/cloud")
    bundle_archive: Path = Path("/usr/share/mimo/resources.tar.gz")
    bundle_checksum: Optional[Path] = None
    boot_banner: str = "Initializing MIMO Live Server (initramfs)"
    run_backup_dir: Path = field(init=False)

    def __post_init__(self):
        # Fixed once so every registrar in this run shares one backup tree.
        self.run_backup_dir = unique_backup_dir(self.backup_root)
        if self.bundle_checksum is None:
            self.bundle_checksum = self.bundle_archive.with_name(
                self.bundle_archive.name.replace(".tar.gz", "") + ".sha256"
            )

    @property
    def config_path(self) -> Path:
        """config.json inside the unpacked bundle."""
        return self.work_dir / "config.json"

    @property
    def rpc_script(self) -> Path:
        return self.mimo_root / "scripts" / "rpc.py"

    @property
    def target_binary(self) -> Path:
        return self.mimo_root / "build" / "bin" / "spdk_tgt"

    @classmethod
    def from_environment(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides,
    ) -> "UpdateContext":
        """
        Build a context from the process environment.

        ``MIMO_ROOT`` selects the install root; anything else comes from
        ``overrides`` or the class defaults.
        """
        environ = os.environ if environ is None else environ
        root = environ.get(MIMO_ROOT_VAR) or str(DEFAULT_MIMO_ROOT)
        overrides.setdefault("mimo_root", Path(root))
        return cls(**overrides)


def ensure_mimo_root(
    environ: MutableMapping[str, str],
    profile_path: Path = PROFILE_PATH,
    templates: Optional[TemplateLoader] = None,
) -> Path:
    """
    Make sure MIMO_ROOT is set for this process and future logins.

    When the variable is missing it is set to the default and persisted in
    a profile.d script. Failing to persist only logs a warning.

    Returns:
        The effective MIMO_ROOT.
    """
    current = environ.get(MIMO_ROOT_VAR)
    if current:
        return Path(current)

    root = DEFAULT_MIMO_ROOT
    environ[MIMO_ROOT_VAR] = str(root)
    logger.info(f"MIMO_ROOT set to {root}")

    templates = templates or TemplateLoader()
    try:
        content = templates.render("mimo-root.sh.j2", mimo_root=root)
        atomic_write_text(profile_path, content, mode=0o644)
        logger.info(f"MIMO_ROOT persisted to {profile_path}")
    except OSError as e:
        logger.warning(f"Failed to persist MIMO_ROOT (will continue): {e}")

    return root
