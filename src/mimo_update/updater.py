#!/usr/bin/env python3
"""
MIMO Update Manager

Drives a system or target update: unpack and verify the bundle, register
every change into one Transaction, run it, and tidy up.
"""

from __future__ import annotations

import logging
import os
import shutil
from enum import Enum
from typing import Callable, MutableMapping, Optional

from mimo_common.decorators import require_root, timed
from mimo_common.exceptions import ActionFailedError, MimoError, TargetError
from mimo_common.logging_config import LogContext

from .bundle import ResourceBundle
from .config import (
    FileOpsConfig,
    InitConfig,
    load_file_ops_config,
    load_optional_init_config,
    load_version_config,
    read_mimo_version,
    version_less,
)
from .context import UpdateContext, ensure_mimo_root
from .registrars import (
    register_copy_actions,
    register_grub_actions,
    register_init_file_actions,
    register_motd_actions,
    register_service_actions,
    service_units,
)
from .runner import CommandRunner
from .system import disable_cloud_init, install_dependencies
from .target import (
    TargetProcess, is_running, restart_command, restart_target, save_config_and_stop,
)
from .templates import TemplateLoader
from .transaction import Transaction

logger = logging.getLogger(__name__)


class UpdateStatus(Enum):
    """Status of an update operation."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    INSTALLING_DEPENDENCIES = "installing_dependencies"
    APPLYING = "applying"
    FINALIZING = "finalizing"
    STOPPING_TARGET = "stopping_target"
    RESTARTING_TARGET = "restarting_target"
    COMPLETE = "complete"
    CANCELLED = "cancelled"
    FAILED = "failed"


class _Cancelled(Exception):
    """Operator declined a confirmation prompt."""


def _always_yes(_message: str) -> bool:
    return True


class UpdateManager:
    """
    Runs one update against the host.

    System update workflow:
    1. Ensure MIMO_ROOT, verify and extract the resource bundle
    2. Install package dependencies (best effort)
    3. Register MOTD, file copies, bootloader, init files and services
    4. Run the transaction; any failure rolls back everything applied
    5. Disable cloud-init and remove the work directory

    Target update workflow:
    1. Verify and extract, compare versions, ask for confirmation
    2. Stop the running storage daemon after saving its configuration
    3. Copy the new files transactionally
    4. Restart the daemon with its saved configuration
    """

    def __init__(
        self,
        context: UpdateContext,
        runner: Optional[CommandRunner] = None,
        bundle: Optional[ResourceBundle] = None,
        confirm: Optional[Callable[[str], bool]] = None,
        templates: Optional[TemplateLoader] = None,
        environ: Optional[MutableMapping[str, str]] = None,
    ):
        self.context = context
        self.runner = runner or CommandRunner()
        self.bundle = bundle or ResourceBundle(context.bundle_archive, context.bundle_checksum)
        self.confirm = confirm or _always_yes
        self.templates = templates or TemplateLoader()
        self.environ = os.environ if environ is None else environ
        self.status = UpdateStatus.IDLE
        self._progress_callback: Optional[Callable[[UpdateStatus, str], None]] = None

    def set_progress_callback(self, callback: Callable[[UpdateStatus, str], None]):
        """
        Set callback for progress updates.

        Args:
            callback: Function(status, message)
        """
        self._progress_callback = callback

    def _notify(self, status: UpdateStatus, message: str):
        self.status = status
        logger.debug(f"{status.value}: {message}")
        if self._progress_callback:
            self._progress_callback(status, message)

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def prepare_bundle(self) -> None:
        """Verify the bundle checksum, then unpack it into the work dir."""
        self._notify(UpdateStatus.EXTRACTING, "Verifying resources...")
        self.bundle.verify()
        self._notify(UpdateStatus.EXTRACTING, "Extracting resources...")
        self.bundle.extract(self.context.work_dir)

    def remove_work_dir(self) -> None:
        try:
            shutil.rmtree(self.context.work_dir)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to delete temporary directory {self.context.work_dir}: {e}")

    def discard_backups(self) -> None:
        """Drop this run's backups once the transaction committed."""
        backup_dir = self.context.run_backup_dir
        if backup_dir.exists():
            shutil.rmtree(backup_dir, ignore_errors=True)
            logger.debug(f"Removed backups in {backup_dir}")

    def _run_transaction(self, txn: Transaction) -> None:
        try:
            txn.run()
        except ActionFailedError as e:
            if e.rollback_failures:
                logger.error(
                    f"Rollback was incomplete; original files are kept in {self.context.run_backup_dir}"
                )
            else:
                self.discard_backups()
            raise
        finally:
            txn.cleanup()
        self.discard_backups()

    # ------------------------------------------------------------------
    # System update
    # ------------------------------------------------------------------

    def build_transaction(
        self,
        config: FileOpsConfig,
        init_config: Optional[InitConfig] = None,
    ) -> Transaction:
        """
        Register every system change in application order:
        MOTD, file copies, bootloader/initramfs, init files, services.
        """
        ctx = self.context
        init_config = init_config or InitConfig()
        txn = Transaction()

        register_motd_actions(txn, ctx.motd_dir, ctx.run_backup_dir)
        register_copy_actions(txn, config.file_mappings, ctx.run_backup_dir)
        register_grub_actions(
            txn,
            ctx.grub_file,
            ctx.initramfs_script,
            self.runner,
            self.templates,
            ctx.boot_banner,
        )
        register_init_file_actions(txn, init_config)
        units = service_units(config.file_mappings, list(config.services) + list(init_config.services))
        register_service_actions(txn, units, self.runner)

        logger.info(f"Prepared {len(txn)} update actions")
        return txn

    @timed
    @require_root
    def run_system_update(self) -> None:
        """
        Perform a full system update.

        Raises:
            MimoError: any failure; for transaction failures the error is an
                ActionFailedError naming the action and every failed undo.
        """
        with LogContext(mode="sys-update", bundle=str(self.bundle.archive)):
            try:
                ensure_mimo_root(self.environ, self.context.profile_path, self.templates)
                self.prepare_bundle()

                self._notify(UpdateStatus.INSTALLING_DEPENDENCIES, "Installing dependencies...")
                install_dependencies(self.context, self.runner)

                config = load_file_ops_config(self.context.config_path)
                init_config = load_optional_init_config(self.context.config_path)
                txn = self.build_transaction(config, init_config)

                self._notify(UpdateStatus.APPLYING, "Applying update...")
                self._run_transaction(txn)

                self._notify(UpdateStatus.FINALIZING, "Disabling cloud-init...")
                try:
                    disable_cloud_init(self.context, self.runner)
                except OSError as e:
                    raise MimoError("Disabling cloud-init failed", code="CLOUD_INIT_FAILED", cause=e)

                self._notify(UpdateStatus.COMPLETE, "System update complete")
            except MimoError as e:
                self._notify(UpdateStatus.FAILED, e.message)
                raise
            finally:
                self.remove_work_dir()

    # ------------------------------------------------------------------
    # Target update
    # ------------------------------------------------------------------

    def _stop_target(self) -> Optional[TargetProcess]:
        """
        Stop the running daemon after confirmation.

        Returns:
            The captured process, or None if nothing was running.

        Raises:
            _Cancelled: the operator declined to stop the daemon.
            TargetError: saving the config or stopping the daemon failed.
        """
        if not is_running(self.context):
            return None
        logger.info("Detected running MIMO instance")
        if not self.confirm("Stop MIMO now? [y/N]: "):
            raise _Cancelled("Please stop I/O before updating")
        self._notify(UpdateStatus.STOPPING_TARGET, "Stopping MIMO...")
        return save_config_and_stop(self.context, self.runner)

    def _restart_target(self, process: Optional[TargetProcess], failed_update: bool = False) -> None:
        """
        Bring the stopped daemon back.

        When the update itself already failed, a restart failure is logged
        and swallowed so the caller re-raises the update's own error.

        Raises:
            TargetError: the restart failed after a successful update.
        """
        if process is None:
            logger.info("No MIMO process was stopped; restart skipped")
            return
        self._notify(UpdateStatus.RESTARTING_TARGET, "Restarting MIMO...")
        try:
            restart_target(self.context, process, self.runner)
        except TargetError as e:
            if not failed_update:
                raise
            logger.error(f"{e.message} after the failed update: {e.cause}")
            logger.error(f"Start it by hand: {' '.join(restart_command(self.context, process))}")

    @timed
    @require_root
    def run_target_update(self) -> bool:
        """
        Replace the storage target's files.

        Returns:
            True if the update ran, False if the operator cancelled.

        Raises:
            MimoError: extraction, daemon control, or the copy transaction failed.
        """
        with LogContext(mode="target-update", bundle=str(self.bundle.archive)):
            try:
                ensure_mimo_root(self.environ, self.context.profile_path, self.templates)
                self.prepare_bundle()

                versions = load_version_config(self.context.config_path)
                installed = read_mimo_version(versions.installed_version_file)
                new = read_mimo_version(versions.new_version_file)
                logger.info(f"Installed version: {installed}")
                logger.info(f"New version      : {new}")
                if version_less(new, installed):
                    logger.warning(f"{new} is older than the installed {installed}")

                if not self.confirm("Proceed with update? [y/N]: "):
                    self._notify(UpdateStatus.CANCELLED, "Update cancelled")
                    return False

                try:
                    process = self._stop_target()
                except _Cancelled as c:
                    logger.info(str(c))
                    self._notify(UpdateStatus.CANCELLED, str(c))
                    return False

                config = load_file_ops_config(self.context.config_path)
                txn = Transaction()
                register_copy_actions(txn, config.file_mappings, self.context.run_backup_dir)

                self._notify(UpdateStatus.APPLYING, "Applying file mappings...")
                # Old or new, the daemon comes back with its saved config.
                try:
                    self._run_transaction(txn)
                except BaseException:
                    self._restart_target(process, failed_update=True)
                    raise
                self._restart_target(process)

                self._notify(UpdateStatus.COMPLETE, "Target update complete")
                return True
            except MimoError as e:
                self._notify(UpdateStatus.FAILED, e.message)
                raise
            finally:
                self.remove_work_dir()
