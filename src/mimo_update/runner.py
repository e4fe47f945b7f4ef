"""
Subprocess wrapper used by registrars and the orchestrator.

Every external tool the installer touches (systemctl, update-grub, apt,
lsof...) goes through one CommandRunner so tests can substitute a fake.
"""

from __future__ import annotations

import logging
import subprocess
from typing import List, Optional, Sequence

from mimo_common.exceptions import CommandError

logger = logging.getLogger(__name__)


class CommandRunner:
    """Runs host commands with captured output."""

    def run(
        self,
        cmd: Sequence[str],
        check: bool = True,
        timeout: Optional[float] = None,
    ) -> subprocess.CompletedProcess:
        """
        Run a command and capture stdout/stderr as text.

        Args:
            cmd: Command and arguments
            check: Raise CommandError on non-zero exit
            timeout: Seconds before giving up (None waits forever)

        Raises:
            CommandError: non-zero exit with ``check``, or the binary is missing.
        """
        cmd = [str(c) for c in cmd]
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            raise CommandError(cmd[0], 127, "command not found")

        if check and result.returncode != 0:
            output = (result.stderr or result.stdout or "").strip()
            raise CommandError(" ".join(cmd), result.returncode, output)
        return result

    def succeeds(self, cmd: Sequence[str]) -> bool:
        """Run a command and report whether it exited 0, never raising."""
        try:
            return self.run(cmd, check=False).returncode == 0
        except CommandError:
            return False

    def stream(self, cmd: Sequence[str]) -> int:
        """
        Run a long command with stdio inherited from the installer.

        Returns:
            The exit code (127 if the binary is missing).
        """
        cmd = [str(c) for c in cmd]
        logger.debug(f"Streaming: {' '.join(cmd)}")
        try:
            return subprocess.run(cmd).returncode
        except FileNotFoundError:
            return 127

    def spawn(self, cmd: List[str]) -> int:
        """
        Start a background process that outlives the installer.

        Returns:
            PID of the new process.
        """
        cmd = [str(c) for c in cmd]
        logger.debug(f"Spawning: {' '.join(cmd)}")
        proc = subprocess.Popen(cmd, start_new_session=True)
        return proc.pid
