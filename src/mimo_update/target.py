"""
Storage target daemon control.

A target update has to stop the running storage daemon, keep its live
configuration, and start it again from the new binaries with the same
arguments. The captured process details are returned to the caller
instead of being kept in module state.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from mimo_common.exceptions import CommandError, TargetError

from .context import UpdateContext
from .runner import CommandRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TargetProcess:
    """The daemon as it was running before the update."""
    pid: int
    command: str

    @property
    def args(self) -> List[str]:
        return self.command.split()


def is_running(context: UpdateContext) -> bool:
    """The daemon is considered running while its RPC socket exists."""
    return context.target_socket.exists()


def find_target_pid(context: UpdateContext, runner: CommandRunner) -> int:
    """
    PID of the process holding the RPC socket.

    Raises:
        TargetError: lsof failed or found no process.
    """
    try:
        result = runner.run(["lsof", "-t", str(context.target_socket)])
    except CommandError as e:
        raise TargetError("Failed to check MIMO socket", cause=e)

    fields = result.stdout.split()
    if not fields:
        raise TargetError("No MIMO process found on socket")
    try:
        return int(fields[0])
    except ValueError:
        raise TargetError(f"Failed to parse MIMO pid from {fields[0]!r}")


def save_config_and_stop(context: UpdateContext, runner: CommandRunner) -> TargetProcess:
    """
    Save the daemon's configuration, then kill it.

    The configuration is dumped through rpc.py before the process is
    stopped, so a failed save leaves the daemon running.

    Raises:
        TargetError: any step failed.
    """
    pid = find_target_pid(context, runner)
    logger.info(f"MIMO process detected (pid={pid})")

    try:
        ps = runner.run(["ps", "-p", str(pid), "-o", "args="])
    except CommandError as e:
        raise TargetError("Failed to obtain MIMO process info", cause=e)
    process = TargetProcess(pid=pid, command=ps.stdout.strip())

    if not context.rpc_script.exists():
        raise TargetError(f"Required helper not found: {context.rpc_script}")

    try:
        saved = runner.run([str(context.rpc_script), "save_config", "-i", "2"])
    except CommandError as e:
        raise TargetError("Failed to save MIMO configuration", cause=e)
    context.target_config_path.parent.mkdir(parents=True, exist_ok=True)
    context.target_config_path.write_text(saved.stdout)
    logger.info(f"Configuration saved to {context.target_config_path}")

    logger.info("Stopping MIMO process")
    try:
        runner.run(["kill", "-9", str(pid)])
    except CommandError as e:
        raise TargetError("Failed to stop MIMO process", cause=e)
    logger.info("MIMO process stopped")
    return process


def restart_command(context: UpdateContext, process: TargetProcess) -> List[str]:
    """
    New command line: the installed binary with the saved config, followed
    by the original arguments minus their own ``-c <file>`` pair.
    """
    rest: List[str] = []
    args = process.args[1:]
    skip = False
    for i, arg in enumerate(args):
        if skip:
            skip = False
            continue
        if arg == "-c" and i + 1 < len(args):
            skip = True
            continue
        rest.append(arg)
    return [str(context.target_binary), "-c", str(context.target_config_path)] + rest


def restart_target(
    context: UpdateContext,
    process: TargetProcess,
    runner: CommandRunner,
) -> int:
    """
    Start the daemon again in the background.

    Returns:
        PID of the new daemon.

    Raises:
        TargetError: the process could not be started.
    """
    cmd = restart_command(context, process)
    logger.info("Restarting MIMO service...")
    try:
        pid = runner.spawn(cmd)
    except OSError as e:
        raise TargetError("Failed to restart MIMO", cause=e)
    logger.info(f"MIMO restart initiated (pid={pid})")
    return pid
