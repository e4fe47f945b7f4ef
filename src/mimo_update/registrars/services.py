"""
systemd service registrar.

Enables the units shipped by the bundle. It must be registered after the
file copies so the unit files are already in place when systemd reloads.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List

from mimo_common.exceptions import CommandError

from ..config import FileMapping
from ..runner import CommandRunner
from ..transaction import Action, Transaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReloadContext:
    runner: CommandRunner


@dataclass(frozen=True)
class ServiceContext:
    unit: str
    was_enabled: bool
    runner: CommandRunner


def service_units(mappings: Iterable[FileMapping], extra: Iterable[str] = ()) -> List[str]:
    """
    Unit names to enable: every ``.service`` destination, then ``extra``.

    Order of first appearance is kept; duplicates are dropped.
    """
    units: List[str] = []
    for mapping in mappings:
        name = Path(mapping.dst).name
        if name.lower().endswith(".service") and name not in units:
            units.append(name)
    for name in extra:
        if name not in units:
            units.append(name)
    return units


def _daemon_reload(ctx: ReloadContext) -> None:
    ctx.runner.run(["systemctl", "daemon-reload"])


def _reload_after_undo(ctx: ReloadContext) -> None:
    try:
        ctx.runner.run(["systemctl", "daemon-reload"])
    except CommandError as e:
        logger.warning(f"daemon-reload during rollback failed: {e}")


def _enable_service(ctx: ServiceContext) -> None:
    ctx.runner.run(["systemctl", "enable", ctx.unit])
    # Non-blocking start; a unit that fails to come up is not fatal here.
    try:
        ctx.runner.run(["systemctl", "start", "--no-block", ctx.unit])
    except CommandError as e:
        logger.warning(f"Start of {ctx.unit} failed: {e}")
    logger.info(f"Enabled {ctx.unit}")


def _disable_service(ctx: ServiceContext) -> None:
    if ctx.was_enabled:
        return
    ctx.runner.run(["systemctl", "disable", "--now", ctx.unit])


def register_service_actions(
    txn: Transaction,
    units: Iterable[str],
    runner: CommandRunner,
) -> int:
    """
    Register a daemon-reload followed by one enable action per unit.

    Each unit's current enablement is recorded now so undo only disables
    units this run turned on.

    Returns:
        Number of units registered (0 registers nothing at all).
    """
    units = list(units)
    if not units:
        return 0

    txn.add(Action(
        name="systemd daemon-reload",
        do=_daemon_reload,
        undo=_reload_after_undo,
        context=ReloadContext(runner=runner),
    ))
    for unit in units:
        was_enabled = runner.succeeds(["systemctl", "is-enabled", "--quiet", unit])
        txn.add(Action(
            name=f"enable {unit}",
            do=_enable_service,
            undo=_disable_service,
            context=ServiceContext(unit=unit, was_enabled=was_enabled, runner=runner),
        ))
    return len(units)
