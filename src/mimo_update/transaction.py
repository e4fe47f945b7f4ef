#!/usr/bin/env python3
"""
MIMO Transaction Engine

Runs an ordered list of reversible actions. If any forward step fails, every
step that already completed is compensated in reverse order before the
failure is reported.

Lifecycle::

    EMPTY -> POPULATED -> RUNNING -> COMMITTED | ROLLED_BACK -> CLEANED

A transaction is single-use. Build a new one for every update run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

from mimo_common.exceptions import (
    ActionFailedError,
    RollbackError,
    TransactionStateError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Action:
    """
    One reversible step.

    ``do`` performs the mutation and raises on failure. ``undo`` compensates
    for it and must tolerate being called when ``do`` never completed; it
    raises only when the host was left in an unexpected state.

    Both callables receive ``context``, the immutable state captured by the
    registrar that built the action (backup paths, original file bytes...).
    """
    name: str
    do: Callable[[Any], None]
    undo: Callable[[Any], None]
    context: Any = None

    def apply(self) -> None:
        self.do(self.context)

    def revert(self) -> None:
        self.undo(self.context)


class TransactionState(Enum):
    """Lifecycle state of a transaction."""
    EMPTY = "empty"
    POPULATED = "populated"
    RUNNING = "running"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    CLEANED = "cleaned"


@dataclass(frozen=True)
class RollbackFailure:
    """An undo that raised during a rollback walk."""
    action_name: str
    cause: BaseException

    def __str__(self) -> str:
        return f"{self.action_name}: {self.cause}"


class Transaction:
    """
    Ordered container of actions with rollback-on-failure semantics.

    Insertion order is execution order; later actions may rely on earlier
    ones having been applied (a unit file is copied before it is enabled).
    """

    def __init__(self):
        self._pending: List[Action] = []
        self._executed: List[Action] = []
        self.state = TransactionState.EMPTY

    @property
    def pending(self) -> Tuple[Action, ...]:
        return tuple(self._pending)

    @property
    def executed(self) -> Tuple[Action, ...]:
        return tuple(self._executed)

    def __len__(self) -> int:
        return len(self._pending)

    def add(self, action: Optional[Action]) -> None:
        """
        Append an action.

        ``None`` is ignored so registrars can pass through optional steps.

        Raises:
            TransactionStateError: the transaction already ran or was cleaned.
        """
        if self.state not in (TransactionState.EMPTY, TransactionState.POPULATED):
            raise TransactionStateError("add to", self.state.value)
        if action is None:
            return
        self._pending.append(action)
        self.state = TransactionState.POPULATED

    def run(self) -> None:
        """
        Apply every pending action in order.

        On the first failure the remaining actions are skipped, the applied
        ones are undone newest-first, and ActionFailedError is raised naming
        the failed action, its cause, and any undo that also failed. An
        interrupt (KeyboardInterrupt, SystemExit) is re-raised unchanged once
        the applied actions are undone.

        Raises:
            TransactionStateError: called twice, or after cleanup.
            ActionFailedError: an action's ``do`` raised.
        """
        if self.state not in (TransactionState.EMPTY, TransactionState.POPULATED):
            raise TransactionStateError("run", self.state.value)

        self.state = TransactionState.RUNNING
        self._executed = []
        total = len(self._pending)

        for index, action in enumerate(self._pending, start=1):
            logger.debug(f"[{index}/{total}] {action.name}")
            try:
                action.apply()
            except Exception as e:
                logger.error(f"Action '{action.name}' failed: {e}")
                failures = self._rollback()
                raise ActionFailedError(action.name, e, failures) from e
            except BaseException as e:
                # Ctrl-C or SystemExit: unwind, then let the interrupt through.
                logger.error(f"Action '{action.name}' interrupted ({type(e).__name__})")
                self._rollback()
                raise
            self._executed.append(action)

        self.state = TransactionState.COMMITTED
        logger.debug(f"Transaction committed ({total} actions)")

    def rollback(self, include_committed: bool = False) -> None:
        """
        Undo every executed action, newest first.

        A committed transaction is left alone unless ``include_committed``
        is set, so a stray rollback after success does not unwind the update.

        Raises:
            RollbackError: one or more undo operations failed. Every executed
                action was still attempted.
        """
        if self.state is TransactionState.COMMITTED and not include_committed:
            logger.debug("Rollback requested on committed transaction; nothing to do")
            return
        if self.state is TransactionState.RUNNING:
            raise TransactionStateError("roll back", self.state.value)

        failures = self._rollback()
        if failures:
            raise RollbackError(failures)

    def _rollback(self) -> List[RollbackFailure]:
        failures: List[RollbackFailure] = []
        if not self._executed:
            if self.state is not TransactionState.CLEANED:
                self.state = TransactionState.ROLLED_BACK
            return failures

        logger.warning(f"Rolling back {len(self._executed)} action(s)")
        for action in reversed(self._executed):
            try:
                action.revert()
                logger.debug(f"Undid '{action.name}'")
            except Exception as e:
                logger.error(f"Rollback of '{action.name}' failed: {e}")
                failures.append(RollbackFailure(action.name, e))

        self._executed = []
        self.state = TransactionState.ROLLED_BACK

        if failures:
            logger.error(
                f"Rollback finished with {len(failures)} failure(s); "
                "manual intervention may be required"
            )
        else:
            logger.info("Rollback complete")
        return failures

    def cleanup(self) -> None:
        """Release all actions. The transaction cannot be used afterwards."""
        self._pending = []
        self._executed = []
        self.state = TransactionState.CLEANED
