"""
MIMO Update

Installs MIMO system files and storage-target releases as one reversible
unit:
- Every host change is registered as an action with a matching undo
- A failing action rolls back everything applied before it
- Original files are kept in a per-run backup directory until commit
"""

from .transaction import Action, Transaction, TransactionState, RollbackFailure
from .context import UpdateContext
from .updater import UpdateManager, UpdateStatus

__version__ = "0.1.0"

__all__ = [
    "Action",
    "Transaction",
    "TransactionState",
    "RollbackFailure",
    "UpdateContext",
    "UpdateManager",
    "UpdateStatus",
]
