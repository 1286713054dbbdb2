"""
mcbridge state module.

This module provides the session, the confirmation store and the backup
records that live for the lifetime of the server process.
"""

from mcbridge.state.backups import BackupRecord, BackupStore
from mcbridge.state.confirmations import (
    ConfirmationStore,
    OperationState,
    PendingConfirmation,
    StagedOperation,
)
from mcbridge.state.session import Session, StagedPlan

__all__ = [
    "BackupRecord",
    "BackupStore",
    "ConfirmationStore",
    "OperationState",
    "PendingConfirmation",
    "Session",
    "StagedOperation",
    "StagedPlan",
]
