"""Staged destructive operations and their single-use confirmation tokens."""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from mcbridge.errors import InternalError, InvalidConfirmation

logger = logging.getLogger(__name__)


class OperationState(str, Enum):
    REQUESTED = "REQUESTED"
    REJECTED = "REJECTED"
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"
    CONFIRMED = "CONFIRMED"
    EXECUTING = "EXECUTING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    CANCELLED = "CANCELLED"


TRANSITIONS: Dict[OperationState, Tuple[OperationState, ...]] = {
    OperationState.REQUESTED: (
        OperationState.REJECTED,
        OperationState.AWAITING_CONFIRMATION,
        # destructive calls without a confirmation step
        OperationState.EXECUTING,
    ),
    OperationState.AWAITING_CONFIRMATION: (
        OperationState.CONFIRMED,
        OperationState.REJECTED,
        OperationState.EXPIRED,
        OperationState.CANCELLED,
    ),
    OperationState.CONFIRMED: (OperationState.EXECUTING,),
    OperationState.EXECUTING: (OperationState.COMPLETED, OperationState.FAILED),
}

TERMINAL_STATES = frozenset(
    state for state in OperationState if state not in TRANSITIONS
)


@dataclass
class StagedOperation:
    """One destructive call moving through the confirmation state machine."""

    tool_name: str
    arguments: Dict[str, Any]
    state: OperationState = OperationState.REQUESTED
    history: List[OperationState] = field(default_factory=list)

    def advance(self, new_state: OperationState) -> None:
        """Move to ``new_state``; anything not in TRANSITIONS is a bug."""
        allowed = TRANSITIONS.get(self.state, ())
        if new_state not in allowed:
            raise InternalError(
                f"Illegal transition {self.state.value} -> {new_state.value} for {self.tool_name}",
                data={"tool": self.tool_name, "state": self.state.value},
            )
        self.history.append(self.state)
        self.state = new_state

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


@dataclass
class PendingConfirmation:
    token: str
    tool_name: str
    params_fingerprint: str
    created_at: float
    expires_at: float
    operation: StagedOperation

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at

    def expires_in(self, now: float) -> float:
        return max(0.0, round(self.expires_at - now, 3))


class ConfirmationStore:
    """
    Pending confirmations keyed by token.

    Expiry uses a monotonic clock, so wall-clock jumps cannot revive or kill
    a token. Every mint and consume sweeps expired entries first.
    """

    def __init__(self, ttl_seconds: float = 300.0, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._pending: Dict[str, PendingConfirmation] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, token: str) -> bool:
        return token in self._pending

    def now(self) -> float:
        return self._clock()

    def mint(self, operation: StagedOperation, fingerprint: str) -> PendingConfirmation:
        """Register ``operation`` as awaiting confirmation and return its token."""
        self.sweep()
        operation.advance(OperationState.AWAITING_CONFIRMATION)
        now = self._clock()
        pending = PendingConfirmation(
            token=uuid.uuid4().hex,
            tool_name=operation.tool_name,
            params_fingerprint=fingerprint,
            created_at=now,
            expires_at=now + self.ttl_seconds,
            operation=operation,
        )
        self._pending[pending.token] = pending
        logger.debug("minted token for %s (expires in %ss)", operation.tool_name, self.ttl_seconds)
        return pending

    def consume(self, token: str) -> PendingConfirmation:
        """
        Remove and return the pending confirmation for ``token``.

        Raises:
            InvalidConfirmation: Unknown, already used, or expired token.
        """
        self.sweep()
        pending = self._pending.pop(token, None)
        if pending is None:
            raise InvalidConfirmation(
                "Unknown, expired or already used confirmation token",
                data={"token": token},
            )
        return pending

    def cancel(self, token: str) -> PendingConfirmation:
        pending = self.consume(token)
        pending.operation.advance(OperationState.CANCELLED)
        logger.info("cancelled pending %s", pending.tool_name)
        return pending

    def sweep(self) -> List[PendingConfirmation]:
        """Drop every expired entry and return them."""
        now = self._clock()
        expired = [p for p in self._pending.values() if p.is_expired(now)]
        for pending in expired:
            del self._pending[pending.token]
            pending.operation.advance(OperationState.EXPIRED)
            logger.info("confirmation for %s expired", pending.tool_name)
        return expired

    def get(self, token: str) -> Optional[PendingConfirmation]:
        return self._pending.get(token)
