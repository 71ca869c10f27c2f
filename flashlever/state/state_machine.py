"""
Operation state machine for open and unwind flows.

Open:
START → COLLATERAL_RECEIVED → FLASH_LOAN_DRAWN → SUPPLIED → BORROWED
      → SWAPPED → RECONCILED → REPAID

Unwind:
START → FLASH_LOAN_DRAWN → DEBT_REPAID → COLLATERAL_WITHDRAWN
      → SWAPPED → RECONCILED → REPAID

Any non-terminal state may move to FAILED. Trackers live for exactly one
operation and are never persisted; the lending pool is the only record
of the position.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from flashlever.errors.exceptions import InvalidStateTransitionError
from flashlever.models.common import OperationKind, OperationState
from flashlever.utils.logger import get_logger

logger = get_logger(__name__)

S = OperationState

OPEN_TRANSITIONS: Dict[OperationState, Set[OperationState]] = {
    S.START: {S.COLLATERAL_RECEIVED, S.FAILED},
    S.COLLATERAL_RECEIVED: {S.FLASH_LOAN_DRAWN, S.FAILED},
    S.FLASH_LOAN_DRAWN: {S.SUPPLIED, S.FAILED},
    S.SUPPLIED: {S.BORROWED, S.FAILED},
    S.BORROWED: {S.SWAPPED, S.FAILED},
    S.SWAPPED: {S.RECONCILED, S.FAILED},
    S.RECONCILED: {S.REPAID, S.FAILED},
    S.REPAID: set(),  # Terminal state
    S.FAILED: set(),  # Terminal state
}

UNWIND_TRANSITIONS: Dict[OperationState, Set[OperationState]] = {
    S.START: {S.FLASH_LOAN_DRAWN, S.FAILED},
    S.FLASH_LOAN_DRAWN: {S.DEBT_REPAID, S.FAILED},
    S.DEBT_REPAID: {S.COLLATERAL_WITHDRAWN, S.FAILED},
    S.COLLATERAL_WITHDRAWN: {S.SWAPPED, S.FAILED},
    S.SWAPPED: {S.RECONCILED, S.FAILED},
    S.RECONCILED: {S.REPAID, S.FAILED},
    S.REPAID: set(),
    S.FAILED: set(),
}


@dataclass
class OperationTracker:
    """Tracks one operation through its state machine."""
    kind: OperationKind
    operation_id: str
    state: OperationState = S.START
    history: List[OperationState] = field(default_factory=lambda: [S.START])
    error: Optional[str] = None

    @property
    def transitions(self) -> Dict[OperationState, Set[OperationState]]:
        return OPEN_TRANSITIONS if self.kind == OperationKind.OPEN else UNWIND_TRANSITIONS

    @property
    def is_terminal(self) -> bool:
        return not self.transitions[self.state]

    def can_transition(self, target: OperationState) -> bool:
        return target in self.transitions.get(self.state, set())

    def transition(self, target: OperationState) -> None:
        """
        Move to target state.

        Raises:
            InvalidStateTransitionError: If the transition is not allowed
        """
        if not self.can_transition(target):
            raise InvalidStateTransitionError(
                f"Invalid transition: {self.state.value} → {target.value}",
                kind=self.kind.name.lower(),
            )
        logger.debug(
            "operation_state_transition",
            operation_id=self.operation_id,
            kind=self.kind.name.lower(),
            from_state=self.state.value,
            to_state=target.value,
        )
        self.state = target
        self.history.append(target)

    def fail(self, error: str) -> None:
        """Record a failure; a no-op once terminal."""
        if self.is_terminal:
            return
        self.error = error
        self.transition(S.FAILED)
