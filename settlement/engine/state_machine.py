"""
Payout lifecycle state machine.

    PENDING -> SCHEDULED -> PROCESSING -> COMPLETED
                   |            |
                   |            +-------> FAILED
                   +--> COMPLETED
                   +--> FAILED

PENDING is the only initial state; COMPLETED and FAILED are terminal.
The machine is pure: it knows nothing about the database. Preconditions
that depend on other records (a verified bank account, a non-empty
reference) are evaluated by the settlement service and passed in.
"""

from dataclasses import dataclass
from typing import Iterable, Sequence

from settlement.engine.errors import InvalidTransition, ValidationError
from settlement.models.enums import PayoutStatus, PayoutTransition

INITIAL_STATUS = PayoutStatus.PENDING
TERMINAL_STATUSES = frozenset({PayoutStatus.COMPLETED, PayoutStatus.FAILED})

TRANSITIONS: dict[tuple[PayoutStatus, PayoutTransition], PayoutStatus] = {
    (PayoutStatus.PENDING, PayoutTransition.SCHEDULE): PayoutStatus.SCHEDULED,
    (PayoutStatus.SCHEDULED, PayoutTransition.START_PROCESSING): PayoutStatus.PROCESSING,
    (PayoutStatus.SCHEDULED, PayoutTransition.COMPLETE): PayoutStatus.COMPLETED,
    (PayoutStatus.PROCESSING, PayoutTransition.COMPLETE): PayoutStatus.COMPLETED,
    (PayoutStatus.SCHEDULED, PayoutTransition.FAIL): PayoutStatus.FAILED,
    (PayoutStatus.PROCESSING, PayoutTransition.FAIL): PayoutStatus.FAILED,
}

# Target state of each transition, used to name the requested state in errors
TARGETS: dict[PayoutTransition, PayoutStatus] = {
    PayoutTransition.SCHEDULE: PayoutStatus.SCHEDULED,
    PayoutTransition.START_PROCESSING: PayoutStatus.PROCESSING,
    PayoutTransition.COMPLETE: PayoutStatus.COMPLETED,
    PayoutTransition.FAIL: PayoutStatus.FAILED,
}


@dataclass(frozen=True)
class Precondition:
    """A named check the caller has already evaluated."""

    name: str
    satisfied: bool
    message: str = ""


def is_terminal(status: PayoutStatus) -> bool:
    return PayoutStatus(status) in TERMINAL_STATUSES


def allowed_transitions(status: PayoutStatus) -> set[PayoutTransition]:
    status = PayoutStatus(status)
    return {transition for (source, transition) in TRANSITIONS if source == status}


def resolve_transition(
    current: PayoutStatus,
    transition: PayoutTransition,
    preconditions: Iterable[Precondition] = (),
) -> PayoutStatus:
    """
    Decide the state a payout moves to.

    Legality is checked before preconditions, so an operation against a
    terminal payout always reports InvalidTransition regardless of input.

    Raises:
        InvalidTransition: The edge is not in the transition table.
        ValidationError: The first unmet precondition.
    """
    current = PayoutStatus(current)
    transition = PayoutTransition(transition)

    target = TRANSITIONS.get((current, transition))
    if target is None:
        raise InvalidTransition(current.value, TARGETS[transition].value)

    for check in preconditions:
        if not check.satisfied:
            raise ValidationError(check.message or f"Precondition failed: {check.name}", precondition=check.name)

    return target


def is_valid_path(statuses: Sequence[PayoutStatus]) -> bool:
    """True if the observed status sequence is a walk through the table from PENDING."""
    if not statuses:
        return True
    path = [PayoutStatus(s) for s in statuses]
    if path[0] != INITIAL_STATUS:
        return False
    legal_edges = {(source, target) for (source, _), target in TRANSITIONS.items()}
    return all((a, b) in legal_edges for a, b in zip(path, path[1:]))
