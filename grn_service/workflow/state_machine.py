"""
GRN status state machine.

Every legal edge is listed once in TRANSITIONS; `resolve` is the only place
that decides whether an operation may run from a given status.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, List, Set

from grn_service.exceptions import InvalidState
from grn_service.models.grn import GRNStatus


class Operation(str, Enum):
    START_INSPECTION = "start_inspection"
    SUBMIT_FOR_INVENTORY_APPROVAL = "submit_for_inventory_approval"
    REJECT = "reject"
    SEND_BACK = "send_back"
    INVENTORY_APPROVE = "inventory_approve"


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    operation: Operation
    from_states: FrozenSet[GRNStatus]
    to_state: GRNStatus
    action: str
    requires_reason: bool = False
    posts_stock: bool = False


TRANSITIONS: Dict[Operation, Transition] = {
    Operation.START_INSPECTION: Transition(
        operation=Operation.START_INSPECTION,
        # sent_back re-enters inspection through the same edge
        from_states=frozenset({GRNStatus.PENDING, GRNStatus.SENT_BACK}),
        to_state=GRNStatus.INSPECTING,
        action="Inspection started",
    ),
    Operation.SUBMIT_FOR_INVENTORY_APPROVAL: Transition(
        operation=Operation.SUBMIT_FOR_INVENTORY_APPROVAL,
        from_states=frozenset({GRNStatus.INSPECTING}),
        to_state=GRNStatus.AWAITING_INVENTORY_APPROVAL,
        action="Sent to inventory for approval",
    ),
    Operation.REJECT: Transition(
        operation=Operation.REJECT,
        from_states=frozenset({GRNStatus.INSPECTING, GRNStatus.AWAITING_INVENTORY_APPROVAL}),
        to_state=GRNStatus.REJECTED,
        action="GRN rejected",
        requires_reason=True,
    ),
    Operation.SEND_BACK: Transition(
        operation=Operation.SEND_BACK,
        from_states=frozenset({GRNStatus.AWAITING_INVENTORY_APPROVAL}),
        to_state=GRNStatus.SENT_BACK,
        action="Sent back to inspection",
        requires_reason=True,
    ),
    Operation.INVENTORY_APPROVE: Transition(
        operation=Operation.INVENTORY_APPROVE,
        from_states=frozenset({GRNStatus.AWAITING_INVENTORY_APPROVAL}),
        to_state=GRNStatus.APPROVED,
        action="Approved by inventory and stored",
        posts_stock=True,
    ),
}

INITIAL_STATE = GRNStatus.PENDING
TERMINAL_STATES: FrozenSet[GRNStatus] = frozenset({GRNStatus.APPROVED, GRNStatus.REJECTED})


def resolve(operation: Operation, current: GRNStatus) -> Transition:
    """Return the edge `operation` takes from `current`, or raise InvalidState."""
    transition = TRANSITIONS[Operation(operation)]
    current = GRNStatus(current)
    if current not in transition.from_states:
        allowed = ", ".join(sorted(s.value for s in transition.from_states))
        raise InvalidState(
            f"Cannot {transition.operation.value.replace('_', ' ')} a GRN that is {current.value} "
            f"(allowed from: {allowed})",
            status=current.value,
            operation=transition.operation.value,
        )
    return transition


def allowed_operations(status: GRNStatus) -> List[Operation]:
    status = GRNStatus(status)
    return [op for op, t in TRANSITIONS.items() if status in t.from_states]


def is_terminal(status: GRNStatus) -> bool:
    return GRNStatus(status) in TERMINAL_STATES


def reachable_states(start: GRNStatus = INITIAL_STATE) -> Set[GRNStatus]:
    """All statuses reachable from `start` through the transition table."""
    seen = {GRNStatus(start)}
    frontier = [GRNStatus(start)]
    while frontier:
        status = frontier.pop()
        for op in allowed_operations(status):
            target = TRANSITIONS[op].to_state
            if target not in seen:
                seen.add(target)
                frontier.append(target)
    return seen
