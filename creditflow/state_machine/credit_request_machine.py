"""
Credit request transition table.

The approval workflow is an explicit table of ``Transition`` rows. Resolving an
event never touches the database: ``resolve_transition`` only looks at the
current status and the request type and returns a ``TransitionResult``. The
service layer applies the resulting row (status change, timeline step, ledger
post) inside one database transaction.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from creditflow.state_machine.states import (
    CREDIT_REQUEST_TERMINAL_STATES,
    CreditRequestStatus,
    CreditRequestType,
    TimelineStep,
)


class CreditRequestEvent(str, Enum):
    SIGN = "sign"
    SIGNATURE_COMPLETED = "signature_completed"
    EMPLOYEE_REJECT = "employee_reject"
    HOD_APPROVE = "hod_approve"
    HOD_REJECT = "hod_reject"
    EMPLOYEE_APPROVE = "employee_approve"


class ActorKind(str, Enum):
    """Who may fire an event"""

    OWNER = "owner"        # the employee the request is for
    APPROVER = "approver"  # HOD of that employee, or an admin
    SYSTEM = "system"      # e-signature webhook


class TransitionFailure(str, Enum):
    WRONG_REQUEST_TYPE = "wrong_request_type"
    TERMINAL_STATE = "terminal_state"
    WRONG_SOURCE_STATE = "wrong_source_state"


@dataclass(frozen=True)
class Transition:
    source: CreditRequestStatus
    event: CreditRequestEvent
    target: CreditRequestStatus
    actor: ActorKind
    step: TimelineStep
    # None means the row applies to both request types
    request_type: Optional[CreditRequestType] = None
    posts_credit: bool = False
    requires_reason: bool = False


@dataclass(frozen=True)
class TransitionResult:
    transition: Optional[Transition] = None
    failure: Optional[TransitionFailure] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.transition is not None


S = CreditRequestStatus
E = CreditRequestEvent

TRANSITION_TABLE: tuple[Transition, ...] = (
    Transition(S.PENDING_SIGNATURE, E.SIGN, S.PENDING_APPROVAL,
               ActorKind.OWNER, TimelineStep.EMPLOYEE_SIGNATURE,
               request_type=CreditRequestType.POLICY),
    Transition(S.PENDING_SIGNATURE, E.SIGNATURE_COMPLETED, S.PENDING_APPROVAL,
               ActorKind.SYSTEM, TimelineStep.SIGNATURE_COMPLETED,
               request_type=CreditRequestType.POLICY),
    Transition(S.PENDING_SIGNATURE, E.EMPLOYEE_REJECT, S.REJECTED_BY_USER,
               ActorKind.OWNER, TimelineStep.EMPLOYEE_REJECTED,
               request_type=CreditRequestType.POLICY, requires_reason=True),
    Transition(S.PENDING_APPROVAL, E.HOD_APPROVE, S.PENDING_EMPLOYEE_APPROVAL,
               ActorKind.APPROVER, TimelineStep.HOD_APPROVED,
               request_type=CreditRequestType.FREELANCER),
    Transition(S.PENDING_APPROVAL, E.HOD_APPROVE, S.APPROVED,
               ActorKind.APPROVER, TimelineStep.HOD_APPROVED,
               request_type=CreditRequestType.POLICY, posts_credit=True),
    Transition(S.PENDING_APPROVAL, E.HOD_REJECT, S.REJECTED_BY_HOD,
               ActorKind.APPROVER, TimelineStep.HOD_REJECTED,
               requires_reason=True),
    Transition(S.PENDING_EMPLOYEE_APPROVAL, E.EMPLOYEE_APPROVE, S.APPROVED,
               ActorKind.OWNER, TimelineStep.EMPLOYEE_APPROVED,
               request_type=CreditRequestType.FREELANCER, posts_credit=True),
    Transition(S.PENDING_EMPLOYEE_APPROVAL, E.EMPLOYEE_REJECT, S.REJECTED_BY_EMPLOYEE,
               ActorKind.OWNER, TimelineStep.EMPLOYEE_REJECTED,
               request_type=CreditRequestType.FREELANCER, requires_reason=True),
)

# Message used when an event arrives in the wrong status
_WRONG_STATE_MESSAGES = {
    E.SIGN: "Only requests pending signature can be signed.",
    E.SIGNATURE_COMPLETED: "Request is not pending signature.",
    E.EMPLOYEE_REJECT: "Request is not awaiting the employee's decision.",
    E.HOD_APPROVE: "Request is not pending approval.",
    E.HOD_REJECT: "Only pending approvals can be rejected.",
    E.EMPLOYEE_APPROVE: "Request is not pending employee approval.",
}

_WRONG_TYPE_MESSAGES = {
    E.SIGN: "Only policy requests can be signed.",
    E.SIGNATURE_COMPLETED: "Only policy requests carry a signature document.",
    E.EMPLOYEE_APPROVE: "Only freelancer requests need employee approval.",
}


def _check_table(table: tuple[Transition, ...]) -> None:
    """At most one row may match a (source, event, type) triple"""
    seen: set[tuple] = set()
    for row in table:
        types = [row.request_type] if row.request_type else list(CreditRequestType)
        for request_type in types:
            key = (row.source, row.event, request_type)
            if key in seen:
                raise RuntimeError(f"Ambiguous credit request transition: {key}")
            seen.add(key)
        if row.source in CREDIT_REQUEST_TERMINAL_STATES:
            raise RuntimeError(f"Transition out of terminal state: {row}")


_check_table(TRANSITION_TABLE)


def _build_event_actors() -> dict[CreditRequestEvent, ActorKind]:
    actors: dict[CreditRequestEvent, ActorKind] = {}
    for row in TRANSITION_TABLE:
        if actors.setdefault(row.event, row.actor) != row.actor:
            raise RuntimeError(f"Event {row.event.value} is fired by more than one actor kind")
    return actors


_EVENT_ACTORS = _build_event_actors()


def _build_transition_map() -> dict[CreditRequestStatus, list[CreditRequestStatus]]:
    transitions: dict[CreditRequestStatus, list[CreditRequestStatus]] = {s: [] for s in S}
    for row in TRANSITION_TABLE:
        if row.target not in transitions[row.source]:
            transitions[row.source].append(row.target)
    return transitions


# {state: [targets]} view of the table, same shape as REDEMPTION_TRANSITIONS
CREDIT_REQUEST_TRANSITIONS = _build_transition_map()


def event_actor(event: CreditRequestEvent) -> ActorKind:
    """Who may fire ``event``; every row for one event names the same actor"""
    return _EVENT_ACTORS[event]


def wrong_state_message(event: CreditRequestEvent) -> str:
    return _WRONG_STATE_MESSAGES[event]


def initial_status(request_type: CreditRequestType, submitted_by_manager: bool) -> CreditRequestStatus:
    """
    Policy requests filed by an admin/HOD wait for the employee's signature;
    everything else starts in front of the HOD.
    """
    if request_type == CreditRequestType.POLICY and submitted_by_manager:
        return S.PENDING_SIGNATURE
    return S.PENDING_APPROVAL


def resolve_transition(
    status: CreditRequestStatus,
    event: CreditRequestEvent,
    request_type: CreditRequestType,
) -> TransitionResult:
    """Find the row for ``event`` fired on a request in ``status``"""
    for_event = [
        row for row in TRANSITION_TABLE
        if row.event == event and row.request_type in (None, request_type)
    ]
    if not for_event:
        return TransitionResult(
            failure=TransitionFailure.WRONG_REQUEST_TYPE,
            message=_WRONG_TYPE_MESSAGES.get(event, f"'{event.value}' does not apply to {request_type.value} requests."),
        )

    if status in CREDIT_REQUEST_TERMINAL_STATES:
        return TransitionResult(
            failure=TransitionFailure.TERMINAL_STATE,
            message=f"Request is already {status.value}. {_WRONG_STATE_MESSAGES[event]}",
        )

    for row in for_event:
        if row.source == status:
            return TransitionResult(transition=row)

    return TransitionResult(
        failure=TransitionFailure.WRONG_SOURCE_STATE,
        message=_WRONG_STATE_MESSAGES[event],
    )


def reachable_statuses(request_type: CreditRequestType, submitted_by_manager: bool) -> set[CreditRequestStatus]:
    """Every status a request of this kind can legally reach"""
    start = initial_status(request_type, submitted_by_manager)
    seen = {start}
    frontier = [start]
    while frontier:
        current = frontier.pop()
        for row in TRANSITION_TABLE:
            if row.source == current and row.request_type in (None, request_type) and row.target not in seen:
                seen.add(row.target)
                frontier.append(row.target)
    return seen
