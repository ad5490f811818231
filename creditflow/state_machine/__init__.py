"""
Credit request and redemption state machines
"""
from creditflow.state_machine.states import (
    CreditRequestStatus,
    CreditRequestType,
    RedemptionStatus,
    TimelineStep,
)
from creditflow.state_machine.credit_request_machine import (
    CreditRequestEvent,
    Transition,
    TransitionResult,
    initial_status,
    resolve_transition,
)

__all__ = [
    "CreditRequestStatus",
    "CreditRequestType",
    "RedemptionStatus",
    "TimelineStep",
    "CreditRequestEvent",
    "Transition",
    "TransitionResult",
    "initial_status",
    "resolve_transition",
]
