"""
Status Definitions for Credit Requests and Redemptions
"""
from enum import Enum


class CreditRequestType(str, Enum):
    FREELANCER = "freelancer"
    POLICY = "policy"


class CreditRequestStatus(str, Enum):
    """Lifecycle of a credit request"""

    PENDING_SIGNATURE = "pending_signature"
    PENDING_APPROVAL = "pending_approval"
    PENDING_EMPLOYEE_APPROVAL = "pending_employee_approval"

    # Terminal
    APPROVED = "approved"
    REJECTED_BY_USER = "rejected_by_user"
    REJECTED_BY_EMPLOYEE = "rejected_by_employee"
    REJECTED_BY_HOD = "rejected_by_hod"


class RedemptionStatus(str, Enum):
    """Lifecycle of a redemption (payout) request"""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    REJECTED = "rejected"


class TimelineStep(str, Enum):
    """Tags written on timeline entries"""

    REQUEST_INITIATED = "REQUEST_INITIATED"
    EMPLOYEE_SIGNATURE = "EMPLOYEE_SIGNATURE"
    SIGNATURE_COMPLETED = "SIGNATURE_COMPLETED"
    EMPLOYEE_REJECTED = "EMPLOYEE_REJECTED"
    HOD_APPROVED = "HOD_APPROVED"
    HOD_REJECTED = "HOD_REJECTED"
    EMPLOYEE_APPROVED = "EMPLOYEE_APPROVED"
    WALLET_CREDITED = "WALLET_CREDITED"
    REDEMPTION_REQUESTED = "REDEMPTION_REQUESTED"
    REDEMPTION_PROCESSING = "REDEMPTION_PROCESSING"
    REDEMPTION_PROCESSED = "REDEMPTION_PROCESSED"
    REDEMPTION_REJECTED = "REDEMPTION_REJECTED"


CREDIT_REQUEST_TERMINAL_STATES = frozenset({
    CreditRequestStatus.APPROVED,
    CreditRequestStatus.REJECTED_BY_USER,
    CreditRequestStatus.REJECTED_BY_EMPLOYEE,
    CreditRequestStatus.REJECTED_BY_HOD,
})

# Requests whose amount is counted as "pending" in the wallet summary
CREDIT_REQUEST_OPEN_STATES = frozenset({
    CreditRequestStatus.PENDING_SIGNATURE,
    CreditRequestStatus.PENDING_APPROVAL,
    CreditRequestStatus.PENDING_EMPLOYEE_APPROVAL,
})

REDEMPTION_TRANSITIONS = {
    # processing is optional; accounts may complete or reject straight from pending
    RedemptionStatus.PENDING: [
        RedemptionStatus.PROCESSING,
        RedemptionStatus.COMPLETED,
        RedemptionStatus.REJECTED,
    ],
    RedemptionStatus.PROCESSING: [
        RedemptionStatus.COMPLETED,
        RedemptionStatus.REJECTED,
    ],
    RedemptionStatus.COMPLETED: [],
    RedemptionStatus.REJECTED: [],
}


def is_valid_transition(transitions: dict, current, target) -> bool:
    """Check ``current -> target`` against a ``{state: [targets]}`` mapping"""
    return target in transitions.get(current, [])
