"""
Exception Hierarchy

Five families, each with a fixed HTTP status:
validation (400), authorization (403), not found (404),
precondition (409) and dependency (503).
"""
from decimal import Decimal
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Standard error codes for API responses"""

    # General errors (1xxx)
    INTERNAL_ERROR = "ERR_1000"
    VALIDATION_ERROR = "ERR_1001"
    NOT_FOUND = "ERR_1002"
    UNAUTHORIZED = "ERR_1004"
    FORBIDDEN = "ERR_1005"
    RATE_LIMITED = "ERR_1006"
    PRECONDITION_FAILED = "ERR_1007"

    # Credit request errors (2xxx)
    CREDIT_REQUEST_NOT_FOUND = "ERR_2001"
    AMOUNT_MISMATCH = "ERR_2002"
    HOD_NOT_ASSIGNED = "ERR_2003"
    INITIATOR_NOT_LINKED = "ERR_2004"
    POLICY_NOT_ASSIGNED = "ERR_2005"

    # User errors (3xxx)
    USER_NOT_FOUND = "ERR_3001"
    USER_INACTIVE = "ERR_3002"
    INVALID_EMPLOYEE_TYPE = "ERR_3003"

    # Wallet errors (4xxx)
    INSUFFICIENT_BALANCE = "ERR_4001"
    INVALID_AMOUNT = "ERR_4002"
    WALLET_CONFLICT = "ERR_4003"
    CREDIT_ALREADY_REDEEMED = "ERR_4004"
    INVALID_CREDIT_SELECTION = "ERR_4005"

    # External service errors (5xxx)
    EMAIL_ERROR = "ERR_5001"
    SIGNATURE_SERVICE_ERROR = "ERR_5002"
    EXTERNAL_SERVICE_UNAVAILABLE = "ERR_5003"
    EXTERNAL_SERVICE_TIMEOUT = "ERR_5004"

    # State machine errors (6xxx)
    INVALID_STATE_TRANSITION = "ERR_6001"

    # Currency errors (7xxx)
    UNSUPPORTED_CURRENCY = "ERR_7001"
    CURRENCY_MISMATCH = "ERR_7002"

    # Redemption errors (8xxx)
    REDEMPTION_NOT_FOUND = "ERR_8001"


class AppException(Exception):
    """Base exception for all application errors"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        status_code: int = 500,
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for API response"""
        return {
            "error": {
                "code": self.error_code.value,
                "message": self.message,
                "details": self.details
            }
        }


class ValidationException(AppException):
    """Malformed or missing input"""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        details: dict[str, Any] | None = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=400,
            details=details
        )
        if field:
            self.details["field"] = field


class AuthorizationException(AppException):
    """Role or ownership violation"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.FORBIDDEN,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=403,
            details=details
        )


class NotFoundException(AppException):
    """Raised when a requested resource is not found"""

    def __init__(
        self,
        resource: str,
        identifier: Any,
        error_code: ErrorCode = ErrorCode.NOT_FOUND
    ):
        super().__init__(
            message=f"{resource} not found: {identifier}",
            error_code=error_code,
            status_code=404,
            details={"resource": resource, "identifier": str(identifier)}
        )


class PreconditionException(AppException):
    """Entity is not in the state the operation requires"""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.PRECONDITION_FAILED,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=409,
            details=details
        )


class DependencyException(AppException):
    """A collaborator (email, e-signature, document store) failed"""

    def __init__(
        self,
        service_name: str,
        message: str,
        error_code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
        details: dict[str, Any] | None = None
    ):
        super().__init__(
            message=message,
            error_code=error_code,
            status_code=503,
            details=details
        )
        self.service_name = service_name
        self.details["service"] = service_name

    @classmethod
    def from_response(
        cls,
        service_name: str,
        operation: str,
        response: Any,
        *,
        max_response_chars: int = 500
    ) -> "DependencyException":
        """Build from an HTTP response (e.g. httpx.Response) without logging whole bodies"""
        status_code = getattr(response, "status_code", None)
        response_text = getattr(response, "text", "") or ""
        return cls(
            service_name=service_name,
            message=f"{service_name} {operation} returned status {status_code}",
            details={
                "operation": operation,
                "status_code": status_code,
                "response_text": response_text[:max_response_chars],
            },
        )


class ServiceTimeoutError(DependencyException):
    """Raised when external service times out"""

    def __init__(self, service_name: str, timeout_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} request timed out after {timeout_seconds}s",
            error_code=ErrorCode.EXTERNAL_SERVICE_TIMEOUT,
            details={"timeout_seconds": timeout_seconds}
        )


class CircuitBreakerOpenError(DependencyException):
    """Raised when circuit breaker is open"""

    def __init__(self, service_name: str, retry_after_seconds: float):
        super().__init__(
            service_name=service_name,
            message=f"{service_name} is temporarily unavailable (circuit breaker open)",
            error_code=ErrorCode.EXTERNAL_SERVICE_UNAVAILABLE,
            details={"retry_after_seconds": retry_after_seconds}
        )


class InvalidStateTransitionError(PreconditionException):
    """Raised when an entity is not in the source state of the requested transition"""

    def __init__(
        self,
        entity: str,
        entity_id: Any,
        current_state: str,
        attempted: str,
        message: str | None = None,
    ):
        super().__init__(
            message=message or f"Cannot {attempted} {entity} {entity_id} in status '{current_state}'",
            error_code=ErrorCode.INVALID_STATE_TRANSITION,
            details={
                "entity": entity,
                "entity_id": entity_id,
                "current_state": current_state,
                "attempted": attempted,
            }
        )


class AlreadyRedeemedError(PreconditionException):
    """Credit transaction was already consumed by a redemption"""

    def __init__(self, credit_transaction_id: int):
        super().__init__(
            message="This credit has already been redeemed.",
            error_code=ErrorCode.CREDIT_ALREADY_REDEEMED,
            details={"credit_transaction_id": credit_transaction_id}
        )


class InsufficientBalanceError(PreconditionException):
    """Wallet balance does not cover the debit"""

    def __init__(self, user_id: int, balance: Decimal, required: Decimal):
        super().__init__(
            message="Insufficient balance",
            error_code=ErrorCode.INSUFFICIENT_BALANCE,
            details={
                "user_id": user_id,
                "balance": str(balance),
                "required": str(required),
            }
        )


class WalletConflictError(PreconditionException):
    """Wallet kept changing underneath a post until retries ran out"""

    def __init__(self, user_id: int, attempts: int):
        super().__init__(
            message=f"Wallet for user {user_id} changed concurrently; giving up after {attempts} attempts",
            error_code=ErrorCode.WALLET_CONFLICT,
            details={"user_id": user_id, "attempts": attempts}
        )


class CurrencyMismatchError(ValidationException):
    """A provided or stored currency disagrees with the user's canonical currency"""

    def __init__(self, expected: str, actual: str, context: str):
        super().__init__(
            message=f"Currency mismatch for {context}. Expected {expected}, got {actual}.",
            details={"expected": expected, "actual": actual, "context": context},
            error_code=ErrorCode.CURRENCY_MISMATCH,
        )


class UnsupportedCurrencyError(ValidationException):
    def __init__(self, value: Any):
        super().__init__(
            message=f"Unsupported currency: {value}",
            field="currency",
            error_code=ErrorCode.UNSUPPORTED_CURRENCY,
        )


class AmountMismatchError(ValidationException):
    """Client-supplied amount differs from base + bonus - deductions"""

    def __init__(self, supplied: Decimal, derived: Decimal):
        super().__init__(
            message=f"Amount {supplied} does not equal base + bonus - deductions ({derived})",
            field="amount",
            details={"supplied": str(supplied), "derived": str(derived)},
            error_code=ErrorCode.AMOUNT_MISMATCH,
        )
