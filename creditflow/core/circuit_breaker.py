"""
Circuit Breaker

Guards outbound collaborator calls (email gateway, e-signature service) so a
failing dependency is skipped quickly instead of slowing every request.
"""
import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, ParamSpec, TypeVar

from creditflow.core.exceptions import CircuitBreakerOpenError
from creditflow.core.logging import get_logger

logger = get_logger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


class CircuitState(Enum):
    CLOSED = "closed"        # calls pass through, failures are counted
    OPEN = "open"            # calls are rejected until the timeout elapses
    HALF_OPEN = "half_open"  # a few trial calls decide whether to close again


@dataclass
class CircuitBreakerConfig:
    failure_threshold: int = 5
    success_threshold: int = 2
    timeout_seconds: float = 30.0
    half_open_max_calls: int = 3


class CircuitBreaker:
    """One breaker per named service, shared across the process"""

    _instances: dict[str, "CircuitBreaker"] = {}

    def __init__(self, service_name: str, config: CircuitBreakerConfig | None = None):
        self.service_name = service_name
        self.config = config or CircuitBreakerConfig()
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_calls = 0
        self._opened_at = 0.0
        self._lock = asyncio.Lock()

    @classmethod
    def get_instance(
        cls,
        service_name: str,
        config: CircuitBreakerConfig | None = None
    ) -> "CircuitBreaker":
        breaker = cls._instances.get(service_name)
        if breaker is None:
            breaker = cls._instances.setdefault(service_name, cls(service_name, config))
        return breaker

    @classmethod
    def reset_all(cls) -> None:
        """Drop every breaker (tests)"""
        cls._instances.clear()

    @classmethod
    def snapshot(cls) -> dict[str, str]:
        return {name: breaker.state.value for name, breaker in cls._instances.items()}

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    def get_retry_after(self) -> float:
        if self._state != CircuitState.OPEN:
            return 0.0
        return max(0.0, self.config.timeout_seconds - (time.monotonic() - self._opened_at))

    def _move_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state
        self._successes = 0
        self._half_open_calls = 0
        if new_state == CircuitState.OPEN:
            self._opened_at = time.monotonic()
        elif new_state == CircuitState.CLOSED:
            self._failures = 0
        logger.info(
            f"Circuit breaker '{self.service_name}' transitioned",
            extra_data={
                "service": self.service_name,
                "old_state": old_state.value,
                "new_state": new_state.value,
            }
        )

    async def _admit(self) -> bool:
        async with self._lock:
            if self._state == CircuitState.OPEN:
                if self.get_retry_after() > 0:
                    return False
                self._move_to(CircuitState.HALF_OPEN)
            if self._state == CircuitState.HALF_OPEN:
                if self._half_open_calls >= self.config.half_open_max_calls:
                    return False
                self._half_open_calls += 1
            return True

    async def record_success(self) -> None:
        async with self._lock:
            if self._state == CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.config.success_threshold:
                    self._move_to(CircuitState.CLOSED)
            else:
                self._failures = 0

    async def record_failure(self, error: Exception | None = None) -> None:
        async with self._lock:
            self._failures += 1
            logger.warning(
                f"Circuit breaker '{self.service_name}' recorded failure",
                extra_data={
                    "service": self.service_name,
                    "failure_count": self._failures,
                    "threshold": self.config.failure_threshold,
                    "error": str(error) if error else None,
                }
            )
            if (
                self._state == CircuitState.HALF_OPEN
                or self._failures >= self.config.failure_threshold
            ):
                self._move_to(CircuitState.OPEN)

    async def execute(
        self,
        func: Callable[P, Awaitable[T]],
        *args: P.args,
        **kwargs: P.kwargs
    ) -> T:
        """Await ``func`` under protection; raises CircuitBreakerOpenError while open"""
        if not await self._admit():
            raise CircuitBreakerOpenError(self.service_name, self.get_retry_after())
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            await self.record_failure(e)
            raise
        await self.record_success()
        return result


def _service_breaker(service_name: str) -> CircuitBreaker:
    return CircuitBreaker.get_instance(
        service_name,
        CircuitBreakerConfig(failure_threshold=5, success_threshold=2, timeout_seconds=30.0),
    )


def get_email_circuit_breaker() -> CircuitBreaker:
    return _service_breaker("email")


def get_signature_circuit_breaker() -> CircuitBreaker:
    return _service_breaker("signature")


def breaker_states() -> dict[str, Any]:
    """Current state per service, for the readiness probe"""
    return CircuitBreaker.snapshot()
