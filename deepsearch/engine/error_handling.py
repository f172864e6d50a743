"""Error taxonomy and circuit breaking for engine collaborators.

Every failure inside the engine degrades to a smaller-but-valid result:
- ExpansionFailure: LLM network/timeout/parse error, recovered to original tokens
- StoreUnavailable: item store failed, recovered via browser history fallback
- InvalidQuery: empty or whitespace-only query, recovered to an empty result
"""

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from loguru import logger


class DeepSearchError(Exception):
    """Base class for engine errors."""


class ExpansionFailure(DeepSearchError):
    """Query expansion via the local LLM failed."""


class StoreUnavailable(DeepSearchError):
    """The item store could not produce a candidate set."""


class InvalidQuery(DeepSearchError):
    """The query contains no searchable tokens."""


class CircuitOpen(ExpansionFailure):
    """Call skipped because the collaborator's circuit is open."""


class ServiceState(Enum):
    """Service health states."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CIRCUIT_OPEN = "circuit_open"


@dataclass
class ServiceHealth:
    """Tracks health of one collaborator."""
    name: str
    state: ServiceState = ServiceState.HEALTHY
    error_count: int = 0
    success_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    circuit_opened_at: Optional[float] = None

    @property
    def error_rate(self) -> float:
        total = self.error_count + self.success_count
        if total == 0:
            return 0.0
        return self.error_count / total

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "error_rate": round(self.error_rate, 3),
            "consecutive_failures": self.consecutive_failures,
            "last_error": self.last_error,
        }


class CircuitBreaker:
    """Stops calling a failing collaborator until a recovery window passes."""

    def __init__(self,
                 name: str,
                 failure_threshold: int = 3,
                 recovery_timeout: float = 30.0,
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize circuit breaker.

        Args:
            name: Service name used in logs
            failure_threshold: Consecutive failures before opening the circuit
            recovery_timeout: Seconds before a trial call is allowed
            clock: Monotonic time source
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self.health = ServiceHealth(name=name)
        self.recovery_attempts = 0

    @property
    def is_open(self) -> bool:
        return self.health.state == ServiceState.CIRCUIT_OPEN

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Await `func` under circuit protection.

        Raises:
            CircuitOpen: If the circuit is open and no recovery is due
            Exception: Whatever `func` raised; the failure is recorded
        """
        if self.is_open:
            if not self._should_attempt_recovery():
                raise CircuitOpen(f"Circuit breaker {self.name} is open")
            logger.info(f"Circuit breaker {self.name}: attempting recovery")
            self.recovery_attempts += 1

        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._record_failure(e)
            raise

        self._record_success()
        return result

    def _record_success(self) -> None:
        self.health.success_count += 1
        self.health.consecutive_failures = 0
        if self.health.state != ServiceState.HEALTHY:
            logger.info(f"Circuit breaker {self.name}: closed after recovery")
        self.health.state = ServiceState.HEALTHY
        self.health.circuit_opened_at = None
        self.recovery_attempts = 0

    def _record_failure(self, error: Exception) -> None:
        self.health.error_count += 1
        self.health.consecutive_failures += 1
        self.health.last_error = f"{type(error).__name__}: {error}"

        if self.health.consecutive_failures >= self.failure_threshold:
            if not self.is_open:
                logger.warning(
                    f"Circuit breaker {self.name}: opening circuit after "
                    f"{self.health.consecutive_failures} failures"
                )
            self.health.state = ServiceState.CIRCUIT_OPEN
            self.health.circuit_opened_at = self._clock()
        else:
            self.health.state = ServiceState.DEGRADED

    def _should_attempt_recovery(self) -> bool:
        if self.health.circuit_opened_at is None:
            return True
        elapsed = self._clock() - self.health.circuit_opened_at
        # Exponential backoff across repeated failed recoveries
        backoff = self.recovery_timeout * (2 ** min(self.recovery_attempts, 5))
        return elapsed >= backoff

    def reset(self) -> None:
        self.health = ServiceHealth(name=self.name)
        self.recovery_attempts = 0
