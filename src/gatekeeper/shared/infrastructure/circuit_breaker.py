"""Failure-rate circuit breaker for engine operations."""

import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from gatekeeper.shared.domain.exceptions import CircuitOpenError
from gatekeeper.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)

EventCallback = Callable[[str, Dict[str, Any]], None]


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"
    OPEN = "open"


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for the failure-rate circuit breaker."""

    failure_rate_threshold: float = 0.5
    min_operations: int = 5
    reset_timeout: float = 60.0


class CircuitBreaker:
    """
    Opens when the failure rate of finished operations exceeds a threshold.

    The rate is only evaluated once ``min_operations`` have finished. An open
    circuit rejects new operations until ``reset_timeout`` elapses (when auto
    recovery is on) or until an in-flight operation succeeds. A reset clears
    the counters so the next window starts fresh.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        *,
        event_callback: Optional[EventCallback] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self.enabled = True
        self.auto_recovery = True
        self._event_callback = event_callback
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._total = 0
        self._failed = 0
        self._opened_at: Optional[float] = None

    @property
    def state(self) -> CircuitState:
        if self._state == CircuitState.OPEN and self.auto_recovery and self._opened_at is not None:
            if self._clock() - self._opened_at >= self.config.reset_timeout:
                self.reset()
        return self._state

    @property
    def failure_rate(self) -> float:
        return self._failed / self._total if self._total else 0.0

    def check(self) -> None:
        """Raise CircuitOpenError when the circuit is open."""
        if self.state != CircuitState.OPEN:
            return

        retry_after = None
        if self.auto_recovery and self._opened_at is not None:
            retry_after = max(0.0, self.config.reset_timeout - (self._clock() - self._opened_at))
        raise CircuitOpenError(
            f"Circuit '{self.name}' is open",
            context={"circuit": self.name, "retry_after": retry_after},
        )

    def record_success(self) -> None:
        self._total += 1
        if self._state == CircuitState.OPEN:
            self.reset()

    def record_failure(self) -> None:
        self._total += 1
        self._failed += 1
        if not self.enabled or self._state == CircuitState.OPEN:
            return
        if self._total >= self.config.min_operations and self.failure_rate > self.config.failure_rate_threshold:
            self._open()

    def reset(self) -> None:
        was_open = self._state == CircuitState.OPEN
        self._state = CircuitState.CLOSED
        self._opened_at = None
        self._total = 0
        self._failed = 0
        if was_open:
            logger.info("circuit_state_change", circuit=self.name, from_state="open", to_state="closed")
            self._emit("circuitBreakerReset", {"circuit": self.name})

    def snapshot(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "enabled": self.enabled,
            "auto_recovery": self.auto_recovery,
            "total": self._total,
            "failed": self._failed,
            "failure_rate": round(self.failure_rate, 3),
        }

    def _open(self) -> None:
        self._state = CircuitState.OPEN
        self._opened_at = self._clock()
        logger.warning(
            "circuit_state_change",
            circuit=self.name,
            from_state="closed",
            to_state="open",
            failed=self._failed,
            total=self._total,
        )
        self._emit("circuitBreakerOpened", {"failed_operations": self._failed, "total_operations": self._total})

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        if self._event_callback is None:
            return
        try:
            self._event_callback(event, payload)
        except Exception as e:
            logger.warning("event_callback_failed", event_name=event, error=str(e))
