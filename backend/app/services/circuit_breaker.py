# backend/app/services/circuit_breaker.py
"""
Circuit breaker guarding calls to an external price feed.

A revaluation run asks the feed for dozens of symbols. When the feed is
down, every call would otherwise wait for its own timeout; the breaker
trips after a few consecutive failures and rejects the rest immediately,
so the run finishes quickly with stored prices.

States:
    CLOSED    - calls pass through, failures are counted
    OPEN      - calls rejected with CircuitBreakerOpen
    HALF_OPEN - after recovery_timeout, a few probe calls are let through

Transitions:
    CLOSED -> OPEN       failure count reaches failure_threshold
    OPEN -> HALF_OPEN    recovery_timeout elapsed since the last failure
    HALF_OPEN -> CLOSED  a probe succeeds
    HALF_OPEN -> OPEN    a probe fails

Usage:
    breaker = CircuitBreaker(name="yahoo-quotes", failure_threshold=5)

    with breaker:
        history = ticker.history(period="5d")
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class CircuitState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerOpen(Exception):
    """
    Raised when the breaker rejects a call.

    Attributes:
        breaker_name: Name of the circuit breaker
        time_remaining: Seconds until a probe call will be allowed
    """

    def __init__(self, breaker_name: str, time_remaining: float) -> None:
        self.breaker_name = breaker_name
        self.time_remaining = time_remaining
        super().__init__(
            f"Circuit breaker '{breaker_name}' is open. "
            f"Retry in {time_remaining:.1f} seconds."
        )


@dataclass
class CircuitBreakerStats:
    total_calls: int = 0
    successful_calls: int = 0
    failed_calls: int = 0
    rejected_calls: int = 0
    state_changes: int = 0
    last_failure_time: float | None = None
    last_success_time: float | None = None


@dataclass
class CircuitBreaker:
    """
    Thread-safe breaker used as a context manager.

    The scheduler thread and request threads share one provider instance,
    so every state read and write happens under the lock.

    Attributes:
        name: Identifier used in logs and in CircuitBreakerOpen
        failure_threshold: Failures that trip the breaker
        recovery_timeout: Seconds in OPEN before probing
        half_open_max_calls: Probe calls allowed in HALF_OPEN
        failure_window: Only failures this recent count (0 = all)
        excluded_exceptions: Exception types that do not count as failures
    """

    name: str
    failure_threshold: int = 5
    recovery_timeout: float = 60.0
    half_open_max_calls: int = 3
    failure_window: float = 0.0
    excluded_exceptions: tuple[type[BaseException], ...] = field(default_factory=tuple)

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failures: list[float] = field(default_factory=list, init=False)
    _opened_at: float = field(default=0.0, init=False)
    _probes: int = field(default=0, init=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False)
    _stats: CircuitBreakerStats = field(default_factory=CircuitBreakerStats, init=False)

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        if self.recovery_timeout < 0:
            raise ValueError("recovery_timeout cannot be negative")
        if self.half_open_max_calls < 1:
            raise ValueError("half_open_max_calls must be at least 1")

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._maybe_half_open()
            return self._state

    @property
    def stats(self) -> CircuitBreakerStats:
        """Copy of the counters, safe to hand to callers."""
        with self._lock:
            return CircuitBreakerStats(**vars(self._stats))

    @property
    def is_open(self) -> bool:
        return self.state == CircuitState.OPEN

    def snapshot(self) -> dict[str, Any]:
        """State and counters as a plain dict for the readiness endpoint."""
        stats = self.stats
        return {
            "name": self.name,
            "state": self.state.value,
            "total_calls": stats.total_calls,
            "failed_calls": stats.failed_calls,
            "rejected_calls": stats.rejected_calls,
        }

    def reset(self) -> None:
        with self._lock:
            self._set_state(CircuitState.CLOSED)

    def force_open(self) -> None:
        with self._lock:
            self._opened_at = time.monotonic()
            self._set_state(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Internal state machine (call with the lock held)
    # -------------------------------------------------------------------------

    def _set_state(self, new_state: CircuitState) -> None:
        if new_state == self._state:
            return
        old_state = self._state
        self._state = new_state
        self._stats.state_changes += 1
        if new_state == CircuitState.HALF_OPEN:
            self._probes = 0
        elif new_state == CircuitState.CLOSED:
            self._failures.clear()

        log = logger.warning if new_state == CircuitState.OPEN else logger.info
        log(f"CircuitBreaker '{self.name}': {old_state.value} -> {new_state.value}")

    def _maybe_half_open(self) -> None:
        if self._state == CircuitState.OPEN and self._remaining() <= 0:
            self._set_state(CircuitState.HALF_OPEN)

    def _remaining(self) -> float:
        return max(0.0, self.recovery_timeout - (time.monotonic() - self._opened_at))

    def _allow(self) -> bool:
        self._maybe_half_open()
        if self._state == CircuitState.CLOSED:
            return True
        if self._state == CircuitState.HALF_OPEN and self._probes < self.half_open_max_calls:
            self._probes += 1
            return True
        return False

    def _on_success(self) -> None:
        self._stats.successful_calls += 1
        self._stats.last_success_time = time.time()
        if self._state == CircuitState.HALF_OPEN:
            self._set_state(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        now = time.monotonic()
        self._stats.failed_calls += 1
        self._stats.last_failure_time = time.time()

        if self._state == CircuitState.HALF_OPEN:
            self._opened_at = now
            self._set_state(CircuitState.OPEN)
            return

        self._failures.append(now)
        if self.failure_window > 0:
            cutoff = now - self.failure_window
            self._failures = [t for t in self._failures if t > cutoff]

        if len(self._failures) >= self.failure_threshold:
            self._opened_at = now
            self._set_state(CircuitState.OPEN)

    # -------------------------------------------------------------------------
    # Context manager
    # -------------------------------------------------------------------------

    def __enter__(self) -> "CircuitBreaker":
        with self._lock:
            self._stats.total_calls += 1
            if not self._allow():
                self._stats.rejected_calls += 1
                raise CircuitBreakerOpen(self.name, self._remaining())
        return self

    def __exit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: Any) -> bool:
        with self._lock:
            if exc_val is None or isinstance(exc_val, self.excluded_exceptions):
                self._on_success()
            else:
                self._on_failure()
        return False
