"""Resilience policy — per-attempt timeout, retry with jitter, and circuit breaking for provider calls.

States of a circuit:
    CLOSED:    calls pass through, consecutive transient failures are counted
    OPEN:      calls are rejected immediately until the break duration elapses
    HALF_OPEN: a single probe call is let through to test recovery
"""

import asyncio
import logging
import random
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TypeVar

from meetingpoint.errors import (
    CircuitOpenError,
    ProviderTimeoutError,
    ProviderUnavailableError,
    is_transient,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Upper bound of the random jitter added to every retry delay, in seconds
MAX_JITTER_SECONDS = 1.0


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass
class CircuitBreaker:
    """Consecutive-failure circuit breaker for one logical provider endpoint.

    Attributes:
        name: Endpoint identifier, shared by every caller of that endpoint
        failure_threshold: Consecutive transient failures before opening
        break_duration: Seconds to reject calls before allowing a probe
        clock: Monotonic time source, replaceable in tests
    """

    name: str = "default"
    failure_threshold: int = 5
    break_duration: float = 30.0
    clock: Callable[[], float] = time.monotonic

    _state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    _failure_count: int = field(default=0, init=False)
    _opened_at: float | None = field(default=None, init=False)
    _probe_token: object | None = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False)

    @property
    def state(self) -> CircuitState:
        with self._lock:
            self._check_state_transition()
            return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def retry_after(self) -> float:
        """Seconds left before the open circuit lets a probe through."""
        with self._lock:
            return self._remaining_break()

    def _remaining_break(self) -> float:
        if self._state != CircuitState.OPEN or self._opened_at is None:
            return 0.0
        return max(0.0, self.break_duration - (self.clock() - self._opened_at))

    def _check_state_transition(self) -> None:
        if self._state == CircuitState.OPEN and self._remaining_break() <= 0:
            self._transition_to(CircuitState.HALF_OPEN)

    def _transition_to(self, new_state: CircuitState) -> None:
        old_state = self._state
        self._state = new_state

        if new_state == CircuitState.OPEN:
            self._opened_at = self.clock()
            self._probe_token = None
            logger.warning(
                f"Circuit '{self.name}' opened for {self.break_duration:g}s "
                f"after {self._failure_count} consecutive failures"
            )
        elif new_state == CircuitState.HALF_OPEN:
            self._probe_token = None
            logger.info(f"Circuit '{self.name}' half-open, testing if provider is healthy")
        elif new_state == CircuitState.CLOSED:
            self._failure_count = 0
            self._opened_at = None
            self._probe_token = None
            if old_state != CircuitState.CLOSED:
                logger.info(f"Circuit '{self.name}' reset, provider is accepting requests again")

    def try_acquire(self) -> tuple[bool, object | None]:
        """Claim the right to call the endpoint.

        Returns ``(allowed, probe_token)``. The token is set only for the
        caller that took the half-open probe slot; only that caller may hand
        the slot back with ``release_probe``.
        """
        with self._lock:
            self._check_state_transition()

            if self._state == CircuitState.CLOSED:
                return True, None
            if self._state == CircuitState.OPEN:
                return False, None

            if self._probe_token is None:
                self._probe_token = object()
                return True, self._probe_token
            return False, None

    def allow_request(self) -> bool:
        """False while open or while a probe is running."""
        allowed, _ = self.try_acquire()
        return allowed

    def record_success(self) -> None:
        """The endpoint answered; clears the consecutive failure count."""
        with self._lock:
            self._failure_count = 0
            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.CLOSED)

    def record_failure(self, error: Exception | None = None) -> None:
        with self._lock:
            self._failure_count += 1

            if self._state == CircuitState.HALF_OPEN:
                self._transition_to(CircuitState.OPEN)
            elif (
                self._state == CircuitState.CLOSED
                and self._failure_count >= self.failure_threshold
            ):
                self._transition_to(CircuitState.OPEN)

    def release_probe(self, token: object | None) -> None:
        """Give the half-open probe slot back when its probe ends without an outcome (cancelled)."""
        with self._lock:
            if (
                self._state == CircuitState.HALF_OPEN
                and token is not None
                and token is self._probe_token
            ):
                self._probe_token = None

    def reset(self) -> None:
        with self._lock:
            self._transition_to(CircuitState.CLOSED)


class CircuitBreakerRegistry:
    """Named circuit breakers, one per logical endpoint."""

    def __init__(self):
        self._breakers: dict[str, CircuitBreaker] = {}
        self._lock = threading.Lock()

    def get(self, name: str) -> CircuitBreaker | None:
        with self._lock:
            return self._breakers.get(name)

    def get_or_create(
        self,
        name: str,
        failure_threshold: int = 5,
        break_duration: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> CircuitBreaker:
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(
                    name=name,
                    failure_threshold=failure_threshold,
                    break_duration=break_duration,
                    clock=clock,
                )
            return self._breakers[name]

    def states(self) -> dict[str, str]:
        with self._lock:
            breakers = list(self._breakers.values())
        return {b.name: b.state.value for b in breakers}

    def reset_all(self) -> None:
        with self._lock:
            breakers = list(self._breakers.values())
        for breaker in breakers:
            breaker.reset()


class ResiliencePolicy:
    """Wraps a single outbound provider call with timeout, retry and circuit breaking."""

    def __init__(
        self,
        breaker: CircuitBreaker,
        retry_count: int = 3,
        base_delay: float = 2.0,
        timeout: float = 30.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.breaker = breaker
        self.retry_count = retry_count
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep

    def retry_delay(self) -> float:
        """Fixed base plus up to one second of random jitter."""
        return self.base_delay + random.uniform(0, MAX_JITTER_SECONDS)

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` (a coroutine factory) under the policy.

        Raises CircuitOpenError when the breaker rejects an attempt,
        ProviderUnavailableError once transient failures exhaust the retries,
        and any permanent provider error unchanged.
        """
        attempts = self.retry_count + 1
        last_error: Exception | None = None

        for attempt in range(1, attempts + 1):
            allowed, probe_token = self.breaker.try_acquire()
            if not allowed:
                raise CircuitOpenError(self.breaker.name, self.breaker.retry_after)

            try:
                result = await asyncio.wait_for(operation(), timeout=self.timeout)
            except asyncio.TimeoutError:
                error: Exception = ProviderTimeoutError(self.timeout)
            except asyncio.CancelledError:
                self.breaker.release_probe(probe_token)
                raise
            except Exception as e:
                if not is_transient(e):
                    self.breaker.record_success()
                    raise
                error = e
            else:
                self.breaker.record_success()
                return result

            self.breaker.record_failure(error)
            last_error = error

            if attempt < attempts:
                delay = self.retry_delay()
                logger.warning(
                    f"Retrying '{self.breaker.name}' due to {error}. "
                    f"Retry attempt {attempt} after {delay * 1000:.0f}ms"
                )
                await self._sleep(delay)

        raise ProviderUnavailableError(self.breaker.name, attempts, last_error) from last_error


# Process-wide breakers, shared by every caller of the same endpoint
circuit_breakers = CircuitBreakerRegistry()
