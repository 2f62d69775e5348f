from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable, TypeVar

from sieve.app.errors import ResourceExhaustedError
from sieve.app.resilience.contracts import (
    CircuitSnapshot,
    CircuitState,
    ResiliencePolicy,
)
from sieve.app.resilience.errors import CircuitOpenError, RetryExhaustedError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


def _consume_task_exception(task: asyncio.Future) -> None:
    # Marks the outcome retrieved when every caller abandoned the shared call.
    if not task.cancelled():
        task.exception()


class CircuitBreaker:
    """Three-state breaker guarding a single remote dependency.

    CLOSED counts consecutive failures and opens at ``failure_threshold``.
    OPEN rejects calls until ``reset_timeout_s`` has passed since the last
    failure, then admits exactly one trial call in HALF_OPEN. Its outcome
    either closes the circuit or re-opens it with a fresh timestamp.
    """

    def __init__(
        self,
        name: str,
        *,
        failure_threshold: int,
        reset_timeout_s: float,
        clock: Clock = time.monotonic,
    ) -> None:
        self._name = name
        self._failure_threshold = failure_threshold
        self._reset_timeout_s = reset_timeout_s
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> CircuitState:
        return self._state

    def snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            state=self._state,
            failure_count=self._failure_count,
            last_failure_at=self._last_failure_at,
        )

    def before_call(self) -> None:
        if self._state is CircuitState.OPEN:
            remaining = self._remaining_cooldown()
            if remaining > 0:
                raise CircuitOpenError(self._name, remaining)
            self._transition(CircuitState.HALF_OPEN)
            self._trial_in_flight = True
            return
        if self._state is CircuitState.HALF_OPEN:
            if self._trial_in_flight:
                raise CircuitOpenError(self._name, 0.0)
            self._trial_in_flight = True

    def record_success(self) -> None:
        self._trial_in_flight = False
        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED)
        self._failure_count = 0

    def record_failure(self) -> None:
        self._trial_in_flight = False
        self._last_failure_at = self._clock()
        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN)
            return
        self._failure_count += 1
        if (
            self._state is CircuitState.CLOSED
            and self._failure_count >= self._failure_threshold
        ):
            self._transition(CircuitState.OPEN)

    def release_trial(self) -> None:
        self._trial_in_flight = False

    def retry_after_s(self) -> float:
        if self._state is CircuitState.OPEN:
            return self._remaining_cooldown()
        return 0.0

    def _remaining_cooldown(self) -> float:
        if self._last_failure_at is None:
            return 0.0
        elapsed = self._clock() - self._last_failure_at
        return max(self._reset_timeout_s - elapsed, 0.0)

    def _transition(self, target: CircuitState) -> None:
        if target is self._state:
            return
        LOGGER.info(
            "Circuit state transition",
            extra={
                "dependency": self._name,
                "from_state": self._state.value,
                "to_state": target.value,
                "failure_count": self._failure_count,
            },
        )
        self._state = target


class ResilienceWrapper:
    def __init__(
        self,
        name: str,
        policy: ResiliencePolicy | None = None,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
    ) -> None:
        self._name = name
        self._policy = policy or ResiliencePolicy()
        self._sleep = sleep
        self._breaker = CircuitBreaker(
            name,
            failure_threshold=self._policy.failure_threshold,
            reset_timeout_s=self._policy.reset_timeout_s,
            clock=clock,
        )
        self._in_flight: dict[str, asyncio.Task] = {}

    @property
    def name(self) -> str:
        return self._name

    def snapshot(self) -> CircuitSnapshot:
        return self._breaker.snapshot()

    def in_flight_keys(self) -> tuple[str, ...]:
        return tuple(self._in_flight)

    async def execute(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        result, _ = await self.execute_shared(key, operation)
        return result

    async def execute_shared(
        self, key: str, operation: Callable[[], Awaitable[T]]
    ) -> tuple[T, bool]:
        """Like ``execute``; the flag is True when an in-flight call was joined."""
        task = self._in_flight.get(key)
        joined = task is not None
        if task is None:
            task = asyncio.ensure_future(self._settle(key, operation))
            task.add_done_callback(_consume_task_exception)
            self._in_flight[key] = task
        else:
            LOGGER.debug(
                "Joining in-flight call",
                extra={"dependency": self._name, "key": key},
            )
        # An abandoning caller must not cancel the call other callers share.
        return await asyncio.shield(task), joined

    async def _settle(self, key: str, operation: Callable[[], Awaitable[T]]) -> T:
        try:
            return await self._run_with_policy(key, operation)
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    async def _run_with_policy(
        self, key: str, operation: Callable[[], Awaitable[T]]
    ) -> T:
        last_error: Exception | None = None
        for attempt in range(1, self._policy.max_retries + 1):
            self._breaker.before_call()
            try:
                result = await operation()
            except asyncio.CancelledError:
                self._breaker.release_trial()
                raise
            except ResourceExhaustedError:
                self._breaker.record_failure()
                LOGGER.warning(
                    "Dependency exhausted; abandoning retries",
                    extra={"dependency": self._name, "key": key, "attempt": attempt},
                )
                raise
            except Exception as exc:  # noqa: BLE001
                self._breaker.record_failure()
                last_error = exc
                LOGGER.warning(
                    "Dependency call failed",
                    extra={
                        "dependency": self._name,
                        "key": key,
                        "attempt": attempt,
                        "error_class": exc.__class__.__name__,
                    },
                )
                if self._breaker.state is CircuitState.OPEN:
                    raise CircuitOpenError(
                        self._name, self._breaker.retry_after_s()
                    ) from exc
                if attempt < self._policy.max_retries:
                    await self._sleep(self._policy.backoff_delay(attempt))
                continue
            self._breaker.record_success()
            return result
        raise RetryExhaustedError(key, self._policy.max_retries) from last_error
