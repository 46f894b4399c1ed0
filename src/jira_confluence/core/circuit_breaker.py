"""Per-service circuit breaker registry."""

from __future__ import annotations

import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import TypeVar

import structlog

from jira_confluence.exceptions import AppError

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitBreakerState(StrEnum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half-open"


ShouldTrip = Callable[[BaseException], bool]
OnStateChange = Callable[[CircuitBreakerState, CircuitBreakerState, str], None]


def _always_trip(error: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class CircuitBreakerOptions:
    """Breaker policy. ``reset_timeout`` is in seconds."""

    failure_threshold: int = 5
    reset_timeout: float = 30.0
    half_open_max_attempts: int = 1
    should_trip: ShouldTrip = _always_trip
    on_state_change: OnStateChange | None = None


@dataclass
class CircuitState:
    """Mutable health record for one service."""

    state: CircuitBreakerState = CircuitBreakerState.CLOSED
    failure_count: int = 0
    last_failure_time: float | None = None
    half_open_attempts: int = 0


@dataclass(frozen=True)
class CircuitStats:
    state: CircuitBreakerState
    failure_count: int
    last_failure_time: float | None


class CircuitBreakerRegistry:
    """Tracks a ``CircuitState`` per service name.

    A service's state is created on first use and lives until ``reset`` or
    ``reset_all``. Updates happen between awaits on a single event loop; the
    registry is not safe to share across threads.

    Args:
        clock: Monotonic time source in seconds; injectable for tests.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._circuits: dict[str, CircuitState] = {}

    def _get_or_create(self, service: str) -> CircuitState:
        circuit = self._circuits.get(service)
        if circuit is None:
            circuit = CircuitState()
            self._circuits[service] = circuit
        return circuit

    def _transition(
        self,
        service: str,
        circuit: CircuitState,
        new_state: CircuitBreakerState,
        options: CircuitBreakerOptions,
    ) -> None:
        old_state = circuit.state
        if old_state == new_state:
            return
        circuit.state = new_state
        if new_state == CircuitBreakerState.CLOSED:
            circuit.failure_count = 0
            circuit.half_open_attempts = 0
        elif new_state == CircuitBreakerState.HALF_OPEN:
            circuit.half_open_attempts = 0

        logger.info(
            "circuit_state_changed",
            service=service,
            from_state=old_state.value,
            to_state=new_state.value,
        )
        if options.on_state_change is not None:
            options.on_state_change(old_state, new_state, service)

    async def call(
        self,
        service: str,
        fn: Callable[[], Awaitable[T]],
        options: CircuitBreakerOptions | None = None,
    ) -> T:
        """Run *fn* through the breaker for *service*.

        Raises:
            AppError: ``CIRCUIT_BREAKER_OPEN`` when the circuit rejects the
                call; *fn* is not invoked in that case.
        """
        opts = options or CircuitBreakerOptions()
        circuit = self._get_or_create(service)

        if circuit.state == CircuitBreakerState.OPEN:
            elapsed = self._clock() - (circuit.last_failure_time or 0.0)
            if elapsed >= opts.reset_timeout:
                self._transition(service, circuit, CircuitBreakerState.HALF_OPEN, opts)
            else:
                raise AppError.circuit_breaker_open(service)

        trial = False
        if circuit.state == CircuitBreakerState.HALF_OPEN:
            if circuit.half_open_attempts >= opts.half_open_max_attempts:
                raise AppError.circuit_breaker_open(service)
            circuit.half_open_attempts += 1
            trial = True

        try:
            result = await fn()
        except Exception as exc:
            if not opts.should_trip(exc):
                # Give the trial slot back so the next call can try again.
                if trial and circuit.state == CircuitBreakerState.HALF_OPEN:
                    circuit.half_open_attempts -= 1
                raise
            circuit.failure_count += 1
            circuit.last_failure_time = self._clock()
            if circuit.state == CircuitBreakerState.HALF_OPEN:
                self._transition(service, circuit, CircuitBreakerState.OPEN, opts)
            elif circuit.failure_count >= opts.failure_threshold:
                self._transition(service, circuit, CircuitBreakerState.OPEN, opts)
            raise

        if circuit.state == CircuitBreakerState.HALF_OPEN:
            self._transition(service, circuit, CircuitBreakerState.CLOSED, opts)
        else:
            circuit.failure_count = 0
        return result

    def get_state(self, service: str) -> CircuitBreakerState:
        circuit = self._circuits.get(service)
        return circuit.state if circuit else CircuitBreakerState.CLOSED

    def get_stats(self, service: str) -> CircuitStats:
        circuit = self._circuits.get(service) or CircuitState()
        return CircuitStats(
            state=circuit.state,
            failure_count=circuit.failure_count,
            last_failure_time=circuit.last_failure_time,
        )

    def reset(self, service: str) -> None:
        self._circuits.pop(service, None)

    def reset_all(self) -> None:
        self._circuits.clear()

    def services(self) -> list[str]:
        return sorted(self._circuits)


# ---------------------------------------------------------------------------
# Process-wide default registry
# ---------------------------------------------------------------------------

default_registry = CircuitBreakerRegistry()


async def with_circuit_breaker(
    service: str,
    fn: Callable[[], Awaitable[T]],
    options: CircuitBreakerOptions | None = None,
) -> T:
    return await default_registry.call(service, fn, options)


def get_circuit_state(service: str) -> CircuitBreakerState:
    return default_registry.get_state(service)


def get_circuit_stats(service: str) -> CircuitStats:
    return default_registry.get_stats(service)


def reset_circuit(service: str) -> None:
    default_registry.reset(service)


def reset_all_circuits() -> None:
    default_registry.reset_all()
