"""Resilient call core: retry, circuit breaker, and raw error decoding."""

from jira_confluence.core.circuit_breaker import (
    CircuitBreakerOptions,
    CircuitBreakerRegistry,
    CircuitBreakerState,
    CircuitState,
    CircuitStats,
    default_registry,
    get_circuit_state,
    get_circuit_stats,
    reset_all_circuits,
    reset_circuit,
    with_circuit_breaker,
)
from jira_confluence.core.errors import (
    GenericErrorShape,
    HttpErrorShape,
    NetworkErrorShape,
    RawErrorShape,
    get_status_code,
    is_network_error,
    parse_raw_error,
)
from jira_confluence.core.retry import (
    RetryOptions,
    compute_backoff,
    default_should_retry,
    is_retryable_error,
    is_retryable_status_code,
    with_retry,
)

__all__ = [
    "CircuitBreakerOptions",
    "CircuitBreakerRegistry",
    "CircuitBreakerState",
    "CircuitState",
    "CircuitStats",
    "GenericErrorShape",
    "HttpErrorShape",
    "NetworkErrorShape",
    "RawErrorShape",
    "RetryOptions",
    "compute_backoff",
    "default_registry",
    "default_should_retry",
    "get_circuit_state",
    "get_circuit_stats",
    "get_status_code",
    "is_network_error",
    "is_retryable_error",
    "is_retryable_status_code",
    "parse_raw_error",
    "reset_all_circuits",
    "reset_circuit",
    "with_circuit_breaker",
    "with_retry",
]
