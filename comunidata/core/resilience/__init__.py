"""
Resilience primitives for calls to external AI providers.
"""

from .circuit_breaker import CircuitBreaker, CircuitBreakerState, Permit
from .resilient_call import ResilientCall
from .retry import RetryPolicy

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerState",
    "Permit",
    "ResilientCall",
    "RetryPolicy",
]
