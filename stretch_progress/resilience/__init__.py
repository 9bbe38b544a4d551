"""Resilience patterns for persistent-store calls

Retry with exponential backoff for version conflicts and transient
store failures.
"""

from stretch_progress.resilience.retry import (
    calculate_backoff,
    is_retryable_error,
    retry_with_backoff,
)

__all__ = [
    "calculate_backoff",
    "is_retryable_error",
    "retry_with_backoff",
]
