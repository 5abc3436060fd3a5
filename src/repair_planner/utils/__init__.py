"""Utility Functions"""

from repair_planner.utils.resilience import (
    RetryPolicy,
    service_startup_retry,
    create_custom_retry,
)

__all__ = [
    "RetryPolicy",
    "service_startup_retry",
    "create_custom_retry",
]
