"""Utility Functions"""

from cb_core_lib.utils.resilience import (
    service_startup_retry,
    create_startup_retry,
)

__all__ = [
    "service_startup_retry",
    "create_startup_retry",
]
