# backend/utils/__init__.py
"""
Utility modules for the camera adapter backend.
"""

from .retry_timer import RetryTimer

__all__ = [
    "RetryTimer",
]
