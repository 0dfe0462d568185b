"""
Core Module - errors, logging and rate limiting shared across the service.
"""

from studybuddy.core.errors import (
    AuthError,
    InvalidInput,
    NotFoundError,
    PermissionDenied,
    PersistenceError,
    RateLimited,
    StudyBuddyError,
    UpstreamUnavailable,
    ValidationError,
)
from studybuddy.core.rate_limit import InMemoryRateLimitStore, RateLimiter

__all__ = [
    "StudyBuddyError",
    "ValidationError",
    "InvalidInput",
    "AuthError",
    "PermissionDenied",
    "NotFoundError",
    "RateLimited",
    "UpstreamUnavailable",
    "PersistenceError",
    "RateLimiter",
    "InMemoryRateLimitStore",
]
