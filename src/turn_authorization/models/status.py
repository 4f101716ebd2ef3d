"""
Handler status values returned from sign-in.
"""

from enum import Enum


class AuthorizationHandlerStatus(str, Enum):
    """Outcome of a single handler's sign-in step for the current turn."""

    APPROVED = "approved"
    PENDING = "pending"
    REJECTED = "rejected"
    IGNORED = "ignored"
    REVALIDATE = "revalidate"
