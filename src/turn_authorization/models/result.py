"""
Result model returned by AuthorizationManager.process.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AuthorizationResult:
    """Whether the current turn may proceed to the application logic."""

    authorized: bool
    handler_id: Optional[str] = None

    def __bool__(self) -> bool:
        return self.authorized

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "authorized": self.authorized,
            "handler_id": self.handler_id
        }
