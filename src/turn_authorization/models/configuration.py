"""
Configuration models for authorization handlers.

Uses dataclasses for simple SDK compatibility. Every field is the canonical,
already-normalized form produced by config.load_authorization_options.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..constants import HandlerTypes

DEFAULT_TITLE = "Sign-in"
DEFAULT_TEXT = "Please sign-in to continue"
DEFAULT_SIGN_IN_ATTEMPTS = 2

DEFAULT_INVALID_CODE_MESSAGE = (
    "Invalid **{code}** code entered. Please try again with a new sign-in request."
)
DEFAULT_INVALID_CODE_FORMAT_MESSAGE = (
    "Please enter a valid **6-digit** code format (_e.g. 123456_).\r\n"
    "**{attemptsLeft} attempt(s) left...**"
)
DEFAULT_MAX_ATTEMPTS_EXCEEDED_MESSAGE = (
    "You have exceeded the maximum number of sign-in attempts ({maxAttempts}). "
    "Please try again with a new sign-in request."
)


@dataclass
class AuthorizationMessages:
    """Templates sent to the user during the magic code flow."""

    invalid_code: str = DEFAULT_INVALID_CODE_MESSAGE
    invalid_code_format: str = DEFAULT_INVALID_CODE_FORMAT_MESSAGE
    max_attempts_exceeded: str = DEFAULT_MAX_ATTEMPTS_EXCEEDED_MESSAGE


@dataclass
class AuthorizationHandlerOptions:
    """Normalized settings for a single authorization handler."""

    id: str
    type: str = HandlerTypes.AZURE_BOT
    azure_bot_oauth_connection_name: Optional[str] = None
    title: str = DEFAULT_TITLE
    text: str = DEFAULT_TEXT
    invalid_sign_in_retry_max: Optional[int] = None
    messages: AuthorizationMessages = field(default_factory=AuthorizationMessages)
    obo_connection_name: Optional[str] = None
    obo_scopes: List[str] = field(default_factory=list)
    enable_sso: bool = True
    scopes: List[str] = field(default_factory=list)
    alt_blueprint_connection_name: Optional[str] = None

    @property
    def max_attempts(self) -> int:
        """Magic code attempts granted to a new session."""
        if isinstance(self.invalid_sign_in_retry_max, int) and self.invalid_sign_in_retry_max > 0:
            return self.invalid_sign_in_retry_max
        return DEFAULT_SIGN_IN_ATTEMPTS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "type": self.type,
            "azure_bot_oauth_connection_name": self.azure_bot_oauth_connection_name,
            "title": self.title,
            "text": self.text,
            "invalid_sign_in_retry_max": self.invalid_sign_in_retry_max,
            "messages": {
                "invalid_code": self.messages.invalid_code,
                "invalid_code_format": self.messages.invalid_code_format,
                "max_attempts_exceeded": self.messages.max_attempts_exceeded,
            },
            "obo_connection_name": self.obo_connection_name,
            "obo_scopes": list(self.obo_scopes),
            "enable_sso": self.enable_sso,
            "scopes": list(self.scopes),
            "alt_blueprint_connection_name": self.alt_blueprint_connection_name,
        }


@dataclass
class HostSettings:
    """Sample host configuration."""

    log_level: str = "INFO"
    auth_handler_ids: List[str] = field(default_factory=list)
    agents_sdk_config: dict = None
