"""
Turn-scoped authorization for Microsoft 365 Agents SDK applications.

Decides on every inbound turn whether the user is authorized, driving the
configured sign-in handlers and persisting in-flight sign-in sessions.
"""

from .errors import (
    AuthorizationError,
    AuthorizationConfigurationError,
    AuthorizationHandlerError,
)
from .models.status import AuthorizationHandlerStatus
from .models.active_handler import ActiveAuthorizationHandler
from .models.configuration import AuthorizationHandlerOptions
from .models.result import AuthorizationResult
from .handlers.base import AuthorizationHandler, TokenOptions
from .handlers.azure_bot import AzureBotAuthorization
from .handlers.agentic import AgenticAuthorization
from .handlers.connector_user import ConnectorUserAuthorization
from .state.handler_storage import HandlerStorage
from .manager import AuthorizationManager
from .config import load_authorization_options

__all__ = [
    "AuthorizationError",
    "AuthorizationConfigurationError",
    "AuthorizationHandlerError",
    "AuthorizationHandlerStatus",
    "ActiveAuthorizationHandler",
    "AuthorizationHandlerOptions",
    "AuthorizationResult",
    "AuthorizationHandler",
    "TokenOptions",
    "AzureBotAuthorization",
    "AgenticAuthorization",
    "ConnectorUserAuthorization",
    "HandlerStorage",
    "AuthorizationManager",
    "load_authorization_options",
]
