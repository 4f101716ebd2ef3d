"""
Error types raised by the authorization engine.
"""


class AuthorizationError(Exception):
    """Base class for authorization engine errors."""


class AuthorizationConfigurationError(AuthorizationError, ValueError):
    """Missing or invalid configuration, raised at construction or when an id cannot be resolved."""


class AuthorizationHandlerError(AuthorizationError, RuntimeError):
    """A handler misbehaved or failed while signing a user in."""

    def __init__(self, message: str, handler_id: str = None):
        super().__init__(message)
        self.handler_id = handler_id
