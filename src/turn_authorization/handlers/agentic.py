"""
Headless agentic user tokens.

The agent platform issues these tokens without user interaction, so the
handler never owns a sign-in session and never blocks a turn.
"""

import logging
from typing import Optional

from microsoft_agents.activity import TokenResponse
from microsoft_agents.hosting.core import Connections, TurnContext

from ..errors import AuthorizationConfigurationError
from ..models.active_handler import ActiveAuthorizationHandler
from ..models.configuration import AuthorizationHandlerOptions
from ..models.status import AuthorizationHandlerStatus
from .base import SignInCallbacks, TokenOptions, cache_token, get_cached_token, prefix

logger = logging.getLogger(__name__)


class AgenticAuthorization:
    """Handler for agentic user tokens, cached per scope set within a turn."""

    def __init__(
        self,
        handler_id: str,
        options: AuthorizationHandlerOptions,
        connections: Connections
    ):
        """
        Initialize the handler.

        Args:
            handler_id: Configured handler id.
            options: Normalized handler settings.
            connections: Connection registry resolving the token provider.

        Raises:
            AuthorizationConfigurationError: If the connection registry or the
                scopes are missing.
        """
        if connections is None:
            raise AuthorizationConfigurationError(
                prefix(handler_id, "A connection registry is required")
            )
        if not options.scopes:
            raise AuthorizationConfigurationError(
                prefix(handler_id, "At least one scope must be specified")
            )

        self.id = handler_id
        self._options = options
        self._connections = connections
        self._callbacks = SignInCallbacks()

    def on_success(self, callback) -> None:
        self._callbacks.on_success(callback)

    def on_failure(self, callback) -> None:
        self._callbacks.on_failure(callback)

    async def signin(
        self, context: TurnContext, active: Optional[ActiveAuthorizationHandler] = None
    ) -> AuthorizationHandlerStatus:
        """Agentic tokens need no sign-in."""
        return AuthorizationHandlerStatus.IGNORED

    async def signout(self, context: TurnContext) -> bool:
        """Agentic tokens cannot be signed out of."""
        return False

    async def token(
        self, context: TurnContext, options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        """
        Get an agentic user token for the requested scopes.

        Failures never propagate: they are logged, reported to the failure
        callback and turned into an empty TokenResponse.

        Args:
            context: Current turn context.
            options: Optional scopes overriding the configured ones.

        Returns:
            The token, or an empty TokenResponse.
        """
        scopes = list(options.scopes) if options and options.scopes else list(self._options.scopes)
        cache_key = self._cache_key(scopes)

        cached = get_cached_token(context, cache_key)
        if cached:
            return cached

        try:
            token = await self._acquire(context, scopes)
        except Exception as ex:
            logger.error(prefix(self.id, f"Failed to acquire agentic user token: {ex}"))
            await self._callbacks.failure(context, str(ex))
            return TokenResponse()

        token_response = TokenResponse(token=token)
        cache_token(context, cache_key, token_response)
        await self._callbacks.success(context)
        return token_response

    async def _acquire(self, context: TurnContext, scopes) -> str:
        activity = context.activity
        if not activity.is_agentic_request():
            raise AuthorizationConfigurationError("The activity is not an agentic request")

        tenant_id = activity.get_agentic_tenant_id()
        instance_id = activity.get_agentic_instance_id()
        user_id = activity.get_agentic_user()
        if not tenant_id or not instance_id or not user_id:
            raise AuthorizationConfigurationError(
                f"Missing agentic identifiers (tenant: {tenant_id}, instance: {instance_id}, user: {user_id})"
            )

        alt_connection = self._options.alt_blueprint_connection_name
        if alt_connection:
            logger.debug(prefix(self.id, f"Using alternate blueprint connection '{alt_connection}'"))
            provider = self._connections.get_connection(alt_connection)
        else:
            provider = self._connections.get_token_provider(context.identity, activity.service_url)

        token = await provider.get_agentic_user_token(tenant_id, instance_id, user_id, scopes)
        if not token:
            raise RuntimeError("The token provider returned no agentic user token")
        return token

    def _cache_key(self, scopes) -> str:
        return f"{AgenticAuthorization.__name__}/{self.id}/{','.join(scopes)}"
