"""
Delegated user tokens carried by the inbound connector request.
"""

import logging
from typing import Optional

from microsoft_agents.activity import TokenResponse
from microsoft_agents.hosting.core import Connections, TurnContext

from ..errors import AuthorizationConfigurationError
from ..models.active_handler import ActiveAuthorizationHandler
from ..models.configuration import AuthorizationHandlerOptions
from ..models.status import AuthorizationHandlerStatus
from .base import SignInCallbacks, TokenOptions, prefix
from .on_behalf_of import OnBehalfOfExchange

logger = logging.getLogger(__name__)


class ConnectorUserAuthorization:
    """Handler that reads the user token from the request identity."""

    def __init__(
        self,
        handler_id: str,
        options: AuthorizationHandlerOptions,
        connections: Connections
    ):
        self.id = handler_id
        self._options = options
        self._callbacks = SignInCallbacks()
        self._obo = OnBehalfOfExchange(
            handler_id,
            connections,
            connection_name=options.obo_connection_name,
            scopes=options.obo_scopes,
        )

    def on_success(self, callback) -> None:
        self._callbacks.on_success(callback)

    def on_failure(self, callback) -> None:
        self._callbacks.on_failure(callback)

    async def signin(
        self, context: TurnContext, active: Optional[ActiveAuthorizationHandler] = None
    ) -> AuthorizationHandlerStatus:
        """
        Approve the turn when a token can be produced.

        Args:
            context: Current turn context.
            active: Unused; this handler never persists a session.

        Returns:
            APPROVED when a token is available, REJECTED otherwise.
        """
        token_response = await self.token(context)
        if token_response:
            await self._callbacks.success(context)
            return AuthorizationHandlerStatus.APPROVED

        logger.warning(prefix(self.id, "No token available from the connector request"))
        await self._callbacks.failure(context, "No token available from the connector request")
        return AuthorizationHandlerStatus.REJECTED

    async def signout(self, context: TurnContext) -> bool:
        """Nothing to sign out of; the token belongs to the request."""
        return True

    async def token(
        self, context: TurnContext, options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        """
        Get the request token, exchanged on-behalf-of when scopes apply.

        Args:
            context: Current turn context.
            options: Optional on-behalf-of connection and scopes.

        Returns:
            The token response.

        Raises:
            AuthorizationConfigurationError: If the request carries no identity.
        """
        identity = context.identity
        if identity is None:
            raise AuthorizationConfigurationError(
                prefix(self.id, "Unexpected connector request token: the turn has no identity")
            )

        token = getattr(identity, "security_token", None)
        if not token:
            return TokenResponse()

        return await self._obo.exchange(TokenResponse(token=token), options)
