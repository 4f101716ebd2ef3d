"""
On-behalf-of token exchange shared by the user-token handlers.
"""

import logging
from typing import List, Optional

import jwt
from microsoft_agents.activity import TokenResponse
from microsoft_agents.hosting.core import Connections

from ..constants import OBO_AUDIENCE_PREFIX
from ..errors import AuthorizationConfigurationError
from .base import TokenOptions, prefix

logger = logging.getLogger(__name__)


def is_exchangeable(token: Optional[str]) -> bool:
    """
    Check if a token can be exchanged in an on-behalf-of flow.

    The token is decoded without signature verification; it is exchangeable
    when any of its audiences starts with ``api://``.

    Args:
        token: Encoded JWT.

    Returns:
        True if the audience allows the exchange.
    """
    if not token or not isinstance(token, str):
        return False

    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return False

    audiences = payload.get("aud")
    if not isinstance(audiences, list):
        audiences = [audiences]
    return any(isinstance(aud, str) and aud.startswith(OBO_AUDIENCE_PREFIX) for aud in audiences)


class OnBehalfOfExchange:
    """Exchanges a user token for a downstream token using the connection registry."""

    def __init__(
        self,
        handler_id: str,
        connections: Connections,
        connection_name: Optional[str] = None,
        scopes: Optional[List[str]] = None
    ):
        self._handler_id = handler_id
        self._connections = connections
        self._connection_name = connection_name
        self._scopes = list(scopes or [])

    async def exchange(
        self, token_response: TokenResponse, options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        """
        Exchange the token when on-behalf-of scopes apply.

        Args:
            token_response: Base user token.
            options: Optional connection and scopes overriding the configured ones.

        Returns:
            The exchanged token, the base token when no scopes apply, or an
            empty TokenResponse when the exchange fails.

        Raises:
            AuthorizationConfigurationError: If the base token audience does not
                allow an on-behalf-of exchange.
        """
        if not token_response:
            return token_response

        connection_name = (options.connection if options else None) or self._connection_name
        scopes = options.scopes if options and options.scopes else self._scopes
        if not scopes:
            return token_response

        if not is_exchangeable(token_response.token):
            raise AuthorizationConfigurationError(
                prefix(
                    self._handler_id,
                    "The current token is not exchangeable for an on-behalf-of flow. "
                    f"Ensure the token audience starts with '{OBO_AUDIENCE_PREFIX}'.",
                )
            )

        try:
            provider = (
                self._connections.get_connection(connection_name)
                if connection_name
                else self._connections.get_default_connection()
            )
            token = await provider.acquire_token_on_behalf_of(
                scopes=scopes, user_assertion=token_response.token
            )
        except Exception as ex:
            logger.error(
                prefix(
                    self._handler_id,
                    f"Failed to exchange on-behalf-of token (connection: {connection_name}, scopes: {scopes}): {ex}",
                )
            )
            return TokenResponse()

        if not token:
            logger.warning(prefix(self._handler_id, "On-behalf-of exchange returned no token"))
            return TokenResponse()

        logger.debug(
            prefix(self._handler_id, f"Acquired on-behalf-of token for scopes {scopes}")
        )
        return TokenResponse(token=token)
