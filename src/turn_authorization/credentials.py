"""
Azure SDK credential backed by an authorization handler.

Wraps AuthorizationManager.token so Azure SDK clients that expect a
TokenCredential can call downstream services with the signed-in user's
token for the current turn.
"""

from typing import Optional

import jwt
from azure.core.credentials import AccessToken
from microsoft_agents.hosting.core import TurnContext

from .handlers.base import TokenOptions
from .manager import AuthorizationManager


class AuthorizationTokenCredential:
    """
    TokenCredential-style wrapper around a handler's token for one turn.

    Uses duck typing (no inheritance) so it can be handed to any Azure SDK
    client accepting an async credential.

    Example:
        ```python
        credential = AuthorizationTokenCredential(manager, context, "graph")
        token = await credential.get_token("https://graph.microsoft.com/.default")
        ```
    """

    def __init__(
        self,
        manager: AuthorizationManager,
        turn_context: TurnContext,
        handler_id: str,
        connection: Optional[str] = None
    ):
        """
        Initialize the credential.

        Args:
            manager: Authorization manager owning the handler.
            turn_context: The current turn context.
            handler_id: Id of the handler producing the token.
            connection: Optional connection used for on-behalf-of exchanges.

        Raises:
            ValueError: If handler_id or turn_context is missing.
        """
        if not handler_id:
            raise ValueError("handler_id cannot be None or empty")
        if not turn_context:
            raise ValueError("turn_context cannot be None")

        self._manager = manager
        self._turn_context = turn_context
        self._handler_id = handler_id
        self._connection = connection

    async def get_token(self, *scopes: str, **kwargs) -> AccessToken:
        """
        Get an access token for the specified scopes.

        Args:
            *scopes: Scopes for an on-behalf-of exchange. With no scopes the
                handler's configured scopes apply.
            **kwargs: Ignored; accepted for TokenCredential compatibility.

        Returns:
            AccessToken with the token and its ``exp`` claim as expiry.

        Raises:
            RuntimeError: If no token is available or its expiry cannot be read.
        """
        options = TokenOptions(connection=self._connection, scopes=list(scopes) or None)
        token_response = await self._manager.token(self._turn_context, self._handler_id, options)

        if not token_response or not token_response.token:
            raise RuntimeError(
                f"No token available from authorization handler '{self._handler_id}'"
            )

        jwt_token = token_response.token
        try:
            decoded = jwt.decode(jwt_token, options={"verify_signature": False})
        except jwt.PyJWTError as ex:
            raise RuntimeError(f"Failed to parse JWT token expiration: {ex}") from ex

        exp_claim = decoded.get("exp")
        if exp_claim is None:
            raise RuntimeError("JWT does not contain an 'exp' claim")

        return AccessToken(token=jwt_token, expires_on=int(exp_claim))

    async def close(self) -> None:
        """No resources to release."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()
