"""
Interactive OAuth sign-in through the Azure Bot token service.

Covers the sign-in card, magic code confirmation, the Teams token exchange
(SSO) and an optional on-behalf-of exchange of the resulting user token.
"""

import logging
import re
from typing import Any, Dict, Optional

from microsoft_agents.activity import (
    ActionTypes,
    ActivityTypes,
    CardAction,
    OAuthCard,
    TokenExchangeRequest,
    TokenResponse,
)
from microsoft_agents.hosting.core import (
    CardFactory,
    Connections,
    MessageFactory,
    Storage,
    TurnContext,
)

from ..constants import CANCELLED_BY_USER, InvokeNames, SessionCategories
from ..errors import AuthorizationConfigurationError, AuthorizationHandlerError
from ..models.active_handler import ActiveAuthorizationHandler
from ..models.configuration import AuthorizationHandlerOptions
from ..models.status import AuthorizationHandlerStatus
from ..state.handler_storage import HandlerStorage
from .base import (
    SignInCallbacks,
    TokenOptions,
    cache_token,
    clear_cached_token,
    get_cached_token,
    prefix,
    send_invoke_response,
)
from .on_behalf_of import OnBehalfOfExchange

logger = logging.getLogger(__name__)

MAGIC_CODE_PATTERN = re.compile(r"^\d{6}$", re.ASCII)
SIGN_IN_FAILED_MESSAGE = "Failed to sign-in"


class AzureBotAuthorization:
    """
    Handler for user sign-in with an Azure Bot OAuth connection.

    A turn without an active session either finds a cached user token and is
    approved, or sends an OAuth card and persists a new session. Later turns
    complete the session with a magic code, a Teams token exchange, or a
    sign-in failure notification.
    """

    def __init__(
        self,
        handler_id: str,
        options: AuthorizationHandlerOptions,
        storage: Storage,
        connections: Connections
    ):
        """
        Initialize the handler.

        Args:
            handler_id: Configured handler id.
            options: Normalized handler settings.
            storage: Storage for the sign-in session.
            connections: Connection registry used for on-behalf-of exchanges.

        Raises:
            AuthorizationConfigurationError: If no OAuth connection name is configured.
        """
        if not options.azure_bot_oauth_connection_name:
            raise AuthorizationConfigurationError(
                prefix(handler_id, "The 'azure_bot_oauth_connection_name' setting is required")
            )

        self.id = handler_id
        self._options = options
        self._storage = storage
        self._callbacks = SignInCallbacks()
        self._obo = OnBehalfOfExchange(
            handler_id,
            connections,
            connection_name=options.obo_connection_name,
            scopes=options.obo_scopes,
        )
        self._cache_key = f"{AzureBotAuthorization.__name__}/{handler_id}"

    @property
    def connection_name(self) -> str:
        """OAuth connection configured on the Azure Bot resource."""
        return self._options.azure_bot_oauth_connection_name

    @property
    def max_attempts(self) -> int:
        """Magic code attempts granted to a new session."""
        return self._options.max_attempts

    def on_success(self, callback) -> None:
        self._callbacks.on_success(callback)

    def on_failure(self, callback) -> None:
        self._callbacks.on_failure(callback)

    async def token(
        self, context: TurnContext, options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        """
        Get the user token, exchanged on-behalf-of when scopes apply.

        Uses the token cached during this turn when there is one. Otherwise the
        token service is asked without starting a sign-in.

        Args:
            context: Current turn context.
            options: Optional on-behalf-of connection and scopes.

        Returns:
            The token, or an empty TokenResponse if the user is not signed in.
        """
        token_response = get_cached_token(context, self._cache_key)

        if not token_response:
            response = await self._get_token_or_sign_in_resource(context)
            token_response = response.token_response
            if token_response:
                cache_token(context, self._cache_key, token_response)

        if not token_response:
            return TokenResponse()

        return await self._obo.exchange(token_response, options)

    async def signout(self, context: TurnContext) -> bool:
        """
        Sign the user out of the OAuth connection.

        Args:
            context: Current turn context.

        Returns:
            True once the token service signed the user out.

        Raises:
            AuthorizationConfigurationError: If the channel or user id is missing.
        """
        activity = context.activity
        user_id = activity.from_property.id if activity.from_property else None
        if not activity.channel_id or not user_id:
            raise AuthorizationConfigurationError(
                prefix(self.id, "Both 'activity.channel_id' and 'activity.from.id' are required to sign out")
            )

        logger.debug(
            prefix(self.id, f"Signing out user '{user_id}' from channel '{activity.channel_id}', connection '{self.connection_name}'")
        )
        client = self._user_token_client(context)
        await client.sign_out_user(user_id, self.connection_name, activity.channel_id)
        clear_cached_token(context, self._cache_key)
        return True

    async def signin(
        self, context: TurnContext, active: Optional[ActiveAuthorizationHandler] = None
    ) -> AuthorizationHandlerStatus:
        """
        Start or continue the sign-in for the current turn.

        Args:
            context: Current turn context.
            active: The session owned by this handler, if any.

        Returns:
            Status of the sign-in for this turn.
        """
        storage = HandlerStorage(self._storage, context)

        if active is None:
            return await self._begin(context, storage)

        logger.debug(prefix(self.id, "Sign-in active session detected"))
        activity = context.activity

        if activity.type == ActivityTypes.invoke and activity.name == InvokeNames.TOKEN_EXCHANGE:
            return await self._exchange(context, storage, active)

        if activity.type == ActivityTypes.invoke and activity.name == InvokeNames.FAILURE:
            return await self._sign_in_failure(context)

        code = await self._verify_code(context, storage, active)
        if isinstance(code, AuthorizationHandlerStatus):
            return code

        try:
            response = await self._get_token_or_sign_in_resource(context, code)
            if not response.token_response:
                logger.warning(prefix(self.id, "Invalid code entered. Restarting sign-in flow"))
                await context.send_activity(
                    MessageFactory.text(_render(self._options.messages.invalid_code, code=code))
                )
                await send_invoke_response(context, 404)
                await self._callbacks.failure(context, "Invalid magic code")
                return AuthorizationHandlerStatus.REJECTED

            cache_token(context, self._cache_key, response.token_response)
            await send_invoke_response(context, 200)
            await self._callbacks.success(context)
            return AuthorizationHandlerStatus.APPROVED
        except Exception:
            await send_invoke_response(context, 500)
            raise

    async def _begin(
        self, context: TurnContext, storage: HandlerStorage
    ) -> AuthorizationHandlerStatus:
        response = await self._get_token_or_sign_in_resource(context)

        if response.token_response:
            logger.debug(prefix(self.id, "Successfully acquired token"))
            cache_token(context, self._cache_key, response.token_response)
            return AuthorizationHandlerStatus.APPROVED

        sign_in_resource = response.sign_in_resource
        if not sign_in_resource:
            raise AuthorizationHandlerError(
                prefix(self.id, "The token service returned neither a token nor a sign-in resource"),
                handler_id=self.id,
            )

        logger.debug(prefix(self.id, "Cannot find token. Sending sign-in card"))
        resources = {
            "token_exchange_resource": (
                sign_in_resource.token_exchange_resource if self._options.enable_sso else None
            ),
            "token_post_resource": sign_in_resource.token_post_resource,
        }
        card = CardFactory.oauth_card(
            OAuthCard(
                text=self._options.text,
                connection_name=self.connection_name,
                buttons=[
                    CardAction(
                        title=self._options.title,
                        type=ActionTypes.signin,
                        value=sign_in_resource.sign_in_link,
                    )
                ],
                **{key: value for key, value in resources.items() if value is not None},
            )
        )
        await context.send_activity(MessageFactory.attachment(card))
        await storage.write(
            ActiveAuthorizationHandler(
                id=self.id,
                activity=context.activity,
                attempts_left=self.max_attempts,
                category=SessionCategories.SIGN_IN,
            )
        )
        return AuthorizationHandlerStatus.PENDING

    async def _exchange(
        self,
        context: TurnContext,
        storage: HandlerStorage,
        active: ActiveAuthorizationHandler
    ) -> AuthorizationHandlerStatus:
        activity = context.activity
        request = _as_dict(activity.value)
        request_id = request.get("id")

        if not request.get("token"):
            reason = (
                "The Agent received an InvokeActivity that is missing a TokenExchangeInvokeRequest value. "
                "This is required to be sent with the InvokeActivity."
            )
            return await self._reject_exchange(context, request_id, reason)

        if request.get("connectionName") != self.connection_name:
            reason = (
                "The Agent received an InvokeActivity with a TokenExchangeInvokeRequest for a different "
                f"connection name ('{request.get('connectionName')}') than expected ('{self.connection_name}')."
            )
            return await self._reject_exchange(context, request_id, reason)

        client = self._user_token_client(context)
        try:
            token_response = await client.exchange_token(
                activity.from_property.id,
                self.connection_name,
                activity.channel_id,
                TokenExchangeRequest(token=request["token"], uri=request.get("uri") or None),
            )
        except Exception as ex:
            logger.error(prefix(self.id, f"Token exchange failed: {ex}"))
            token_response = None

        if not token_response:
            logger.warning(prefix(self.id, "Token exchange returned no token. Waiting for the identity provider"))
            await send_invoke_response(
                context,
                412,
                {
                    "id": request_id,
                    "connectionName": self.connection_name,
                    "failureDetail": "The token exchange has not completed yet.",
                },
            )
            active.category = SessionCategories.TOKEN_EXCHANGE
            await storage.write(active)
            return AuthorizationHandlerStatus.PENDING

        await send_invoke_response(
            context, 200, {"id": request_id, "connectionName": self.connection_name}
        )
        logger.debug(prefix(self.id, "Successfully exchanged token"))
        cache_token(context, self._cache_key, token_response)
        await self._callbacks.success(context)
        return AuthorizationHandlerStatus.APPROVED

    async def _reject_exchange(
        self, context: TurnContext, request_id: Optional[str], reason: str
    ) -> AuthorizationHandlerStatus:
        logger.error(prefix(self.id, reason))
        await send_invoke_response(
            context,
            400,
            {"id": request_id, "connectionName": self.connection_name, "failureDetail": reason},
        )
        await self._callbacks.failure(context, reason)
        return AuthorizationHandlerStatus.REJECTED

    async def _sign_in_failure(self, context: TurnContext) -> AuthorizationHandlerStatus:
        await send_invoke_response(context, 200)
        value = _as_dict(context.activity.value)
        logger.error(prefix(self.id, f"{SIGN_IN_FAILED_MESSAGE}: {value}"))

        if self._callbacks.has_failure:
            await self._callbacks.failure(context, value.get("message") or SIGN_IN_FAILED_MESSAGE)
        else:
            await context.send_activity(
                MessageFactory.text(f"{SIGN_IN_FAILED_MESSAGE}. Please try again.")
            )
        return AuthorizationHandlerStatus.REJECTED

    async def _verify_code(
        self,
        context: TurnContext,
        storage: HandlerStorage,
        active: ActiveAuthorizationHandler
    ):
        """Return the magic code to redeem, or the status ending this turn."""
        activity = context.activity
        attempts_left = active.attempts_left if active.attempts_left is not None else self.max_attempts

        if attempts_left <= 0:
            logger.warning(prefix(self.id, "Maximum sign-in attempts exceeded"))
            await context.send_activity(
                MessageFactory.text(
                    _render(self._options.messages.max_attempts_exceeded, maxAttempts=self.max_attempts)
                )
            )
            return AuthorizationHandlerStatus.REJECTED

        code = activity.text
        if activity.type == ActivityTypes.invoke and activity.name == InvokeNames.VERIFY_STATE:
            code = _as_dict(activity.value).get("state")

        if code == CANCELLED_BY_USER:
            await send_invoke_response(context, 200)
            logger.warning(prefix(self.id, "Sign-in process was cancelled by the user"))
            return AuthorizationHandlerStatus.REJECTED

        code = code.strip() if isinstance(code, str) else ""
        if not MAGIC_CODE_PATTERN.match(code):
            logger.warning(prefix(self.id, f"Invalid magic code entered. Attempts left: {attempts_left}"))
            await context.send_activity(
                MessageFactory.text(
                    _render(self._options.messages.invalid_code_format, attemptsLeft=attempts_left)
                )
            )
            active.attempts_left = attempts_left - 1
            active.category = SessionCategories.MAGIC_CODE
            await storage.write(active)
            return AuthorizationHandlerStatus.PENDING

        return code

    async def _get_token_or_sign_in_resource(self, context: TurnContext, code: Optional[str] = None):
        client = self._user_token_client(context)
        return await client.get_token_or_sign_in_resource(
            self.connection_name, context.activity, code
        )

    def _user_token_client(self, context: TurnContext):
        client = context.turn_state.get(context.adapter.USER_TOKEN_CLIENT_KEY)
        if not client:
            raise AuthorizationHandlerError(
                prefix(
                    self.id,
                    "The user token client is not available in the turn state. "
                    "Ensure the adapter supports user token operations.",
                ),
                handler_id=self.id,
            )
        return client


def _render(template: str, **values: Any) -> str:
    """Substitute ``{name}`` placeholders, leaving unknown braces alone."""
    for name, value in values.items():
        template = template.replace("{" + name + "}", str(value))
    return template


def _as_dict(value: Any) -> Dict[str, Any]:
    if value is None:
        return {}
    if hasattr(value, "model_dump"):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, dict):
        return value
    return {}
