"""
Per-turn authorization orchestration.

The AuthorizationManager owns the handler registry and decides, for every
inbound turn, whether the user may proceed. It loads the persisted sign-in
session, runs the relevant handlers in order and reacts to their status.
"""

import inspect
import logging
from typing import Awaitable, Callable, Dict, List, Mapping, Optional, Union

from microsoft_agents.activity import Activity, TokenResponse
from microsoft_agents.hosting.core import Connections, Storage, TurnContext

from .config import load_authorization_options
from .constants import MAX_REVALIDATIONS, HandlerTypes
from .errors import AuthorizationConfigurationError, AuthorizationHandlerError
from .handlers.agentic import AgenticAuthorization
from .handlers.azure_bot import AzureBotAuthorization
from .handlers.base import AuthorizationHandler, TokenOptions, prefix
from .handlers.connector_user import ConnectorUserAuthorization
from .models.active_handler import ActiveAuthorizationHandler
from .models.configuration import AuthorizationHandlerOptions
from .models.result import AuthorizationResult
from .models.status import AuthorizationHandlerStatus
from .state.handler_storage import HandlerStorage

logger = logging.getLogger(__name__)

HandlerIdResolver = Callable[[Activity], Union[List[str], Awaitable[List[str]]]]


class AuthorizationManager:
    """
    Coordinates the authorization handlers for each turn.

    The handler registry is built once from normalized options and is not
    modified afterwards.
    """

    def __init__(
        self,
        storage: Storage,
        connections: Connections,
        options: Optional[Mapping[str, AuthorizationHandlerOptions]] = None
    ):
        """
        Initialize the manager and build its handlers.

        Args:
            storage: Storage holding the sign-in sessions.
            connections: Connection registry passed to the handlers.
            options: Normalized handler options keyed by handler id.

        Raises:
            AuthorizationConfigurationError: If storage or connections are missing,
                the options are empty, or a handler setting is invalid.
        """
        if storage is None:
            raise AuthorizationConfigurationError("Storage is required for user authorization")
        if connections is None:
            raise AuthorizationConfigurationError("Connections are required for user authorization")
        if options is not None and len(options) == 0:
            raise AuthorizationConfigurationError(
                "The user authorization does not have any auth handlers"
            )

        self._storage = storage
        self._connections = connections
        self._handlers: Dict[str, AuthorizationHandler] = {}

        for handler_id, handler_options in (options or {}).items():
            self._handlers[handler_id] = self._create_handler(handler_id, handler_options)

        logger.info(f"Authorization manager initialized with handlers: {list(self._handlers)}")

    @classmethod
    def from_configuration(
        cls,
        storage: Storage,
        connections: Connections,
        options: Optional[Mapping[str, dict]] = None,
        environ: Optional[Mapping[str, str]] = None
    ) -> "AuthorizationManager":
        """
        Build a manager from runtime options merged with environment settings.

        Args:
            storage: Storage holding the sign-in sessions.
            connections: Connection registry passed to the handlers.
            options: Raw runtime handler options keyed by handler id.
            environ: Environment to read; defaults to os.environ.

        Returns:
            A configured manager.
        """
        return cls(storage, connections, load_authorization_options(options, environ))

    @property
    def handlers(self) -> List[AuthorizationHandler]:
        """Registered handlers in registration order."""
        return list(self._handlers.values())

    def get_handler(self, handler_id: str) -> AuthorizationHandler:
        """
        Look up a handler by id, ignoring case.

        Args:
            handler_id: Handler id.

        Returns:
            The handler.

        Raises:
            AuthorizationConfigurationError: If no handler has that id.
        """
        return self._map_handlers([handler_id])[0]

    def on_sign_in_success(self, callback: Callable) -> None:
        """Register ``callback(context, handler_id)`` on every handler."""
        for handler in self._handlers.values():
            handler.on_success(_bind(callback, handler.id))

    def on_sign_in_failure(self, callback: Callable) -> None:
        """Register ``callback(context, handler_id, reason)`` on every handler."""
        for handler in self._handlers.values():
            handler.on_failure(_bind(callback, handler.id))

    async def token(
        self,
        context: TurnContext,
        handler_id: str,
        options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        """Get a token from the named handler."""
        return await self.get_handler(handler_id).token(context, options)

    async def signout(self, context: TurnContext, handler_id: Optional[str] = None) -> bool:
        """
        Sign the user out and discard any pending sign-in.

        Args:
            context: Current turn context.
            handler_id: Handler to sign out of; all handlers when None.

        Returns:
            True if every handler reported a successful sign out.
        """
        await HandlerStorage(self._storage, context).delete()

        handlers = self._map_handlers([handler_id]) if handler_id else self.handlers
        results = [await handler.signout(context) for handler in handlers]
        return all(results)

    async def process(
        self, context: TurnContext, resolve_handler_ids: HandlerIdResolver
    ) -> AuthorizationResult:
        """
        Decide whether the current turn is authorized.

        Args:
            context: Current turn context.
            resolve_handler_ids: Returns the ids of the handlers relevant to an
                activity. May be a coroutine function.

        Returns:
            The authorization result for the turn.

        Raises:
            AuthorizationConfigurationError: If the channel or user id is missing,
                or an unknown handler id is resolved.
            AuthorizationHandlerError: If a handler fails, returns an unknown
                status, or keeps asking for revalidation.
        """
        for _ in range(MAX_REVALIDATIONS + 1):
            result = await self._process_once(context, resolve_handler_ids)
            if result is not None:
                return result

        raise AuthorizationHandlerError(
            f"Authorization did not settle after {MAX_REVALIDATIONS} revalidations"
        )

    async def _process_once(
        self, context: TurnContext, resolve_handler_ids: HandlerIdResolver
    ) -> Optional[AuthorizationResult]:
        """Run one evaluation pass. Returns None when a revalidation is requested."""
        storage = HandlerStorage(self._storage, context)
        active = await storage.read()

        if active and active.conversation_id != _conversation_id(context.activity):
            logger.warning(
                f"Discarding sign-in session of handler '{active.id}' started in a different conversation"
            )
            await storage.delete()
            return AuthorizationResult(authorized=True)

        if active:
            ids = await _resolve(resolve_handler_ids, active.activity)
            handlers = self._map_handlers(ids)
            handlers.sort(key=lambda handler: 0 if handler.id == active.id else 1)
        else:
            ids = await _resolve(resolve_handler_ids, context.activity)
            handlers = self._map_handlers(ids)

        if not handlers:
            return AuthorizationResult(authorized=True)

        for handler in handlers:
            status = await self._signin(storage, context, handler, active)
            logger.debug(prefix(handler.id, f"Sign-in status: {status}"))

            if status == AuthorizationHandlerStatus.APPROVED:
                await storage.delete()
                if active:
                    context.activity = active.activity
                    active = None
            elif status == AuthorizationHandlerStatus.PENDING:
                return AuthorizationResult(authorized=False, handler_id=handler.id)
            elif status == AuthorizationHandlerStatus.REJECTED:
                await storage.delete()
                return AuthorizationResult(authorized=False, handler_id=handler.id)
            elif status == AuthorizationHandlerStatus.IGNORED:
                await storage.delete()
            elif status == AuthorizationHandlerStatus.REVALIDATE:
                await storage.delete()
                return None
            else:
                raise AuthorizationHandlerError(
                    prefix(handler.id, f"Unexpected authorization status: {status!r}"),
                    handler_id=handler.id,
                )

        return AuthorizationResult(authorized=True)

    async def _signin(
        self,
        storage: HandlerStorage,
        context: TurnContext,
        handler: AuthorizationHandler,
        active: Optional[ActiveAuthorizationHandler]
    ):
        try:
            return await handler.signin(context, active if active and active.id == handler.id else None)
        except Exception as ex:
            await storage.delete()
            raise AuthorizationHandlerError(
                prefix(handler.id, "Failed to sign in"), handler_id=handler.id
            ) from ex

    def _map_handlers(self, ids: List[str]) -> List[AuthorizationHandler]:
        lookup = {handler_id.lower(): handler for handler_id, handler in self._handlers.items()}
        unknown = [handler_id for handler_id in ids if (handler_id or "").lower() not in lookup]
        if unknown:
            raise AuthorizationConfigurationError(
                f"Cannot find auth handlers with ID(s): {', '.join(str(i) for i in unknown)}"
            )
        return [lookup[handler_id.lower()] for handler_id in ids]

    def _create_handler(
        self, handler_id: str, options: AuthorizationHandlerOptions
    ) -> AuthorizationHandler:
        if options.type == HandlerTypes.AZURE_BOT:
            return AzureBotAuthorization(handler_id, options, self._storage, self._connections)
        if options.type == HandlerTypes.AGENTIC:
            return AgenticAuthorization(handler_id, options, self._connections)
        if options.type == HandlerTypes.CONNECTOR_USER:
            return ConnectorUserAuthorization(handler_id, options, self._connections)
        raise AuthorizationConfigurationError(
            prefix(handler_id, f"Unsupported authorization handler type: '{options.type}'")
        )


async def _resolve(resolve_handler_ids: HandlerIdResolver, activity: Activity) -> List[str]:
    ids = resolve_handler_ids(activity)
    if inspect.isawaitable(ids):
        ids = await ids
    return list(ids or [])


def _bind(callback: Callable, handler_id: str) -> Callable:
    def bound(context: TurnContext, *args):
        return callback(context, handler_id, *args)

    return bound


def _conversation_id(activity: Activity) -> Optional[str]:
    return activity.conversation.id if activity.conversation else None
