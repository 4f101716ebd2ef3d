"""
Shared contract and helpers for authorization handlers.

Handlers are independent strategies: each implements the
AuthorizationHandler protocol and composes the helpers below instead of
inheriting from a shared base class.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Protocol, Union, runtime_checkable

from microsoft_agents.activity import (
    Activity,
    ActivityTypes,
    Channels,
    InvokeResponse,
    TokenResponse,
)
from microsoft_agents.hosting.core import TurnContext

from ..models.active_handler import ActiveAuthorizationHandler
from ..models.status import AuthorizationHandlerStatus

logger = logging.getLogger(__name__)

SignInSuccessCallback = Callable[[TurnContext], Union[Awaitable[None], None]]
SignInFailureCallback = Callable[[TurnContext, Optional[str]], Union[Awaitable[None], None]]


@dataclass
class TokenOptions:
    """Per-call overrides for token acquisition."""

    connection: Optional[str] = None
    scopes: Optional[List[str]] = None


@runtime_checkable
class AuthorizationHandler(Protocol):
    """Behaviour shared by every authorization handler."""

    id: str

    async def signin(
        self, context: TurnContext, active: Optional[ActiveAuthorizationHandler] = None
    ) -> AuthorizationHandlerStatus:
        ...

    async def signout(self, context: TurnContext) -> bool:
        ...

    async def token(
        self, context: TurnContext, options: Optional[TokenOptions] = None
    ) -> TokenResponse:
        ...

    def on_success(self, callback: SignInSuccessCallback) -> None:
        ...

    def on_failure(self, callback: SignInFailureCallback) -> None:
        ...


class SignInCallbacks:
    """Success and failure callbacks registered on a handler."""

    def __init__(self):
        self._on_success: Optional[SignInSuccessCallback] = None
        self._on_failure: Optional[SignInFailureCallback] = None

    @property
    def has_failure(self) -> bool:
        """Check if a failure callback is registered."""
        return self._on_failure is not None

    def on_success(self, callback: SignInSuccessCallback) -> None:
        self._on_success = callback

    def on_failure(self, callback: SignInFailureCallback) -> None:
        self._on_failure = callback

    async def success(self, context: TurnContext) -> None:
        """Run the success callback, if any."""
        if self._on_success:
            await _maybe_await(self._on_success(context))

    async def failure(self, context: TurnContext, reason: Optional[str] = None) -> None:
        """Run the failure callback, if any."""
        if self._on_failure:
            await _maybe_await(self._on_failure(context, reason))


async def _maybe_await(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


def prefix(handler_id: str, message: str) -> str:
    """Prefix a log or error message with the handler id."""
    return f"[handler:{handler_id}] {message}"


def get_cached_token(context: TurnContext, key: str) -> Optional[TokenResponse]:
    """
    Get a token cached earlier in the same turn.

    Args:
        context: Current turn context.
        key: Cache key.

    Returns:
        The cached token, or None when nothing usable is cached.
    """
    cached = context.turn_state.get(key)
    if isinstance(cached, TokenResponse) and cached:
        return cached
    return None


def cache_token(context: TurnContext, key: str, token_response: TokenResponse) -> None:
    """Cache a token for the rest of the turn."""
    context.turn_state[key] = token_response


def clear_cached_token(context: TurnContext, key: str) -> None:
    """Drop a cached token from the turn."""
    context.turn_state.pop(key, None)


async def send_invoke_response(
    context: TurnContext, status: int, body: Optional[dict] = None
) -> None:
    """
    Acknowledge an invoke activity.

    Only Teams expects a synchronous invoke acknowledgement; on every other
    channel this is a no-op.

    Args:
        context: Current turn context.
        status: HTTP-style status code.
        body: Optional response body.
    """
    if context.activity.channel_id != Channels.ms_teams:
        return

    await context.send_activity(
        Activity(
            type=ActivityTypes.invoke_response,
            value=InvokeResponse(status=status, body=body),
        )
    )
