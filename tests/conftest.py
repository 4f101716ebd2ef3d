"""
Pytest configuration and fixtures for tests.
"""

import time
from typing import Optional
from unittest.mock import AsyncMock, MagicMock, Mock, create_autospec

import jwt
import pytest

from microsoft_agents.activity import (
    Activity,
    ChannelAccount,
    ConversationAccount,
    TokenResponse,
)
from microsoft_agents.hosting.core import (
    AccessTokenProviderBase,
    Connections,
    MemoryStorage,
    UserTokenClient,
)

from turn_authorization.models.configuration import AuthorizationHandlerOptions

USER_TOKEN_CLIENT_KEY = "UserTokenClient"


def make_activity(**overrides) -> Activity:
    """
    Create a message activity with the fields the engine relies on.

    Args:
        **overrides: Activity fields to replace.

    Returns:
        Activity instance.
    """
    fields = dict(
        type="message",
        id="activity-1",
        channel_id="msteams",
        service_url="https://service.example.com",
        from_property=ChannelAccount(id="user-1"),
        recipient=ChannelAccount(id="agent-1"),
        conversation=ConversationAccount(id="conversation-1"),
        text="hello",
    )
    fields.update(overrides)
    return Activity(**fields)


def make_token(audience="api://downstream", expires_in: int = 3600) -> str:
    """Create an unsigned-for-test JWT with the given audience."""
    return jwt.encode(
        {"aud": audience, "exp": int(time.time()) + expires_in},
        "test-secret-key-long-enough-for-hs256-signing",
        algorithm="HS256",
    )


def make_context(activity: Optional[Activity] = None, user_token_client=None, identity=None):
    """
    Create a mock TurnContext around a real activity.

    Args:
        activity: Activity of the turn.
        user_token_client: Mock user token client placed in the turn state.
        identity: Identity of the inbound request.

    Returns:
        Mock turn context.
    """
    context = MagicMock()
    context.activity = activity or make_activity()
    context.turn_state = {USER_TOKEN_CLIENT_KEY: user_token_client} if user_token_client else {}
    context.adapter.USER_TOKEN_CLIENT_KEY = USER_TOKEN_CLIENT_KEY
    context.identity = identity
    context.send_activity = AsyncMock()
    return context


def token_or_sign_in(token: Optional[str] = None, sign_in_link: str = "https://sign.in/link"):
    """Build a get-token-or-sign-in-resource result."""
    sign_in_resource = None
    if not token:
        sign_in_resource = Mock()
        sign_in_resource.sign_in_link = sign_in_link
        sign_in_resource.token_exchange_resource = None
        sign_in_resource.token_post_resource = None
    return Mock(
        token_response=TokenResponse(token=token) if token else None,
        sign_in_resource=sign_in_resource,
    )


@pytest.fixture
def storage() -> MemoryStorage:
    """
    Create in-memory storage for sign-in sessions.

    Returns:
        Empty MemoryStorage.
    """
    return MemoryStorage()


@pytest.fixture
def user_token_client() -> Mock:
    """
    Create mock user token client.

    Returns:
        Autospecced UserTokenClient reporting no token and an empty exchange.
    """
    client = create_autospec(UserTokenClient, instance=True)
    client.get_token_or_sign_in_resource.return_value = token_or_sign_in()
    client.exchange_token.return_value = TokenResponse()
    client.sign_out_user.return_value = None
    return client


@pytest.fixture
def connections() -> Mock:
    """
    Create mock connection registry.

    Returns:
        Autospecced registry returning a shared token provider.
    """
    provider = create_autospec(AccessTokenProviderBase, instance=True)
    provider.acquire_token_on_behalf_of.return_value = "obo-token"
    provider.get_agentic_user_token.return_value = "agentic-token"

    registry = create_autospec(Connections, instance=True)
    registry.provider = provider
    registry.get_connection.return_value = provider
    registry.get_default_connection.return_value = provider
    registry.get_token_provider.return_value = provider
    return registry


@pytest.fixture
def azure_bot_options() -> AuthorizationHandlerOptions:
    """
    Create Azure Bot handler options.

    Returns:
        Options with a connection name and default retries.
    """
    return AuthorizationHandlerOptions(
        id="graph",
        azure_bot_oauth_connection_name="GraphConnection",
    )
