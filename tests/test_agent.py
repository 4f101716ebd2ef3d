"""
Tests for the sample sign-in agent.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, Mock, patch

from microsoft_agents.activity import TokenResponse

from turn_authorization.hosting.agent import SIGN_OUT_COMMAND, SignInAgentApp
from turn_authorization.models.configuration import HostSettings
from turn_authorization.models.result import AuthorizationResult

from conftest import make_activity, make_context


@pytest.fixture
def authorization() -> Mock:
    """Mock authorization manager that authorizes every turn."""
    manager = Mock()
    manager.handlers = [Mock(id="graph")]
    manager.process = AsyncMock(return_value=AuthorizationResult(authorized=True))
    manager.token = AsyncMock(return_value=TokenResponse(token="user-token"))
    manager.signout = AsyncMock(return_value=True)
    return manager


@pytest.fixture
def agent(authorization):
    """Sign-in agent with the SDK application replaced by a mock."""
    with patch("turn_authorization.hosting.agent.AgentApplication", MagicMock()), patch(
        "turn_authorization.hosting.agent.CloudAdapter", MagicMock()
    ):
        yield SignInAgentApp(HostSettings(), MagicMock(), authorization=authorization)


class TestSignInAgentApp:
    """Tests for SignInAgentApp."""

    def test_handler_ids_default_to_registered_handlers(self, agent):
        """Test every registered handler guards the turn when none are configured."""
        assert agent.resolve_handler_ids(make_activity()) == ["graph"]

    def test_configured_handler_ids(self, authorization):
        """Test AUTH_HANDLER_IDS narrows the guarding handlers."""
        with patch("turn_authorization.hosting.agent.AgentApplication", MagicMock()), patch(
            "turn_authorization.hosting.agent.CloudAdapter", MagicMock()
        ):
            agent = SignInAgentApp(
                HostSettings(auth_handler_ids=["github"]), MagicMock(), authorization=authorization
            )

        assert agent.resolve_handler_ids(make_activity()) == ["github"]

    def test_failure_callback_registered(self, agent, authorization):
        """Test sign-in failures are reported to the user."""
        authorization.on_sign_in_failure.assert_called_once()

    @pytest.mark.asyncio
    async def test_authorized_message_is_answered(self, agent, authorization):
        """Test an authorized message gets the token status reply."""
        context = make_context(make_activity(text="show my files"))

        await agent.on_turn(context)

        authorization.process.assert_awaited_once_with(context, agent.resolve_handler_ids)
        reply = context.send_activity.await_args.args[0]
        assert "You said: show my files" in reply
        assert "- graph: signed in" in reply

    @pytest.mark.asyncio
    async def test_missing_token_reported(self, agent, authorization):
        """Test handlers without a token are listed as such."""
        authorization.token.return_value = TokenResponse()
        context = make_context()

        await agent.on_turn(context)

        assert "- graph: no token" in context.send_activity.await_args.args[0]

    @pytest.mark.asyncio
    async def test_unauthorized_turn_is_silent(self, agent, authorization):
        """Test the agent does not answer while sign-in is pending."""
        authorization.process.return_value = AuthorizationResult(authorized=False, handler_id="graph")
        context = make_context()

        await agent.on_turn(context)

        context.send_activity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_authorized_invoke_is_not_answered(self, agent):
        """Test an authorized invoke that was not a sign-in resume gets no reply."""
        context = make_context(make_activity(type="invoke", name="signin/verifyState", text=None))

        await agent.on_turn(context)

        context.send_activity.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_sign_out_command(self, agent, authorization):
        """Test the sign out command skips authorization."""
        context = make_context(make_activity(text=f"  {SIGN_OUT_COMMAND.upper()} "))

        await agent.on_turn(context)

        authorization.signout.assert_awaited_once_with(context)
        authorization.process.assert_not_awaited()
        context.send_activity.assert_awaited_once_with("You have been signed out.")

    @pytest.mark.asyncio
    async def test_failure_callback_message(self, agent):
        """Test the failure callback tells the user which handler failed."""
        context = make_context()

        await agent._on_sign_in_failure(context, "graph", "Invalid magic code")

        context.send_activity.assert_awaited_once_with("Sign-in with 'graph' failed. Please try again.")
