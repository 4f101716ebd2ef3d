"""
Sample agent guarding every turn with the AuthorizationManager.

Follows the AgentApplication pattern: activity handlers are registered on
the application and each one asks the manager whether the turn may proceed.
"""

import logging
from typing import List, Optional

from microsoft_agents.activity import Activity
from microsoft_agents.hosting.core import (
    AgentApplication,
    MemoryStorage,
    Storage,
    TurnContext,
    TurnState,
)
from microsoft_agents.hosting.fastapi import CloudAdapter
from microsoft_agents.authentication.msal import MsalConnectionManager

from ..manager import AuthorizationManager
from ..models.configuration import HostSettings

SIGN_OUT_COMMAND = "/signout"
STATUS_COMMAND = "/status"


class SignInAgentApp:
    """
    Agent application that requires sign-in before answering.

    Messages and sign-in invokes go through AuthorizationManager.process.
    Once authorized, the agent answers the original message, which the
    manager restores after a multi-turn sign-in.
    """

    def __init__(
        self,
        settings: HostSettings,
        connection_manager: MsalConnectionManager,
        storage: Optional[Storage] = None,
        authorization: Optional[AuthorizationManager] = None
    ):
        """
        Initialize the agent application.

        Args:
            settings: Host configuration.
            connection_manager: MsalConnectionManager instance.
            storage: Storage for turn state and sign-in sessions. Defaults to MemoryStorage.
            authorization: Prebuilt manager. Built from the environment when None.
        """
        self._settings = settings
        self._logger = logging.getLogger(__name__)
        storage = storage or MemoryStorage()

        self._authorization = authorization or AuthorizationManager.from_configuration(
            storage, connection_manager
        )
        self._handler_ids: List[str] = settings.auth_handler_ids or [
            handler.id for handler in self._authorization.handlers
        ]

        self._agent_app = AgentApplication[TurnState](
            storage=storage,
            adapter=CloudAdapter(connection_manager=connection_manager),
        )

        self._authorization.on_sign_in_failure(self._on_sign_in_failure)
        self._register_handlers()

        self._logger.info(f"SignInAgent initialized with auth handlers: {self._handler_ids}")

    @property
    def agent_app(self) -> AgentApplication:
        """Get the underlying AgentApplication instance."""
        return self._agent_app

    @property
    def authorization(self) -> AuthorizationManager:
        """Get the authorization manager guarding the turns."""
        return self._authorization

    def resolve_handler_ids(self, activity: Activity) -> List[str]:
        """Handlers every message must be authorized by."""
        return list(self._handler_ids)

    def _register_handlers(self):
        """Register activity handlers with the agent application."""

        @self._agent_app.conversation_update("membersAdded")
        async def on_members_added(context: TurnContext, state: TurnState):
            await context.send_activity(
                f"Welcome! Send any message to sign in, '{STATUS_COMMAND}' to see your "
                f"tokens, or '{SIGN_OUT_COMMAND}' to sign out."
            )

        @self._agent_app.activity("message")
        async def on_message(context: TurnContext, state: TurnState):
            await self.on_turn(context)

        @self._agent_app.activity("invoke")
        async def on_invoke(context: TurnContext, state: TurnState):
            await self.on_turn(context)

    async def on_turn(self, context: TurnContext) -> None:
        """
        Authorize the turn and answer it.

        Args:
            context: Turn context from M365 Agents SDK.
        """
        text = (context.activity.text or "").strip().lower()
        if text == SIGN_OUT_COMMAND:
            await self._authorization.signout(context)
            await context.send_activity("You have been signed out.")
            return

        result = await self._authorization.process(context, self.resolve_handler_ids)
        if not result.authorized:
            self._logger.debug(f"Turn not authorized yet (handler: {result.handler_id})")
            return

        # After a multi-turn sign-in the manager restores the original message.
        if context.activity.type != "message":
            return

        await self._reply(context)

    async def _reply(self, context: TurnContext) -> None:
        lines = []
        for handler_id in self._handler_ids:
            token_response = await self._authorization.token(context, handler_id)
            state = "signed in" if token_response else "no token"
            lines.append(f"- {handler_id}: {state}")

        text = context.activity.text or ""
        await context.send_activity(
            f"You said: {text}\n\nAuthorization status:\n" + "\n".join(lines)
        )

    async def _on_sign_in_failure(
        self, context: TurnContext, handler_id: str, reason: Optional[str] = None
    ) -> None:
        self._logger.warning(f"Sign-in with '{handler_id}' failed: {reason}")
        await context.send_activity(f"Sign-in with '{handler_id}' failed. Please try again.")


def create_sign_in_agent(
    settings: HostSettings,
    connection_manager: MsalConnectionManager
) -> AgentApplication:
    """
    Factory function to create the sign-in agent application.

    Args:
        settings: Host configuration.
        connection_manager: MsalConnectionManager instance.

    Returns:
        Configured AgentApplication instance.
    """
    return SignInAgentApp(settings, connection_manager).agent_app
