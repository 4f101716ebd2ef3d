"""
Storage for the active sign-in session of a channel/user pair.

Wraps an SDK Storage so the manager only deals with a single
ActiveAuthorizationHandler per (channel, user).
"""

import logging
from typing import Optional

from microsoft_agents.hosting.core import Storage, TurnContext

from ..errors import AuthorizationConfigurationError
from ..models.active_handler import ActiveAuthorizationHandler

logger = logging.getLogger(__name__)

KEY_PREFIX = "auth"


class HandlerStorage:
    """
    Keyed session store for the user and channel of a turn.

    The key is ``auth/{channel_id}/{user_id}``. Reading a missing key yields
    None and deleting a missing key is not an error.
    """

    def __init__(self, storage: Storage, context: TurnContext):
        """
        Initialize the session store for a turn.

        Args:
            storage: SDK storage backing the sessions.
            context: Turn the session belongs to.

        Raises:
            AuthorizationConfigurationError: If the channel or user id is missing.
        """
        self._storage = storage
        self._key = self.create_key(context)

    @staticmethod
    def create_key(context: TurnContext) -> str:
        """
        Build the storage key for the turn's channel and user.

        Args:
            context: Current turn context.

        Returns:
            Storage key.

        Raises:
            AuthorizationConfigurationError: If the channel or user id is missing.
        """
        activity = context.activity
        channel_id = (activity.channel_id or "").strip()
        user = activity.from_property
        user_id = ((user.id if user else None) or "").strip()

        if not channel_id:
            raise AuthorizationConfigurationError(
                "The activity channel_id is required to store the sign-in session"
            )
        if not user_id:
            raise AuthorizationConfigurationError(
                "The activity from.id is required to store the sign-in session"
            )

        return f"{KEY_PREFIX}/{channel_id}/{user_id}"

    @property
    def key(self) -> str:
        """Storage key of this session."""
        return self._key

    async def read(self) -> Optional[ActiveAuthorizationHandler]:
        """
        Read the active session.

        Returns:
            The session, or None if none is stored.
        """
        items = await self._storage.read(
            [self._key], target_cls=ActiveAuthorizationHandler
        )
        return items.get(self._key)

    async def write(self, session: ActiveAuthorizationHandler) -> None:
        """
        Persist the active session, replacing any previous one.

        Args:
            session: Session to store.
        """
        logger.debug(f"Writing sign-in session for handler '{session.id}' at {self._key}")
        await self._storage.write({self._key: session})

    async def delete(self) -> None:
        """Delete the active session. A missing session is ignored."""
        try:
            await self._storage.delete([self._key])
        except Exception as ex:
            if not _is_not_found(ex):
                raise
            logger.debug(f"No sign-in session to delete at {self._key}")


def _is_not_found(ex: Exception) -> bool:
    """Check if a storage error reports a missing key."""
    for attr in ("status_code", "code", "status"):
        value = getattr(ex, attr, None)
        if value in (404, "404") or (isinstance(value, str) and value.lower() == "notfound"):
            return True
    return False
