"""
Persisted record of an in-progress interactive sign-in.

One record exists at most per (channel, user) pair. It keeps a snapshot of
the activity that started the sign-in so the original request can be
replayed once the user is authorized.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from microsoft_agents.activity import Activity
from microsoft_agents.hosting.core import StoreItem


@dataclass
class ActiveAuthorizationHandler(StoreItem):
    """Sign-in session owned by a single handler."""

    id: str
    activity: Activity
    attempts_left: Optional[int] = None
    category: Optional[str] = None

    def __post_init__(self):
        """Accept a serialized activity snapshot."""
        if isinstance(self.activity, dict):
            self.activity = Activity.model_validate(self.activity)

    @property
    def conversation_id(self) -> Optional[str]:
        """Conversation the session was started in."""
        conversation = self.activity.conversation if self.activity else None
        return conversation.id if conversation else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "id": self.id,
            "activity": self.activity.model_dump(
                mode="json", exclude_unset=True, by_alias=True
            ),
        }
        if self.attempts_left is not None:
            data["attemptsLeft"] = self.attempts_left
        if self.category is not None:
            data["category"] = self.category
        return data

    def store_item_to_json(self) -> Dict[str, Any]:
        return self.to_dict()

    @staticmethod
    def from_json_to_store_item(json_data: Dict[str, Any]) -> ActiveAuthorizationHandler:
        return ActiveAuthorizationHandler(
            id=json_data["id"],
            activity=json_data["activity"],
            attempts_left=json_data.get("attemptsLeft"),
            category=json_data.get("category"),
        )
