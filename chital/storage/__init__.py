"""Storage module for chat threads.

This module holds the conversation data model:
- Chat messages (user and assistant turns, optional images)
- Chat threads (ordered messages plus session metadata)

Persistence lives in message_store.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta
import base64
import uuid

from ..config.settings import NEW_THREAD_TITLE


ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


@dataclass
class ChatMessage:
    """A single message in a chat thread."""

    message_id: str
    role: str
    text: str
    created_at: datetime
    images: Optional[List[bytes]] = None

    @classmethod
    def create(
        cls,
        role: str,
        text: str = "",
        images: Optional[List[bytes]] = None,
        created_at: Optional[datetime] = None,
    ) -> "ChatMessage":
        """Create a new message with generated ID.

        Args:
            role: "user" or "assistant"
            text: Message text
            images: Raw image payloads, None when there are none
            created_at: Creation time (defaults to now)

        Returns:
            New ChatMessage instance
        """
        if role not in (ROLE_USER, ROLE_ASSISTANT):
            raise ValueError(f"Unknown message role: {role!r}")
        return cls(
            message_id=str(uuid.uuid4()),
            role=role,
            text=text,
            created_at=created_at or datetime.now(),
            images=list(images) if images else None,
        )

    @property
    def is_user(self) -> bool:
        """Check if this message was written by the user."""
        return self.role == ROLE_USER

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "message_id": self.message_id,
            "role": self.role,
            "text": self.text,
            "created_at": self.created_at.isoformat(),
            "images": (
                [base64.b64encode(img).decode("ascii") for img in self.images]
                if self.images
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatMessage":
        """Build a message from its JSON form."""
        images = data.get("images")
        return cls(
            message_id=data["message_id"],
            role=data["role"],
            text=data.get("text", ""),
            created_at=datetime.fromisoformat(data["created_at"]),
            images=[base64.b64decode(img) for img in images] if images else None,
        )


@dataclass
class ChatThread:
    """One conversation: ordered messages plus session metadata.

    ``is_thinking`` mirrors the session state and is never persisted.
    """

    thread_id: str
    title: str = NEW_THREAD_TITLE
    selected_model: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.now)
    has_received_first_message: bool = False
    messages: List[ChatMessage] = field(default_factory=list)
    is_draft: bool = True
    is_thinking: bool = False

    @classmethod
    def create_draft(cls, selected_model: Optional[str] = None) -> "ChatThread":
        """Create a new, not yet persisted thread.

        Args:
            selected_model: Initial model, resolved later if None

        Returns:
            New draft ChatThread
        """
        return cls(thread_id=str(uuid.uuid4()), selected_model=selected_model)

    def chronological_messages(self) -> List[ChatMessage]:
        """Messages sorted by creation time (stable for equal timestamps)."""
        return sorted(self.messages, key=lambda m: m.created_at)

    def find_message(self, message_id: str) -> Optional[ChatMessage]:
        """Find a message by ID.

        Args:
            message_id: The message ID to find

        Returns:
            ChatMessage if found, None otherwise
        """
        for message in self.messages:
            if message.message_id == message_id:
                return message
        return None

    def next_timestamp(self) -> datetime:
        """Creation time for a new message, strictly after every existing one."""
        now = datetime.now()
        if self.messages:
            latest = max(m.created_at for m in self.messages)
            if now <= latest:
                return latest + timedelta(microseconds=1)
        return now

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "thread_id": self.thread_id,
            "title": self.title,
            "selected_model": self.selected_model,
            "created_at": self.created_at.isoformat(),
            "has_received_first_message": self.has_received_first_message,
            "messages": [m.to_dict() for m in self.chronological_messages()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChatThread":
        """Build a persisted thread from its JSON form."""
        return cls(
            thread_id=data["thread_id"],
            title=data.get("title", NEW_THREAD_TITLE),
            selected_model=data.get("selected_model"),
            created_at=datetime.fromisoformat(data["created_at"]),
            has_received_first_message=data.get("has_received_first_message", False),
            messages=[ChatMessage.from_dict(m) for m in data.get("messages", [])],
            is_draft=False,
        )


__all__ = [
    "ROLE_USER",
    "ROLE_ASSISTANT",
    "ChatMessage",
    "ChatThread",
]
