"""Session events and the bus the UI subscribes to.

The controller never talks to widgets. It publishes SessionUpdate
objects; the Qt shell (or a test) subscribes and reacts.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class SessionEvent(Enum):
    """Kinds of updates published by the controller."""

    THINKING_CHANGED = "thinking_changed"
    MESSAGE_ADDED = "message_added"
    MESSAGE_UPDATED = "message_updated"
    MESSAGES_REMOVED = "messages_removed"
    TITLE_CHANGED = "title_changed"
    THREAD_PROMOTED = "thread_promoted"
    THREAD_DELETED = "thread_deleted"
    ERROR = "error"
    FOCUS_REQUESTED = "focus_requested"


@dataclass
class SessionUpdate:
    """One published update.

    Attributes:
        kind: What happened
        thread_id: Thread the update belongs to
        message_id: Affected message, for message events
        message_ids: Affected messages, for MESSAGES_REMOVED
        text: Delta text for MESSAGE_UPDATED, new title for TITLE_CHANGED
        error: User-facing message for ERROR
        is_thinking: New value for THINKING_CHANGED
    """

    kind: SessionEvent
    thread_id: str
    message_id: Optional[str] = None
    message_ids: Optional[List[str]] = None
    text: Optional[str] = None
    error: Optional[str] = None
    is_thinking: Optional[bool] = None


Listener = Callable[[SessionUpdate], None]


class EventBus:
    """Synchronous publish/subscribe for session updates.

    Listeners run on the publishing (event loop) thread, in subscription
    order. A failing listener is logged and does not stop the others.
    """

    def __init__(self) -> None:
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener.

        Args:
            listener: Called with every SessionUpdate

        Returns:
            A function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def publish(self, update: SessionUpdate) -> None:
        """Deliver an update to every listener."""
        for listener in list(self._listeners):
            try:
                listener(update)
            except Exception:
                logger.exception("Session listener failed on %s", update.kind.value)

    def emit(self, kind: SessionEvent, thread_id: str, **fields) -> None:
        """Build and publish an update."""
        self.publish(SessionUpdate(kind=kind, thread_id=thread_id, **fields))
