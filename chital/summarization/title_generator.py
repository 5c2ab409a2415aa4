"""Title generator for chat threads.

After the first completed exchange of a thread, the controller asks the
model for a short title. The request is the whole conversation followed by
a user turn carrying the configured summary prompt.

Runs outside the generation's state transitions: failures are logged and
never reach the user.
"""

import logging
from typing import Callable, Optional

from ..llm.base_adapter import LLMAdapter
from ..orchestrator.events import EventBus, SessionEvent
from ..orchestrator.request_builder import (
    IMAGE_MODE_TRANSMISSION,
    append_prompt,
    build_request_messages_async,
)
from ..storage import ChatThread
from ..storage.message_store import MessageStore

logger = logging.getLogger(__name__)


class TitleGenerator:
    """Generates thread titles with a non-streaming completion.

    Does NOT:
    - Decide when to summarize (orchestrator's job)
    - Touch session state or is_thinking
    - Raise on failure
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        store: MessageStore,
        events: EventBus,
        prompt: Callable[[], str],
        image_mode: Callable[[], str] = lambda: IMAGE_MODE_TRANSMISSION,
    ) -> None:
        """Initialize the title generator.

        Args:
            adapter: Adapter used for the completion
            store: Store the retitled thread is saved to
            events: Bus receiving TITLE_CHANGED
            prompt: Returns the current summary prompt
            image_mode: Returns how images are included in the request
        """
        self._adapter = adapter
        self._store = store
        self._events = events
        self._prompt = prompt
        self._image_mode = image_mode

    async def generate_title(self, thread: ChatThread, model: str) -> Optional[str]:
        """Ask the model for a title and apply it to the thread.

        Args:
            thread: Thread to retitle
            model: Model to ask

        Returns:
            The new title, or None if summarization failed
        """
        try:
            if not model:
                raise ValueError("No model selected")

            request = await build_request_messages_async(
                thread.chronological_messages(),
                self._image_mode(),
            )
            request = append_prompt(request, self._prompt())

            summary = await self._adapter.complete(model, request)
        except Exception as e:
            logger.warning("Error summarizing thread %s: %s", thread.thread_id, e)
            return None

        if not summary:
            logger.info("Empty title summary for thread %s, keeping title", thread.thread_id)
            return None

        thread.title = summary
        try:
            self._store.save_thread(thread)
        except OSError as e:
            logger.warning("Failed to save title of thread %s: %s", thread.thread_id, e)
        self._events.emit(SessionEvent.TITLE_CHANGED, thread.thread_id, text=summary)
        return summary
