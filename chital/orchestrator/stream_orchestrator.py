"""Streaming orchestrator.

Consumes the delta stream of one generation and applies it to the thread's
pending assistant message.
"""

import logging
from enum import Enum
from typing import Callable, Optional

from .events import EventBus, SessionEvent
from .request_builder import IMAGE_MODE_TRANSMISSION, build_request_messages_async
from .session_state import CancellationToken
from ..errors import NoModelSelectedError, describe_error
from ..llm.base_adapter import LLMAdapter
from ..storage import ChatMessage, ChatThread, ROLE_ASSISTANT
from ..storage.message_store import MessageStore

logger = logging.getLogger(__name__)


class GenerationOutcome(Enum):
    """How a generation ended."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class StreamOrchestrator:
    """Runs one streamed generation for a thread.

    The assistant message is created before the first delta and is the
    only message written to; the session state machine guarantees no other
    generation runs on the same thread meanwhile.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        store: MessageStore,
        events: EventBus,
        on_first_completion: Callable[[ChatThread, str], None],
        image_mode: Callable[[], str] = lambda: IMAGE_MODE_TRANSMISSION,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            adapter: Adapter providing the delta stream
            store: Store receiving the assistant message
            events: Bus receiving message and error updates
            on_first_completion: Called once per thread after its first
                completed (not cancelled) response
            image_mode: Returns how images are sent with the history
        """
        self._adapter = adapter
        self._store = store
        self._events = events
        self._on_first_completion = on_first_completion
        self._image_mode = image_mode

    async def run(
        self,
        thread: ChatThread,
        model: Optional[str],
        token: CancellationToken,
    ) -> GenerationOutcome:
        """Stream a response into a new assistant message.

        Args:
            thread: Thread to answer
            model: Model to use
            token: Cancellation flag, checked before every delta

        Returns:
            How the generation ended
        """
        assistant: Optional[ChatMessage] = None
        first_completion = False
        stream = None

        try:
            if not model:
                raise NoModelSelectedError()

            request = await build_request_messages_async(
                thread.chronological_messages(),
                self._image_mode(),
            )
            stream = self._adapter.stream(model, request)

            assistant = ChatMessage.create(
                ROLE_ASSISTANT, "", created_at=thread.next_timestamp()
            )
            self._store.append(thread, assistant)
            self._events.emit(
                SessionEvent.MESSAGE_ADDED,
                thread.thread_id,
                message_id=assistant.message_id,
            )

            async for chunk in stream:
                if token.cancelled:
                    break
                if not chunk.text:
                    continue
                assistant.text += chunk.text
                self._events.emit(
                    SessionEvent.MESSAGE_UPDATED,
                    thread.thread_id,
                    message_id=assistant.message_id,
                    text=chunk.text,
                )

            if token.cancelled:
                outcome = GenerationOutcome.CANCELLED
            else:
                outcome = GenerationOutcome.COMPLETED
                if not thread.has_received_first_message:
                    thread.has_received_first_message = True
                    first_completion = True

        except Exception as e:
            if token.cancelled:
                logger.debug("Stream for thread %s ended after cancel: %s", thread.thread_id, e)
                outcome = GenerationOutcome.CANCELLED
            else:
                logger.warning("Generation failed for thread %s: %s", thread.thread_id, e)
                self._events.emit(
                    SessionEvent.ERROR,
                    thread.thread_id,
                    error=describe_error(e),
                )
                outcome = GenerationOutcome.FAILED

        finally:
            # Commit first: closing the stream awaits and can be cancelled
            if assistant is not None:
                self._commit(thread)
            await self._close_stream(stream)

        if first_completion:
            self._on_first_completion(thread, model)

        return outcome

    async def _close_stream(self, stream) -> None:
        """Close an async generator stream left open by an early exit."""
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception as e:
            logger.debug("Ignoring error while closing stream: %s", e)

    def _commit(self, thread: ChatThread) -> None:
        """Persist the thread with whatever text has been streamed so far."""
        try:
            self._store.save_thread(thread)
        except OSError as e:
            logger.error("Failed to save thread %s: %s", thread.thread_id, e)
