"""Chat session controller.

Entry point used by the UI: submit, stop, retry and thread lifecycle.
Each thread gets its own SessionState; every transition of a thread runs
under that session's lock, so at most one generation per thread exists at
any time.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set

from .events import EventBus, SessionEvent
from .request_builder import IMAGE_MODE_TRANSMISSION
from .session_state import SessionState
from .stream_orchestrator import StreamOrchestrator
from ..config.persistence import UserPreferences
from ..config.settings import settings
from ..errors import EndpointError, NoModelSelectedError
from ..llm.base_adapter import LLMAdapter
from ..storage import ChatMessage, ChatThread, ROLE_USER
from ..storage.message_store import MessageStore
from ..summarization.title_generator import TitleGenerator

logger = logging.getLogger(__name__)


class ChatController:
    """Drives the conversations of the application.

    The controller mutates threads and messages only from the event loop it
    runs on. Observers learn about changes through ``events``.
    """

    def __init__(
        self,
        adapter: LLMAdapter,
        store: MessageStore,
        preferences: UserPreferences,
        events: Optional[EventBus] = None,
        cancellation_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the controller.

        Args:
            adapter: Model server adapter
            store: Durable thread store
            preferences: Live user preferences (default model, title prompt)
            events: Bus to publish on, a new one if None
            cancellation_timeout: Seconds to wait for a cancelled generation
        """
        self._store = store
        self._preferences = preferences
        self.events = events or EventBus()
        self._cancellation_timeout = (
            cancellation_timeout
            if cancellation_timeout is not None
            else settings.task_cancellation_timeout
        )

        self._sessions: Dict[str, SessionState] = {}
        self._available_models: List[str] = []

        # Async task tracking for fire-and-forget work (title summaries)
        self._background_tasks: Set[asyncio.Task] = set()

        self.set_adapter(adapter)

    def set_adapter(self, adapter: LLMAdapter) -> None:
        """Switch to a new adapter, e.g. after the base URL changed.

        Generations already running keep the adapter they started with.

        Args:
            adapter: The adapter to use from now on
        """
        self._adapter = adapter
        self._title_generator = TitleGenerator(
            adapter,
            self._store,
            self.events,
            prompt=lambda: self._preferences.title_summary_prompt,
            image_mode=lambda: self._preferences.title_image_mode,
        )
        self._orchestrator = StreamOrchestrator(
            adapter,
            self._store,
            self.events,
            on_first_completion=self._schedule_title,
            image_mode=lambda: IMAGE_MODE_TRANSMISSION,
        )

    # ==================== Models ====================

    @property
    def available_models(self) -> List[str]:
        """Model names reported by the server at the last refresh."""
        return list(self._available_models)

    async def refresh_models(self) -> List[str]:
        """Fetch the model list from the server.

        An unreachable server yields an empty list.

        Returns:
            Available model names
        """
        try:
            models = await self._adapter.list_models()
        except EndpointError as e:
            logger.warning("Failed to fetch model list: %s", e)
            models = []
        self._available_models = list(models)
        return self.available_models

    def default_model(self) -> Optional[str]:
        """The configured default model, else the first available one."""
        configured = self._preferences.default_model_name
        if configured:
            return configured
        return self._available_models[0] if self._available_models else None

    def ensure_model_selected(self, thread: ChatThread) -> Optional[str]:
        """Make sure the thread uses a model the server offers.

        Args:
            thread: Thread to check

        Returns:
            The thread's model after resolution, possibly None
        """
        if not thread.selected_model or thread.selected_model not in self._available_models:
            thread.selected_model = self.default_model()
        return thread.selected_model

    # ==================== Threads ====================

    def new_thread(self) -> ChatThread:
        """Create a draft thread with the default model selected."""
        thread = ChatThread.create_draft()
        self.ensure_model_selected(thread)
        return thread

    def session(self, thread: ChatThread) -> SessionState:
        """Get (or create) the session state of a thread."""
        state = self._sessions.get(thread.thread_id)
        if state is None:
            state = SessionState(thread, self.events, self._cancellation_timeout)
            self._sessions[thread.thread_id] = state
        return state

    def is_thinking(self, thread: ChatThread) -> bool:
        """Whether a generation is in flight for the thread."""
        state = self._sessions.get(thread.thread_id)
        return state.is_thinking if state else False

    async def close_thread(self, thread: ChatThread) -> None:
        """Stop generating when the thread's view goes away."""
        await self.stop(thread)

    async def delete_thread(self, thread: ChatThread) -> None:
        """Cancel any generation, then delete the thread and its messages.

        Args:
            thread: Thread to delete
        """
        await self.stop(thread)
        self._sessions.pop(thread.thread_id, None)
        if not thread.is_draft:
            self._store.delete_thread(thread.thread_id)
        self.events.emit(SessionEvent.THREAD_DELETED, thread.thread_id)

    # ==================== Generation ====================

    async def submit(
        self,
        thread: ChatThread,
        text: str,
        images: Optional[Iterable[bytes]] = None,
    ) -> Optional[asyncio.Task]:
        """Send a user message and start streaming the reply.

        Images must already have gone through the attachment pipeline.

        Args:
            thread: Thread to post to
            text: Message text
            images: Attached image payloads

        Returns:
            The generation task, or None if there was nothing to send

        Raises:
            NoModelSelectedError: If no model can be resolved
        """
        attached = [image for image in images or [] if image]
        if not text.strip() and not attached:
            return None

        model = self.ensure_model_selected(thread)
        if not model:
            raise NoModelSelectedError()

        state = self.session(thread)
        async with state.lock:
            await state.cancel()

            if self._store.promote_draft(thread):
                self.events.emit(SessionEvent.THREAD_PROMOTED, thread.thread_id)

            message = ChatMessage.create(
                ROLE_USER,
                text,
                images=attached or None,
                created_at=thread.next_timestamp(),
            )
            self._store.append(thread, message)
            self.events.emit(
                SessionEvent.MESSAGE_ADDED,
                thread.thread_id,
                message_id=message.message_id,
            )

            return self._start_generation(state, model)

    async def stop(self, thread: ChatThread) -> bool:
        """Stop the thread's generation. A no-op when nothing is running.

        Args:
            thread: Thread to stop

        Returns:
            True if a generation was cancelled
        """
        state = self._sessions.get(thread.thread_id)
        if state is None:
            return False
        async with state.lock:
            return await state.cancel()

    async def retry(
        self,
        thread: ChatThread,
        message: ChatMessage,
    ) -> Optional[asyncio.Task]:
        """Drop a message and everything after it, then regenerate.

        Args:
            thread: Thread containing the message
            message: First message to drop

        Returns:
            The generation task, or None if the message is not in the thread

        Raises:
            NoModelSelectedError: If no model can be resolved
        """
        state = self.session(thread)
        async with state.lock:
            if thread.find_message(message.message_id) is None:
                logger.debug("Retry ignored, message %s not in thread", message.message_id)
                return None

            model = self.ensure_model_selected(thread)
            if not model:
                raise NoModelSelectedError()

            await state.cancel()

            chronological = thread.chronological_messages()
            index = next(
                i for i, m in enumerate(chronological)
                if m.message_id == message.message_id
            )
            removed = [m.message_id for m in chronological[index:]]
            self._store.remove_many(thread, removed)
            self.events.emit(
                SessionEvent.MESSAGES_REMOVED,
                thread.thread_id,
                message_ids=removed,
            )

            return self._start_generation(state, model)

    def _start_generation(self, state: SessionState, model: str) -> asyncio.Task:
        """Launch the orchestrator for a thread. Caller holds the lock."""
        thread = state.thread
        return state.start(
            lambda token: self._orchestrator.run(thread, model, token),
            name=f"generate:{thread.thread_id}",
        )

    # ==================== Task Management ====================

    def _schedule_title(self, thread: ChatThread, model: str) -> None:
        """Fire-and-forget title summarization."""
        self._create_task(
            self._title_generator.generate_title(thread, model),
            name=f"title:{thread.thread_id}",
        )

    def _create_task(self, coro, name: str = "") -> asyncio.Task:
        """Create a tracked async task with error handling.

        Args:
            coro: Coroutine to run
            name: Optional task name for debugging

        Returns:
            The created task
        """
        task = asyncio.create_task(coro)
        if name:
            task.set_name(name)
        self._background_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Handle background task completion and exceptions.

        Args:
            task: The completed task
        """
        self._background_tasks.discard(task)

        if task.cancelled():
            return

        exc = task.exception()
        if exc:
            logger.error(
                "Background task '%s' error: %s",
                task.get_name(),
                exc,
                exc_info=(type(exc), exc, exc.__traceback__),
            )

    async def wait_for_background_tasks(self, timeout: Optional[float] = None) -> None:
        """Wait for pending background work such as title summaries.

        Args:
            timeout: Maximum time to wait, unbounded if None
        """
        if self._background_tasks:
            await asyncio.wait(set(self._background_tasks), timeout=timeout)

    async def shutdown(self, timeout: Optional[float] = None) -> None:
        """Cancel every generation and background task.

        Args:
            timeout: Maximum time to wait for background tasks
        """
        if timeout is None:
            timeout = self._cancellation_timeout

        for state in list(self._sessions.values()):
            async with state.lock:
                await state.cancel()

        for task in self._background_tasks:
            task.cancel()

        if self._background_tasks:
            await asyncio.wait(
                set(self._background_tasks),
                timeout=timeout,
                return_when=asyncio.ALL_COMPLETED,
            )

        self._background_tasks.clear()
        await self._adapter.aclose()
