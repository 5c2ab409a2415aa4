"""Per-thread session state machine.

A thread is either idle or generating. Cancelling is a short-lived
sub-phase of generating while the running task is torn down. The state
machine owns the single generation task of its thread.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional

from .events import EventBus, SessionEvent
from ..config.settings import settings
from ..storage import ChatThread

logger = logging.getLogger(__name__)


class SessionPhase(Enum):
    """Session phases."""

    IDLE = "idle"
    GENERATING = "generating"
    CANCELLING = "cancelling"


class CancellationToken:
    """Cooperative cancellation flag polled between deltas."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        """Whether cancellation was requested."""
        return self._cancelled

    def cancel(self) -> bool:
        """Request cancellation.

        Returns:
            True on the first call, False afterwards
        """
        if self._cancelled:
            return False
        self._cancelled = True
        return True


class SessionState:
    """Tracks whether one thread is generating and owns its task.

    Callers serialise transitions with ``lock``; the state machine itself
    guarantees that the task handle is cleared exactly once, whichever of
    completion, failure or cancellation ends the task.
    """

    def __init__(
        self,
        thread: ChatThread,
        events: EventBus,
        cancellation_timeout: Optional[float] = None,
    ) -> None:
        """Initialize the session state.

        Args:
            thread: Thread this session drives
            events: Bus receiving thinking/focus updates
            cancellation_timeout: Seconds to wait for a cancelled task
        """
        self.thread = thread
        self.lock = asyncio.Lock()
        self._events = events
        self._cancellation_timeout = (
            cancellation_timeout
            if cancellation_timeout is not None
            else settings.task_cancellation_timeout
        )
        self._phase = SessionPhase.IDLE
        self._task: Optional[asyncio.Task] = None
        self._token: Optional[CancellationToken] = None

    @property
    def phase(self) -> SessionPhase:
        """Current phase."""
        return self._phase

    @property
    def is_thinking(self) -> bool:
        """True while a generation is in flight (including its teardown)."""
        return self._phase is not SessionPhase.IDLE

    @property
    def task(self) -> Optional[asyncio.Task]:
        """The in-flight generation task, if any."""
        return self._task

    def start(
        self,
        run: Callable[[CancellationToken], Awaitable[Any]],
        name: str = "",
    ) -> asyncio.Task:
        """Enter the generating phase and launch the generation task.

        Args:
            run: Coroutine function receiving the task's cancellation token
            name: Optional task name for debugging

        Returns:
            The generation task

        Raises:
            RuntimeError: If a generation is already active
        """
        if self._phase is not SessionPhase.IDLE:
            raise RuntimeError(
                f"Thread {self.thread.thread_id} already has an active generation"
            )

        token = CancellationToken()
        task = asyncio.create_task(run(token))
        task.set_name(name or f"generate:{self.thread.thread_id}")
        self._task = task
        self._token = token
        self._set_phase(SessionPhase.GENERATING)
        task.add_done_callback(self._on_task_done)
        return task

    async def cancel(self) -> bool:
        """Cancel the in-flight generation and wait for it to end.

        Safe to call at any time: idle or already-cancelling sessions are
        left alone.

        Returns:
            True if a generation was cancelled by this call
        """
        task = self._task
        if task is None or self._phase is not SessionPhase.GENERATING:
            return False

        self._set_phase(SessionPhase.CANCELLING)
        if self._token is not None:
            self._token.cancel()
        task.cancel()

        await asyncio.wait({task}, timeout=self._cancellation_timeout)
        if not task.done():
            logger.warning(
                "Generation task %s ignored cancellation for %.1fs",
                task.get_name(),
                self._cancellation_timeout,
            )

        self._finish(task)
        return True

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Handle task completion and exceptions.

        Args:
            task: The completed task
        """
        if not task.cancelled():
            exc = task.exception()
            if exc is not None:
                logger.error(
                    "Generation task %s failed",
                    task.get_name(),
                    exc_info=(type(exc), exc, exc.__traceback__),
                )
        self._finish(task)

    def _finish(self, task: asyncio.Task) -> None:
        """Return to idle if ``task`` is still the current one."""
        if task is not self._task:
            return
        self._task = None
        self._token = None
        self._set_phase(SessionPhase.IDLE)
        self._events.emit(SessionEvent.FOCUS_REQUESTED, self.thread.thread_id)

    def _set_phase(self, phase: SessionPhase) -> None:
        """Change phase and mirror it onto the thread."""
        was_thinking = self.is_thinking
        self._phase = phase
        self.thread.is_thinking = self.is_thinking
        if was_thinking != self.is_thinking:
            self._events.emit(
                SessionEvent.THINKING_CHANGED,
                self.thread.thread_id,
                is_thinking=self.is_thinking,
            )
