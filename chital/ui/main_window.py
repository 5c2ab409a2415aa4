"""Main application window."""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from PySide6.QtWidgets import (
    QMainWindow,
    QWidget,
    QHBoxLayout,
    QVBoxLayout,
    QStatusBar,
    QMessageBox,
)
from PySide6.QtCore import QCoreApplication, Qt
from PySide6.QtGui import QShortcut, QKeySequence

from .chat_panel import ChatPanel
from .dialogs import SettingsDialog
from .input_panel import InputPanel
from .sidebar import Sidebar
from ..config.persistence import PersistenceManager, persistence as default_persistence
from ..config.settings import settings
from ..config.themes import get_stylesheet
from ..errors import NoModelSelectedError, describe_error
from ..llm.ollama_adapter import OllamaAdapter
from ..orchestrator.chat_controller import ChatController
from ..orchestrator.events import SessionEvent, SessionUpdate
from ..storage import ChatThread
from ..storage.message_store import MessageStore
from ..utils.image_pipeline import prepare_attachments

logger = logging.getLogger(__name__)


class MainWindow(QMainWindow):
    """Main application window for Chital."""

    def __init__(
        self,
        persistence: Optional[PersistenceManager] = None,
        store: Optional[MessageStore] = None,
    ) -> None:
        """Initialize the main window.

        Args:
            persistence: Preferences manager, the global one if None
            store: Thread store, the archive under ~/.chital if None
        """
        super().__init__()
        self._persistence = persistence or default_persistence
        self._store = store or MessageStore(settings.threads_path)

        prefs = self._persistence.preferences
        self._controller = ChatController(
            self._build_adapter(),
            self._store,
            prefs,
        )
        self._unsubscribe = self._controller.events.subscribe(self._on_session_update)

        self._threads: Dict[str, ChatThread] = {}
        self._current: Optional[ChatThread] = None

        # Async task tracking
        self._active_tasks: Set[asyncio.Task] = set()
        self._models_loaded = False

        self._setup_ui()
        self._setup_shortcuts()
        self._restore_window_state()
        self._load_threads()

    def _build_adapter(self) -> OllamaAdapter:
        """Create an adapter from the current preferences."""
        prefs = self._persistence.preferences
        return OllamaAdapter(
            base_url=prefs.ollama_base_url,
            context_window=prefs.context_window_length,
            timeout=settings.request_timeout,
        )

    def _setup_ui(self) -> None:
        """Set up the main window UI."""
        self.setWindowTitle(settings.window_title)
        self.setMinimumSize(640, 480)
        self._apply_font_size()

        central = QWidget()
        self.setCentralWidget(central)

        main_layout = QHBoxLayout(central)
        main_layout.setContentsMargins(0, 0, 0, 0)
        main_layout.setSpacing(0)

        self.sidebar = Sidebar()
        self.sidebar.thread_selected.connect(self._on_thread_selected)
        self.sidebar.new_thread_requested.connect(self._on_new_thread)
        self.sidebar.delete_requested.connect(self._on_delete_requested)
        self.sidebar.settings_requested.connect(self._on_show_settings)
        main_layout.addWidget(self.sidebar)

        chat_container = QWidget()
        chat_layout = QVBoxLayout(chat_container)
        chat_layout.setContentsMargins(0, 0, 0, 0)
        chat_layout.setSpacing(0)

        self.chat_panel = ChatPanel()
        self.chat_panel.retry_requested.connect(self._on_retry_requested)
        chat_layout.addWidget(self.chat_panel, stretch=1)

        self.input_panel = InputPanel()
        self.input_panel.message_submitted.connect(self._on_message_submitted)
        self.input_panel.stop_requested.connect(self._on_stop_requested)
        self.input_panel.model_changed.connect(self._on_model_changed)
        self.input_panel.attachments_requested.connect(self._on_attachments_requested)
        self.input_panel.set_font_size(self._persistence.preferences.font_size)
        chat_layout.addWidget(self.input_panel)

        main_layout.addWidget(chat_container, stretch=1)

        self.status_bar = QStatusBar()
        self.setStatusBar(self.status_bar)

    def _setup_shortcuts(self) -> None:
        """Set up keyboard shortcuts."""
        QShortcut(QKeySequence("Ctrl+N"), self, self._on_new_thread)
        QShortcut(QKeySequence("Ctrl+,"), self, self._on_show_settings)
        QShortcut(QKeySequence("Escape"), self, self._on_stop_requested)

    def _restore_window_state(self) -> None:
        """Restore the saved window geometry."""
        window = self._persistence.preferences.window
        self.setGeometry(window.x, window.y, window.width, window.height)
        if window.maximized:
            self.showMaximized()

    def _apply_font_size(self) -> None:
        self.setStyleSheet(get_stylesheet(self._persistence.preferences.font_size))

    # ==================== Task Management ====================

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
        self._active_tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        """Handle task completion and exceptions.

        Args:
            task: The completed task
        """
        self._active_tasks.discard(task)

        if task.cancelled():
            return

        exc = task.exception()
        if exc:
            self._handle_task_exception(task, exc)

    def _handle_task_exception(self, task: asyncio.Task, exc: BaseException) -> None:
        """Handle exception from a background task.

        Args:
            task: The task that raised the exception
            exc: The exception that was raised
        """
        logger.error(
            "Background task '%s' error: %s",
            task.get_name(),
            exc,
            exc_info=(type(exc), exc, exc.__traceback__),
        )

        error_msg = str(exc)
        if len(error_msg) > 200:
            error_msg = error_msg[:200] + "..."
        self.status_bar.showMessage(f"Background error: {error_msg}", 5000)

    # ==================== Models ====================

    def showEvent(self, event) -> None:
        """Fetch the model list the first time the window is shown."""
        super().showEvent(event)
        if not self._models_loaded:
            self._models_loaded = True
            self._create_task(self._refresh_models(), name="refresh_models")

    async def _refresh_models(self) -> None:
        models = await self._controller.refresh_models()
        if models:
            self.status_bar.showMessage(f"{len(models)} models available", 3000)
        else:
            self.status_bar.showMessage("No models available. Is Ollama running?")

        if self._current is not None:
            self._controller.ensure_model_selected(self._current)
            self.input_panel.set_models(models, self._current.selected_model)
        else:
            self.input_panel.set_models(models, None)

    def _on_model_changed(self, model: str) -> None:
        thread = self._current
        if thread is None or thread.selected_model == model:
            return
        thread.selected_model = model
        try:
            self._store.save_thread(thread)
        except OSError as e:
            logger.error("Failed to save model choice: %s", e)

    # ==================== Threads ====================

    def _load_threads(self) -> None:
        """Load persisted threads and open a fresh draft."""
        threads = self._store.load_threads()
        self._threads = {thread.thread_id: thread for thread in threads}
        self.sidebar.set_threads(threads)
        self._open_thread(self._controller.new_thread())

    def _open_thread(self, thread: ChatThread) -> None:
        """Show a thread, cancelling generation in the one being left."""
        previous = self._current
        if previous is not None and previous.thread_id != thread.thread_id:
            self._create_task(
                self._controller.close_thread(previous),
                name=f"close:{previous.thread_id}",
            )
            if previous.is_draft:
                self._threads.pop(previous.thread_id, None)

        self._current = thread
        self._threads[thread.thread_id] = thread
        self._controller.ensure_model_selected(thread)

        self.chat_panel.show_thread(thread)
        self.input_panel.clear()
        self.input_panel.set_selected_model(thread.selected_model)
        self.input_panel.set_thinking(self._controller.is_thinking(thread))
        self.sidebar.select_thread(None if thread.is_draft else thread.thread_id)
        self._update_window_title()
        self.input_panel.focus_input()

    def _on_thread_selected(self, thread_id: str) -> None:
        thread = self._threads.get(thread_id)
        if thread is not None:
            self._open_thread(thread)

    def _on_new_thread(self) -> None:
        if self._current is not None and self._current.is_draft and not self._current.messages:
            self.input_panel.focus_input()
            return
        self._open_thread(self._controller.new_thread())

    def _on_delete_requested(self, thread_id: str) -> None:
        thread = self._threads.get(thread_id)
        if thread is not None:
            self._create_task(self._controller.delete_thread(thread), name=f"delete:{thread_id}")

    def _update_window_title(self) -> None:
        if self._current is None or self._current.is_draft:
            self.setWindowTitle(settings.window_title)
        else:
            self.setWindowTitle(f"{self._current.title} - {settings.window_title}")

    # ==================== Chat ====================

    def _on_message_submitted(self, text: str, images: List[bytes]) -> None:
        if self._current is None:
            return
        self._create_task(self._submit(self._current, text, images), name="submit")

    async def _submit(self, thread: ChatThread, text: str, images: List[bytes]) -> None:
        try:
            await self._controller.submit(thread, text, images)
        except NoModelSelectedError as e:
            self._show_error(describe_error(e))

    def _on_stop_requested(self) -> None:
        if self._current is not None:
            self._create_task(self._controller.stop(self._current), name="stop")

    def _on_retry_requested(self, message_id: str) -> None:
        thread = self._current
        if thread is None:
            return
        message = thread.find_message(message_id)
        if message is not None:
            self._create_task(self._retry(thread, message), name="retry")

    async def _retry(self, thread: ChatThread, message) -> None:
        try:
            await self._controller.retry(thread, message)
        except NoModelSelectedError as e:
            self._show_error(describe_error(e))

    def _on_attachments_requested(self, sources: list) -> None:
        self._create_task(self._attach(sources), name="attach")

    async def _attach(self, sources: list) -> None:
        images = await prepare_attachments(sources)
        if images:
            self.input_panel.add_attachments(images)

    def _show_error(self, message: str) -> QMessageBox:
        """Show an error alert without blocking.

        Called from inside running tasks, so it must not start a nested
        event loop the way exec() or QMessageBox.warning() would.
        """
        box = QMessageBox(
            QMessageBox.Icon.Warning,
            "Error",
            message or "An unknown error occurred.",
            QMessageBox.StandardButton.Ok,
            self,
        )
        box.setAttribute(Qt.WidgetAttribute.WA_DeleteOnClose)
        box.open()
        return box

    # ==================== Session Events ====================

    def _on_session_update(self, update: SessionUpdate) -> None:
        """Apply a controller update to the widgets."""
        thread = self._threads.get(update.thread_id)
        is_current = self._current is not None and self._current.thread_id == update.thread_id

        if update.kind is SessionEvent.THREAD_PROMOTED and thread is not None:
            self.sidebar.add_thread(thread)
            if is_current:
                self.sidebar.select_thread(thread.thread_id)
                self._update_window_title()

        elif update.kind is SessionEvent.TITLE_CHANGED:
            self.sidebar.set_title(update.thread_id, update.text or "")
            if is_current:
                self._update_window_title()

        elif update.kind is SessionEvent.THREAD_DELETED:
            self.sidebar.remove_thread(update.thread_id)
            self._threads.pop(update.thread_id, None)
            if is_current:
                self._current = None
                self._open_thread(self._controller.new_thread())

        elif update.kind is SessionEvent.ERROR:
            if is_current:
                self._show_error(update.error or "")
            else:
                self.status_bar.showMessage(update.error or "", 5000)

        elif not is_current:
            return

        elif update.kind is SessionEvent.THINKING_CHANGED:
            self.input_panel.set_thinking(bool(update.is_thinking))
            self.chat_panel.set_thinking(bool(update.is_thinking))

        elif update.kind is SessionEvent.MESSAGE_ADDED and thread is not None:
            message = thread.find_message(update.message_id)
            if message is not None:
                self.chat_panel.add_message(message)

        elif update.kind is SessionEvent.MESSAGE_UPDATED:
            self.chat_panel.append_to_message(update.message_id, update.text or "")

        elif update.kind is SessionEvent.MESSAGES_REMOVED:
            self.chat_panel.remove_messages(update.message_ids or [])

        elif update.kind is SessionEvent.FOCUS_REQUESTED:
            self.input_panel.focus_input()

    # ==================== Settings ====================

    def _on_show_settings(self) -> None:
        prefs = self._persistence.preferences
        before = (prefs.ollama_base_url, prefs.context_window_length)

        dialog = SettingsDialog(self._persistence, self._controller.available_models, self)
        dialog.settings_changed.connect(self._on_settings_changed)
        dialog.exec()

        if (prefs.ollama_base_url, prefs.context_window_length) != before:
            self._controller.set_adapter(self._build_adapter())
            self._create_task(self._refresh_models(), name="refresh_models")

    def _on_settings_changed(self) -> None:
        self._apply_font_size()
        self.input_panel.set_font_size(self._persistence.preferences.font_size)

    # ==================== Shutdown ====================

    def closeEvent(self, event) -> None:
        """Handle window close: stop generations and save window state."""
        self._create_task(self._controller.shutdown(), name="shutdown")
        for task in list(self._active_tasks):
            if task.get_name() != "shutdown":
                task.cancel()
        QCoreApplication.processEvents()

        self._save_window_state()
        self._unsubscribe()
        super().closeEvent(event)

    def _save_window_state(self) -> None:
        """Save window position and size."""
        prefs = self._persistence.preferences
        if self.isMaximized():
            self._persistence.update_window_state(
                x=prefs.window.x,
                y=prefs.window.y,
                width=prefs.window.width,
                height=prefs.window.height,
                maximized=True,
            )
        else:
            geometry = self.geometry()
            self._persistence.update_window_state(
                x=geometry.x(),
                y=geometry.y(),
                width=geometry.width(),
                height=geometry.height(),
                maximized=False,
            )
