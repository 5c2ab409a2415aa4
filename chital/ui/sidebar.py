"""Sidebar listing chat threads."""

from typing import Dict, List, Optional

from PySide6.QtWidgets import (
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QListWidget,
    QListWidgetItem,
    QMenu,
    QMessageBox,
)
from PySide6.QtCore import Qt, Signal

from ..config.themes import theme, metrics
from ..storage import ChatThread


class Sidebar(QWidget):
    """Thread list with new-chat and delete actions."""

    thread_selected = Signal(str)  # thread_id
    new_thread_requested = Signal()
    delete_requested = Signal(str)  # thread_id
    settings_requested = Signal()

    def __init__(self, parent: QWidget | None = None):
        """Initialize the sidebar.

        Args:
            parent: Parent widget
        """
        super().__init__(parent)
        self._items: Dict[str, QListWidgetItem] = {}
        self._setup_ui()

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(
            metrics.padding_medium,
            metrics.padding_large,
            metrics.padding_medium,
            metrics.padding_large,
        )
        layout.setSpacing(metrics.padding_medium)

        header_row = QHBoxLayout()
        title = QLabel("Chats")
        title.setStyleSheet(f"color: {theme.text_muted}; font-weight: 600;")
        header_row.addWidget(title)
        header_row.addStretch()

        self.new_button = QPushButton("New Chat")
        self.new_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.new_button.setToolTip("New chat (Ctrl+N)")
        self.new_button.clicked.connect(self.new_thread_requested)
        header_row.addWidget(self.new_button)
        layout.addLayout(header_row)

        self.thread_list = QListWidget()
        self.thread_list.setContextMenuPolicy(Qt.ContextMenuPolicy.CustomContextMenu)
        self.thread_list.customContextMenuRequested.connect(self._show_context_menu)
        self.thread_list.currentItemChanged.connect(self._on_current_changed)
        layout.addWidget(self.thread_list, stretch=1)

        self.settings_button = QPushButton("Settings")
        self.settings_button.setProperty("flat", True)
        self.settings_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.settings_button.clicked.connect(self.settings_requested)
        layout.addWidget(self.settings_button, alignment=Qt.AlignmentFlag.AlignLeft)

        self.setFixedWidth(240)
        self.setStyleSheet(f"""
            Sidebar {{
                background-color: {theme.background_sidebar};
                border-right: 1px solid {theme.border_subtle};
            }}
        """)

    def set_threads(self, threads: List[ChatThread], current_id: Optional[str] = None) -> None:
        """Replace the listed threads.

        Args:
            threads: Persisted threads, newest first
            current_id: Thread to select
        """
        self.thread_list.blockSignals(True)
        self.thread_list.clear()
        self._items.clear()
        for thread in threads:
            self._append_item(thread)
        self.thread_list.blockSignals(False)
        if current_id:
            self.select_thread(current_id)

    def _append_item(self, thread: ChatThread, row: Optional[int] = None) -> QListWidgetItem:
        item = QListWidgetItem(thread.title)
        item.setData(Qt.ItemDataRole.UserRole, thread.thread_id)
        item.setToolTip(thread.title)
        if row is None:
            self.thread_list.addItem(item)
        else:
            self.thread_list.insertItem(row, item)
        self._items[thread.thread_id] = item
        return item

    def add_thread(self, thread: ChatThread) -> None:
        """Insert a newly promoted thread at the top."""
        if thread.thread_id in self._items:
            return
        self.thread_list.blockSignals(True)
        self._append_item(thread, row=0)
        self.thread_list.blockSignals(False)

    def remove_thread(self, thread_id: str) -> None:
        item = self._items.pop(thread_id, None)
        if item is None:
            return
        self.thread_list.blockSignals(True)
        self.thread_list.takeItem(self.thread_list.row(item))
        self.thread_list.blockSignals(False)

    def set_title(self, thread_id: str, title: str) -> None:
        """Update the displayed title of a thread."""
        item = self._items.get(thread_id)
        if item is not None:
            item.setText(title)
            item.setToolTip(title)

    def select_thread(self, thread_id: Optional[str]) -> None:
        """Select a thread without emitting thread_selected."""
        self.thread_list.blockSignals(True)
        item = self._items.get(thread_id) if thread_id else None
        if item is None:
            self.thread_list.clearSelection()
            self.thread_list.setCurrentItem(None)
        else:
            self.thread_list.setCurrentItem(item)
        self.thread_list.blockSignals(False)

    def _on_current_changed(self, current: Optional[QListWidgetItem], _previous) -> None:
        if current is not None:
            self.thread_selected.emit(current.data(Qt.ItemDataRole.UserRole))

    def _show_context_menu(self, pos) -> None:
        """Show the delete menu for the thread under the cursor."""
        item = self.thread_list.itemAt(pos)
        if item is None:
            return

        menu = QMenu(self)
        delete_action = menu.addAction("Delete")
        action = menu.exec(self.thread_list.mapToGlobal(pos))

        if action == delete_action:
            reply = QMessageBox.question(
                self,
                "Delete Chat",
                f"Delete \"{item.text()}\"? This cannot be undone.",
                QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            )
            if reply == QMessageBox.StandardButton.Yes:
                self.delete_requested.emit(item.data(Qt.ItemDataRole.UserRole))
