"""Chat panel for displaying a thread's messages."""

from datetime import datetime
from typing import Dict, Iterable, Optional

from PySide6.QtWidgets import (
    QWidget,
    QVBoxLayout,
    QHBoxLayout,
    QScrollArea,
    QLabel,
    QFrame,
    QSizePolicy,
    QTextBrowser,
    QPushButton,
    QApplication,
)
from PySide6.QtCore import Qt, QTimer, Signal
from PySide6.QtGui import QDesktopServices, QPixmap

from ..config.themes import theme, metrics
from ..storage import ChatMessage, ChatThread


def format_timestamp(dt: datetime) -> str:
    """Format a datetime for display.

    Returns:
        - "2:34 PM" for today
        - "Dec 23, 2:34 PM" for this year
        - "Dec 23 2024, 2:34 PM" for older
    """
    local = dt.astimezone() if dt.tzinfo else dt
    now = datetime.now(local.tzinfo)
    time_str = local.strftime("%I:%M %p").lstrip("0")

    if local.date() == now.date():
        return time_str
    elif local.year == now.year:
        return local.strftime("%b %d, ") + time_str
    else:
        return local.strftime("%b %d %Y, ") + time_str


class MessageBubble(QFrame):
    """One message: header with actions, attached images, and the text."""

    retry_requested = Signal(str)

    def __init__(self, message: ChatMessage, parent: QWidget | None = None):
        """Initialize the message bubble.

        Args:
            message: Message to display
            parent: Parent widget
        """
        super().__init__(parent)
        self.message_id = message.message_id
        self.is_user = message.is_user
        self._raw_content = message.text
        self._setup_ui(message)

    def _setup_ui(self, message: ChatMessage) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)
        layout.setSpacing(4)

        header_row = QHBoxLayout()
        header_row.setContentsMargins(0, 0, 0, 0)
        header_row.setSpacing(8)

        role_label = QLabel("You" if self.is_user else "Assistant")
        role_label.setStyleSheet(f"color: {theme.text_muted}; font-weight: 600;")
        header_row.addWidget(role_label)

        timestamp_label = QLabel(format_timestamp(message.created_at))
        timestamp_label.setStyleSheet(f"color: {theme.text_disabled};")
        header_row.addWidget(timestamp_label)
        header_row.addStretch()

        self.copy_button = QPushButton("Copy")
        self.copy_button.setProperty("flat", True)
        self.copy_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.copy_button.clicked.connect(self._on_copy_clicked)
        header_row.addWidget(self.copy_button)

        self.retry_button = QPushButton("Retry")
        self.retry_button.setProperty("flat", True)
        self.retry_button.setToolTip("Regenerate from this message")
        self.retry_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.retry_button.clicked.connect(lambda: self.retry_requested.emit(self.message_id))
        header_row.addWidget(self.retry_button)

        layout.addLayout(header_row)

        if message.images:
            images_row = QHBoxLayout()
            images_row.setContentsMargins(0, 0, 0, 0)
            images_row.setSpacing(metrics.padding_small)
            for data in message.images:
                pixmap = QPixmap()
                if not pixmap.loadFromData(data):
                    continue
                image_label = QLabel()
                image_label.setPixmap(
                    pixmap.scaled(
                        metrics.bubble_image_size,
                        metrics.bubble_image_size,
                        Qt.AspectRatioMode.KeepAspectRatio,
                        Qt.TransformationMode.SmoothTransformation,
                    )
                )
                images_row.addWidget(image_label)
            images_row.addStretch()
            layout.addLayout(images_row)

        self.content_browser = QTextBrowser()
        self.content_browser.setOpenLinks(False)
        self.content_browser.anchorClicked.connect(QDesktopServices.openUrl)
        self.content_browser.document().setDocumentMargin(metrics.padding_medium)
        self.content_browser.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.content_browser.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self.content_browser.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Minimum)

        background = theme.user_bubble if self.is_user else theme.assistant_bubble
        self.content_browser.setStyleSheet(f"""
            QTextBrowser {{
                background-color: {background};
                border-radius: {metrics.radius_large}px;
            }}
        """)
        layout.addWidget(self.content_browser)

        self._render_content()

    def _render_content(self) -> None:
        """Render the text and fit the browser height to it."""
        if self.is_user:
            self.content_browser.setPlainText(self._raw_content)
        else:
            self.content_browser.setMarkdown(self._raw_content)
        self._fit_height()

    def _fit_height(self) -> None:
        document = self.content_browser.document()
        document.setTextWidth(self.content_browser.viewport().width())
        self.content_browser.setMinimumHeight(int(document.size().height()) + 4)

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        self._fit_height()

    def _on_copy_clicked(self) -> None:
        QApplication.clipboard().setText(self._raw_content)

    def append_content(self, text: str) -> None:
        """Append streamed text.

        Args:
            text: Delta to append
        """
        self._raw_content += text
        self._render_content()

    def set_retry_enabled(self, enabled: bool) -> None:
        self.retry_button.setEnabled(enabled)


class ChatPanel(QWidget):
    """Scrollable list of message bubbles for the current thread."""

    retry_requested = Signal(str)  # message_id

    def __init__(self, parent: QWidget | None = None):
        """Initialize the chat panel.

        Args:
            parent: Parent widget
        """
        super().__init__(parent)
        self._bubbles: Dict[str, MessageBubble] = {}
        self._is_thinking = False
        self._setup_ui()

    def _setup_ui(self) -> None:
        layout = QVBoxLayout(self)
        layout.setContentsMargins(0, 0, 0, 0)

        self.scroll_area = QScrollArea()
        self.scroll_area.setWidgetResizable(True)
        self.scroll_area.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)

        self.messages_container = QWidget()
        self.messages_container.setStyleSheet(
            f"background-color: {theme.background_secondary};"
        )
        self.messages_layout = QVBoxLayout(self.messages_container)
        self.messages_layout.setContentsMargins(24, 16, 24, 16)
        self.messages_layout.setSpacing(24)
        self.messages_layout.addStretch()

        self.scroll_area.setWidget(self.messages_container)
        layout.addWidget(self.scroll_area)

        self._thinking_label = QLabel("Thinking...")
        self._thinking_label.setStyleSheet(f"color: {theme.text_muted}; padding: 4px 24px;")
        self._thinking_label.hide()
        layout.addWidget(self._thinking_label)

    def show_thread(self, thread: Optional[ChatThread]) -> None:
        """Replace the displayed messages with a thread's history.

        Args:
            thread: Thread to show, or None to clear
        """
        self.clear()
        if thread is None:
            return
        for message in thread.chronological_messages():
            self.add_message(message)
        self.set_thinking(thread.is_thinking)

    def add_message(self, message: ChatMessage) -> None:
        """Append a bubble for a message.

        Args:
            message: Message to show
        """
        bubble = MessageBubble(message)
        bubble.retry_requested.connect(self.retry_requested.emit)
        bubble.set_retry_enabled(not self._is_thinking)
        self._bubbles[message.message_id] = bubble

        # Keep the trailing stretch last
        self.messages_layout.insertWidget(self.messages_layout.count() - 1, bubble)
        QTimer.singleShot(10, self._scroll_to_bottom)

    def append_to_message(self, message_id: str, text: str) -> None:
        """Append a streamed delta to a bubble.

        Args:
            message_id: Message receiving the delta
            text: Delta text
        """
        bubble = self._bubbles.get(message_id)
        if bubble is None:
            return
        scrollbar = self.scroll_area.verticalScrollBar()
        at_bottom = (scrollbar.maximum() - scrollbar.value()) < 50
        bubble.append_content(text)
        if at_bottom:
            QTimer.singleShot(0, self._scroll_to_bottom)

    def remove_messages(self, message_ids: Iterable[str]) -> None:
        """Remove bubbles.

        Args:
            message_ids: Messages to remove
        """
        for message_id in message_ids:
            bubble = self._bubbles.pop(message_id, None)
            if bubble is not None:
                self.messages_layout.removeWidget(bubble)
                bubble.deleteLater()

    def set_thinking(self, thinking: bool) -> None:
        """Show the thinking indicator and lock retries while generating."""
        self._is_thinking = thinking
        self._thinking_label.setVisible(thinking)
        for bubble in self._bubbles.values():
            bubble.set_retry_enabled(not thinking)

    def _scroll_to_bottom(self) -> None:
        scrollbar = self.scroll_area.verticalScrollBar()
        scrollbar.setValue(scrollbar.maximum())

    def clear(self) -> None:
        """Clear all messages from the panel."""
        for bubble in self._bubbles.values():
            self.messages_layout.removeWidget(bubble)
            bubble.deleteLater()
        self._bubbles.clear()
        self._is_thinking = False
        self._thinking_label.hide()
