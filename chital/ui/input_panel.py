"""Input panel: model picker, attachments, message entry and stop button."""

from typing import List, Optional

from PySide6.QtWidgets import (
    QWidget,
    QHBoxLayout,
    QVBoxLayout,
    QTextEdit,
    QPushButton,
    QComboBox,
    QLabel,
    QScrollArea,
    QSizePolicy,
    QFileDialog,
)
from PySide6.QtCore import Qt, Signal, QBuffer, QByteArray, QIODevice
from PySide6.QtGui import QKeyEvent, QImage, QPixmap

from ..config.themes import theme, metrics

IMAGE_FILE_FILTER = "Images (*.png *.jpg *.jpeg *.gif *.bmp *.webp *.tif *.tiff *.heic)"


def qimage_to_png(image: QImage) -> Optional[bytes]:
    """Encode a QImage as PNG bytes.

    Args:
        image: Image taken from a drop or the clipboard

    Returns:
        PNG bytes, or None if the image is null or cannot be encoded
    """
    if image.isNull():
        return None
    data = QByteArray()
    buffer = QBuffer(data)
    buffer.open(QIODevice.OpenModeFlag.WriteOnly)
    ok = image.save(buffer, "PNG")
    buffer.close()
    return bytes(data.data()) if ok else None


class MessageInput(QTextEdit):
    """Plain-text entry. Enter submits, Shift+Enter inserts a newline.

    Dropped images are converted to PNG and reported instead of inserted.
    """

    submit_requested = Signal()
    images_dropped = Signal(list)

    def __init__(self, parent: QWidget | None = None):
        super().__init__(parent)
        self.setPlaceholderText("How can I help you today?")
        self.setAcceptRichText(False)
        self.setMinimumHeight(44)
        self.setMaximumHeight(180)
        self.setSizePolicy(QSizePolicy.Policy.Expanding, QSizePolicy.Policy.Minimum)

    def keyPressEvent(self, event: QKeyEvent) -> None:
        """Handle key press events.

        Args:
            event: The key event
        """
        if event.key() in (Qt.Key.Key_Return, Qt.Key.Key_Enter) and not (
            event.modifiers() & Qt.KeyboardModifier.ShiftModifier
        ):
            self.submit_requested.emit()
            return

        super().keyPressEvent(event)

    def canInsertFromMimeData(self, source) -> bool:
        if source.hasImage() or source.hasUrls():
            return True
        return super().canInsertFromMimeData(source)

    def insertFromMimeData(self, source) -> None:
        images: List[bytes] = []

        if source.hasImage():
            png = qimage_to_png(QImage(source.imageData()))
            if png:
                images.append(png)
        elif source.hasUrls():
            for url in source.urls():
                if not url.isLocalFile():
                    continue
                png = qimage_to_png(QImage(url.toLocalFile()))
                if png:
                    images.append(png)

        if images:
            self.images_dropped.emit(images)
            return

        super().insertFromMimeData(source)


class AttachmentThumbnail(QWidget):
    """Thumbnail of a pending attachment with a remove button."""

    remove_requested = Signal(object)

    def __init__(self, data: bytes, parent: QWidget | None = None):
        super().__init__(parent)
        self.data = data
        size = metrics.thumbnail_size
        self.setFixedSize(size, size)

        image_label = QLabel(self)
        image_label.setFixedSize(size, size)
        pixmap = QPixmap()
        pixmap.loadFromData(data)
        if not pixmap.isNull():
            image_label.setPixmap(
                pixmap.scaled(
                    size,
                    size,
                    Qt.AspectRatioMode.KeepAspectRatioByExpanding,
                    Qt.TransformationMode.SmoothTransformation,
                )
            )
        image_label.setStyleSheet(f"border-radius: {metrics.radius_medium}px;")

        remove_button = QPushButton("×", self)
        remove_button.setFixedSize(18, 18)
        remove_button.move(size - 20, 2)
        remove_button.setCursor(Qt.CursorShape.PointingHandCursor)
        remove_button.setToolTip("Remove image")
        remove_button.setStyleSheet("""
            QPushButton {
                background-color: rgba(0, 0, 0, 0.8);
                color: white;
                border-radius: 9px;
                padding: 0;
                font-weight: 700;
            }
        """)
        remove_button.clicked.connect(lambda: self.remove_requested.emit(self))


class InputPanel(QWidget):
    """Panel containing the model picker, pending attachments and the entry."""

    message_submitted = Signal(str, list)
    stop_requested = Signal()
    model_changed = Signal(str)
    attachments_requested = Signal(list)

    def __init__(self, parent: QWidget | None = None):
        """Initialize the input panel.

        Args:
            parent: Parent widget
        """
        super().__init__(parent)
        self._attachments: List[AttachmentThumbnail] = []
        self._is_thinking = False
        self._has_models = False
        self._setup_ui()
        self._update_enabled()

    def _setup_ui(self) -> None:
        """Set up the panel UI."""
        layout = QVBoxLayout(self)
        layout.setContentsMargins(
            metrics.padding_large,
            metrics.padding_small,
            metrics.padding_large,
            metrics.padding_large,
        )
        layout.setSpacing(metrics.padding_small)

        # Model picker, right aligned
        picker_row = QHBoxLayout()
        picker_row.addStretch()
        self.model_combo = QComboBox()
        self.model_combo.setSizeAdjustPolicy(QComboBox.SizeAdjustPolicy.AdjustToContents)
        self.model_combo.currentTextChanged.connect(self._on_model_selected)
        picker_row.addWidget(self.model_combo)
        layout.addLayout(picker_row)

        # Pending attachments
        self._attachment_container = QWidget()
        self._attachment_layout = QHBoxLayout(self._attachment_container)
        self._attachment_layout.setContentsMargins(0, 0, 0, 0)
        self._attachment_layout.setSpacing(metrics.padding_small)
        self._attachment_layout.addStretch()

        self._attachment_scroll = QScrollArea()
        self._attachment_scroll.setWidget(self._attachment_container)
        self._attachment_scroll.setWidgetResizable(True)
        self._attachment_scroll.setFixedHeight(metrics.thumbnail_size + 8)
        self._attachment_scroll.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self._attachment_scroll.hide()
        layout.addWidget(self._attachment_scroll)

        # Entry row
        entry_row = QHBoxLayout()
        entry_row.setSpacing(metrics.padding_small)

        self.attach_button = QPushButton("+")
        self.attach_button.setFixedSize(36, 36)
        self.attach_button.setToolTip("Attach images")
        self.attach_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.attach_button.clicked.connect(self._on_attach_clicked)
        entry_row.addWidget(self.attach_button, alignment=Qt.AlignmentFlag.AlignBottom)

        self.input_field = MessageInput()
        self.input_field.submit_requested.connect(self._on_submit)
        self.input_field.images_dropped.connect(self.attachments_requested.emit)
        entry_row.addWidget(self.input_field)

        self.stop_button = QPushButton("Stop")
        self.stop_button.setToolTip("Stop generation")
        self.stop_button.setCursor(Qt.CursorShape.PointingHandCursor)
        self.stop_button.clicked.connect(self.stop_requested.emit)
        self.stop_button.hide()
        entry_row.addWidget(self.stop_button, alignment=Qt.AlignmentFlag.AlignBottom)

        layout.addLayout(entry_row)

        self.setStyleSheet(f"""
            InputPanel {{
                background-color: {theme.background_secondary};
                border-top: 1px solid {theme.border_subtle};
            }}
        """)

    # ==================== Models ====================

    def set_models(self, models: List[str], selected: Optional[str]) -> None:
        """Populate the model picker.

        Args:
            models: Available model names
            selected: Model of the current thread
        """
        self.model_combo.blockSignals(True)
        self.model_combo.clear()
        self.model_combo.addItems(models)
        if selected and selected in models:
            self.model_combo.setCurrentText(selected)
        self.model_combo.blockSignals(False)

        self._has_models = bool(models)
        self._update_enabled()

    def set_selected_model(self, model: Optional[str]) -> None:
        """Show the model of the current thread without emitting a change."""
        self.model_combo.blockSignals(True)
        index = self.model_combo.findText(model or "")
        self.model_combo.setCurrentIndex(index)
        self.model_combo.blockSignals(False)

    def _on_model_selected(self, model: str) -> None:
        if model:
            self.model_changed.emit(model)
        self.focus_input()

    # ==================== Attachments ====================

    def _on_attach_clicked(self) -> None:
        """Pick image files and hand their bytes to the owner for processing."""
        paths, _ = QFileDialog.getOpenFileNames(self, "Attach images", "", IMAGE_FILE_FILTER)
        if paths:
            self.attachments_requested.emit(paths)

    def add_attachments(self, images: List[bytes]) -> None:
        """Show processed images as pending attachments.

        Args:
            images: Attachment payloads, already resized
        """
        for data in images:
            thumbnail = AttachmentThumbnail(data)
            thumbnail.remove_requested.connect(self._remove_attachment)
            self._attachments.append(thumbnail)
            self._attachment_layout.insertWidget(self._attachment_layout.count() - 1, thumbnail)
        self._attachment_scroll.setVisible(bool(self._attachments))

    def _remove_attachment(self, thumbnail: AttachmentThumbnail) -> None:
        if thumbnail in self._attachments:
            self._attachments.remove(thumbnail)
            thumbnail.deleteLater()
        self._attachment_scroll.setVisible(bool(self._attachments))

    def attachments(self) -> List[bytes]:
        """Pending attachment payloads, in attach order."""
        return [thumbnail.data for thumbnail in self._attachments]

    def clear_attachments(self) -> None:
        """Remove every pending attachment."""
        for thumbnail in self._attachments:
            thumbnail.deleteLater()
        self._attachments.clear()
        self._attachment_scroll.hide()

    # ==================== Submission ====================

    def _on_submit(self) -> None:
        """Emit the entry text and attachments, then clear them."""
        if not self.input_field.isEnabled():
            return
        text = self.input_field.toPlainText()
        images = self.attachments()
        if not text.strip() and not images:
            return
        self.message_submitted.emit(text, images)
        self.input_field.clear()
        self.clear_attachments()

    def set_thinking(self, thinking: bool) -> None:
        """Reflect whether the current thread is generating.

        Args:
            thinking: True while a response streams
        """
        self._is_thinking = thinking
        self._update_enabled()

    def _update_enabled(self) -> None:
        enabled = self._has_models and not self._is_thinking
        self.input_field.setEnabled(enabled)
        self.attach_button.setEnabled(enabled)
        self.model_combo.setEnabled(self._has_models)
        self.stop_button.setVisible(self._is_thinking)
        self.input_field.setPlaceholderText(
            "Thinking..." if self._is_thinking else "How can I help you today?"
        )

    def set_font_size(self, size: float) -> None:
        """Apply the font-size preference to the entry."""
        font = self.input_field.font()
        font.setPointSizeF(size)
        self.input_field.setFont(font)

    def focus_input(self) -> None:
        """Set focus to the input field."""
        self.input_field.setFocus()

    def clear(self) -> None:
        """Clear the entry and attachments."""
        self.input_field.clear()
        self.clear_attachments()
