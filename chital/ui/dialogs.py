"""Dialogs for Chital.

Settings dialog. Every edit is saved immediately, like the preferences it
backs; ``settings_changed`` tells the main window to re-apply them.
"""

from typing import List, Optional

from PySide6.QtWidgets import (
    QDialog,
    QVBoxLayout,
    QHBoxLayout,
    QLabel,
    QPushButton,
    QComboBox,
    QLineEdit,
    QPlainTextEdit,
    QSlider,
    QWidget,
    QDialogButtonBox,
)
from PySide6.QtCore import Qt, Signal
from PySide6.QtGui import QIntValidator

from ..config.persistence import PersistenceManager
from ..config.settings import MIN_FONT_SIZE, MAX_FONT_SIZE
from ..config.themes import theme, metrics

TITLE_IMAGE_MODE_LABELS = [
    ("transmission", "Resized for sending (896x896)"),
    ("attachment", "As attached"),
    ("none", "Leave images out"),
]


class SettingsDialog(QDialog):
    """Edits the user preferences."""

    settings_changed = Signal()

    def __init__(
        self,
        persistence: PersistenceManager,
        available_models: List[str],
        parent: Optional[QWidget] = None,
    ) -> None:
        """Initialize the settings dialog.

        Args:
            persistence: Preferences to edit
            available_models: Models offered for the default model picker
            parent: Parent widget
        """
        super().__init__(parent)
        self._persistence = persistence
        self._available_models = list(available_models)
        self._loading = False
        self._setup_ui()
        self._load_values()

    def _setup_ui(self) -> None:
        self.setWindowTitle("Settings")
        self.setMinimumSize(500, 500)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(
            metrics.padding_large,
            metrics.padding_large,
            metrics.padding_large,
            metrics.padding_large,
        )
        layout.setSpacing(metrics.padding_large)

        # Default model
        layout.addWidget(self._section_label("Default Model"))
        self.model_combo = QComboBox()
        self.model_combo.addItem("First available", "")
        for model in self._available_models:
            self.model_combo.addItem(model, model)
        self.model_combo.currentIndexChanged.connect(self._on_model_changed)
        layout.addWidget(self.model_combo)

        # Base URL
        layout.addWidget(self._section_label("Ollama Base URL"))
        self.base_url_edit = QLineEdit()
        self.base_url_edit.setPlaceholderText("Enter Ollama Base URL")
        self.base_url_edit.editingFinished.connect(self._on_base_url_changed)
        layout.addWidget(self.base_url_edit)

        # Context window
        layout.addWidget(self._section_label("Context Window Length"))
        context_row = QHBoxLayout()
        self.context_edit = QLineEdit()
        self.context_edit.setValidator(QIntValidator(1, 10_000_000, self))
        self.context_edit.setFixedWidth(100)
        self.context_edit.textChanged.connect(self._on_context_changed)
        context_row.addWidget(self.context_edit)
        context_row.addWidget(QLabel("tokens"))
        context_row.addStretch()
        layout.addLayout(context_row)

        # Font size
        layout.addWidget(self._section_label("Chat Font Size"))
        font_row = QHBoxLayout()
        self.font_slider = QSlider(Qt.Orientation.Horizontal)
        self.font_slider.setRange(int(MIN_FONT_SIZE), int(MAX_FONT_SIZE))
        self.font_slider.setSingleStep(1)
        self.font_slider.setFixedWidth(200)
        self.font_slider.valueChanged.connect(self._on_font_size_changed)
        font_row.addWidget(self.font_slider)
        self.font_value_label = QLabel()
        self.font_value_label.setFixedWidth(40)
        font_row.addWidget(self.font_value_label)
        font_row.addStretch()
        layout.addLayout(font_row)

        # Title summary
        layout.addWidget(self._section_label("Thread Title Summary Prompt"))
        self.prompt_edit = QPlainTextEdit()
        self.prompt_edit.setMinimumHeight(100)
        self.prompt_edit.textChanged.connect(self._on_prompt_changed)
        layout.addWidget(self.prompt_edit)

        layout.addWidget(self._section_label("Images in Title Requests"))
        self.image_mode_combo = QComboBox()
        for mode, label in TITLE_IMAGE_MODE_LABELS:
            self.image_mode_combo.addItem(label, mode)
        self.image_mode_combo.currentIndexChanged.connect(self._on_image_mode_changed)
        layout.addWidget(self.image_mode_combo)

        layout.addStretch()

        # Buttons
        button_row = QHBoxLayout()
        self.restore_button = QPushButton("Restore Defaults")
        self.restore_button.clicked.connect(self._on_restore_defaults)
        button_row.addWidget(self.restore_button)
        button_row.addStretch()

        close_box = QDialogButtonBox(QDialogButtonBox.StandardButton.Close)
        close_box.rejected.connect(self.accept)
        button_row.addWidget(close_box)
        layout.addLayout(button_row)

    def _section_label(self, text: str) -> QLabel:
        label = QLabel(text)
        label.setStyleSheet(f"color: {theme.text_primary}; font-weight: 600;")
        return label

    def _load_values(self) -> None:
        """Show the current preferences without saving them back."""
        prefs = self._persistence.preferences
        self._loading = True
        try:
            index = self.model_combo.findData(prefs.default_model_name)
            if index < 0:
                # Configured model not served right now; keep it selectable
                self.model_combo.addItem(prefs.default_model_name, prefs.default_model_name)
                index = self.model_combo.count() - 1
            self.model_combo.setCurrentIndex(index)

            self.base_url_edit.setText(prefs.ollama_base_url)
            self.context_edit.setText(str(prefs.context_window_length))
            self.font_slider.setValue(int(prefs.font_size))
            self.font_value_label.setText(f"{int(prefs.font_size)}pt")
            self.prompt_edit.setPlainText(prefs.title_summary_prompt)
            self.image_mode_combo.setCurrentIndex(
                max(self.image_mode_combo.findData(prefs.title_image_mode), 0)
            )
        finally:
            self._loading = False

    # ==================== Handlers ====================

    def _on_model_changed(self, _index: int) -> None:
        if self._loading:
            return
        self._persistence.update_default_model(self.model_combo.currentData() or "")
        self.settings_changed.emit()

    def _on_base_url_changed(self) -> None:
        if self._loading:
            return
        if self.base_url_edit.text().strip() == self._persistence.preferences.ollama_base_url:
            return
        self._persistence.update_base_url(self.base_url_edit.text())
        self.settings_changed.emit()

    def _on_context_changed(self, text: str) -> None:
        if self._loading:
            return
        if self._persistence.update_context_window_length(text):
            self.settings_changed.emit()

    def _on_font_size_changed(self, value: int) -> None:
        self.font_value_label.setText(f"{value}pt")
        if self._loading:
            return
        self._persistence.update_font_size(value)
        self.settings_changed.emit()

    def _on_prompt_changed(self) -> None:
        if self._loading:
            return
        self._persistence.update_title_prompt(self.prompt_edit.toPlainText())

    def _on_image_mode_changed(self, _index: int) -> None:
        if self._loading:
            return
        self._persistence.update_title_image_mode(self.image_mode_combo.currentData())

    def _on_restore_defaults(self) -> None:
        self._persistence.restore_defaults()
        self._load_values()
        self.settings_changed.emit()
