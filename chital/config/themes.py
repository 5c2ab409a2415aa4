"""Dark theme for Chital.

Colors and spacing shared by the widgets; the base font size comes from the
user's font-size preference.
"""

from dataclasses import dataclass


@dataclass
class ThemeColors:
    """Color scheme."""

    # Background layers
    background: str = "#111114"
    background_secondary: str = "#17171b"
    background_sidebar: str = "#0e0e11"
    background_elevated: str = "#202026"

    # Text
    text_primary: str = "#f3f4f6"
    text_muted: str = "#9ca3af"
    text_disabled: str = "#6b7280"

    # Accent
    accent: str = "#d97706"  # Amber, the chital's coat
    accent_hover: str = "#f59e0b"
    accent_pressed: str = "#b45309"
    accent_subtle: str = "rgba(217, 119, 6, 0.18)"

    border: str = "#33333b"
    border_subtle: str = "#24242a"
    border_focus: str = "#d97706"

    error: str = "#ef4444"

    # Bubbles
    user_bubble: str = "#2b2b33"
    assistant_bubble: str = "transparent"

    selection: str = "rgba(217, 119, 6, 0.35)"


@dataclass
class ThemeFonts:
    """Font families."""

    ui: str = "'Inter', 'SF Pro Text', 'Segoe UI', sans-serif"
    mono: str = "'JetBrains Mono', 'Menlo', 'Consolas', monospace"


@dataclass
class ThemeMetrics:
    """Spacing and sizing."""

    radius_small: int = 6
    radius_medium: int = 8
    radius_large: int = 12

    padding_small: int = 6
    padding_medium: int = 10
    padding_large: int = 16

    thumbnail_size: int = 64
    bubble_image_size: int = 160


# Global instances
theme = ThemeColors()
fonts = ThemeFonts()
metrics = ThemeMetrics()


def get_stylesheet(font_size: float) -> str:
    """Generate the application stylesheet.

    Args:
        font_size: Base font size in pixels

    Returns:
        Qt stylesheet string
    """
    base = int(round(font_size))
    small = max(base - 2, 9)
    return f"""
        QMainWindow, QDialog {{
            background-color: {theme.background};
        }}

        QWidget {{
            color: {theme.text_primary};
            font-family: {fonts.ui};
            font-size: {base}px;
        }}

        QScrollArea {{
            background-color: transparent;
            border: none;
        }}

        QScrollBar:vertical {{
            background-color: transparent;
            width: 8px;
        }}

        QScrollBar::handle:vertical {{
            background-color: {theme.border};
            min-height: 30px;
            border-radius: 4px;
        }}

        QScrollBar::add-line:vertical,
        QScrollBar::sub-line:vertical {{
            height: 0;
        }}

        QTextEdit, QLineEdit, QPlainTextEdit {{
            background-color: {theme.background_elevated};
            border: 1px solid {theme.border};
            border-radius: {metrics.radius_medium}px;
            padding: {metrics.padding_small}px {metrics.padding_medium}px;
            selection-background-color: {theme.selection};
        }}

        QTextEdit:focus, QLineEdit:focus, QPlainTextEdit:focus {{
            border: 1px solid {theme.border_focus};
        }}

        QTextEdit:disabled {{
            color: {theme.text_disabled};
            border-color: {theme.border_subtle};
        }}

        QPushButton {{
            background-color: {theme.accent};
            color: white;
            border: none;
            border-radius: {metrics.radius_medium}px;
            padding: {metrics.padding_small}px {metrics.padding_large}px;
            font-weight: 500;
        }}

        QPushButton:hover {{
            background-color: {theme.accent_hover};
        }}

        QPushButton:pressed {{
            background-color: {theme.accent_pressed};
        }}

        QPushButton:disabled {{
            background-color: {theme.border};
            color: {theme.text_disabled};
        }}

        QPushButton[flat="true"] {{
            background-color: transparent;
            color: {theme.text_muted};
            padding: 2px {metrics.padding_small}px;
            font-size: {small}px;
        }}

        QPushButton[flat="true"]:hover {{
            color: {theme.text_primary};
        }}

        QLabel {{
            background-color: transparent;
        }}

        QComboBox {{
            background-color: {theme.background_elevated};
            border: 1px solid {theme.border};
            border-radius: {metrics.radius_medium}px;
            padding: {metrics.padding_small}px;
        }}

        QComboBox QAbstractItemView {{
            background-color: {theme.background_elevated};
            selection-background-color: {theme.accent};
        }}

        QListWidget {{
            background-color: {theme.background_sidebar};
            border: none;
            outline: none;
        }}

        QListWidget::item {{
            padding: {metrics.padding_small}px {metrics.padding_medium}px;
            border-radius: {metrics.radius_small}px;
        }}

        QListWidget::item:selected {{
            background-color: {theme.accent_subtle};
            color: {theme.text_primary};
        }}

        QTextBrowser {{
            background-color: transparent;
            border: none;
            selection-background-color: {theme.selection};
        }}

        QStatusBar {{
            background-color: {theme.background_sidebar};
            color: {theme.text_muted};
            font-size: {small}px;
        }}

        QToolTip {{
            background-color: {theme.background_elevated};
            border: 1px solid {theme.border};
            padding: {metrics.padding_small}px;
        }}
    """
