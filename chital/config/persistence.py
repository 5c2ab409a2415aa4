"""Preferences persistence for Chital.

Saves and loads user preferences and window state to ~/.chital/config.json
"""

import json
import logging
from typing import Optional, Dict, Any
from pathlib import Path
from dataclasses import dataclass, field

from .settings import (
    settings,
    OLLAMA_DEFAULT_BASE_URL,
    TITLE_SUMMARY_PROMPT,
    CONTEXT_WINDOW_LENGTH,
    DEFAULT_MODEL_NAME,
    DEFAULT_FONT_SIZE,
    MIN_FONT_SIZE,
    MAX_FONT_SIZE,
    TITLE_IMAGE_MODES,
    DEFAULT_TITLE_IMAGE_MODE,
)

logger = logging.getLogger(__name__)


@dataclass
class WindowState:
    """Window position and size state."""

    x: int = 100
    y: int = 100
    width: int = 900
    height: int = 700
    maximized: bool = False


@dataclass
class UserPreferences:
    """User preferences that persist between sessions."""

    ollama_base_url: str = OLLAMA_DEFAULT_BASE_URL
    title_summary_prompt: str = TITLE_SUMMARY_PROMPT
    context_window_length: int = CONTEXT_WINDOW_LENGTH
    default_model_name: str = DEFAULT_MODEL_NAME
    font_size: float = DEFAULT_FONT_SIZE

    # "transmission", "attachment" or "none"
    title_image_mode: str = DEFAULT_TITLE_IMAGE_MODE

    # Window state
    window: WindowState = field(default_factory=WindowState)


class PersistenceManager:
    """Manages saving and loading user preferences."""

    def __init__(self, config_path: Optional[Path] = None) -> None:
        """Initialize the persistence manager.

        Args:
            config_path: Path to config file, defaults to ~/.chital/config.json
        """
        self._config_path = config_path or (settings.app_data_dir / "config.json")
        self._preferences: Optional[UserPreferences] = None

    @property
    def preferences(self) -> UserPreferences:
        """Get current preferences, loading from disk if needed."""
        if self._preferences is None:
            self._preferences = self.load()
        return self._preferences

    def load(self) -> UserPreferences:
        """Load preferences from disk.

        Returns:
            UserPreferences instance (defaults if file doesn't exist)
        """
        if not self._config_path.exists():
            return UserPreferences()

        try:
            with open(self._config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return self._dict_to_preferences(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Ignoring unreadable preferences at %s: %s", self._config_path, e)
            return UserPreferences()

    def save(self, preferences: Optional[UserPreferences] = None) -> None:
        """Save preferences to disk.

        Args:
            preferences: Preferences to save, or current if None
        """
        if preferences is not None:
            self._preferences = preferences

        if self._preferences is None:
            return

        # Ensure directory exists
        self._config_path.parent.mkdir(parents=True, exist_ok=True)

        data = self._preferences_to_dict(self._preferences)

        with open(self._config_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def update_window_state(
        self,
        x: int,
        y: int,
        width: int,
        height: int,
        maximized: bool = False,
    ) -> None:
        """Update window state and save.

        Args:
            x: Window X position
            y: Window Y position
            width: Window width
            height: Window height
            maximized: Whether window is maximized
        """
        prefs = self.preferences
        prefs.window.x = x
        prefs.window.y = y
        prefs.window.width = width
        prefs.window.height = height
        prefs.window.maximized = maximized
        self.save()

    def update_default_model(self, model_name: str) -> None:
        """Update the default model and save.

        Args:
            model_name: Model name, or "" to fall back to the first available
        """
        prefs = self.preferences
        prefs.default_model_name = model_name
        self.save()

    def update_base_url(self, url: str) -> None:
        """Update the Ollama base URL and save. Blank input restores the default."""
        prefs = self.preferences
        prefs.ollama_base_url = url.strip().rstrip("/") or OLLAMA_DEFAULT_BASE_URL
        self.save()

    def update_title_prompt(self, prompt: str) -> None:
        """Update the thread title summary prompt and save."""
        prefs = self.preferences
        prefs.title_summary_prompt = prompt
        self.save()

    def update_title_image_mode(self, mode: str) -> None:
        """Update how images are sent with title requests and save.

        Args:
            mode: One of "transmission", "attachment" or "none"

        Raises:
            ValueError: If the mode is unknown
        """
        if mode not in TITLE_IMAGE_MODES:
            raise ValueError(f"Unknown title image mode: {mode}")
        prefs = self.preferences
        prefs.title_image_mode = mode
        self.save()

    def update_context_window_length(self, text: str) -> bool:
        """Update the context window from user input.

        Non-numeric input is ignored, like the settings field it backs.

        Args:
            text: Raw text typed by the user

        Returns:
            True if the value was accepted
        """
        try:
            value = int(text.strip())
        except ValueError:
            return False
        if value <= 0:
            return False
        prefs = self.preferences
        prefs.context_window_length = value
        self.save()
        return True

    def update_font_size(self, size: float) -> None:
        """Update the chat font size and save, clamped to the slider range.

        Args:
            size: Font size in points
        """
        prefs = self.preferences
        prefs.font_size = float(min(MAX_FONT_SIZE, max(MIN_FONT_SIZE, round(size))))
        self.save()

    def restore_defaults(self) -> UserPreferences:
        """Reset every setting except window state to its default and save.

        The preferences object is updated in place, so holders of
        ``preferences`` see the restored values.

        Returns:
            The restored preferences
        """
        prefs = self.preferences
        defaults = UserPreferences()
        prefs.ollama_base_url = defaults.ollama_base_url
        prefs.title_summary_prompt = defaults.title_summary_prompt
        prefs.context_window_length = defaults.context_window_length
        prefs.default_model_name = defaults.default_model_name
        prefs.font_size = defaults.font_size
        prefs.title_image_mode = defaults.title_image_mode
        self.save()
        return prefs

    def _preferences_to_dict(self, prefs: UserPreferences) -> Dict[str, Any]:
        """Convert preferences to dictionary.

        Args:
            prefs: UserPreferences instance

        Returns:
            Dictionary representation
        """
        return {
            "ollama_base_url": prefs.ollama_base_url,
            "title_summary_prompt": prefs.title_summary_prompt,
            "context_window_length": prefs.context_window_length,
            "default_model_name": prefs.default_model_name,
            "font_size": prefs.font_size,
            "title_image_mode": prefs.title_image_mode,
            "window": {
                "x": prefs.window.x,
                "y": prefs.window.y,
                "width": prefs.window.width,
                "height": prefs.window.height,
                "maximized": prefs.window.maximized,
            },
        }

    def _dict_to_preferences(self, data: Dict[str, Any]) -> UserPreferences:
        """Convert dictionary to preferences.

        Args:
            data: Dictionary from JSON

        Returns:
            UserPreferences instance
        """
        window_data = data.get("window", {})
        window = WindowState(
            x=window_data.get("x", 100),
            y=window_data.get("y", 100),
            width=window_data.get("width", 900),
            height=window_data.get("height", 700),
            maximized=window_data.get("maximized", False),
        )

        image_mode = data.get("title_image_mode", DEFAULT_TITLE_IMAGE_MODE)
        if image_mode not in TITLE_IMAGE_MODES:
            image_mode = DEFAULT_TITLE_IMAGE_MODE

        return UserPreferences(
            ollama_base_url=data.get("ollama_base_url", OLLAMA_DEFAULT_BASE_URL),
            title_summary_prompt=data.get("title_summary_prompt", TITLE_SUMMARY_PROMPT),
            context_window_length=int(data.get("context_window_length", CONTEXT_WINDOW_LENGTH)),
            default_model_name=data.get("default_model_name", DEFAULT_MODEL_NAME),
            font_size=float(data.get("font_size", DEFAULT_FONT_SIZE)),
            title_image_mode=image_mode,
            window=window,
        )


# Global instance
persistence = PersistenceManager()
