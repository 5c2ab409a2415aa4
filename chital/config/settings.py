"""Application settings and configuration."""

import os
from pathlib import Path
from dataclasses import dataclass, field
from typing import Optional, Tuple

from dotenv import load_dotenv


# Load environment variables from .env file if present
load_dotenv()


# Product defaults, restorable from the settings dialog
OLLAMA_DEFAULT_BASE_URL = "http://127.0.0.1:11434"
TITLE_SUMMARY_PROMPT = (
    "Summarize the conversation above as a short title of at most five "
    "words. Reply with the title only, without quotes or punctuation."
)
CONTEXT_WINDOW_LENGTH = 4096
DEFAULT_MODEL_NAME = ""
DEFAULT_FONT_SIZE = 14.0
MIN_FONT_SIZE = 10.0
MAX_FONT_SIZE = 24.0

# How images are sent along with the title summary request
TITLE_IMAGE_MODES = ("transmission", "attachment", "none")
DEFAULT_TITLE_IMAGE_MODE = "transmission"

NEW_THREAD_TITLE = "New Chat"


def _env_float(name: str, default: float) -> float:
    """Read a float from the environment, ignoring malformed values."""
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass
class AppSettings:
    """Application-wide settings."""

    # Window defaults
    window_width: int = 900
    window_height: int = 700
    window_title: str = "Chital"

    # Paths
    app_data_dir: Path = Path.home() / ".chital"
    logs_dir: Path = Path.home() / ".chital" / "logs"

    # Networking
    request_timeout: float = field(
        default_factory=lambda: _env_float("CHITAL_REQUEST_TIMEOUT", 120.0)
    )
    task_cancellation_timeout: float = 5.0

    # Attachment stage: bounded size, lossy re-encode
    attachment_max_dimension: int = 1024
    attachment_quality: float = 0.7

    # Send stage: fixed square, second lossy re-encode
    transmission_size: Tuple[int, int] = (896, 896)
    transmission_quality: float = 0.8

    @property
    def threads_path(self) -> Path:
        """JSONL archive holding every persisted thread."""
        return self.app_data_dir / "threads.jsonl"

    def ensure_dirs(self) -> None:
        """Ensure data directories exist."""
        self.app_data_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)


def get_ollama_base_url(default: Optional[str] = None) -> str:
    """Get the Ollama base URL, honouring the CHITAL_OLLAMA_BASE_URL override.

    Args:
        default: Fallback when the variable is unset

    Returns:
        Base URL without a trailing slash
    """
    url = os.getenv("CHITAL_OLLAMA_BASE_URL") or default or OLLAMA_DEFAULT_BASE_URL
    return url.rstrip("/")


# Global settings instance
settings = AppSettings()
