import json

from chital.config.persistence import PersistenceManager, UserPreferences
from chital.config.settings import (
    CONTEXT_WINDOW_LENGTH,
    DEFAULT_FONT_SIZE,
    OLLAMA_DEFAULT_BASE_URL,
    TITLE_SUMMARY_PROMPT,
    get_ollama_base_url,
)


def test_defaults_when_file_missing(tmp_path):
    manager = PersistenceManager(tmp_path / "config.json")
    prefs = manager.preferences

    assert prefs.ollama_base_url == OLLAMA_DEFAULT_BASE_URL
    assert prefs.title_summary_prompt == TITLE_SUMMARY_PROMPT
    assert prefs.context_window_length == CONTEXT_WINDOW_LENGTH
    assert prefs.default_model_name == ""
    assert prefs.font_size == DEFAULT_FONT_SIZE
    assert prefs.title_image_mode == "transmission"


def test_round_trip(tmp_path):
    path = tmp_path / "config.json"
    manager = PersistenceManager(path)
    manager.update_default_model("llava")
    manager.update_base_url("http://gpu-box:11434/")
    manager.update_title_prompt("Name this chat")
    manager.update_title_image_mode("none")
    manager.update_window_state(10, 20, 1000, 800, maximized=True)

    prefs = PersistenceManager(path).load()

    assert prefs.default_model_name == "llava"
    assert prefs.ollama_base_url == "http://gpu-box:11434"
    assert prefs.title_summary_prompt == "Name this chat"
    assert prefs.title_image_mode == "none"
    assert (prefs.window.x, prefs.window.y) == (10, 20)
    assert prefs.window.maximized


def test_unreadable_file_falls_back_to_defaults(tmp_path):
    path = tmp_path / "config.json"
    path.write_text("{broken", encoding="utf-8")

    assert PersistenceManager(path).load() == UserPreferences()


def test_unknown_image_mode_is_replaced(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"title_image_mode": "hologram"}), encoding="utf-8")

    assert PersistenceManager(path).load().title_image_mode == "transmission"


def test_context_window_ignores_invalid_input(tmp_path):
    manager = PersistenceManager(tmp_path / "config.json")

    assert manager.update_context_window_length("abc") is False
    assert manager.update_context_window_length("0") is False
    assert manager.update_context_window_length("") is False
    assert manager.preferences.context_window_length == CONTEXT_WINDOW_LENGTH

    assert manager.update_context_window_length(" 8192 ") is True
    assert manager.preferences.context_window_length == 8192


def test_font_size_clamped_to_slider_range(tmp_path):
    manager = PersistenceManager(tmp_path / "config.json")

    manager.update_font_size(30)
    assert manager.preferences.font_size == 24.0
    manager.update_font_size(3)
    assert manager.preferences.font_size == 10.0
    manager.update_font_size(15.4)
    assert manager.preferences.font_size == 15.0


def test_blank_base_url_restores_default(tmp_path):
    manager = PersistenceManager(tmp_path / "config.json")
    manager.update_base_url("   ")

    assert manager.preferences.ollama_base_url == OLLAMA_DEFAULT_BASE_URL


def test_restore_defaults_keeps_window_and_identity(tmp_path):
    manager = PersistenceManager(tmp_path / "config.json")
    prefs = manager.preferences
    manager.update_window_state(5, 6, 700, 500)
    manager.update_default_model("llava")
    manager.update_font_size(20)
    manager.update_context_window_length("16384")

    restored = manager.restore_defaults()

    assert restored is prefs
    assert prefs.default_model_name == ""
    assert prefs.font_size == DEFAULT_FONT_SIZE
    assert prefs.context_window_length == CONTEXT_WINDOW_LENGTH
    assert (prefs.window.x, prefs.window.width) == (5, 700)


def test_base_url_environment_override(monkeypatch):
    monkeypatch.delenv("CHITAL_OLLAMA_BASE_URL", raising=False)
    assert get_ollama_base_url("http://example:1234/") == "http://example:1234"
    assert get_ollama_base_url() == OLLAMA_DEFAULT_BASE_URL

    monkeypatch.setenv("CHITAL_OLLAMA_BASE_URL", "http://override:11434")
    assert get_ollama_base_url("http://example:1234") == "http://override:11434"
