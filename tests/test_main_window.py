import asyncio
import os

os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")

import pytest
from PySide6.QtWidgets import QApplication, QMessageBox

from chital.config.persistence import PersistenceManager
from chital.errors import CONNECTION_MESSAGE, EndpointConnectionError
from chital.storage.message_store import MessageStore
from chital.ui.main_window import MainWindow


@pytest.fixture(scope="module")
def qapp():
    return QApplication.instance() or QApplication([])


@pytest.fixture
def window(qapp, tmp_path, adapter):
    win = MainWindow(
        persistence=PersistenceManager(tmp_path / "config.json"),
        store=MessageStore(tmp_path / "threads.jsonl"),
    )
    win._controller.set_adapter(adapter)
    yield win
    win._unsubscribe()
    win.deleteLater()


def _alerts(window, text):
    return [box for box in window.findChildren(QMessageBox) if box.text() == text]


@pytest.mark.asyncio
async def test_generation_error_alert_does_not_block_the_loop(window, adapter):
    adapter.replies = [EndpointConnectionError("refused")]
    await window._controller.refresh_models()
    thread = window._current
    window._controller.ensure_model_selected(thread)

    ticks = []

    async def ticker():
        for _ in range(5):
            await asyncio.sleep(0.001)
            ticks.append(1)

    other = asyncio.create_task(ticker())
    task = await window._controller.submit(thread, "Hi")
    await asyncio.wait_for(task, timeout=2.0)
    await asyncio.wait_for(other, timeout=2.0)

    alerts = _alerts(window, CONNECTION_MESSAGE)
    assert len(alerts) == 1
    assert alerts[0].isVisible()
    assert not thread.is_thinking
    assert len(ticks) == 5

    alerts[0].close()
    await window._controller.shutdown()


@pytest.mark.asyncio
async def test_missing_model_alert_is_non_blocking(window, adapter):
    adapter.models = []
    await window._controller.refresh_models()
    thread = window._current
    thread.selected_model = None

    await asyncio.wait_for(window._submit(thread, "Hi", []), timeout=2.0)

    alerts = [box for box in window.findChildren(QMessageBox) if box.isVisible()]
    assert len(alerts) == 1
    assert thread.messages == []
    alerts[0].close()
