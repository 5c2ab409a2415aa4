import asyncio
import io

import pytest
import pytest_asyncio
from PIL import Image

from chital.config.persistence import UserPreferences
from chital.llm.base_adapter import LLMAdapter, StreamChunk
from chital.orchestrator.chat_controller import ChatController
from chital.orchestrator.events import EventBus
from chital.storage.message_store import MessageStore

# Script entry that blocks the stream until the task is cancelled
HANG = object()


class _FakeAdapter(LLMAdapter):
    """Scripted adapter.

    Each stream call pops one script from ``replies``: a list of text
    deltas (optionally containing HANG) or an exception to raise.
    """

    def __init__(self):
        self.models = ["llama3.1", "llava"]
        self.replies = []
        self.title = "Greeting Chat"
        self.list_error = None
        self.complete_error = None
        self.stream_calls = []
        self.complete_calls = []
        self.active = 0
        self.max_active = 0
        self.closed = False

    async def list_models(self):
        if self.list_error is not None:
            raise self.list_error
        return list(self.models)

    async def stream(self, model, messages):
        self.stream_calls.append((model, messages))
        script = self.replies.pop(0) if self.replies else ["Hello", " world"]
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if isinstance(script, Exception):
                raise script
            for item in script:
                if item is HANG:
                    await asyncio.Event().wait()
                await asyncio.sleep(0)
                yield StreamChunk(text=item)
        finally:
            self.active -= 1

    async def complete(self, model, messages):
        self.complete_calls.append((model, messages))
        if self.complete_error is not None:
            raise self.complete_error
        return self.title

    async def aclose(self):
        self.closed = True


async def wait_until(predicate, timeout: float = 2.0) -> None:
    """Let the loop run until predicate() holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


def make_image(width: int, height: int, fmt: str = "PNG", color=(200, 120, 40)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color).save(buffer, fmt)
    return buffer.getvalue()


@pytest.fixture
def adapter():
    return _FakeAdapter()


@pytest.fixture
def store(tmp_path):
    return MessageStore(tmp_path / "threads.jsonl")


@pytest.fixture
def preferences():
    return UserPreferences()


@pytest.fixture
def events():
    return EventBus()


@pytest.fixture
def recorded(events):
    updates = []
    events.subscribe(updates.append)
    return updates


@pytest_asyncio.fixture
async def controller(adapter, store, preferences, events):
    chat = ChatController(adapter, store, preferences, events, cancellation_timeout=1.0)
    await chat.refresh_models()
    yield chat
    await chat.shutdown()
