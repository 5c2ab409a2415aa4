import asyncio

import pytest

from chital.orchestrator.events import EventBus, SessionEvent
from chital.orchestrator.session_state import CancellationToken, SessionPhase, SessionState
from chital.storage import ChatThread


def test_event_bus_isolates_failing_listeners():
    bus = EventBus()
    seen = []

    def broken(update):
        raise RuntimeError("boom")

    bus.subscribe(broken)
    unsubscribe = bus.subscribe(seen.append)

    bus.emit(SessionEvent.FOCUS_REQUESTED, "t1")
    assert [u.thread_id for u in seen] == ["t1"]

    unsubscribe()
    bus.emit(SessionEvent.FOCUS_REQUESTED, "t2")
    assert len(seen) == 1


def test_cancellation_token_first_call_wins():
    token = CancellationToken()
    assert not token.cancelled
    assert token.cancel() is True
    assert token.cancel() is False
    assert token.cancelled


@pytest.mark.asyncio
async def test_start_requires_idle():
    state = SessionState(ChatThread.create_draft(), EventBus(), cancellation_timeout=1.0)
    gate = asyncio.Event()

    async def run(token):
        await gate.wait()

    task = state.start(run)
    assert state.phase is SessionPhase.GENERATING
    assert state.task is task

    with pytest.raises(RuntimeError):
        state.start(run)

    gate.set()
    await task
    assert state.phase is SessionPhase.IDLE
    assert state.task is None


@pytest.mark.asyncio
async def test_cancel_sets_token_and_clears_task_once():
    bus = EventBus()
    updates = []
    bus.subscribe(updates.append)
    thread = ChatThread.create_draft()
    state = SessionState(thread, bus, cancellation_timeout=1.0)
    tokens = []

    async def run(token):
        tokens.append(token)
        await asyncio.Event().wait()

    task = state.start(run)
    await asyncio.sleep(0)

    assert await state.cancel() is True
    assert tokens[0].cancelled
    assert task.cancelled()
    assert state.task is None
    assert not thread.is_thinking
    assert await state.cancel() is False

    kinds = [u.kind for u in updates]
    assert kinds.count(SessionEvent.FOCUS_REQUESTED) == 1
    assert [u.is_thinking for u in updates if u.kind is SessionEvent.THINKING_CHANGED] == [True, False]


@pytest.mark.asyncio
async def test_failed_task_returns_to_idle():
    state = SessionState(ChatThread.create_draft(), EventBus())

    async def run(token):
        raise ValueError("unexpected")

    task = state.start(run)
    with pytest.raises(ValueError):
        await task

    assert state.phase is SessionPhase.IDLE
    assert state.task is None


@pytest.mark.asyncio
async def test_cancel_gives_up_on_task_that_ignores_it():
    thread = ChatThread.create_draft()
    state = SessionState(thread, EventBus(), cancellation_timeout=0.05)
    release = asyncio.Event()

    async def stubborn(token):
        while not release.is_set():
            try:
                await release.wait()
            except asyncio.CancelledError:
                pass

    stale = state.start(stubborn)
    await asyncio.sleep(0)

    loop = asyncio.get_running_loop()
    started = loop.time()
    assert await state.cancel() is True
    assert loop.time() - started >= 0.04
    assert not stale.done()
    assert state.phase is SessionPhase.IDLE
    assert state.task is None
    assert not thread.is_thinking

    async def quick(token):
        return "ok"

    fresh = state.start(quick)
    assert state.task is fresh
    assert await fresh == "ok"

    release.set()
    await stale
    assert state.phase is SessionPhase.IDLE
    assert state.task is None
