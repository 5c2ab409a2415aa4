from datetime import datetime

import pytest

from chital.storage import ChatMessage, ChatThread, ROLE_ASSISTANT, ROLE_USER
from chital.storage.message_store import MessageStore


def _promoted(store: MessageStore, title: str = "Chat") -> ChatThread:
    thread = ChatThread.create_draft("llama3.1")
    thread.title = title
    store.promote_draft(thread)
    return thread


def test_drafts_are_not_written(tmp_path):
    path = tmp_path / "threads.jsonl"
    store = MessageStore(path)
    thread = ChatThread.create_draft("llama3.1")

    store.append(thread, ChatMessage.create(ROLE_USER, "hello"))

    assert len(thread.messages) == 1
    assert not path.exists()
    assert store.get_thread(thread.thread_id) is None


def test_promote_draft_once(tmp_path):
    store = MessageStore(tmp_path / "threads.jsonl")
    thread = ChatThread.create_draft("llama3.1")
    thread.created_at = datetime(2020, 1, 1)

    assert store.promote_draft(thread) is True
    assert not thread.is_draft
    assert thread.created_at > datetime(2020, 1, 1)
    promoted_at = thread.created_at

    assert store.promote_draft(thread) is False
    assert thread.created_at == promoted_at


def test_round_trip_with_images(tmp_path):
    path = tmp_path / "threads.jsonl"
    store = MessageStore(path)
    thread = _promoted(store, "Pictures")
    store.append(thread, ChatMessage.create(ROLE_USER, "look", images=[b"\x89PNG fake", b"\xff\xd8"]))
    store.append(
        thread,
        ChatMessage.create(ROLE_ASSISTANT, "nice", created_at=thread.next_timestamp()),
    )
    thread.has_received_first_message = True
    store.save_thread(thread)

    loaded = MessageStore(path).load_threads()

    assert len(loaded) == 1
    restored = loaded[0]
    assert restored.thread_id == thread.thread_id
    assert restored.title == "Pictures"
    assert restored.selected_model == "llama3.1"
    assert restored.has_received_first_message
    assert not restored.is_draft
    assert not restored.is_thinking
    messages = restored.chronological_messages()
    assert [m.text for m in messages] == ["look", "nice"]
    assert messages[0].images == [b"\x89PNG fake", b"\xff\xd8"]
    assert messages[1].images is None


def test_remove_and_remove_many(tmp_path):
    path = tmp_path / "threads.jsonl"
    store = MessageStore(path)
    thread = _promoted(store)
    ids = []
    for text in ["a", "b", "c", "d"]:
        message = ChatMessage.create(ROLE_USER, text, created_at=thread.next_timestamp())
        store.append(thread, message)
        ids.append(message.message_id)

    assert store.remove(thread, ids[0]) is True
    assert store.remove(thread, "missing") is False
    assert store.remove_many(thread, ids[2:] + ["missing"]) == 2

    reloaded = MessageStore(path).load_threads()[0]
    assert [m.text for m in reloaded.messages] == ["b"]


def test_delete_thread(tmp_path):
    path = tmp_path / "threads.jsonl"
    store = MessageStore(path)
    keep = _promoted(store, "keep")
    gone = _promoted(store, "gone")

    assert store.delete_thread(gone.thread_id) is True
    assert store.delete_thread(gone.thread_id) is False

    # Late writes for a deleted thread are dropped
    store.save_thread(gone)

    titles = [t.title for t in MessageStore(path).load_threads()]
    assert titles == ["keep"]
    assert store.get_thread(keep.thread_id) is keep


def test_threads_listed_newest_first(tmp_path):
    store = MessageStore(tmp_path / "threads.jsonl")
    older = _promoted(store, "older")
    newer = _promoted(store, "newer")
    older.created_at = datetime(2021, 1, 1)
    store.save_thread(older)

    assert [t.title for t in store.list_threads()] == ["newer", "older"]
    assert store.get_thread(newer.thread_id) is newer


def test_malformed_lines_are_skipped(tmp_path):
    path = tmp_path / "threads.jsonl"
    store = MessageStore(path)
    _promoted(store, "valid")

    with open(path, "a", encoding="utf-8") as f:
        f.write("{not json\n")
        f.write('{"title": "no id"}\n')

    loaded = MessageStore(path).load_threads()
    assert [t.title for t in loaded] == ["valid"]


def test_next_timestamp_is_strictly_increasing():
    thread = ChatThread.create_draft()
    future = datetime(2999, 1, 1)
    thread.messages.append(ChatMessage.create(ROLE_USER, "x", created_at=future))

    assert thread.next_timestamp() > future


def test_unknown_role_rejected():
    with pytest.raises(ValueError):
        ChatMessage.create("system", "nope")
