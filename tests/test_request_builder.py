import base64

import pytest

from chital.orchestrator.request_builder import (
    IMAGE_MODE_ATTACHMENT,
    IMAGE_MODE_NONE,
    IMAGE_MODE_TRANSMISSION,
    append_prompt,
    build_request_messages,
    build_request_messages_async,
)
from chital.storage import ChatMessage, ChatThread, ROLE_ASSISTANT, ROLE_USER

from conftest import make_image


def _thread_with_image(image: bytes) -> ChatThread:
    thread = ChatThread.create_draft("llava")
    thread.messages.append(ChatMessage.create(ROLE_USER, "what is it?", images=[image]))
    thread.messages.append(
        ChatMessage.create(ROLE_ASSISTANT, "a square", created_at=thread.next_timestamp())
    )
    return thread


def test_image_modes():
    image = make_image(120, 60, "JPEG")
    messages = _thread_with_image(image).chronological_messages()

    sent = build_request_messages(messages, IMAGE_MODE_TRANSMISSION)
    assert sent[0]["content"] == "what is it?"
    assert base64.b64decode(sent[0]["images"][0]) != image
    assert "images" not in sent[1]

    as_attached = build_request_messages(messages, IMAGE_MODE_ATTACHMENT)
    assert base64.b64decode(as_attached[0]["images"][0]) == image

    without = build_request_messages(messages, IMAGE_MODE_NONE)
    assert "images" not in without[0]


@pytest.mark.asyncio
async def test_async_build_matches_sync():
    messages = _thread_with_image(make_image(40, 40, "JPEG")).chronological_messages()

    built = await build_request_messages_async(messages, IMAGE_MODE_ATTACHMENT)
    assert built == build_request_messages(messages, IMAGE_MODE_ATTACHMENT)


def test_append_prompt_does_not_modify_request():
    request = [{"role": "user", "content": "hi"}]

    extended = append_prompt(request, "Summarize")

    assert request == [{"role": "user", "content": "hi"}]
    assert extended[-1] == {"role": "user", "content": "Summarize"}
