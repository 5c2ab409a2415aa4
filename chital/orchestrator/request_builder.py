"""Builds endpoint request payloads from a thread's history."""

import asyncio
from typing import Any, Dict, List, Sequence

from ..storage import ChatMessage, ROLE_USER
from ..utils.image_pipeline import encode_images_for_request


IMAGE_MODE_TRANSMISSION = "transmission"
IMAGE_MODE_ATTACHMENT = "attachment"
IMAGE_MODE_NONE = "none"


def build_request_messages(
    messages: Sequence[ChatMessage],
    image_mode: str = IMAGE_MODE_TRANSMISSION,
) -> List[Dict[str, Any]]:
    """Map chronological messages to role/content/images dicts.

    Args:
        messages: Messages in chronological order
        image_mode: "transmission" resizes images to the send-time square,
            "attachment" sends them as stored, "none" leaves them out

    Returns:
        Messages ready for an LLMAdapter
    """
    request = []
    for message in messages:
        entry: Dict[str, Any] = {"role": message.role, "content": message.text}
        if message.images and image_mode != IMAGE_MODE_NONE:
            entry["images"] = encode_images_for_request(
                message.images,
                resize=image_mode == IMAGE_MODE_TRANSMISSION,
            )
        request.append(entry)
    return request


async def build_request_messages_async(
    messages: Sequence[ChatMessage],
    image_mode: str = IMAGE_MODE_TRANSMISSION,
) -> List[Dict[str, Any]]:
    """Build request messages, resizing images on a worker thread."""
    snapshot = list(messages)
    if not any(m.images for m in snapshot) or image_mode == IMAGE_MODE_NONE:
        return build_request_messages(snapshot, image_mode)
    return await asyncio.to_thread(build_request_messages, snapshot, image_mode)


def append_prompt(
    request: List[Dict[str, Any]],
    prompt: str,
) -> List[Dict[str, Any]]:
    """Return the request with a synthetic trailing user message.

    Args:
        request: Built request messages
        prompt: Text of the extra user turn

    Returns:
        New list; the input is not modified
    """
    return [*request, {"role": ROLE_USER, "content": prompt}]
