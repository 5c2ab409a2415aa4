"""Ollama adapter implementation.

Model listing goes through Ollama's OpenAI-compatible API under
<base_url>/v1. Chat requests use the native <base_url>/api/chat endpoint,
which is the only one that honours per-request options such as num_ctx.
"""

import json
from typing import List, Dict, Any, AsyncIterator, Optional

import httpx
from openai import AsyncOpenAI, APIConnectionError, APIError, APITimeoutError

from .base_adapter import LLMAdapter, StreamChunk
from ..config.settings import get_ollama_base_url
from ..errors import (
    EndpointConnectionError,
    EndpointProtocolError,
    EndpointTimeoutError,
)


# Ollama ignores the key but the client requires one
OLLAMA_API_KEY = "ollama"

CHAT_PATH = "/api/chat"


def translate_api_error(exc: Exception) -> Exception:
    """Map an OpenAI client error onto the endpoint error taxonomy.

    Args:
        exc: Error raised by the OpenAI client

    Returns:
        The matching endpoint error (not raised)
    """
    # APITimeoutError subclasses APIConnectionError, check it first
    if isinstance(exc, APITimeoutError):
        return EndpointTimeoutError(str(exc))
    if isinstance(exc, APIConnectionError):
        return EndpointConnectionError(str(exc))
    return EndpointProtocolError(f"Ollama API error: {exc}")


def translate_http_error(exc: httpx.HTTPError) -> Exception:
    """Map an httpx transport error onto the endpoint error taxonomy."""
    if isinstance(exc, httpx.TimeoutException):
        return EndpointTimeoutError(str(exc) or "request timed out")
    if isinstance(exc, httpx.TransportError):
        return EndpointConnectionError(str(exc) or "connection failed")
    return EndpointProtocolError(f"Ollama API error: {exc}")


def _status_error(status_code: int, body: bytes) -> EndpointProtocolError:
    """Build an error from a non-2xx chat response."""
    text = body.decode("utf-8", "ignore").strip()
    detail = text
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and payload.get("error"):
        detail = str(payload["error"])
    if detail:
        return EndpointProtocolError(f"HTTP {status_code}: {detail}")
    return EndpointProtocolError(f"HTTP {status_code} from Ollama")


def _parse_line(line: str) -> Dict[str, Any]:
    """Decode one NDJSON line of a chat response."""
    try:
        data = json.loads(line)
    except ValueError as e:
        raise EndpointProtocolError(f"Malformed response line: {line[:80]}") from e
    if not isinstance(data, dict):
        raise EndpointProtocolError(f"Unexpected response line: {line[:80]}")
    if data.get("error"):
        raise EndpointProtocolError(str(data["error"]))
    return data


def _message_text(data: Dict[str, Any]) -> str:
    message = data.get("message") or {}
    return message.get("content") or ""


class OllamaAdapter(LLMAdapter):
    """Adapter for a local Ollama server.

    This adapter is stateless - it receives a model name and a history and
    returns a response. It does not maintain conversation history.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        context_window: Optional[int] = None,
        timeout: float = 120.0,
        client: Optional[AsyncOpenAI] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """Initialize the Ollama adapter.

        Args:
            base_url: Server root such as http://127.0.0.1:11434
            context_window: Context length sent as Ollama's num_ctx option
            timeout: Request timeout in seconds
            client: Preconfigured OpenAI client, mainly for tests
            http_client: Preconfigured HTTP client for /api/chat, mainly for tests
        """
        self._base_url = get_ollama_base_url(base_url)
        self._context_window = context_window
        self._client = client or AsyncOpenAI(
            api_key=OLLAMA_API_KEY,
            base_url=f"{self._base_url}/v1",
            timeout=timeout,
            max_retries=0,
        )
        self._http = http_client or httpx.AsyncClient(
            base_url=self._base_url,
            timeout=timeout,
        )

    @property
    def base_url(self) -> str:
        """Get the server root URL."""
        return self._base_url

    def _chat_request(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        stream: bool,
    ) -> Dict[str, Any]:
        """Build an /api/chat body.

        Request messages already use Ollama's native shape: role, content
        and an optional list of base64 images.
        """
        body: Dict[str, Any] = {
            "model": model,
            "messages": [
                {key: value for key, value in msg.items() if key in ("role", "content", "images")}
                for msg in messages
            ],
            "stream": stream,
        }
        if self._context_window:
            body["options"] = {"num_ctx": self._context_window}
        return body

    async def list_models(self) -> List[str]:
        """List the models installed on the Ollama server.

        Returns:
            Model names
        """
        try:
            page = await self._client.models.list()
        except APIError as e:
            raise translate_api_error(e) from e
        return [model.id for model in page.data]

    async def stream(
        self,
        model: str,
        messages: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from Ollama.

        Args:
            model: Model name
            messages: Chronological message history

        Yields:
            StreamChunk objects containing response text
        """
        body = self._chat_request(model, messages, stream=True)
        try:
            async with self._http.stream("POST", CHAT_PATH, json=body) as response:
                if response.status_code >= 400:
                    raise _status_error(response.status_code, await response.aread())

                async for line in response.aiter_lines():
                    line = line.strip()
                    if not line:
                        continue
                    data = _parse_line(line)
                    text = _message_text(data)
                    if text:
                        yield StreamChunk(text=text)
                    if data.get("done"):
                        break

        except httpx.HTTPError as e:
            raise translate_http_error(e) from e

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
    ) -> str:
        """Get a complete response from Ollama.

        Args:
            model: Model name
            messages: Chronological message history

        Returns:
            Complete response text
        """
        body = self._chat_request(model, messages, stream=False)
        try:
            response = await self._http.post(CHAT_PATH, json=body)
        except httpx.HTTPError as e:
            raise translate_http_error(e) from e

        if response.status_code >= 400:
            raise _status_error(response.status_code, response.content)
        data = _parse_line(response.text)
        if "message" not in data:
            raise EndpointProtocolError("Ollama API returned no message")
        return _message_text(data)

    async def aclose(self) -> None:
        """Close both HTTP clients."""
        await self._http.aclose()
        await self._client.close()
