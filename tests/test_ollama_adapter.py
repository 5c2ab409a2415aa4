import asyncio
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from chital.errors import (
    CONNECTION_MESSAGE,
    NO_MODEL_MESSAGE,
    TIMEOUT_MESSAGE,
    EndpointConnectionError,
    EndpointProtocolError,
    EndpointTimeoutError,
    NoModelSelectedError,
    describe_error,
)
from chital.llm.ollama_adapter import OllamaAdapter, translate_api_error, translate_http_error

_REQUEST = httpx.Request("GET", "http://127.0.0.1:11434/v1/models")


def _models_client(models=None, error=None):
    async def list_models():
        if error is not None:
            raise error
        return SimpleNamespace(data=[SimpleNamespace(id=name) for name in models or []])

    return SimpleNamespace(models=SimpleNamespace(list=list_models))


def _ndjson(*lines):
    return ("\n".join(json.dumps(line) for line in lines) + "\n").encode("utf-8")


def _chat_server(handler):
    """HTTP client whose /api/chat requests are answered by ``handler``."""
    requests = []

    def respond(request):
        requests.append(request)
        return handler(request)

    client = httpx.AsyncClient(
        base_url="http://127.0.0.1:11434",
        transport=httpx.MockTransport(respond),
    )
    return client, requests


def _adapter(handler, context_window=None):
    http, requests = _chat_server(handler)
    adapter = OllamaAdapter(
        context_window=context_window,
        client=_models_client(),
        http_client=http,
    )
    return adapter, requests


def test_describe_error_messages():
    assert describe_error(EndpointConnectionError("refused")) == CONNECTION_MESSAGE
    assert describe_error(ConnectionRefusedError()) == CONNECTION_MESSAGE
    assert describe_error(EndpointTimeoutError("slow")) == TIMEOUT_MESSAGE
    assert describe_error(asyncio.TimeoutError()) == TIMEOUT_MESSAGE
    assert describe_error(NoModelSelectedError()) == NO_MODEL_MESSAGE
    assert describe_error(EndpointProtocolError("bad json")) == (
        "An unexpected error occurred while communicating with the Ollama API: bad json"
    )


def test_translate_api_error():
    timeout = translate_api_error(openai.APITimeoutError(request=_REQUEST))
    assert isinstance(timeout, EndpointTimeoutError)
    assert isinstance(timeout, TimeoutError)

    connection = translate_api_error(openai.APIConnectionError(request=_REQUEST))
    assert isinstance(connection, EndpointConnectionError)
    assert isinstance(connection, ConnectionError)

    status = openai.APIStatusError(
        "model not found",
        response=httpx.Response(404, request=_REQUEST),
        body=None,
    )
    assert isinstance(translate_api_error(status), EndpointProtocolError)


def test_translate_http_error():
    assert isinstance(
        translate_http_error(httpx.ReadTimeout("slow", request=_REQUEST)),
        EndpointTimeoutError,
    )
    assert isinstance(
        translate_http_error(httpx.ConnectError("refused", request=_REQUEST)),
        EndpointConnectionError,
    )


@pytest.mark.asyncio
async def test_base_url_and_v1_client(monkeypatch):
    monkeypatch.delenv("CHITAL_OLLAMA_BASE_URL", raising=False)
    adapter = OllamaAdapter(base_url="http://gpu-box:11434/")

    assert adapter.base_url == "http://gpu-box:11434"
    assert str(adapter._client.base_url).rstrip("/") == "http://gpu-box:11434/v1"
    assert str(adapter._http.base_url).rstrip("/") == "http://gpu-box:11434"
    await adapter.aclose()


@pytest.mark.asyncio
async def test_list_models():
    adapter = OllamaAdapter(client=_models_client(models=["llama3.1", "llava"]))
    assert await adapter.list_models() == ["llama3.1", "llava"]


@pytest.mark.asyncio
async def test_list_models_connection_failure():
    adapter = OllamaAdapter(
        client=_models_client(error=openai.APIConnectionError(request=_REQUEST))
    )
    with pytest.raises(EndpointConnectionError):
        await adapter.list_models()


@pytest.mark.asyncio
async def test_stream_sends_num_ctx_to_native_chat():
    body = _ndjson(
        {"message": {"role": "assistant", "content": "Hel"}, "done": False},
        {"message": {"role": "assistant", "content": ""}, "done": False},
        {"message": {"role": "assistant", "content": "lo"}, "done": False},
        {"message": {"role": "assistant", "content": ""}, "done": True, "eval_count": 2},
    )
    adapter, requests = _adapter(
        lambda request: httpx.Response(200, content=body),
        context_window=8192,
    )
    history = [
        {"role": "user", "content": "what is this?", "images": ["QUJD"]},
        {"role": "assistant", "content": "a cat"},
        {"role": "user", "content": "are you sure?"},
    ]

    chunks = [c async for c in adapter.stream("llava", history)]

    assert [c.text for c in chunks] == ["Hel", "lo"]
    assert requests[0].url.path == "/api/chat"
    sent = json.loads(requests[0].content)
    assert sent["model"] == "llava"
    assert sent["stream"] is True
    assert sent["options"] == {"num_ctx": 8192}
    assert sent["messages"] == history


@pytest.mark.asyncio
async def test_stream_without_context_window_omits_options():
    body = _ndjson({"message": {"content": "ok"}, "done": True})
    adapter, requests = _adapter(lambda request: httpx.Response(200, content=body))

    assert [c.text async for c in adapter.stream("llama3.1", [])] == ["ok"]
    assert "options" not in json.loads(requests[0].content)


@pytest.mark.asyncio
async def test_stream_translates_transport_errors():
    def timeout(request):
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request):
        raise httpx.ConnectError("refused", request=request)

    adapter, _ = _adapter(timeout)
    with pytest.raises(EndpointTimeoutError):
        async for _ in adapter.stream("llama3.1", []):
            pass

    adapter, _ = _adapter(refused)
    with pytest.raises(EndpointConnectionError):
        async for _ in adapter.stream("llama3.1", []):
            pass


@pytest.mark.asyncio
async def test_stream_reports_server_errors():
    adapter, _ = _adapter(
        lambda request: httpx.Response(404, json={"error": "model 'nope' not found"})
    )
    with pytest.raises(EndpointProtocolError, match="model 'nope' not found"):
        async for _ in adapter.stream("nope", []):
            pass

    midway = _ndjson({"message": {"content": "par"}, "done": False}, {"error": "out of memory"})
    adapter, _ = _adapter(lambda request: httpx.Response(200, content=midway))
    received = []
    with pytest.raises(EndpointProtocolError, match="out of memory"):
        async for chunk in adapter.stream("llama3.1", []):
            received.append(chunk.text)
    assert received == ["par"]


@pytest.mark.asyncio
async def test_complete():
    adapter, requests = _adapter(
        lambda request: httpx.Response(
            200,
            json={"message": {"role": "assistant", "content": "Cat Photo"}, "done": True},
        ),
        context_window=4096,
    )

    assert await adapter.complete("llava", [{"role": "user", "content": "title?"}]) == "Cat Photo"
    sent = json.loads(requests[0].content)
    assert sent["stream"] is False
    assert sent["options"] == {"num_ctx": 4096}


@pytest.mark.asyncio
async def test_complete_without_message():
    adapter, _ = _adapter(lambda request: httpx.Response(200, json={"done": True}))

    with pytest.raises(EndpointProtocolError):
        await adapter.complete("llava", [])
