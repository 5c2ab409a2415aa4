"""Base adapter interface for model servers."""

from abc import ABC, abstractmethod
from typing import List, Dict, Any, AsyncIterator
from dataclasses import dataclass


@dataclass
class StreamChunk:
    """A chunk of streamed response."""

    text: str


class LLMAdapter(ABC):
    """Abstract base class for model server adapters.

    Adapters are stateless - they receive a model name and a message history
    and return a response. They do not keep conversation history.

    Messages are dicts with 'role', 'content' and optionally 'images'
    (a list of base64-encoded strings).

    Every method raises EndpointConnectionError, EndpointTimeoutError or
    EndpointProtocolError on failure.
    """

    @abstractmethod
    async def list_models(self) -> List[str]:
        """List the model names the server can run.

        Returns:
            Model names
        """
        pass

    @abstractmethod
    def stream(
        self,
        model: str,
        messages: List[Dict[str, Any]],
    ) -> AsyncIterator[StreamChunk]:
        """Stream a response from the model.

        Args:
            model: Model name
            messages: Chronological message history

        Yields:
            StreamChunk objects containing text deltas
        """
        pass

    @abstractmethod
    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
    ) -> str:
        """Get a complete response from the model (non-streaming).

        Args:
            model: Model name
            messages: Chronological message history

        Returns:
            Complete response text
        """
        pass

    async def aclose(self) -> None:
        """Release network resources held by the adapter."""
