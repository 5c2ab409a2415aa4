"""Error types raised by the chat controller and model adapters.

Also maps any error to the message shown to the user in the error alert.
"""

import asyncio


class ChatError(Exception):
    """Base class for chat errors."""


class NoModelSelectedError(ChatError):
    """Raised when a generation is requested without a resolved model."""

    def __init__(self, message: str = "No model selected") -> None:
        super().__init__(message)


class EndpointError(ChatError):
    """Base class for failures talking to the model server."""


class EndpointConnectionError(EndpointError, ConnectionError):
    """The model server could not be reached."""


class EndpointTimeoutError(EndpointError, TimeoutError):
    """The model server did not answer in time."""


class EndpointProtocolError(EndpointError):
    """The model server answered with something unusable."""


CONNECTION_MESSAGE = (
    "Unable to connect to the Ollama API. "
    "Please ensure that the Ollama server is running."
)
TIMEOUT_MESSAGE = "The request to Ollama API timed out. Please try again later."
NO_MODEL_MESSAGE = (
    "No model selected. Please choose a model before sending a message."
)


def describe_error(exc: BaseException) -> str:
    """Build the user-facing message for an error.

    Args:
        exc: The error raised on the generation path

    Returns:
        Message suitable for an alert dialog
    """
    if isinstance(exc, NoModelSelectedError):
        return NO_MODEL_MESSAGE
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError)):
        return TIMEOUT_MESSAGE
    if isinstance(exc, ConnectionError):
        return CONNECTION_MESSAGE
    return (
        "An unexpected error occurred while communicating with the "
        f"Ollama API: {exc}"
    )
