"""Ollama transport: model listing, one-shot generation and streaming chat."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Generator

import httpx
import ollama

from .config import FALLBACK_MODEL, OLLAMA_HOST
from .errors import (
    MalformedResponseError,
    StreamInterruptedError,
    TransportError,
    UnreachableError,
)
from .models import Fragment, StreamFailure, StreamItem

logger = logging.getLogger(__name__)

# ollama raises the builtin ConnectionError for refused connections; the
# streaming path can still leak httpx's own connect/timeout errors.
_CONNECT_ERRORS = (ConnectionError, httpx.ConnectError, httpx.ConnectTimeout)


class ChatStream:
    """Single-pass iterator over one chat answer.

    The consuming thread iterates and finally calls ``close()``. ``abort()``
    may be called from any other thread: it releases the underlying
    connection at once so a stalled server stops being waited on.
    """

    def __init__(
        self,
        items: Generator[StreamItem, None, None],
        release: Callable[[], None] | None = None,
    ):
        self._items = items
        self._release = release
        self._released = False
        self._lock = threading.Lock()
        self.aborted = False

    def __iter__(self) -> ChatStream:
        return self

    def __next__(self) -> StreamItem:
        if self.aborted:
            raise StopIteration
        return next(self._items)

    def abort(self) -> None:
        self.aborted = True
        self._release_connection()

    def close(self) -> None:
        self._items.close()
        self._release_connection()

    def _release_connection(self) -> None:
        with self._lock:
            if self._released or self._release is None:
                return
            self._released = True
        self._release()


class OllamaClient:
    """Wrapper around ``ollama.Client``.

    Listing and one-shot generation share one lazily created client. Every
    chat stream gets a dedicated client so that aborting it closes only that
    stream's connection.
    """

    def __init__(
        self,
        host: str | None = OLLAMA_HOST,
        client_factory: Callable[[], Any] | None = None,
    ):
        self.host = host
        self._client_factory = client_factory or self._new_client
        self._client = None
        self._lock = threading.Lock()

    def _new_client(self) -> ollama.Client:
        logger.debug("Creating Ollama client for %s", self.host or "default host")
        return ollama.Client(host=self.host)

    def get_client(self) -> ollama.Client:
        with self._lock:
            if self._client is None:
                self._client = self._client_factory()
            return self._client

    def list_models(self) -> list[str]:
        """Return installed model names in the order the server lists them."""
        try:
            response = self.get_client().list()
        except _CONNECT_ERRORS as e:
            raise UnreachableError(f"Cannot reach Ollama server: {e}") from e
        except (ollama.ResponseError, httpx.HTTPError) as e:
            raise UnreachableError(f"Failed to list Ollama models: {e}") from e

        try:
            entries = response["models"]
            names = [_model_name(entry) for entry in entries]
        except (KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected model listing: {e!r}") from e
        return names

    def default_model(self) -> str:
        """First installed model, or the fallback when none can be found."""
        try:
            models = self.list_models()
        except TransportError as e:
            logger.warning("Falling back to %s: %s", FALLBACK_MODEL, e)
            return FALLBACK_MODEL
        return models[0] if models else FALLBACK_MODEL

    def generate(self, model: str, prompt: str, system_prompt: str = "") -> str:
        """Send one non-streaming prompt and return the stripped answer."""
        try:
            response = self.get_client().generate(
                model=model, prompt=prompt, system=system_prompt or None, stream=False
            )
        except _CONNECT_ERRORS as e:
            raise UnreachableError(f"Cannot reach Ollama server: {e}") from e
        except (ollama.ResponseError, httpx.HTTPError) as e:
            raise StreamInterruptedError(f"Failed to generate response: {e}") from e

        try:
            return str(response["response"]).strip()
        except (KeyError, TypeError) as e:
            raise MalformedResponseError(f"Unexpected generate payload: {e!r}") from e

    def stream_chat(
        self, model: str, system_prompt: str, history: list[str]
    ) -> ChatStream:
        """Stream an answer to ``history`` as Fragment items.

        The stream ends when the server reports the answer as done; a
        transport failure is yielded as one final StreamFailure instead of
        being raised. Nothing is sent until the stream is first iterated.
        """
        client = self._client_factory()
        messages = build_messages(system_prompt, history)
        return ChatStream(self._chat_items(client, model, messages), release=client.close)

    def _chat_items(
        self, client: ollama.Client, model: str, messages: list[dict[str, str]]
    ) -> Generator[StreamItem, None, None]:
        received = False
        stream = None
        try:
            stream = client.chat(model=model, messages=messages, stream=True)
            for part in stream:
                received = True
                content = part["message"]["content"]
                if content:
                    yield Fragment(text=content)
                if part.get("done"):
                    break
        except _CONNECT_ERRORS as e:
            if received:
                error: TransportError = StreamInterruptedError(f"Connection lost: {e}")
            else:
                error = UnreachableError(f"Cannot reach Ollama server: {e}")
            logger.warning("Chat stream with %s failed: %s", model, error)
            yield StreamFailure(error=error)
        except (ollama.ResponseError, httpx.HTTPError) as e:
            logger.warning("Chat stream with %s interrupted: %s", model, e)
            yield StreamFailure(error=StreamInterruptedError(str(e)))
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed chat record from %s: %r", model, e)
            yield StreamFailure(error=MalformedResponseError(f"Malformed chat record: {e!r}"))
        finally:
            close = getattr(stream, "close", None)
            if close is not None:
                close()


def build_messages(system_prompt: str, history: list[str]) -> list[dict[str, str]]:
    """Convert a flat alternating history into role-tagged chat messages.

    Roles follow index parity. Empty turns (the blank user slot of the
    welcome pair, answers cancelled before any text) are left out.
    """
    messages = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    for i, text in enumerate(history):
        if not text:
            continue
        role = "user" if i % 2 == 0 else "assistant"
        messages.append({"role": role, "content": text})
    return messages


def _model_name(entry: Any) -> str:
    # Newer servers report "model", older ones "name"
    name = entry.get("model") or entry.get("name")
    if not name:
        raise KeyError("model")
    return str(name)
