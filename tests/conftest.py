"""Pytest configuration and fixtures."""

import queue
import threading

import pytest

from lamacli.client import ChatStream
from lamacli.storage import SessionStore

END = object()


class ScriptedClient:
    """Transport fake whose chat stream is fed item by item by the test.

    All streams read from one queue; push ``END`` to finish a stream cleanly.
    ``closed`` is set when a stream's connection is released, ``finished``
    when its reader has stopped.
    """

    def __init__(self, models=None):
        self.models = models if models is not None else ["llama3.2:3b", "qwen2.5-coder"]
        self.items: queue.Queue = queue.Queue()
        self.calls = []
        self.closed = threading.Event()
        self.finished = threading.Event()

    def push(self, *items):
        for item in items:
            self.items.put(item)

    def end(self):
        self.items.put(END)

    def list_models(self):
        return list(self.models)

    def default_model(self):
        return self.models[0]

    def stream_chat(self, model, system_prompt, history):
        self.calls.append({"model": model, "system_prompt": system_prompt, "history": history})
        released = threading.Event()

        def release():
            released.set()
            self.closed.set()

        return ChatStream(self._stream(released), release=release)

    def _stream(self, released):
        try:
            while not released.is_set():
                try:
                    item = self.items.get(timeout=0.02)
                except queue.Empty:
                    continue
                if item is END:
                    return
                yield item
        finally:
            self.finished.set()


class StaticClient(ScriptedClient):
    """Transport fake that replays a fixed list of items for every stream."""

    def __init__(self, items, models=None):
        super().__init__(models)
        self.script = list(items)

    def stream_chat(self, model, system_prompt, history):
        self.calls.append({"model": model, "system_prompt": system_prompt, "history": history})
        return ChatStream(item for item in list(self.script))


@pytest.fixture
def scripted_client():
    return ScriptedClient()


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "chat_history")
