"""Tests for the Ollama transport wrapper."""

import httpx
import ollama
import pytest

from lamacli.client import ChatStream, OllamaClient, build_messages
from lamacli.config import FALLBACK_MODEL
from lamacli.errors import (
    MalformedResponseError,
    StreamInterruptedError,
    UnreachableError,
)
from lamacli.models import Fragment, StreamFailure


class FakeOllama:
    """Stands in for ``ollama.Client``; chat parts may be dicts or exceptions."""

    def __init__(self, models=None, parts=None, list_error=None, reply=None):
        self.models = models
        self.parts = parts or []
        self.list_error = list_error
        self.reply = reply
        self.chat_calls = []
        self.generate_calls = []
        self.stream_closed = False
        self.client_closed = False

    def close(self):
        self.client_closed = True

    def list(self):
        if self.list_error is not None:
            raise self.list_error
        return self.models

    def generate(self, **kwargs):
        self.generate_calls.append(kwargs)
        return self.reply

    def chat(self, **kwargs):
        self.chat_calls.append(kwargs)
        return self._stream()

    def _stream(self):
        try:
            for part in self.parts:
                if isinstance(part, Exception):
                    raise part
                yield part
        finally:
            self.stream_closed = True


def part(content, done=False):
    return {"message": {"role": "assistant", "content": content}, "done": done}


class TestBuildMessages:
    def test_roles_by_position(self):
        messages = build_messages("Be brief.", ["", "Welcome", "q1", "a1", "q2"])
        assert messages == [
            {"role": "system", "content": "Be brief."},
            {"role": "assistant", "content": "Welcome"},
            {"role": "user", "content": "q1"},
            {"role": "assistant", "content": "a1"},
            {"role": "user", "content": "q2"},
        ]

    def test_no_system_prompt(self):
        assert build_messages("", ["hi"]) == [{"role": "user", "content": "hi"}]


class TestListModels:
    """Tests for list_models and default_model."""

    def test_names_in_server_order(self):
        fake = FakeOllama(models={"models": [{"model": "qwen2.5-coder"}, {"name": "llama3.2:3b"}]})
        client = OllamaClient(client_factory=lambda: fake)
        assert client.list_models() == ["qwen2.5-coder", "llama3.2:3b"]
        assert client.default_model() == "qwen2.5-coder"

    def test_unreachable(self):
        fake = FakeOllama(list_error=ConnectionError("refused"))
        client = OllamaClient(client_factory=lambda: fake)

        with pytest.raises(UnreachableError):
            client.list_models()
        assert client.default_model() == FALLBACK_MODEL

    def test_malformed_listing(self):
        client = OllamaClient(client_factory=lambda: FakeOllama(models={"items": []}))
        with pytest.raises(MalformedResponseError):
            client.list_models()

    def test_no_models_installed(self):
        client = OllamaClient(client_factory=lambda: FakeOllama(models={"models": []}))
        assert client.list_models() == []
        assert client.default_model() == FALLBACK_MODEL


class TestGenerate:
    def test_returns_stripped_answer(self):
        fake = FakeOllama(reply={"response": "  ls -la\n"})
        client = OllamaClient(client_factory=lambda: fake)

        assert client.generate("m", "list files", "Be brief.") == "ls -la"
        assert fake.generate_calls[0]["system"] == "Be brief."
        assert fake.generate_calls[0]["stream"] is False

    def test_server_error(self):
        class Failing(FakeOllama):
            def generate(self, **kwargs):
                raise ollama.ResponseError("model not found", 404)

        with pytest.raises(StreamInterruptedError):
            OllamaClient(client_factory=lambda: Failing()).generate("m", "hi")


class TestStreamChat:
    """Tests for stream_chat."""

    def test_yields_fragments_until_done(self):
        fake = FakeOllama(parts=[part("Hel"), part(""), part("lo"), part("", done=True), part("late")])
        client = OllamaClient(client_factory=lambda: fake)

        items = list(client.stream_chat("m", "sys", ["", "Welcome", "hi"]))

        assert items == [Fragment(text="Hel"), Fragment(text="lo")]
        assert fake.chat_calls[0]["stream"] is True
        assert fake.chat_calls[0]["messages"][0] == {"role": "system", "content": "sys"}
        assert fake.stream_closed

    def test_connect_failure_before_data(self):
        fake = FakeOllama(parts=[httpx.ConnectError("refused")])
        items = list(OllamaClient(client_factory=lambda: fake).stream_chat("m", "", ["hi"]))

        assert len(items) == 1
        assert isinstance(items[0], StreamFailure)
        assert isinstance(items[0].error, UnreachableError)

    def test_failure_mid_stream(self):
        fake = FakeOllama(parts=[part("Par"), httpx.ReadError("reset")])
        items = list(OllamaClient(client_factory=lambda: fake).stream_chat("m", "", ["hi"]))

        assert items[0] == Fragment(text="Par")
        assert isinstance(items[-1], StreamFailure)
        assert isinstance(items[-1].error, StreamInterruptedError)

    def test_malformed_record(self):
        fake = FakeOllama(parts=[{"done": False}])
        items = list(OllamaClient(client_factory=lambda: fake).stream_chat("m", "", ["hi"]))

        assert isinstance(items[-1].error, MalformedResponseError)

    def test_closing_early_closes_stream(self):
        fake = FakeOllama(parts=[part("a"), part("b"), part("c")])
        stream = OllamaClient(client_factory=lambda: fake).stream_chat("m", "", ["hi"])

        assert next(stream) == Fragment(text="a")
        stream.close()
        assert fake.stream_closed
        assert fake.client_closed

    def test_each_stream_gets_its_own_client(self):
        created = []

        def factory():
            created.append(FakeOllama(parts=[part("x", done=True)]))
            return created[-1]

        client = OllamaClient(client_factory=factory)
        first = client.stream_chat("m", "", ["hi"])
        second = client.stream_chat("m", "", ["hi"])

        assert len(created) == 2
        first.abort()
        assert created[0].client_closed
        assert not created[1].client_closed
        assert list(first) == []
        assert list(second) == [Fragment(text="x")]


class TestChatStream:
    def test_abort_releases_once_and_stops_iteration(self):
        releases = []
        stream = ChatStream((Fragment(text=t) for t in "abc"), release=lambda: releases.append(1))

        assert next(stream) == Fragment(text="a")
        stream.abort()
        stream.close()

        assert releases == [1]
        assert list(stream) == []
