"""Exception hierarchy shared by the transport, chat engine and storage layers."""

from __future__ import annotations


class LamaError(Exception):
    """Base class for every error lamacli reports to the user."""


# Transport


class TransportError(LamaError):
    """The Ollama server could not serve a request."""


class UnreachableError(TransportError):
    """The server could not be contacted at all."""


class MalformedResponseError(TransportError):
    """The server answered with a payload we cannot interpret."""


class StreamInterruptedError(TransportError):
    """A chat stream broke after it had started."""


# Sessions


class SessionError(LamaError):
    """Base class for persistence failures."""


class SessionNotFoundError(SessionError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class CorruptSessionError(SessionError):
    def __init__(self, session_id: str, reason: str):
        super().__init__(f"Session '{session_id}' is corrupt: {reason}")
        self.session_id = session_id


class StorageError(SessionError):
    """Reading or writing the session directory failed."""


class SerializationError(SessionError):
    """A session could not be encoded as a record."""


# Chat engine


class InvalidInputError(LamaError):
    """The prompt was empty after trimming."""


class TurnInFlightError(LamaError):
    def __init__(self):
        super().__init__("Cannot start a new turn while one is in flight")


class NotCancellableError(LamaError):
    """cancel() was called while no answer was streaming."""


class ConversationStateError(RuntimeError):
    """The alternating turn log was about to be corrupted (a controller bug)."""


# Context


class ContextError(LamaError):
    """A directory or file requested as context could not be accessed."""
