"""Data models for turns, sessions and streaming events."""

from __future__ import annotations

from datetime import date, datetime, timezone
from enum import Enum
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict

from .config import TITLE_MAX_CHARS
from .errors import LamaError, TransportError


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class Turn(BaseModel):
    role: Role
    text: str = ""


class Session(BaseModel):
    """A chat session as it is stored on disk.

    ``history`` is the flattened alternating turn list: even indexes are user
    turns, odd indexes assistant turns.
    """

    id: str | None = None
    title: str = ""
    model: str
    history: list[str] = []
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def snapshot(self) -> Session:
        """Return an independent copy that is safe to hand to another thread."""
        return self.model_copy(deep=True)

    def summary(self) -> SessionSummary:
        return SessionSummary(
            id=self.id or "",
            title=self.title,
            model=self.model,
            message_count=len(self.history) // 2,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


class SessionSummary(BaseModel):
    id: str
    title: str
    model: str
    message_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def describe(self, now: datetime | None = None) -> str:
        """Render ``"<title> (<n> messages, <age> ago)"`` for session listings."""
        now = now or datetime.now(timezone.utc)
        if self.updated_at is None:
            age = "unknown time"
        else:
            seconds = max((now - self.updated_at).total_seconds(), 0)
            if seconds < 3600:
                age = f"{int(seconds // 60)} minutes ago"
            elif seconds < 86400:
                age = f"{int(seconds // 3600)} hours ago"
            else:
                age = f"{int(seconds // 86400)} days ago"
        return f"{self.title} ({self.message_count} messages, {age})"


def derive_title(
    history: list[str], max_chars: int = TITLE_MAX_CHARS, today: date | None = None
) -> str:
    """Build a session title from the first non-empty user turn."""
    for text in history[::2]:
        title = text.strip()
        if title:
            if len(title) > max_chars:
                title = title[: max_chars - 3] + "..."
            return title

    day = today or date.today()
    return f"Chat Session {day:%b} {day.day}, {day.year}"


# Transport stream items


class Fragment(BaseModel):
    kind: Literal["fragment"] = "fragment"
    text: str


class StreamFailure(BaseModel):
    """Terminal element of a chat stream that broke."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["failure"] = "failure"
    error: TransportError


StreamItem = Union[Fragment, StreamFailure]


# Controller -> UI events


class ChunkEvent(BaseModel):
    kind: Literal["chunk"] = "chunk"
    text: str


class CompleteEvent(BaseModel):
    kind: Literal["complete"] = "complete"


class ErrorEvent(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    kind: Literal["error"] = "error"
    error: LamaError


StreamEvent = Union[ChunkEvent, CompleteEvent, ErrorEvent]
