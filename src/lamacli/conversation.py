"""Alternating user/assistant turn log owned by the chat controller."""

from __future__ import annotations

from .config import WELCOME_MESSAGE
from .errors import ConversationStateError, TurnInFlightError
from .models import Role, Session, Turn


class Conversation:
    """Append-only list of turns: user at even indexes, assistant at odd ones.

    Index 0/1 hold a synthetic welcome pair (an empty user turn followed by
    the welcome message). The last assistant turn stays open for appends
    while a response is in flight. Not safe for concurrent writers.
    """

    def __init__(self, welcome_message: str = WELCOME_MESSAGE):
        self.welcome_message = welcome_message
        self._history: list[str] = ["", welcome_message]
        self.in_flight = False

    @property
    def history(self) -> list[str]:
        return list(self._history)

    @property
    def turns(self) -> list[Turn]:
        return [
            Turn(role=Role.USER if i % 2 == 0 else Role.ASSISTANT, text=text)
            for i, text in enumerate(self._history)
        ]

    @property
    def last_assistant_text(self) -> str:
        return self._history[-1] if self._history else ""

    @property
    def has_progressed(self) -> bool:
        """True once there is more than the welcome pair."""
        return len(self._history) > 2

    def __len__(self) -> int:
        return len(self._history)

    def append_user_turn(self, text: str) -> None:
        if self.in_flight:
            raise TurnInFlightError()
        if len(self._history) % 2 != 0:
            raise ConversationStateError("User turn would break alternation")
        self._history.append(text)

    def append_assistant_placeholder(self) -> None:
        if len(self._history) % 2 != 1:
            raise ConversationStateError("Placeholder must directly follow a user turn")
        self._history.append("")
        self.in_flight = True

    def append_to_last_assistant_turn(self, fragment: str) -> None:
        if len(self._history) % 2 != 0 or not self._history:
            raise ConversationStateError("Last turn is not an assistant turn")
        self._history[-1] += fragment

    def finish_response(self) -> None:
        """Close the in-flight assistant turn; its text is kept as is."""
        self.in_flight = False

    def reset(self) -> None:
        self._history = ["", self.welcome_message]
        self.in_flight = False

    def load_from(self, session: Session) -> None:
        history = list(session.history)
        if len(history) % 2 != 0:
            # A record saved mid-answer is closed off with an empty reply
            history.append("")
        self._history = history or ["", self.welcome_message]
        self.in_flight = False

    def snapshot_into(self, session: Session) -> Session:
        session.history = list(self._history)
        return session
