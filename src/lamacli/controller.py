"""Streaming chat controller: one turn at a time, rendered as an event stream."""

from __future__ import annotations

import logging
import queue
import threading
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterator

from .config import DEFAULT_SYSTEM_PROMPT
from .conversation import Conversation
from .errors import InvalidInputError, LamaError, NotCancellableError, TurnInFlightError
from .models import (
    ChunkEvent,
    CompleteEvent,
    ErrorEvent,
    Session,
    StreamEvent,
    StreamFailure,
)
from .storage import AutoSaver, SessionStore, new_session_id

logger = logging.getLogger(__name__)


class ControllerState(str, Enum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    STREAMING = "streaming"
    CANCELLING = "cancelling"
    COMPLETED = "completed"
    FAILED = "failed"


class ChatController:
    """Drives a Conversation through submit -> stream -> complete/error/cancel.

    The controller is the only writer of its conversation. Each accepted
    turn gets one worker thread that consumes the transport stream, appends
    fragments in arrival order and publishes StreamEvents to ``events`` (a
    queue the UI drains) and to registered listeners, which run on the
    worker thread. The state itself is the single-flight guard: a turn can
    only start from IDLE.

    There is no request timeout; a stalled server keeps the controller in
    STREAMING until ``cancel()`` is called.
    """

    def __init__(
        self,
        client,
        model: str,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
        store: SessionStore | None = None,
        conversation: Conversation | None = None,
        queue_events: bool = True,
    ):
        self.client = client
        self.model = model
        self.system_prompt = system_prompt
        self.conversation = conversation or Conversation()
        self.autosaver = AutoSaver(store, on_saved=self._adopt_saved) if store else None
        self.store = store
        self.session: Session | None = None
        self.events: queue.Queue[StreamEvent] | None = queue.Queue() if queue_events else None

        self._listeners: list[Callable[[StreamEvent], None]] = []
        self._lock = threading.RLock()
        self._state_changed = threading.Condition(self._lock)
        self._state = ControllerState.IDLE
        self._cancel_token: threading.Event | None = None
        self._stream = None

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is not ControllerState.IDLE

    def add_listener(self, listener: Callable[[StreamEvent], None]) -> None:
        self._listeners.append(listener)

    def _set_state(self, state: ControllerState) -> None:
        logger.debug("Controller %s -> %s", self._state.value, state.value)
        self._state = state
        self._state_changed.notify_all()

    def _emit(self, event: StreamEvent) -> None:
        if self.events is not None:
            self.events.put(event)
        for listener in self._listeners:
            try:
                listener(event)
            except Exception:
                logger.exception("Listener failed on %s event", event.kind)

    def _discard_queued_events(self) -> None:
        if self.events is None:
            return
        while True:
            try:
                self.events.get_nowait()
            except queue.Empty:
                return

    # Turn lifecycle

    def submit_turn(self, text: str) -> None:
        """Start answering ``text``.

        Raises InvalidInputError for blank input and TurnInFlightError while
        another answer is being produced; in both cases nothing changes.
        """
        prompt = text.strip()
        if not prompt:
            raise InvalidInputError("Prompt is empty")

        with self._lock:
            if self._state is not ControllerState.IDLE:
                raise TurnInFlightError()

            self.conversation.append_user_turn(prompt)
            self.conversation.append_assistant_placeholder()
            if self.session is None:
                self.session = Session(
                    id=new_session_id(),
                    model=self.model,
                    created_at=datetime.now(timezone.utc),
                )

            history = self.conversation.history[:-1]
            token = threading.Event()
            self._cancel_token = token
            self._set_state(ControllerState.SUBMITTING)

            worker = threading.Thread(
                target=self._run_stream,
                args=(token, self.model, self.system_prompt, history),
                name="lamacli-stream",
                daemon=True,
            )
            worker.start()

    def _run_stream(
        self, token: threading.Event, model: str, system_prompt: str, history: list[str]
    ) -> None:
        failure: LamaError | None = None
        stream = None
        try:
            stream = self.client.stream_chat(model, system_prompt, history)
            with self._lock:
                if token.is_set():
                    return
                self._stream = stream
                self._set_state(ControllerState.STREAMING)

            for item in stream:
                with self._lock:
                    if token.is_set():
                        logger.debug("Discarding stream output after cancel")
                        return
                    if isinstance(item, StreamFailure):
                        failure = item.error
                        break
                    self.conversation.append_to_last_assistant_turn(item.text)
                    self._emit(ChunkEvent(text=item.text))
        except LamaError as e:
            failure = e
        except Exception:
            if token.is_set():
                logger.debug("Stream ended with an error after cancel", exc_info=True)
                return
            logger.exception("Chat stream worker crashed")
            with self._lock:
                if not token.is_set():
                    self._stream = None
                    self.conversation.finish_response()
                    self._set_state(ControllerState.IDLE)
            raise
        finally:
            if stream is not None:
                stream.close()

        with self._lock:
            if token.is_set():
                return
            self._stream = None
            self._finish(failure)

    def _finish(self, failure: LamaError | None) -> None:
        self.conversation.finish_response()
        if failure is None:
            self._set_state(ControllerState.COMPLETED)
            self._emit(CompleteEvent())
        else:
            logger.info("Turn failed: %s", failure)
            self._set_state(ControllerState.FAILED)
            self._emit(ErrorEvent(error=failure))
        self._schedule_autosave()
        self._cancel_token = None
        self._set_state(ControllerState.IDLE)

    def cancel(self) -> None:
        """Stop the streaming answer; text received so far stays in place.

        No Complete or Error event is emitted for a cancelled turn, and its
        chunks still waiting in ``events`` are dropped. The transport stream
        is aborted right away, even if the server has gone silent.
        """
        with self._lock:
            if self._state is not ControllerState.STREAMING:
                raise NotCancellableError(f"Nothing to cancel in state {self._state.value}")
            self._set_state(ControllerState.CANCELLING)
            if self._cancel_token is not None:
                self._cancel_token.set()
            self._cancel_token = None
            stream, self._stream = self._stream, None
            self._discard_queued_events()
            self.conversation.finish_response()
            self._set_state(ControllerState.IDLE)

        if stream is not None:
            stream.abort()

    # Persistence

    def _bind_session(self) -> Session:
        if self.session is None:
            self.session = Session(id=new_session_id(), model=self.model)
        self.session.model = self.model
        return self.conversation.snapshot_into(self.session)

    def _schedule_autosave(self) -> None:
        if self.autosaver is None or not self.conversation.has_progressed:
            return
        self.autosaver.submit(self._bind_session().snapshot())

    def _adopt_saved(self, stored: Session) -> None:
        with self._lock:
            if self.session is not None and self.session.id == stored.id:
                self.session.title = stored.title
                self.session.created_at = stored.created_at
                self.session.updated_at = stored.updated_at

    def save(self) -> Session:
        """Save the conversation synchronously and return the stored record."""
        if self.store is None:
            raise LamaError("No session store configured")
        with self._lock:
            if self._state is not ControllerState.IDLE:
                raise TurnInFlightError()
            snapshot = self._bind_session().snapshot()
        stored = self.store.save(snapshot)
        self._adopt_saved(stored)
        return stored

    def load_session(self, session: Session) -> None:
        with self._lock:
            if self._state is not ControllerState.IDLE:
                raise TurnInFlightError()
            self.conversation.load_from(session)
            self.session = session.snapshot()
            self.model = session.model

    def reset(self) -> None:
        """Start a fresh conversation; saved sessions are untouched."""
        with self._lock:
            if self._state is not ControllerState.IDLE:
                raise TurnInFlightError()
            self.conversation.reset()
            self.session = None

    def set_model(self, model: str) -> None:
        with self._lock:
            self.model = model

    # Headless helpers

    def wait_until_idle(self, timeout: float | None = None) -> bool:
        with self._lock:
            return self._state_changed.wait_for(
                lambda: self._state is ControllerState.IDLE, timeout
            )

    def wait_until_started(self, timeout: float | None = None) -> bool:
        """Wait until the current turn has left SUBMITTING."""
        with self._lock:
            return self._state_changed.wait_for(
                lambda: self._state is not ControllerState.SUBMITTING, timeout
            )

    def iter_events(self, poll_interval: float = 0.1) -> Iterator[StreamEvent]:
        """Yield events of the current turn until it completes, fails or is cancelled."""
        if self.events is None:
            raise RuntimeError("Controller was created without an event queue")
        while True:
            try:
                event = self.events.get(timeout=poll_interval)
            except queue.Empty:
                if self._state is ControllerState.IDLE and self.events.empty():
                    return
                continue
            yield event
            if event.kind in ("complete", "error"):
                return

    def flush(self, timeout: float | None = None) -> bool:
        """Wait for pending auto-saves to finish."""
        if self.autosaver is None:
            return True
        return self.autosaver.flush(timeout)
