"""JSON-file storage for chat sessions, plus background auto-saving."""

from __future__ import annotations

import json
import logging
import os
import re
import threading
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from .errors import (
    CorruptSessionError,
    SerializationError,
    SessionError,
    SessionNotFoundError,
    StorageError,
)
from .models import Session, SessionSummary, derive_title

logger = logging.getLogger(__name__)

_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]*$")
_REQUIRED_FIELDS = ("id", "model", "history", "created_at", "updated_at")


def new_session_id() -> str:
    """Timestamp-prefixed id with a random suffix so fast saves cannot collide."""
    return f"session_{int(time.time())}_{uuid.uuid4().hex[:8]}"


class SessionStore:
    """One ``<id>.json`` record per session inside ``history_dir``."""

    def __init__(self, history_dir: Path):
        self.history_dir = history_dir
        try:
            history_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create chat history directory: {e}") from e

    def _path(self, session_id: str) -> Path:
        if not _SESSION_ID_RE.match(session_id):
            raise SessionNotFoundError(session_id)
        return self.history_dir / f"{session_id}.json"

    def save(self, session: Session) -> Session:
        """Insert or overwrite a session record.

        Assigns an id and a derived title when missing and always refreshes
        ``updated_at``. The passed session is updated in place; a detached
        copy of what was written is returned.
        """
        if not session.id:
            session.id = new_session_id()
        path = self._path(session.id)

        if not session.title:
            session.title = derive_title(session.history)

        now = datetime.now(timezone.utc)
        session.updated_at = now
        if session.created_at is None:
            session.created_at = now

        try:
            data = session.model_dump_json(indent=2)
        except (ValueError, TypeError) as e:
            raise SerializationError(f"Failed to serialize session {session.id}: {e}") from e

        tmp_path = path.with_name(path.name + ".tmp")
        try:
            tmp_path.write_text(data, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StorageError(f"Failed to write session file {path}: {e}") from e

        logger.debug("Saved session %s (%d turns)", session.id, len(session.history))
        return session.snapshot()

    def load(self, session_id: str) -> Session:
        path = self._path(session_id)
        if not path.is_file():
            raise SessionNotFoundError(session_id)

        try:
            raw = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read session file {path}: {e}") from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise CorruptSessionError(session_id, f"invalid JSON ({e})") from e
        if not isinstance(data, dict):
            raise CorruptSessionError(session_id, "record is not an object")

        missing = [name for name in _REQUIRED_FIELDS if data.get(name) is None]
        if missing:
            raise CorruptSessionError(session_id, f"missing {', '.join(missing)}")

        try:
            return Session.model_validate(data)
        except ValidationError as e:
            raise CorruptSessionError(session_id, str(e)) from e

    def list_sessions(self) -> list[SessionSummary]:
        """All readable sessions, most recently updated first."""
        try:
            paths = sorted(self.history_dir.glob("*.json"))
        except OSError as e:
            raise StorageError(f"Failed to read history directory: {e}") from e

        sessions: list[Session] = []
        for path in paths:
            try:
                sessions.append(self.load(path.stem))
            except SessionError as e:
                logger.warning("Skipping session file %s: %s", path.name, e)

        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return [s.summary() for s in sessions]

    def delete(self, session_id: str) -> None:
        path = self._path(session_id)
        if not path.is_file():
            raise SessionNotFoundError(session_id)
        try:
            path.unlink()
        except FileNotFoundError as e:
            raise SessionNotFoundError(session_id) from e
        except OSError as e:
            raise StorageError(f"Failed to delete session file {path}: {e}") from e


class AutoSaver:
    """Fire-and-forget saving of session snapshots on a background thread.

    Submissions made while a save is running are coalesced: only the most
    recent pending snapshot is written. Failures are logged, never raised.
    """

    def __init__(
        self,
        store: SessionStore,
        on_saved: Callable[[Session], None] | None = None,
    ):
        self.store = store
        self.on_saved = on_saved
        self._cond = threading.Condition()
        self._pending: Session | None = None
        self._worker: threading.Thread | None = None

    def submit(self, snapshot: Session) -> None:
        with self._cond:
            self._pending = snapshot
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._run, name="lamacli-autosave", daemon=True
                )
                self._worker.start()

    def _run(self) -> None:
        while True:
            with self._cond:
                if self._pending is None:
                    self._worker = None
                    self._cond.notify_all()
                    return
                snapshot, self._pending = self._pending, None

            try:
                stored = self.store.save(snapshot)
            except SessionError as e:
                logger.warning("Auto-save of session %s failed: %s", snapshot.id, e)
                continue

            if self.on_saved is not None:
                self.on_saved(stored)

    def flush(self, timeout: float | None = None) -> bool:
        """Block until every submitted snapshot has been handled."""
        with self._cond:
            return self._cond.wait_for(
                lambda: self._pending is None and self._worker is None, timeout
            )
