"""Tests for session storage and auto-saving."""

import json
import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from lamacli.errors import (
    CorruptSessionError,
    SessionNotFoundError,
    StorageError,
)
from lamacli.models import Session
from lamacli.storage import AutoSaver, SessionStore, new_session_id


def make_session(**overrides):
    data = {
        "model": "llama3.2:3b",
        "history": ["", "Welcome", "How do I list files?", "Use ls."],
    }
    data.update(overrides)
    return Session(**data)


class TestSessionStore:
    """Tests for SessionStore."""

    def test_round_trip(self, store):
        session = make_session()
        stored = store.save(session)

        loaded = store.load(stored.id)
        assert loaded.model == session.model
        assert loaded.history == session.history
        assert loaded.title == "How do I list files?"
        assert loaded.created_at is not None
        assert loaded.updated_at is not None

    def test_record_format_on_disk(self, store):
        stored = store.save(make_session())
        data = json.loads((store.history_dir / f"{stored.id}.json").read_text())
        assert set(data) == {"id", "title", "model", "history", "created_at", "updated_at"}

    def test_save_is_idempotent_apart_from_updated_at(self, store):
        session = make_session()
        first = store.save(session)
        second = store.save(session)

        assert first.id == second.id
        assert first.title == second.title
        assert first.created_at == second.created_at
        assert second.updated_at >= first.updated_at
        assert len(store.list_sessions()) == 1

    def test_explicit_title_kept(self, store):
        stored = store.save(make_session(title="My notes"))
        assert store.load(stored.id).title == "My notes"

    def test_list_orders_by_updated_at_and_skips_corrupt(self, store, caplog):
        older = store.save(make_session(history=["", "w", "older", "a"]))
        newer = store.save(make_session(history=["", "w", "newer", "a"]))
        (store.history_dir / "broken.json").write_text("{not json")
        (store.history_dir / "partial.json").write_text(json.dumps({"id": "partial"}))

        # force a deterministic order regardless of clock resolution
        record = json.loads((store.history_dir / f"{older.id}.json").read_text())
        record["updated_at"] = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        (store.history_dir / f"{older.id}.json").write_text(json.dumps(record))

        with caplog.at_level(logging.WARNING, logger="lamacli.storage"):
            summaries = store.list_sessions()

        assert [s.id for s in summaries] == [newer.id, older.id]
        assert "broken.json" in caplog.text

    def test_load_missing(self, store):
        with pytest.raises(SessionNotFoundError):
            store.load("session_0_missing")

    def test_load_corrupt(self, store):
        (store.history_dir / "bad.json").write_text("[1, 2, 3]")
        with pytest.raises(CorruptSessionError):
            store.load("bad")

    def test_load_rejects_path_traversal(self, store):
        with pytest.raises(SessionNotFoundError):
            store.load("../secrets")

    def test_delete(self, store):
        stored = store.save(make_session())
        store.delete(stored.id)

        with pytest.raises(SessionNotFoundError):
            store.load(stored.id)
        with pytest.raises(SessionNotFoundError):
            store.delete(stored.id)

    def test_unwritable_directory(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            SessionStore(blocker / "chat_history")

    def test_new_session_ids_do_not_collide(self):
        ids = {new_session_id() for _ in range(200)}
        assert len(ids) == 200


class TestAutoSaver:
    """Tests for background auto-saving."""

    def test_saves_in_background(self, store):
        saved = []
        saver = AutoSaver(store, on_saved=saved.append)

        saver.submit(make_session(id="session_1_abc"))
        assert saver.flush(timeout=2)

        assert store.load("session_1_abc").model == "llama3.2:3b"
        assert [s.id for s in saved] == ["session_1_abc"]

    def test_pending_snapshots_coalesce(self, store, monkeypatch):
        release = threading.Event()
        written = []
        real_save = store.save

        def slow_save(session):
            release.wait(timeout=2)
            written.append(list(session.history))
            return real_save(session)

        monkeypatch.setattr(store, "save", slow_save)
        saver = AutoSaver(store)

        saver.submit(make_session(id="s_1", history=["", "w", "a", "1"]))
        saver.submit(make_session(id="s_1", history=["", "w", "a", "1", "b", "2"]))
        saver.submit(make_session(id="s_1", history=["", "w", "a", "1", "b", "2", "c", "3"]))
        release.set()
        assert saver.flush(timeout=2)

        assert len(written) <= 2
        assert written[-1][-1] == "3"
        assert store.load("s_1").history[-1] == "3"

    def test_failure_is_logged(self, store, monkeypatch, caplog):
        def failing_save(session):
            raise StorageError("read-only file system")

        monkeypatch.setattr(store, "save", failing_save)
        saver = AutoSaver(store)

        with caplog.at_level(logging.WARNING, logger="lamacli.storage"):
            saver.submit(make_session(id="s_2"))
            assert saver.flush(timeout=2)

        assert "read-only file system" in caplog.text
