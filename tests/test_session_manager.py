"""Tests for editing sessions and draft persistence."""

import json

import pytest

from shelf_planner.engine.remote_cache import RefreshConfig, RemoteStateCache
from shelf_planner.engine.session_manager import SessionManager

from conftest import BREAD, MILK


@pytest.fixture
def manager(cache, tmp_path) -> SessionManager:
    return SessionManager(cache, sessions_dir=tmp_path / "sessions")


def test_create_session_writes_draft(manager, shelf):
    session_id = manager.create_session(shelf)

    path = manager.sessions_dir / f"{session_id}.json"
    assert path.exists()
    data = json.loads(path.read_text())
    assert data["fixture"]["id"] == "F"
    assert data["pending"] == []
    assert manager.get_engine(session_id).fixture == shelf


async def test_pending_changes_survive_restart(manager, shelf, storage, tmp_path):
    session_id = manager.create_session(shelf)
    engine = manager.get_engine(session_id)
    await engine.refresh()
    engine.stage("F:2:1", BREAD)
    engine.stage("F:1:1", None)
    manager.save_session(session_id)

    fresh_cache = RemoteStateCache(storage, config=RefreshConfig(attempts=1, backoff_seconds=0))
    restarted = SessionManager(fresh_cache, sessions_dir=manager.sessions_dir)
    restored = restarted.get_engine(session_id)

    assert restored is not None
    assert restored.pending_count() == (1, 1)
    assert restored.pending.get("F:2:1").product == BREAD
    assert restored.snapshot() is None

    await restored.refresh()
    assert restored.merged_view("F:1:1") is None
    assert restored.merged_view("F:2:1") == BREAD


async def test_commit_clears_saved_draft(manager, shelf):
    session_id = manager.create_session(shelf)
    engine = manager.get_engine(session_id)
    engine.stage("F:2:2", MILK)
    manager.save_session(session_id)

    await engine.commit_all()
    manager.save_session(session_id)

    data = json.loads((manager.sessions_dir / f"{session_id}.json").read_text())
    assert data["pending"] == []
    assert "updated_at" in data


def test_close_session_removes_draft(manager, shelf):
    session_id = manager.create_session(shelf)
    assert manager.close_session(session_id)
    assert not (manager.sessions_dir / f"{session_id}.json").exists()
    assert manager.get_engine(session_id) is None
    assert not manager.close_session(session_id)


def test_unknown_and_unsafe_ids(manager, shelf):
    assert manager.get_engine("missing") is None
    assert manager.get_session("../etc/passwd") is None
    with pytest.raises(ValueError):
        manager.create_session(shelf, session_id="../escape")


def test_create_with_saved_id_keeps_draft(manager, cache, shelf):
    session_id = manager.create_session(shelf, session_id="saved-draft")
    manager.get_engine(session_id).stage("F:2:1", BREAD)
    manager.save_session(session_id)

    restarted = SessionManager(cache, sessions_dir=manager.sessions_dir)
    assert restarted.create_session(shelf, session_id="saved-draft") == session_id

    data = json.loads((manager.sessions_dir / "saved-draft.json").read_text())
    assert len(data["pending"]) == 1
    assert restarted.get_engine(session_id).pending_count() == (1, 0)


def test_list_sessions(manager, shelf):
    first = manager.create_session(shelf, session_id="a-session")
    second = manager.create_session(shelf, session_id="b-session")
    assert manager.list_sessions() == [first, second]
