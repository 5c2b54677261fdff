"""
Editing Session Manager
=======================

Manages fixture editing sessions with JSON persistence of drafts.

Each session owns one ReconciliationEngine. The fixture and the pending
change set are saved to ``{sessions_dir}/{session_id}.json`` after every
mutation so a draft survives a restart. Remote snapshots are never written
to disk; a restored session reloads them on demand.
"""

import json
import logging
import re
from pathlib import Path
from typing import Optional, Dict, Any, List
from datetime import datetime
import uuid

from ..models.shelf_models import Fixture, PendingChange
from .pending import PendingChangeSet
from .reconciliation import ReconciliationEngine
from .remote_cache import RemoteStateCache

logger = logging.getLogger(__name__)

# Session ids double as file names
SESSION_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


class SessionManager:
    """Manages editing sessions, one engine per session."""

    def __init__(self, cache: RemoteStateCache, sessions_dir: Optional[Path] = None):
        self.cache = cache
        self.sessions_dir = sessions_dir or Path("sessions")
        self.sessions_dir.mkdir(parents=True, exist_ok=True)
        self._cache: Dict[str, Dict[str, Any]] = {}
        self._engines: Dict[str, ReconciliationEngine] = {}
        logger.info(f"[SESSION-MANAGER] Initialized with sessions_dir={self.sessions_dir}")

    def _session_path(self, session_id: str) -> Path:
        return self.sessions_dir / f"{session_id}.json"

    @staticmethod
    def _is_valid_id(session_id: str) -> bool:
        return bool(SESSION_ID_PATTERN.fullmatch(session_id))

    def create_session(self, fixture: Fixture, session_id: Optional[str] = None) -> str:
        """Create a new editing session for a fixture."""
        if session_id is None:
            session_id = str(uuid.uuid4())
        elif not self._is_valid_id(session_id):
            raise ValueError(f"Invalid session id: {session_id!r}")

        # An existing draft, in memory or on disk, is kept as is
        if self.get_session(session_id) is None:
            self._cache[session_id] = {
                "id": session_id,
                "created_at": datetime.now().isoformat(),
                "fixture": fixture.model_dump(mode="json"),
                "pending": []
            }
            self._engines[session_id] = ReconciliationEngine(fixture, self.cache)
            self._save_session(session_id)
            logger.info(f"[SESSION-MANAGER] Created session {session_id} for fixture {fixture.id}")
        return session_id

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        """Get raw session record, loading it from disk if needed."""
        if session_id in self._cache:
            return self._cache[session_id]
        if not self._is_valid_id(session_id):
            return None

        session_path = self._session_path(session_id)
        if session_path.exists():
            with open(session_path) as f:
                self._cache[session_id] = json.load(f)
                return self._cache[session_id]
        return None

    def get_engine(self, session_id: str) -> Optional[ReconciliationEngine]:
        """Get the engine of a session, restoring a saved draft if needed."""
        if session_id in self._engines:
            return self._engines[session_id]

        session = self.get_session(session_id)
        if not session:
            return None

        fixture = Fixture.model_validate(session["fixture"])
        pending = PendingChangeSet.from_changes(
            PendingChange.model_validate(c) for c in session.get("pending", [])
        )
        engine = ReconciliationEngine(fixture, self.cache, pending=pending)
        self._engines[session_id] = engine
        logger.info(
            f"[SESSION-MANAGER] Restored session {session_id} "
            f"with {len(pending)} pending change(s)"
        )
        return engine

    def save_session(self, session_id: str) -> bool:
        """Write the session's current pending set to disk."""
        engine = self._engines.get(session_id)
        session = self._cache.get(session_id)
        if engine is None or session is None:
            return False

        session["pending"] = [c.model_dump(mode="json") for c in engine.pending_changes()]
        session["updated_at"] = datetime.now().isoformat()
        self._save_session(session_id)
        return True

    def close_session(self, session_id: str) -> bool:
        """Forget a session and delete its draft file."""
        if not self._is_valid_id(session_id):
            return False
        known = session_id in self._cache or self._session_path(session_id).exists()
        if not known:
            return False

        self._cache.pop(session_id, None)
        self._engines.pop(session_id, None)
        self._session_path(session_id).unlink(missing_ok=True)
        logger.info(f"[SESSION-MANAGER] Closed session {session_id}")
        return True

    def list_sessions(self) -> List[str]:
        """Ids of every known session, in memory or on disk."""
        on_disk = {p.stem for p in self.sessions_dir.glob("*.json")}
        return sorted(on_disk | set(self._cache))

    def _save_session(self, session_id: str):
        """Save session to disk."""
        if session_id in self._cache:
            with open(self._session_path(session_id), "w") as f:
                json.dump(self._cache[session_id], f, indent=2)
