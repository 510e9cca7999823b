"""
Session Manager — stable session ids and checkpoint save / load hooks.

The id is the first 16 hex chars of SHA-256 over the normalized document
identity (lower-cased, forward slashes), so re-opening the same file lands
on the same session. A salt forces a fresh id.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional, TypeVar, Union

from pydantic import BaseModel

from ideaforge.persistence.checkpoint_store import Checkpoint, CheckpointStore, InMemoryCheckpointStore
from ideaforge.utils.hashing import normalize_identity, short_digest

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

SESSION_ID_LENGTH = 16


def generate_session_id(identity: str, salt: Optional[str] = None) -> str:
    normalized = normalize_identity(identity)
    if salt:
        normalized = f"{normalized}:{salt}"
    return short_digest(normalized, SESSION_ID_LENGTH)


class SessionInfo(BaseModel):
    id: str
    identity: str
    created_at: datetime
    checkpoint_count: int = 0

    @property
    def resumable(self) -> bool:
        return self.checkpoint_count > 0


class SessionManager:
    def __init__(self, store: Optional[CheckpointStore] = None, salt_factory: Optional[Callable[[], str]] = None):
        self.store = store or InMemoryCheckpointStore()
        self._salt_factory = salt_factory or (lambda: str(time.time_ns()))
        self._sessions: dict[str, SessionInfo] = {}

    generate_id = staticmethod(generate_session_id)

    def get_or_create(self, identity: str, force_new: bool = False) -> SessionInfo:
        session_id = self.generate_id(identity, self._salt_factory() if force_new else None)
        info = self._sessions.get(session_id)
        if info is None:
            info = SessionInfo(
                id=session_id,
                identity=identity,
                created_at=datetime.now(timezone.utc),
            )
            self._sessions[session_id] = info
            logger.info(f"[SESSION] {'New' if force_new else 'Opened'} session {session_id} for {identity}")
        info.checkpoint_count = self.store.count(session_id)
        return info.model_copy()

    # ── Checkpoint hooks ─────────────────────────────────

    def save(
        self,
        session_id: str,
        state: Union[BaseModel, dict[str, Any]],
        cursor: Optional[dict[str, Any]] = None,
    ) -> int:
        payload = state.model_dump(mode="json") if isinstance(state, BaseModel) else state
        version = self.store.save(session_id, payload, cursor)
        if session_id in self._sessions:
            self._sessions[session_id].checkpoint_count = version
        return version

    def load(self, session_id: str) -> Optional[Checkpoint]:
        return self.store.load(session_id)

    def load_state(self, session_id: str, model: type[M]) -> Optional[M]:
        checkpoint = self.store.load(session_id)
        return model.model_validate(checkpoint.state) if checkpoint else None

    def list_sessions(self) -> list[SessionInfo]:
        return [info.model_copy() for info in self._sessions.values()]

    def clear(self, session_id: str) -> None:
        self.store.delete(session_id)
        self._sessions.pop(session_id, None)
