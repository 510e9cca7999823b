"""
Checkpoint stores — persistence layer for pipeline state snapshots.

Each save appends a new version for the session (append-only), so a
run can be resumed from its latest snapshot and earlier ones stay
inspectable. Stores only hold JSON-compatible dicts; converting to and
from the state model is the SessionManager's job.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from copy import deepcopy
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field

from ideaforge.config import Settings, get_settings

logger = logging.getLogger(__name__)


class Checkpoint(BaseModel):
    session_id: str
    version: int
    state: dict[str, Any]
    cursor: dict[str, Any] = {}
    saved_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def finished(self) -> bool:
        """True when the run that wrote it had nowhere left to go."""
        return not self.cursor.get("next_stage")


class CheckpointStore(ABC):
    """save / load contract every backend honours."""

    @abstractmethod
    def save(self, session_id: str, state: dict[str, Any], cursor: Optional[dict[str, Any]] = None) -> int:
        """Persist a snapshot and return its version number (1-based)."""

    @abstractmethod
    def load(self, session_id: str, version: Optional[int] = None) -> Optional[Checkpoint]:
        """Latest (or a specific) snapshot, or None."""

    @abstractmethod
    def count(self, session_id: str) -> int:
        ...

    @abstractmethod
    def list_sessions(self) -> list[str]:
        ...

    @abstractmethod
    def delete(self, session_id: str) -> int:
        """Drop every snapshot of a session; returns how many were removed."""


class InMemoryCheckpointStore(CheckpointStore):
    """Process-local store. Snapshots are deep copies in both directions."""

    def __init__(self):
        self._memory_store: dict[str, list[Checkpoint]] = {}

    def save(self, session_id: str, state: dict[str, Any], cursor: Optional[dict[str, Any]] = None) -> int:
        snapshots = self._memory_store.setdefault(session_id, [])
        version = len(snapshots) + 1
        snapshots.append(Checkpoint(
            session_id=session_id,
            version=version,
            state=deepcopy(state),
            cursor=deepcopy(cursor or {}),
        ))
        logger.debug(f"[CHECKPOINT] Saved v{version} for {session_id}")
        return version

    def load(self, session_id: str, version: Optional[int] = None) -> Optional[Checkpoint]:
        snapshots = self._memory_store.get(session_id, [])
        if not snapshots:
            return None
        if version is not None:
            matches = [s for s in snapshots if s.version == version]
            return matches[0].model_copy(deep=True) if matches else None
        return snapshots[-1].model_copy(deep=True)

    def count(self, session_id: str) -> int:
        return len(self._memory_store.get(session_id, []))

    def list_sessions(self) -> list[str]:
        return list(self._memory_store.keys())

    def delete(self, session_id: str) -> int:
        return len(self._memory_store.pop(session_id, []))


class MongoCheckpointStore(CheckpointStore):
    """
    Durable store backed by a MongoDB collection, one document per snapshot:
    {session_id, version, state, cursor, saved_at}.
    """

    def __init__(self, collection: Any):
        self._collection = collection

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> MongoCheckpointStore:
        from ideaforge.persistence.mongo_client import MongoClient

        settings = settings or get_settings()
        db = MongoClient(settings).get_database()
        return cls(db[settings.mongodb_checkpoint_collection])

    def save(self, session_id: str, state: dict[str, Any], cursor: Optional[dict[str, Any]] = None) -> int:
        version = self.count(session_id) + 1
        checkpoint = Checkpoint(session_id=session_id, version=version, state=state, cursor=cursor or {})
        self._collection.insert_one(checkpoint.model_dump())
        logger.debug(f"[CHECKPOINT] Saved v{version} for {session_id} (mongo)")
        return version

    def load(self, session_id: str, version: Optional[int] = None) -> Optional[Checkpoint]:
        query: dict[str, Any] = {"session_id": session_id}
        if version is not None:
            query["version"] = version
        doc = self._collection.find_one(query, sort=[("version", -1)])
        if doc is None:
            return None
        doc.pop("_id", None)
        return Checkpoint.model_validate(doc)

    def count(self, session_id: str) -> int:
        return self._collection.count_documents({"session_id": session_id})

    def list_sessions(self) -> list[str]:
        return list(self._collection.distinct("session_id"))

    def delete(self, session_id: str) -> int:
        return self._collection.delete_many({"session_id": session_id}).deleted_count


def store_from_settings(settings: Optional[Settings] = None) -> CheckpointStore:
    settings = settings or get_settings()
    if settings.checkpoint_backend == "mongo":
        return MongoCheckpointStore.from_settings(settings)
    return InMemoryCheckpointStore()
