"""
Tests: session ids, checkpoint stores, save / load hooks.

Run with:
    pytest ideaforge/tests/test_session_manager.py -v
"""

import hashlib
from types import SimpleNamespace

from ideaforge.config import Settings
from ideaforge.models.state import ProjectState
from ideaforge.persistence.checkpoint_store import (
    InMemoryCheckpointStore,
    MongoCheckpointStore,
    store_from_settings,
)
from ideaforge.persistence.session_manager import SessionManager, generate_session_id


class TestSessionIds:
    def test_sixteen_hex_chars_of_sha256(self):
        expected = hashlib.sha256(b"ideas/todo.org").hexdigest()[:16]
        assert generate_session_id("ideas/todo.org") == expected

    def test_identity_is_normalized(self):
        assert generate_session_id(r"Ideas\Todo.org") == generate_session_id("ideas/todo.org")

    def test_identity_is_case_folded(self):
        assert generate_session_id("Notes/STRASSE.org") == generate_session_id("notes/stra\u00dfe.org")

    def test_salt_changes_id(self):
        assert generate_session_id("a.org", salt="1") != generate_session_id("a.org")

    def test_force_new_uses_salt_factory(self):
        salts = iter(["s1", "s2"])
        manager = SessionManager(salt_factory=lambda: next(salts))
        stable = manager.get_or_create("a.org")
        first = manager.get_or_create("a.org", force_new=True)
        second = manager.get_or_create("a.org", force_new=True)
        assert manager.get_or_create("a.org").id == stable.id
        assert len({stable.id, first.id, second.id}) == 3


class TestInMemoryStore:
    def test_versions_append(self):
        store = InMemoryCheckpointStore()
        assert store.save("s", {"n": 1}) == 1
        assert store.save("s", {"n": 2}, {"next_stage": "x"}) == 2
        assert store.count("s") == 2
        assert store.load("s").state == {"n": 2}
        assert store.load("s", version=1).state == {"n": 1}
        assert store.load("missing") is None

    def test_snapshots_are_isolated(self):
        store = InMemoryCheckpointStore()
        state = {"items": [1]}
        store.save("s", state)
        state["items"].append(2)
        loaded = store.load("s")
        loaded.state["items"].append(3)
        assert store.load("s").state == {"items": [1]}

    def test_finished_flag(self):
        store = InMemoryCheckpointStore()
        store.save("s", {}, {"next_stage": "moscow_categorization"})
        assert not store.load("s").finished
        store.save("s", {}, {"next_stage": None})
        assert store.load("s").finished

    def test_delete(self):
        store = InMemoryCheckpointStore()
        store.save("s", {})
        store.save("s", {})
        assert store.delete("s") == 2
        assert store.list_sessions() == []


class TestSessionManager:
    def test_state_round_trip(self, sample_org):
        manager = SessionManager()
        session = manager.get_or_create("grocery.org")
        assert not session.resumable

        state = ProjectState(raw_content=sample_org, session_id=session.id, technologies=["React"])
        version = manager.save(session.id, state, {"next_stage": "kano_evaluation"})
        assert version == 1

        restored = manager.load_state(session.id, ProjectState)
        assert restored.raw_content == sample_org
        assert restored.technologies == ["React"]
        assert manager.load(session.id).cursor == {"next_stage": "kano_evaluation"}
        assert manager.get_or_create("grocery.org").resumable

    def test_list_and_clear(self):
        manager = SessionManager()
        session = manager.get_or_create("a.org")
        manager.save(session.id, {"raw_content": "x"})
        assert [s.id for s in manager.list_sessions()] == [session.id]
        manager.clear(session.id)
        assert manager.load(session.id) is None
        assert manager.list_sessions() == []


class FakeCollection:
    """The slice of pymongo's Collection API the store uses."""

    def __init__(self):
        self.docs = []

    def insert_one(self, doc):
        self.docs.append({"_id": len(self.docs), **doc})

    def find_one(self, query, sort=None):
        matches = [d for d in self.docs if all(d.get(k) == v for k, v in query.items())]
        if not matches:
            return None
        matches.sort(key=lambda d: d["version"], reverse=True)
        return dict(matches[0])

    def count_documents(self, query):
        return sum(1 for d in self.docs if all(d.get(k) == v for k, v in query.items()))

    def distinct(self, key):
        return list(dict.fromkeys(d[key] for d in self.docs))

    def delete_many(self, query):
        before = len(self.docs)
        self.docs = [d for d in self.docs if not all(d.get(k) == v for k, v in query.items())]
        return SimpleNamespace(deleted_count=before - len(self.docs))


class TestMongoStore:
    def test_save_and_load(self):
        store = MongoCheckpointStore(FakeCollection())
        assert store.save("s", {"n": 1}) == 1
        assert store.save("s", {"n": 2}) == 2
        assert store.load("s").state == {"n": 2}
        assert store.load("s", version=1).version == 1
        assert store.list_sessions() == ["s"]
        assert store.delete("s") == 2

    def test_backend_selection(self):
        assert isinstance(store_from_settings(Settings(checkpoint_backend="memory")), InMemoryCheckpointStore)
