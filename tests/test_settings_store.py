from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from orchestrator.db.base import Base
from orchestrator.db.session import make_session_factory
from orchestrator.settings_store import InMemorySettingsStore, SqlUserSettingsStore


def _sql_store() -> SqlUserSettingsStore:
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    Base.metadata.create_all(engine)
    return SqlUserSettingsStore(make_session_factory(engine))


def test_sql_store_reads_and_updates_overrides():
    store = _sql_store()
    assert store.get_overrides("u1") == {}

    store.set_override("u1", "groq", 10)
    store.set_override("u1", "gemini", 5)
    store.set_override("u2", "groq", 99)
    store.set_override("u1", "groq", 20)

    assert store.get_overrides("u1") == {"groq": 20, "gemini": 5}
    assert store.get_overrides("u2") == {"groq": 99}


def test_in_memory_store_returns_copies():
    store = InMemorySettingsStore({"u1": {"groq": 3}})
    overrides = store.get_overrides("u1")
    overrides["groq"] = 100
    assert store.get_overrides("u1") == {"groq": 3}
    assert store.get_overrides("unknown") == {}
