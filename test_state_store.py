"""State store tests: round trips, completion, snapshots and persistence."""

import json
from pathlib import Path

from conftest import FIXED_TIME
from failure_analyst.orchestration.models import (
    HistoryItem,
    OrchestratorState,
    ReactionState,
    SessionState,
)
from failure_analyst.orchestration.state_store import DEFAULT_FINAL_ANSWER, StateStore


def _acting_session() -> SessionState:
    return SessionState(
        context="checkout errors",
        history=[
            HistoryItem(thinking="t", action="a", observation="o", timestamp=FIXED_TIME)
        ],
        cycle_count=1,
        state=ReactionState.ACTING,
        last_thinking="t2",
        last_action='{"tool": "logs_tool", "parameters": {}}',
    )


def test_put_get_round_trip_returns_copies():
    store = StateStore()
    session = _acting_session()

    store.put("s1", session)
    loaded = store.get("s1")

    assert loaded.model_dump() == session.model_dump()
    assert loaded is not session
    loaded.history.clear()
    assert len(store.get("s1").history) == 1


def test_get_unknown_returns_none():
    assert StateStore().get("missing") is None


def test_kinds_are_restored():
    store = StateStore()
    store.put("react", _acting_session())
    store.put("analysis", OrchestratorState(context="checkout errors"))

    assert isinstance(store.get("react"), SessionState)
    assert isinstance(store.get("analysis"), OrchestratorState)
    assert {s["kind"] for s in store.list_sessions()} == {"react", "orchestrator"}


def test_complete_forces_react_session_into_completed():
    store = StateStore()
    store.put("s1", _acting_session())

    assert store.complete("s1")

    session = store.get("s1")
    assert session.state == ReactionState.COMPLETED
    assert session.final_answer == DEFAULT_FINAL_ANSWER
    assert session.last_thinking is None
    assert store.is_completed("s1")
    assert not store.complete("unknown")


def test_put_keeps_completed_flag():
    store = StateStore()
    store.put("a", OrchestratorState(context="x"))
    store.complete("a")

    store.put("a", OrchestratorState(context="x"))

    assert store.is_completed("a")
    assert store.get_stats() == {
        "total_sessions": 1,
        "completed_sessions": 1,
        "active_sessions": 0,
        "total_snapshots": 0,
    }


def test_delete():
    store = StateStore()
    store.put("a", OrchestratorState(context="x"))
    store.create_snapshot("a")

    assert store.delete("a")
    assert store.get("a") is None
    assert store.list_snapshots("a") == []
    assert not store.delete("a")


def test_snapshot_restore():
    store = StateStore()
    store.put("a", OrchestratorState(context="before"))
    snapshot_id = store.create_snapshot("a")
    store.put("a", OrchestratorState(context="after"))

    assert snapshot_id == "a_1"
    assert [s["snapshot_id"] for s in store.list_snapshots("a")] == ["a_1"]
    assert store.restore_snapshot("a", snapshot_id)
    assert store.get("a").context == "before"
    assert not store.restore_snapshot("a", "a_9")
    assert store.create_snapshot("missing") is None


def test_persistence_round_trip(tmp_path: Path):
    path = tmp_path / "nested" / "sessions.json"
    store = StateStore(persist_path=path, auto_persist=True)
    store.put("s1", _acting_session())
    store.complete("s1")
    store.create_snapshot("s1")

    reloaded = StateStore(persist_path=path)

    assert reloaded.get("s1").model_dump() == store.get("s1").model_dump()
    assert reloaded.is_completed("s1")
    assert len(reloaded.list_snapshots("s1")) == 1


def test_without_auto_persist_nothing_is_written_until_persist(tmp_path: Path):
    path = tmp_path / "sessions.json"
    store = StateStore(persist_path=path)
    store.put("a", OrchestratorState(context="x"))

    assert not path.exists()
    store.persist()
    assert path.exists()


def test_invalid_stored_sessions_are_skipped(tmp_path: Path):
    path = tmp_path / "sessions.json"
    good = OrchestratorState(context="x").model_dump(mode="json")
    bad = SessionState(context="y").model_dump(mode="json")
    bad["state"] = "acting"
    path.write_text(json.dumps({
        "sessions": {
            "good": {"kind": "orchestrator", "completed": False, "updated_at": "t", "data": good},
            "bad": {"kind": "react", "completed": False, "updated_at": "t", "data": bad},
            "odd": {"kind": "other", "completed": False, "updated_at": "t", "data": {}},
        },
        "snapshots": {},
    }))

    store = StateStore(persist_path=path)

    assert [s["session_id"] for s in store.list_sessions()] == ["good"]


def test_satisfies_session_store_protocol():
    from failure_analyst.orchestration.protocols import SessionStoreProtocol

    assert isinstance(StateStore(), SessionStoreProtocol)
