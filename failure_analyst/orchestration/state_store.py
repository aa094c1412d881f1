"""In-memory session store with optional JSON persistence."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from .models import OrchestratorState, ReactionState, SessionState

logger = logging.getLogger(__name__)

DEFAULT_FINAL_ANSWER = "The analysis was completed without a final answer."

StoredState = Union[SessionState, OrchestratorState]

_KINDS: dict[str, type] = {
    "react": SessionState,
    "orchestrator": OrchestratorState,
}


def _kind_of(state: StoredState) -> str:
    if isinstance(state, OrchestratorState):
        return "orchestrator"
    if isinstance(state, SessionState):
        return "react"
    raise TypeError(f"Unsupported state type: {type(state).__name__}")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class StateStore:
    """
    Session store for analysis checkpoints.

    Provides:
    - In-memory storage of serialized session states
    - Optional persistence to disk (JSON)
    - Snapshots that can be restored later

    States are stored serialized, so a value returned by ``get`` is always a
    fresh copy and never aliases what a caller passed to ``put``.
    """

    def __init__(
        self,
        persist_path: Path | str | None = None,
        auto_persist: bool = False,
    ):
        """
        Initialize the state store.

        Args:
            persist_path: Optional path for disk persistence
            auto_persist: Whether to auto-save on every update
        """
        self._entries: dict[str, dict] = {}
        self._snapshots: dict[str, list[dict]] = {}  # session_id -> list of snapshots
        self.persist_path = Path(persist_path) if persist_path else None
        self.auto_persist = auto_persist

        # Load from disk if path exists
        if self.persist_path and self.persist_path.exists():
            self._load_from_disk()

    def get(self, session_id: str) -> StoredState | None:
        """
        Load a session state by ID.

        Args:
            session_id: ID of the session

        Returns:
            The stored state if found, None otherwise
        """
        entry = self._entries.get(session_id)
        if entry is None:
            return None
        return _KINDS[entry["kind"]].model_validate(entry["data"])

    def put(self, session_id: str, state: StoredState) -> None:
        """
        Save a session state.

        Args:
            session_id: ID of the session
            state: State to save
        """
        previous = self._entries.get(session_id, {})
        self._entries[session_id] = {
            "kind": _kind_of(state),
            "completed": previous.get("completed", False),
            "updated_at": _now(),
            "data": state.model_dump(mode="json"),
        }
        self._maybe_persist()
        logger.debug(f"Saved state for session {session_id}")

    def complete(self, session_id: str) -> bool:
        """
        Mark a session as completed.

        A Reaction Agent session is forced into COMPLETED and given a default
        final answer if it has none.

        Args:
            session_id: ID of the session

        Returns:
            True if marked, False if not found
        """
        entry = self._entries.get(session_id)
        if entry is None:
            return False

        if entry["kind"] == "react":
            state = SessionState.model_validate(entry["data"])
            if not state.final_answer:
                state.final_answer = DEFAULT_FINAL_ANSWER
            state.state = ReactionState.COMPLETED
            state.last_thinking = None
            state.last_action = None
            state.last_observation = None
            entry["data"] = state.model_dump(mode="json")

        entry["completed"] = True
        entry["updated_at"] = _now()
        self._maybe_persist()
        logger.info(f"Completed session {session_id}")
        return True

    def is_completed(self, session_id: str) -> bool:
        entry = self._entries.get(session_id)
        return bool(entry and entry["completed"])

    def list_sessions(self) -> list[dict]:
        """
        List stored sessions.

        Returns:
            Session metadata (session_id, kind, completed, updated_at)
        """
        return [
            {
                "session_id": session_id,
                "kind": entry["kind"],
                "completed": entry["completed"],
                "updated_at": entry["updated_at"],
            }
            for session_id, entry in self._entries.items()
        ]

    def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Args:
            session_id: ID of the session to delete

        Returns:
            True if deleted, False if not found
        """
        if session_id in self._entries:
            del self._entries[session_id]
            if session_id in self._snapshots:
                del self._snapshots[session_id]

            self._maybe_persist()

            logger.info(f"Deleted state for session {session_id}")
            return True

        return False

    def create_snapshot(self, session_id: str) -> str | None:
        """
        Create a snapshot of the current session state.

        Args:
            session_id: ID of the session to snapshot

        Returns:
            Snapshot ID if successful, None if session not found
        """
        entry = self._entries.get(session_id)
        if not entry:
            return None

        timestamp = _now()
        existing = self._snapshots.setdefault(session_id, [])
        snapshot_id = f"{session_id}_{len(existing) + 1}"

        existing.append({
            "snapshot_id": snapshot_id,
            "timestamp": timestamp,
            "entry": json.loads(json.dumps(entry)),
        })
        self._maybe_persist()

        logger.info(f"Created snapshot {snapshot_id}")
        return snapshot_id

    def list_snapshots(self, session_id: str) -> list[dict]:
        """
        List snapshots for a session.

        Args:
            session_id: ID of the session

        Returns:
            List of snapshot metadata (id, timestamp)
        """
        snapshots = self._snapshots.get(session_id, [])
        return [
            {"snapshot_id": s["snapshot_id"], "timestamp": s["timestamp"]}
            for s in snapshots
        ]

    def restore_snapshot(self, session_id: str, snapshot_id: str) -> bool:
        """
        Restore a session state from a snapshot.

        Args:
            session_id: ID of the session
            snapshot_id: ID of the snapshot to restore

        Returns:
            True if restored, False if snapshot not found
        """
        for snapshot in self._snapshots.get(session_id, []):
            if snapshot["snapshot_id"] == snapshot_id:
                self._entries[session_id] = json.loads(json.dumps(snapshot["entry"]))
                self._maybe_persist()
                logger.info(f"Restored snapshot {snapshot_id}")
                return True

        return False

    def persist(self) -> None:
        """Write all sessions and snapshots to ``persist_path``."""
        if not self.persist_path:
            return

        data = {
            "sessions": self._entries,
            "snapshots": self._snapshots,
        }

        self.persist_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.persist_path, "w") as f:
            json.dump(data, f, indent=2)

        logger.debug(f"Persisted state to {self.persist_path}")

    def _maybe_persist(self) -> None:
        if self.auto_persist and self.persist_path:
            self.persist()

    def _load_from_disk(self) -> None:
        """Load sessions from disk, skipping entries that no longer validate."""
        with open(self.persist_path) as f:
            data = json.load(f)

        for session_id, entry in data.get("sessions", {}).items():
            kind = _KINDS.get(entry.get("kind"))
            if kind is None:
                logger.warning(f"Skipping session {session_id} with unknown kind")
                continue
            try:
                kind.model_validate(entry["data"])
            except ValidationError as e:
                logger.error(f"Skipping invalid stored session {session_id}: {e}")
                continue
            self._entries[session_id] = entry

        self._snapshots = data.get("snapshots", {})
        logger.info(f"Loaded {len(self._entries)} sessions from {self.persist_path}")

    def get_stats(self) -> dict:
        """Get overall statistics."""
        completed = sum(1 for e in self._entries.values() if e["completed"])
        return {
            "total_sessions": len(self._entries),
            "completed_sessions": completed,
            "active_sessions": len(self._entries) - completed,
            "total_snapshots": sum(len(s) for s in self._snapshots.values()),
        }
