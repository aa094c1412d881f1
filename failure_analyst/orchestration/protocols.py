"""Protocol definitions for the analysis engine's collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from .models import OrchestratorState, SessionState


@runtime_checkable
class SessionStoreProtocol(Protocol):
    """
    Protocol for session persistence.

    The store is consumed by whoever drives the step loop, never by the
    agents themselves. Implementations must return a copy from ``get`` so that
    callers cannot mutate stored state in place.
    """

    def get(self, session_id: str) -> SessionState | OrchestratorState | None:
        """
        Load a session state.

        Args:
            session_id: ID of the session

        Returns:
            The stored state, or None if unknown
        """
        ...

    def put(self, session_id: str, state: SessionState | OrchestratorState) -> None:
        """
        Save a session state, replacing any previous one.

        Args:
            session_id: ID of the session
            state: State to save
        """
        ...

    def complete(self, session_id: str) -> bool:
        """
        Mark a session as completed.

        Args:
            session_id: ID of the session

        Returns:
            True if the session exists
        """
        ...

    def is_completed(self, session_id: str) -> bool:
        """Whether ``complete`` was called for the session."""
        ...

    def list_sessions(self) -> list[dict]:
        """Metadata of all stored sessions."""
        ...

    def delete(self, session_id: str) -> bool:
        """
        Delete a session.

        Args:
            session_id: ID of the session

        Returns:
            True if deleted, False if not found
        """
        ...
