"""
Analysis runner: the step loop around the Orchestrator.

Loads a checkpoint from the session store, executes one Orchestrator step,
saves the result and marks the session completed when done. Callers must not
run two steps for the same session id at the same time.
"""

from __future__ import annotations

import logging
import uuid
from typing import TYPE_CHECKING

from .models import OrchestratorState, OrchestratorStepResult, TimeWindow

if TYPE_CHECKING:
    from .orchestrator import Orchestrator
    from .protocols import SessionStoreProtocol

logger = logging.getLogger(__name__)


class AnalysisRunner:
    """Drives persisted analyses one step at a time."""

    def __init__(self, orchestrator: Orchestrator, store: SessionStoreProtocol):
        self.orchestrator = orchestrator
        self.store = store

    async def start(
        self,
        problem: str,
        session_id: str | None = None,
        window: TimeWindow | None = None,
    ) -> str:
        """
        Register a new analysis without running any step.

        Args:
            problem: Problem statement
            session_id: Optional explicit ID, generated if omitted
            window: Incident window the registry's tools query, stored so
                a resumed run can rebuild the same tools

        Returns:
            The session ID
        """
        session_id = session_id or uuid.uuid4().hex
        self.store.put(session_id, self.orchestrator.new_state(problem, window))
        logger.info(f"Started analysis {session_id}")
        return session_id

    async def run_step(self, session_id: str) -> OrchestratorStepResult:
        """
        Execute exactly one step of a stored analysis.

        Args:
            session_id: ID of the analysis

        Returns:
            Result of the step

        Raises:
            KeyError: If the session is unknown
        """
        state = self._load(session_id)
        result = await self.orchestrator.step(state)
        self.store.put(session_id, result.state)

        if result.done and not self.store.is_completed(session_id):
            self.store.complete(session_id)

        return result

    async def run(self, session_id: str, max_steps: int = 50) -> OrchestratorStepResult:
        """
        Execute steps until the analysis is done or ``max_steps`` is used up.

        An analysis that is not done can be resumed later with another call.

        Args:
            session_id: ID of the analysis
            max_steps: Step budget for this call

        Returns:
            Result of the last step taken
        """
        state = self._load(session_id)
        result = OrchestratorStepResult(
            done=state.is_done, state=state, final_answer=state.final_answer
        )

        for step_number in range(1, max_steps + 1):
            if result.done:
                break
            result = await self.run_step(session_id)
            logger.info(
                f"Session {session_id} step {step_number}: "
                f"{'done' if result.done else result.next_action.value if result.next_action else 'continuing'}"
            )

        return result

    def _load(self, session_id: str) -> OrchestratorState:
        state = self.store.get(session_id)
        if state is None:
            raise KeyError(f"Unknown session: {session_id}")
        if not isinstance(state, OrchestratorState):
            raise KeyError(f"Session {session_id} is not an analysis session")
        return state
