"""Best-effort audit trail of pipeline runs and their steps.

History writes never change a run's outcome: every storage error is logged
and swallowed here.
"""

from __future__ import annotations

import logging
from types import TracebackType

from memograph.models import PipelineResult, RunStatus, StepStatus
from memograph.store import GraphStore

logger = logging.getLogger(__name__)


class StepRecord:
    """One open step. Set `details` before exit to record a summary."""

    def __init__(self, history: RunHistory, run_id: int | None, name: str, details: str | None):
        self._history = history
        self.run_id = run_id
        self.name = name
        self.details = details
        self.step_id: int | None = None

    def _open(self) -> StepRecord:
        self.step_id = self._history._createStep(self.run_id, self.name, self.details)
        return self

    def _close(self, exc: BaseException | None) -> None:
        if exc is None:
            self._history._updateStep(self.step_id, StepStatus.COMPLETED, self.details, None)
        else:
            self._history._updateStep(self.step_id, StepStatus.ERROR, self.details, str(exc))

    def __enter__(self) -> StepRecord:
        return self._open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._close(exc)

    async def __aenter__(self) -> StepRecord:
        return self._open()

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self._close(exc)


class RunHistory:
    def __init__(self, store: GraphStore):
        self._store = store

    def start(self, observation_ref: str) -> int | None:
        """Open a run record. None when the write fails (steps are then skipped)."""
        try:
            return self._store.createRun(observation_ref)
        except Exception:
            logger.warning("Could not record run start for %s", observation_ref, exc_info=True)
            return None

    def step(self, run_id: int | None, name: str, details: str | None = None) -> StepRecord:
        """Context manager marking a step running, then completed or error.

        Exceptions raised inside the block are recorded and re-raised.
        """
        return StepRecord(self, run_id, name, details)

    def finish(
        self,
        run_id: int | None,
        status: RunStatus,
        result: PipelineResult | None = None,
        error_message: str | None = None,
        action_kind: str | None = None,
        description: str | None = None,
    ) -> None:
        if run_id is None:
            return
        fields: dict[str, object] = {
            "action_kind": action_kind,
            "description": description,
            "error_message": error_message,
        }
        if result is not None:
            fields.update(
                action_kind=result.action_kind.value,
                description=result.description or description,
                facts_saved=result.facts_saved,
                entities_created=result.entities_created,
                entities_matched=result.entities_matched,
                relations_created=result.relations_created,
                generated_response=result.generated_response,
            )
        try:
            self._store.finalizeRun(run_id, status.value, **fields)
        except Exception:
            logger.warning("Could not finalize run %s", run_id, exc_info=True)

    # Step writes, used by StepRecord

    def _createStep(self, run_id: int | None, name: str, details: str | None) -> int | None:
        if run_id is None:
            return None
        try:
            return self._store.createStep(run_id, name, details=details)
        except Exception:
            logger.warning("Could not record step %s for run %s", name, run_id, exc_info=True)
            return None

    def _updateStep(
        self,
        step_id: int | None,
        status: StepStatus,
        details: str | None,
        error_message: str | None,
    ) -> None:
        if step_id is None:
            return
        try:
            self._store.updateStep(
                step_id, status.value, details=details, error_message=error_message
            )
        except Exception:
            logger.warning("Could not update step %s", step_id, exc_info=True)
