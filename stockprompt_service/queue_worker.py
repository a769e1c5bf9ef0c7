"""
Sequential batch runner.

Drains a freshly admitted run of units through the generation backend one
at a time, in admission order. Each unit is isolated: a failure marks only
that unit as `error` and the run moves on. Runs are serialized, so the
backend never sees two generation calls at once.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Iterable, List

from .batch import BatchState
from .config import GenerationConfigStore
from .gemini_backend import GenerationBackend
from .models import UnitStatus

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Failed to process"


@dataclass
class RunSummary:
    completed: int = 0
    failed: int = 0
    skipped: int = 0


class QueueRunner:
    def __init__(
        self,
        state: BatchState,
        backend: GenerationBackend,
        config_store: GenerationConfigStore,
    ) -> None:
        self.state = state
        self.backend = backend
        self.config_store = config_store
        self._run_lock = threading.Lock()

    def run(self, unit_ids: Iterable[str]) -> RunSummary:
        """
        Process the given units synchronously and return a summary.

        Units that were removed from the queue before their turn (batch
        cleared) are skipped without calling the backend.
        """
        ids: List[str] = list(unit_ids)
        summary = RunSummary()
        token = self.state.begin_run()
        try:
            with self._run_lock:
                for unit_id in ids:
                    self._process_one(unit_id, summary)
        finally:
            self.state.end_run(token)

        logger.info(
            "Batch run finished: %d completed, %d failed, %d skipped",
            summary.completed,
            summary.failed,
            summary.skipped,
        )
        return summary

    def run_async(self, unit_ids: Iterable[str]) -> threading.Thread:
        """Start `run` on a daemon thread and return the thread."""
        ids = list(unit_ids)
        worker = threading.Thread(target=self.run, args=(ids,), name="stockprompt-runner", daemon=True)
        worker.start()
        return worker

    def _process_one(self, unit_id: str, summary: RunSummary) -> None:
        unit = self.state.get_unit(unit_id)
        if unit is None or unit.status is not UnitStatus.PENDING:
            summary.skipped += 1
            return

        if not self.state.update_unit(unit_id, status=UnitStatus.PROCESSING):
            summary.skipped += 1
            return

        # Read at call time so config changes apply to units not yet started.
        config = self.config_store.get()
        logger.info("Processing unit %s (%s) for %s", unit_id, unit.asset.filename, config.target_model.value)

        try:
            metadata = self.backend.generate(unit.asset, config)
        except Exception as exc:  # noqa: BLE001
            message = str(exc) or GENERIC_FAILURE_MESSAGE
            logger.warning("Generation failed for unit %s: %s", unit_id, message)
            self.state.update_unit(unit_id, status=UnitStatus.ERROR, error_message=message)
            summary.failed += 1
            return

        metadata = metadata.model_copy(update={"generated_for_model": config.target_model})
        self.state.update_unit(unit_id, status=UnitStatus.COMPLETED, result=metadata)
        summary.completed += 1
