"""
Refinement of a completed unit's metadata with a free-text instruction.

A successful refinement replaces the unit's result and makes the chosen
aspect ratio the new shared default. A failed one leaves the unit exactly
as it was.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from .batch import BatchState
from .config import GenerationConfigStore
from .errors import RefinementError, RefinementInProgressError, UnitNotFoundError, UnitStateError
from .gemini_backend import GenerationBackend
from .models import GenerationConfig, Metadata, UnitStatus

logger = logging.getLogger(__name__)


class RefinementController:
    def __init__(
        self,
        state: BatchState,
        backend: GenerationBackend,
        config_store: GenerationConfigStore,
    ) -> None:
        self.state = state
        self.backend = backend
        self.config_store = config_store
        self._refining = threading.Lock()

    @property
    def is_refining(self) -> bool:
        return self._refining.locked()

    def refine(self, unit_id: str, instruction: str, new_aspect_ratio: str) -> Optional[Metadata]:
        """
        Regenerate one unit's metadata following `instruction`.

        Returns the new metadata, or None when the instruction is blank (no
        backend call is made).

        Raises:
            UnitNotFoundError / UnitStateError: the unit is missing or not completed.
            RefinementInProgressError: another refinement is still running.
            RefinementError: the backend call failed; the unit is unchanged.
        """
        instruction = (instruction or "").strip()
        if not instruction:
            return None

        unit = self.state.get_unit(unit_id)
        if unit is None:
            raise UnitNotFoundError(unit_id)
        if unit.status is not UnitStatus.COMPLETED or unit.result is None:
            raise UnitStateError(f"Unit {unit_id} is {unit.status.value}; only completed units can be refined")

        current = self.config_store.get()
        request_config = GenerationConfig(**{**current.model_dump(), "aspect_ratio": new_aspect_ratio})

        if not self._refining.acquire(blocking=False):
            raise RefinementInProgressError("A refinement is already running")
        try:
            logger.info("Refining unit %s: %s", unit_id, instruction)
            try:
                refined = self.backend.refine(unit.result, instruction, request_config)
            except Exception as exc:  # noqa: BLE001
                logger.warning("Refinement failed for unit %s: %s", unit_id, exc)
                raise RefinementError(str(exc) or "Refinement failed") from exc

            refined = refined.model_copy(update={"generated_for_model": request_config.target_model})
            if self.state.update_unit(unit_id, result=refined):
                self.config_store.set_aspect_ratio(request_config.aspect_ratio)
            return refined
        finally:
            self._refining.release()
