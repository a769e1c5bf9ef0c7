"""
Unit factory and the in-memory batch queue.

`BatchState` is the single owner of every unit. Components never keep their
own copy of a unit: they look it up by id and write back through
`update_unit` (inert when the id has since been cleared) or, for edits that
depend on the current result, `modify_result`.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from threading import RLock
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple

from .errors import UnitNotFoundError, UnitStateError
from .models import Asset, Metadata, Unit, UnitStatus

logger = logging.getLogger(__name__)


def new_unit_id() -> str:
    return uuid.uuid4().hex


def create_units(assets: Iterable[Asset]) -> List[Unit]:
    """Allocate fresh pending units, one per asset."""
    return [Unit(id=new_unit_id(), asset=asset) for asset in assets]


def default_active_id(current: Optional[str], new_units: Sequence[Unit]) -> Optional[str]:
    """Keep the current selection; otherwise select the first newly admitted unit."""
    if current is not None:
        return current
    return new_units[0].id if new_units else None


@dataclass(frozen=True)
class BatchSnapshot:
    units: Tuple[Unit, ...]
    active_unit_id: Optional[str]
    is_processing: bool
    version: int


class BatchState:
    """Ordered units plus the active-unit pointer, mutated only through named operations."""

    def __init__(self) -> None:
        self._lock = RLock()
        self._units: List[Unit] = []
        self._active_unit_id: Optional[str] = None
        self._active_runs = 0
        self._epoch = 0
        self._version = 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    @property
    def units(self) -> Tuple[Unit, ...]:
        with self._lock:
            return tuple(self._units)

    @property
    def active_unit_id(self) -> Optional[str]:
        with self._lock:
            return self._active_unit_id

    @property
    def is_processing(self) -> bool:
        with self._lock:
            return self._active_runs > 0

    @property
    def version(self) -> int:
        with self._lock:
            return self._version

    def get_unit(self, unit_id: str) -> Optional[Unit]:
        with self._lock:
            return next((u for u in self._units if u.id == unit_id), None)

    def active_unit(self) -> Optional[Unit]:
        """The selected unit, falling back to the first unit when nothing is selected."""
        with self._lock:
            if not self._units:
                return None
            return self.get_unit(self._active_unit_id or "") or self._units[0]

    def completed_units(self) -> List[Unit]:
        with self._lock:
            return [u for u in self._units if u.status is UnitStatus.COMPLETED]

    def snapshot(self) -> BatchSnapshot:
        with self._lock:
            return BatchSnapshot(
                units=tuple(self._units),
                active_unit_id=self._active_unit_id,
                is_processing=self._active_runs > 0,
                version=self._version,
            )

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def append(self, new_units: Sequence[Unit]) -> None:
        if not new_units:
            return
        with self._lock:
            self._units.extend(new_units)
            self._active_unit_id = default_active_id(self._active_unit_id, new_units)
            self._version += 1
        logger.debug("Appended %d units", len(new_units))

    def select_unit(self, unit_id: str) -> None:
        with self._lock:
            self._active_unit_id = unit_id
            self._version += 1

    def clear(self) -> None:
        """Drop every unit. In-flight calls are not cancelled; their updates become no-ops."""
        with self._lock:
            self._units = []
            self._active_unit_id = None
            self._active_runs = 0
            self._epoch += 1
            self._version += 1
        logger.info("Batch cleared")

    def update_unit(self, unit_id: str, **patch: Any) -> bool:
        """
        Replace one unit's fields by id.

        Returns False (and changes nothing) when the id is no longer queued.
        Raises ValueError for an attempt to change the id or for a patch that
        breaks the unit's status/result invariant.
        """
        if "id" in patch:
            raise ValueError("A unit's id cannot be changed")
        with self._lock:
            for index, unit in enumerate(self._units):
                if unit.id == unit_id:
                    self._units[index] = replace(unit, **patch)
                    self._version += 1
                    return True
        logger.debug("Ignoring update for unit %s; it is no longer queued", unit_id)
        return False

    def modify_result(
        self, unit_id: str, transform: Callable[[Metadata], Optional[Metadata]]
    ) -> Optional[Metadata]:
        """
        Read-transform-write a completed unit's result under one lock hold.

        `transform` receives the current result and returns its replacement,
        or None to leave the unit as it is. Returns the stored replacement, or
        None when nothing changed.
        """
        with self._lock:
            unit = self.get_unit(unit_id)
            if unit is None:
                raise UnitNotFoundError(unit_id)
            if unit.status is not UnitStatus.COMPLETED or unit.result is None:
                raise UnitStateError(f"Unit {unit_id} is {unit.status.value}; only completed units can be edited")
            updated = transform(unit.result)
            if updated is None:
                return None
            self.update_unit(unit_id, result=updated)
            return updated

    # ------------------------------------------------------------------
    # Runner bookkeeping
    # ------------------------------------------------------------------
    def begin_run(self) -> int:
        """Mark a runner pass as active; the returned token is handed back to `end_run`."""
        with self._lock:
            self._active_runs += 1
            self._version += 1
            return self._epoch

    def end_run(self, token: int) -> None:
        with self._lock:
            if token != self._epoch:
                return
            self._active_runs = max(0, self._active_runs - 1)
            self._version += 1
