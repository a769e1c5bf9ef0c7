"""Exception types shared across the service."""

from __future__ import annotations


class StockPromptError(Exception):
    """Base class for all service errors."""


class GenerationError(StockPromptError):
    """The generation backend failed (bad key, rejected request, malformed response)."""


class RefinementError(StockPromptError):
    """A refinement call failed; the unit keeps its previous result."""


class RefinementInProgressError(StockPromptError):
    """Another refinement is still in flight."""


class PreviewError(StockPromptError):
    """Preview rendering failed."""


class PdfDecompositionError(StockPromptError):
    """A PDF could not be split into page images."""


class UnitNotFoundError(StockPromptError, LookupError):
    def __init__(self, unit_id: str) -> None:
        super().__init__(f"Unknown unit: {unit_id}")
        self.unit_id = unit_id


class UnitStateError(StockPromptError):
    """The operation is not allowed for the unit's current status."""
