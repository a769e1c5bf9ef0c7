"""
Per-unit helper calls that never change batch state.

Point tagging suggests keywords for a spot on the image, preview rendering
draws the current prompt, SEO variants propose alternative titles. Callers
decide whether to merge any suggestion back through `mutations`.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from .batch import BatchState
from .errors import PreviewError, UnitNotFoundError, UnitStateError
from .gemini_backend import GenerationBackend
from .models import Metadata, PreviewImage, SeoVariants, Unit, UnitStatus

logger = logging.getLogger(__name__)


def _unit(state: BatchState, unit_id: str) -> Unit:
    unit = state.get_unit(unit_id)
    if unit is None:
        raise UnitNotFoundError(unit_id)
    return unit


def _completed_result(state: BatchState, unit_id: str) -> Metadata:
    unit = _unit(state, unit_id)
    if unit.status is not UnitStatus.COMPLETED or unit.result is None:
        raise UnitStateError(f"Unit {unit_id} has no completed result")
    return unit.result


def _percent(value: float, axis: str) -> int:
    rounded = int(round(value))
    if not 0 <= rounded <= 100:
        raise ValueError(f"{axis} must be a percentage between 0 and 100, got {value}")
    return rounded


def tag_point(
    state: BatchState,
    backend: GenerationBackend,
    unit_id: str,
    x_percent: float,
    y_percent: float,
) -> List[str]:
    """
    Suggest keywords for what is visible at (x%, y%) of the unit's image.

    Coordinates are percentages of the displayed width/height, so they do not
    depend on the viewport. Backend failures degrade to no suggestions.
    """
    x, y = _percent(x_percent, "x"), _percent(y_percent, "y")
    unit = _unit(state, unit_id)
    if not unit.asset.is_image:
        raise UnitStateError(f"Unit {unit_id} is not an image; point tagging needs a raster asset")

    try:
        return backend.point_analyze(unit.asset, x, y)
    except Exception as exc:  # noqa: BLE001
        logger.warning("Point identification failed for unit %s at (%d, %d): %s", unit_id, x, y, exc)
        return []


def render_preview(
    state: BatchState,
    backend: GenerationBackend,
    unit_id: str,
    aspect_ratio: str,
) -> Optional[PreviewImage]:
    """Render the unit's current prompt. Returns None for an empty prompt or an empty response."""
    result = _completed_result(state, unit_id)
    if not result.prompt.strip():
        return None
    try:
        return backend.preview_render(result.prompt, aspect_ratio)
    except PreviewError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.warning("Preview rendering failed for unit %s: %s", unit_id, exc)
        raise PreviewError(str(exc) or "Preview rendering failed") from exc


def suggest_seo_variants(state: BatchState, backend: GenerationBackend, unit_id: str) -> SeoVariants:
    return backend.seo_variants(_completed_result(state, unit_id))
