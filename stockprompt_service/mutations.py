"""
In-place edits to a completed unit's result.

Every operation hands a transform to `BatchState.modify_result`, so the
completed-unit check, the new `Metadata` and the write happen under one lock
hold. Status and other units are never touched.
"""

from __future__ import annotations

from typing import List, Optional

from .batch import BatchState
from .models import Metadata, SeoVariant

EDITABLE_FIELDS = frozenset({"title", "description", "prompt", "category", "technical_settings"})
SORT_MODES = ("alpha", "length")


def edit_field(state: BatchState, unit_id: str, field: str, value: str) -> Metadata:
    if field not in EDITABLE_FIELDS:
        raise ValueError(f"Field {field!r} is not editable")
    if not isinstance(value, str):
        raise TypeError(f"{field} must be a string")
    return state.modify_result(unit_id, lambda current: current.model_copy(update={field: value}))


def add_keyword(state: BatchState, unit_id: str, keyword: str) -> bool:
    """Append a trimmed keyword; returns False when it is blank or already present."""
    cleaned = keyword.strip()

    def append(current: Metadata) -> Optional[Metadata]:
        if not cleaned or cleaned in current.keywords:
            return None
        return current.model_copy(update={"keywords": [*current.keywords, cleaned]})

    return state.modify_result(unit_id, append) is not None


def remove_keyword(state: BatchState, unit_id: str, index: int) -> bool:
    def drop(current: Metadata) -> Optional[Metadata]:
        if not 0 <= index < len(current.keywords):
            return None
        return current.model_copy(update={"keywords": current.keywords[:index] + current.keywords[index + 1 :]})

    return state.modify_result(unit_id, drop) is not None


def sort_keywords(state: BatchState, unit_id: str, mode: str) -> List[str]:
    """Stable sort, alphabetically (case-insensitive) or by ascending length."""
    if mode == "alpha":
        key = str.casefold
    elif mode == "length":
        key = len
    else:
        raise ValueError(f"Sort mode must be one of {SORT_MODES}, got {mode!r}")
    result = state.modify_result(
        unit_id, lambda current: current.model_copy(update={"keywords": sorted(current.keywords, key=key)})
    )
    return list(result.keywords)


def apply_seo_variant(state: BatchState, unit_id: str, variant: SeoVariant) -> Metadata:
    return state.modify_result(
        unit_id,
        lambda current: current.model_copy(update={"title": variant.title, "description": variant.description}),
    )
