"""
High-level batch pipeline.

`BatchPipeline` is the entry point used by both the HTTP API and the local
script. It keeps orchestration simple:
files in -> normalize -> units appended -> sequential generation -> results
read back from the batch state, with edits and refinements routed by unit id.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from . import assist, mutations
from .batch import BatchState, create_units
from .config import GenerationConfigStore, Settings, default_generation_config, get_settings
from .gemini_backend import GeminiBackend, GenerationBackend
from .models import Asset, Metadata, PreviewImage, SeoVariant, SeoVariants
from .preprocessing import PageRenderer, PyMuPdfRenderer, normalize_inputs
from .queue_worker import QueueRunner, RunSummary
from .refinement import RefinementController

logger = logging.getLogger(__name__)


@dataclass
class Admission:
    unit_ids: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    skip_notice: Optional[str] = None


class BatchPipeline:
    def __init__(
        self,
        backend: Optional[GenerationBackend] = None,
        settings: Optional[Settings] = None,
        renderer: Optional[PageRenderer] = None,
        state: Optional[BatchState] = None,
        config_store: Optional[GenerationConfigStore] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.backend = backend or GeminiBackend()
        self.renderer = renderer or PyMuPdfRenderer(jpeg_quality=self.settings.pdf_jpeg_quality)
        self.state = state or BatchState()
        self.config_store = config_store or GenerationConfigStore(default_generation_config(self.settings))
        self.runner = QueueRunner(self.state, self.backend, self.config_store)
        self.refiner = RefinementController(self.state, self.backend, self.config_store)

    # ------------------------------------------------------------------
    # Admission and processing
    # ------------------------------------------------------------------
    def admit(self, files: Iterable[Asset]) -> Admission:
        """Normalize a file selection and append the resulting pending units."""
        normalized = normalize_inputs(
            files,
            renderer=self.renderer,
            max_pages=self.settings.pdf_max_pages,
            scale=self.settings.pdf_render_scale,
        )
        units = create_units(normalized.assets)
        self.state.append(units)
        logger.info("Admitted %d units (%d files skipped)", len(units), len(normalized.skipped))
        return Admission(
            unit_ids=[u.id for u in units],
            skipped=normalized.skipped,
            skip_notice=normalized.skip_notice,
        )

    def process(self, unit_ids: Iterable[str]) -> RunSummary:
        return self.runner.run(unit_ids)

    def admit_and_run(self, files: Iterable[Asset], background: bool = True) -> Admission:
        admission = self.admit(files)
        if admission.unit_ids:
            if background:
                self.runner.run_async(admission.unit_ids)
            else:
                self.runner.run(admission.unit_ids)
        return admission

    def clear(self) -> None:
        self.state.clear()

    # ------------------------------------------------------------------
    # Per-unit operations
    # ------------------------------------------------------------------
    def edit_field(self, unit_id: str, field_name: str, value: str) -> Metadata:
        return mutations.edit_field(self.state, unit_id, field_name, value)

    def add_keyword(self, unit_id: str, keyword: str) -> bool:
        return mutations.add_keyword(self.state, unit_id, keyword)

    def remove_keyword(self, unit_id: str, index: int) -> bool:
        return mutations.remove_keyword(self.state, unit_id, index)

    def sort_keywords(self, unit_id: str, mode: str) -> List[str]:
        return mutations.sort_keywords(self.state, unit_id, mode)

    def apply_seo_variant(self, unit_id: str, variant: SeoVariant) -> Metadata:
        return mutations.apply_seo_variant(self.state, unit_id, variant)

    def refine(self, unit_id: str, instruction: str, new_aspect_ratio: str) -> Optional[Metadata]:
        return self.refiner.refine(unit_id, instruction, new_aspect_ratio)

    def tag_point(self, unit_id: str, x_percent: float, y_percent: float) -> List[str]:
        return assist.tag_point(self.state, self.backend, unit_id, x_percent, y_percent)

    def render_preview(self, unit_id: str, aspect_ratio: Optional[str] = None) -> Optional[PreviewImage]:
        ratio = aspect_ratio or self.config_store.get().aspect_ratio
        return assist.render_preview(self.state, self.backend, unit_id, ratio)

    def seo_variants(self, unit_id: str) -> SeoVariants:
        return assist.suggest_seo_variants(self.state, self.backend, unit_id)
