"""
Generation backend.

`GenerationBackend` is the capability the batch engine depends on;
`GeminiBackend` implements it on top of `google-genai`. Request shaping and
response parsing stay in this module so the orchestration code only ever
sees `Metadata` values or a `GenerationError`.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Protocol

from google.genai import types
from pydantic import ValidationError

from . import config, prompts
from .errors import GenerationError, PreviewError
from .model_loader import get_genai_client
from .models import Asset, GenerationConfig, Metadata, PointKeywords, PreviewImage, SeoVariants

logger = logging.getLogger(__name__)

PREVIEW_ASPECT_RATIOS = {
    "1:1": "1:1",
    "16:9": "16:9",
    "9:16": "9:16",
    "4:3": "4:3",
    "3:2": "4:3",
    "3:4": "3:4",
    "2:3": "3:4",
}


class GenerationBackend(Protocol):
    def generate(self, asset: Asset, config: GenerationConfig) -> Metadata:
        ...

    def refine(self, metadata: Metadata, instruction: str, config: GenerationConfig) -> Metadata:
        ...

    def point_analyze(self, asset: Asset, x_percent: int, y_percent: int) -> List[str]:
        ...

    def preview_render(self, prompt: str, aspect_ratio: str) -> Optional[PreviewImage]:
        ...

    def seo_variants(self, metadata: Metadata) -> SeoVariants:
        ...


def snap_aspect_ratio(aspect_ratio: str) -> str:
    """Map a ratio onto the set the image model supports; unknown ratios become 1:1."""
    return PREVIEW_ASPECT_RATIOS.get((aspect_ratio or "").replace(" ", ""), "1:1")


def _string() -> types.Schema:
    return types.Schema(type=types.Type.STRING)


def _metadata_schema() -> types.Schema:
    return types.Schema(
        type=types.Type.OBJECT,
        properties={
            "title": _string(),
            "description": _string(),
            "ai_prompt": _string(),
            "keywords": types.Schema(type=types.Type.ARRAY, items=_string()),
            "category": _string(),
            "technical_settings": _string(),
        },
        required=["title", "description", "ai_prompt", "keywords", "category"],
    )


def _keywords_schema() -> types.Schema:
    return types.Schema(
        type=types.Type.OBJECT,
        properties={"keywords": types.Schema(type=types.Type.ARRAY, items=_string())},
    )


def _seo_schema() -> types.Schema:
    variant = types.Schema(
        type=types.Type.OBJECT,
        properties={"title": _string(), "description": _string()},
    )
    return types.Schema(
        type=types.Type.OBJECT,
        properties={"descriptive": variant, "conceptual": variant, "commercial": variant},
    )


class GeminiBackend:
    """Gemini implementation of `GenerationBackend`."""

    def __init__(
        self,
        client: Any = None,
        text_model: Optional[str] = None,
        image_model: Optional[str] = None,
    ) -> None:
        settings = config.get_settings()
        self._client = client
        self.text_model = text_model or settings.gemini_text_model
        self.image_model = image_model or settings.gemini_image_model

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = get_genai_client()
        return self._client

    def _json_call(self, contents: Any, schema: types.Schema, system_instruction: Optional[str] = None) -> str:
        response = self.client.models.generate_content(
            model=self.text_model,
            contents=contents,
            config=types.GenerateContentConfig(
                system_instruction=system_instruction,
                response_mime_type="application/json",
                response_schema=schema,
            ),
        )
        if not response.text:
            raise GenerationError("No response text received from Gemini.")
        return response.text

    def _parse_metadata(self, text: str, config: GenerationConfig) -> Metadata:
        try:
            metadata = Metadata.model_validate_json(text)
        except ValidationError as exc:
            raise GenerationError(f"Gemini returned malformed metadata: {exc.error_count()} invalid field(s)") from exc
        return metadata.model_copy(update={"generated_for_model": config.target_model})

    def generate(self, asset: Asset, config: GenerationConfig) -> Metadata:
        try:
            text = self._json_call(
                contents=[
                    types.Part.from_bytes(data=asset.data, mime_type=asset.media_type),
                    prompts.GENERATE_USER_TEXT,
                ],
                schema=_metadata_schema(),
                system_instruction=prompts.generation_instruction(config),
            )
            return self._parse_metadata(text, config)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Gemini analysis failed for %s", asset.filename)
            raise GenerationError(
                f"Failed to analyze {asset.filename}. Make sure the API key is valid and the file is not corrupted."
            ) from exc

    def refine(self, metadata: Metadata, instruction: str, config: GenerationConfig) -> Metadata:
        try:
            text = self._json_call(
                contents=prompts.REFINE_USER_TEXT,
                schema=_metadata_schema(),
                system_instruction=prompts.refinement_instruction(metadata, instruction, config),
            )
            return self._parse_metadata(text, config)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("Gemini refinement failed")
            raise GenerationError("Failed to refine the prompt.") from exc

    def point_analyze(self, asset: Asset, x_percent: int, y_percent: int) -> List[str]:
        text = self._json_call(
            contents=[
                types.Part.from_bytes(data=asset.data, mime_type=asset.media_type),
                prompts.point_instruction(x_percent, y_percent),
            ],
            schema=_keywords_schema(),
        )
        try:
            return PointKeywords.model_validate_json(text).keywords
        except ValidationError as exc:
            raise GenerationError("Gemini returned malformed point keywords") from exc

    def preview_render(self, prompt: str, aspect_ratio: str) -> Optional[PreviewImage]:
        try:
            response = self.client.models.generate_content(
                model=self.image_model,
                contents=prompt,
                config=types.GenerateContentConfig(
                    response_modalities=["IMAGE"],
                    image_config=types.ImageConfig(aspect_ratio=snap_aspect_ratio(aspect_ratio)),
                ),
            )
        except Exception as exc:  # noqa: BLE001
            logger.exception("Preview generation failed")
            raise PreviewError("Failed to create the preview image.") from exc

        candidates = response.candidates or []
        if not candidates or candidates[0].content is None:
            return None
        for part in candidates[0].content.parts or []:
            if part.inline_data is not None and part.inline_data.data:
                return PreviewImage(
                    mime_type=part.inline_data.mime_type or "image/png",
                    data=part.inline_data.data,
                )
        return None

    def seo_variants(self, metadata: Metadata) -> SeoVariants:
        try:
            text = self._json_call(contents=prompts.seo_instruction(metadata), schema=_seo_schema())
            return SeoVariants.model_validate_json(text)
        except GenerationError:
            raise
        except Exception as exc:  # noqa: BLE001
            logger.exception("SEO variation generation failed")
            raise GenerationError("Failed to generate SEO variations.") from exc
