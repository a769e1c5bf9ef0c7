"""
Data model for batches of stock-metadata work.

`Asset` and `Unit` are plain frozen dataclasses owned by the batch queue;
every state change replaces the whole `Unit`. `Metadata` and
`GenerationConfig` are pydantic models because they cross the backend and
HTTP boundaries as JSON.
"""

from __future__ import annotations

import base64
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

_ASPECT_RATIO_RE = re.compile(r"^\s*(\d+)\s*:\s*(\d+)\s*$")


class TargetModel(str, Enum):
    MIDJOURNEY = "midjourney"
    STABLE_DIFFUSION = "stable_diffusion"
    FIREFLY = "firefly"
    DALLE = "dalle"

    @property
    def label(self) -> str:
        return _MODEL_LABELS[self]


_MODEL_LABELS = {
    TargetModel.MIDJOURNEY: "Midjourney v6",
    TargetModel.STABLE_DIFFUSION: "Stable Diffusion XL",
    TargetModel.FIREFLY: "Adobe Firefly",
    TargetModel.DALLE: "DALL-E 3",
}
GENERIC_MODEL_LABEL = "Generative AI"


class KeywordDensity(str, Enum):
    LOW = "low"
    STANDARD = "standard"
    HIGH = "high"


class UnitStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


def normalize_aspect_ratio(value: str) -> str:
    """Validate a `W:H` token and return it without whitespace."""
    match = _ASPECT_RATIO_RE.match(value or "")
    if not match:
        raise ValueError(f"Aspect ratio must look like W:H, got {value!r}")
    width, height = int(match.group(1)), int(match.group(2))
    if width <= 0 or height <= 0:
        raise ValueError(f"Aspect ratio sides must be positive, got {value!r}")
    return f"{width}:{height}"


class GenerationConfig(BaseModel):
    """Settings read by every generation call."""

    model_config = ConfigDict(frozen=True)

    target_model: TargetModel = TargetModel.MIDJOURNEY
    aspect_ratio: str = "16:9"
    include_technical: bool = True
    keyword_density: KeywordDensity = KeywordDensity.STANDARD

    @field_validator("aspect_ratio")
    @classmethod
    def validate_aspect_ratio(cls, v: str) -> str:
        return normalize_aspect_ratio(v)


class Metadata(BaseModel):
    """
    Generated stock metadata for one unit.

    Wire names follow the backend schema (`ai_prompt`, `used_model`); both the
    wire names and the attribute names are accepted when parsing.
    """

    model_config = ConfigDict(populate_by_name=True)

    title: str
    description: str
    prompt: str = Field(alias="ai_prompt")
    keywords: List[str] = Field(default_factory=list)
    category: str
    technical_settings: Optional[str] = None
    generated_for_model: Optional[TargetModel] = Field(default=None, alias="used_model")

    @property
    def model_label(self) -> str:
        if self.generated_for_model is None:
            return GENERIC_MODEL_LABEL
        return self.generated_for_model.label


class SeoVariant(BaseModel):
    title: str
    description: str


class SeoVariants(BaseModel):
    descriptive: SeoVariant
    conceptual: SeoVariant
    commercial: SeoVariant


class PointKeywords(BaseModel):
    keywords: List[str] = Field(default_factory=list)


@dataclass(frozen=True)
class Asset:
    filename: str
    media_type: str
    data: bytes

    @property
    def is_image(self) -> bool:
        return self.media_type.startswith("image/")

    def __repr__(self) -> str:  # pragma: no cover - utility repr
        return f"<Asset '{self.filename}' {self.media_type} ({len(self.data)} bytes)>"


@dataclass(frozen=True)
class Unit:
    """
    One image or page awaiting or having undergone generation.

    `result` is set iff status is completed; `error_message` is set iff
    status is error.
    """

    id: str
    asset: Asset
    status: UnitStatus = UnitStatus.PENDING
    result: Optional[Metadata] = None
    error_message: Optional[str] = None

    def __post_init__(self) -> None:
        completed = self.status is UnitStatus.COMPLETED
        failed = self.status is UnitStatus.ERROR
        if (self.result is not None) != completed:
            raise ValueError(f"Unit {self.id}: result must be set iff status is completed")
        if (self.error_message is not None) != failed:
            raise ValueError(f"Unit {self.id}: error_message must be set iff status is error")


@dataclass(frozen=True)
class PreviewImage:
    mime_type: str
    data: bytes

    def as_data_url(self) -> str:
        encoded = base64.b64encode(self.data).decode("ascii")
        return f"data:{self.mime_type};base64,{encoded}"
