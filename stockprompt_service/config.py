"""
Configuration loader for the StockPrompt batch service.

Environment variables are centralized here to keep the rest of the code
focused on batch orchestration. The shared, user-editable generation
settings live in `GenerationConfigStore`; every generation call reads it at
call time.
"""

from functools import lru_cache
from threading import Lock
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .models import GenerationConfig, KeywordDensity, TargetModel, normalize_aspect_ratio


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Gemini backend
    gemini_api_key: Optional[str] = Field(
        None, validation_alias=AliasChoices("GEMINI_API_KEY", "API_KEY")
    )
    gemini_text_model: str = "gemini-2.5-flash"
    gemini_image_model: str = "gemini-2.5-flash-image"
    request_timeout_seconds: Optional[int] = None

    # PDF decomposition
    pdf_max_pages: int = 10
    pdf_render_scale: float = 2.0
    pdf_jpeg_quality: int = 95

    # Generation defaults
    default_target_model: str = TargetModel.MIDJOURNEY.value
    default_aspect_ratio: str = "16:9"
    default_include_technical: bool = True
    default_keyword_density: str = KeywordDensity.STANDARD.value

    # API
    max_upload_bytes: int = 50 * 1024 * 1024
    download_timeout_seconds: int = 30
    log_level: str = "INFO"

    @field_validator("default_target_model")
    @classmethod
    def validate_target_model(cls, v: str) -> str:
        if v not in {m.value for m in TargetModel}:
            raise ValueError("DEFAULT_TARGET_MODEL must be one of midjourney|stable_diffusion|firefly|dalle")
        return v

    @field_validator("default_keyword_density")
    @classmethod
    def validate_keyword_density(cls, v: str) -> str:
        if v not in {d.value for d in KeywordDensity}:
            raise ValueError("DEFAULT_KEYWORD_DENSITY must be one of low|standard|high")
        return v

    @field_validator("default_aspect_ratio")
    @classmethod
    def validate_aspect_ratio(cls, v: str) -> str:
        return normalize_aspect_ratio(v)

    @field_validator("pdf_max_pages")
    @classmethod
    def validate_max_pages(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PDF_MAX_PAGES must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings to avoid reparsing env on every call."""
    return Settings()


def default_generation_config(settings: Optional[Settings] = None) -> GenerationConfig:
    settings = settings or get_settings()
    return GenerationConfig(
        target_model=TargetModel(settings.default_target_model),
        aspect_ratio=settings.default_aspect_ratio,
        include_technical=settings.default_include_technical,
        keyword_density=KeywordDensity(settings.default_keyword_density),
    )


class GenerationConfigStore:
    """Holds the single shared `GenerationConfig` for the session."""

    def __init__(self, initial: Optional[GenerationConfig] = None) -> None:
        self._config = initial or GenerationConfig()
        self._lock = Lock()

    def get(self) -> GenerationConfig:
        with self._lock:
            return self._config

    def update(self, **changes: Any) -> GenerationConfig:
        """Validate and replace the shared config; unknown fields are rejected."""
        unknown = set(changes) - set(GenerationConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown config fields: {sorted(unknown)}")
        with self._lock:
            merged = {**self._config.model_dump(), **changes}
            self._config = GenerationConfig(**merged)
            return self._config

    def set_aspect_ratio(self, aspect_ratio: str) -> GenerationConfig:
        return self.update(aspect_ratio=aspect_ratio)
