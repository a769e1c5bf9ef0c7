"""
Gemini client loading.

The loader:
 - reads the API key and timeout from settings,
 - builds one shared `genai.Client` on first use,
 - exposes `get_genai_client()` for backend callers.
"""

from __future__ import annotations

import logging
from threading import Lock
from typing import Optional

from google import genai
from google.genai import types

from . import config
from .errors import GenerationError

logger = logging.getLogger(__name__)

_CLIENT: Optional[genai.Client] = None
_LOCK = Lock()


def _build_client(settings: config.Settings) -> genai.Client:
    if not settings.gemini_api_key:
        raise GenerationError("No Gemini API key configured; set GEMINI_API_KEY.")

    http_options = None
    if settings.request_timeout_seconds:
        # HttpOptions.timeout is in milliseconds.
        http_options = types.HttpOptions(timeout=settings.request_timeout_seconds * 1000)
    return genai.Client(api_key=settings.gemini_api_key, http_options=http_options)


def get_genai_client() -> genai.Client:
    """
    Return a singleton Gemini client.

    The client is created once on first access and shared by every batch
    run, refinement and assist call.
    """
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT

    with _LOCK:
        if _CLIENT is None:
            settings = config.get_settings()
            _CLIENT = _build_client(settings)
            logger.info("Gemini client ready (text model: %s)", settings.gemini_text_model)
    return _CLIENT
