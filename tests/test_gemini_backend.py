from __future__ import annotations

import json
from types import SimpleNamespace

import pytest

from stockprompt_service.errors import GenerationError, PreviewError
from stockprompt_service.gemini_backend import GeminiBackend, snap_aspect_ratio
from stockprompt_service.models import GenerationConfig, TargetModel
from tests.fakes import jpeg_asset, make_metadata


# -----------------------------
# Test doubles
# -----------------------------
class FakeModels:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def generate_content(self, **kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        return self.response


def make_backend(response=None, error=None):
    models = FakeModels(response=response, error=error)
    client = SimpleNamespace(models=models)
    return GeminiBackend(client=client, text_model="text-model", image_model="image-model"), models


METADATA_JSON = json.dumps(
    {
        "title": "Misty mountain lake",
        "description": "Calm alpine lake under morning fog.",
        "ai_prompt": "misty alpine lake --ar 16:9 --v 6.0",
        "keywords": ["lake", "fog", "mountain"],
        "category": "Nature",
    }
)


# -----------------------------
# Tests
# -----------------------------
@pytest.mark.parametrize(
    "ratio, expected",
    [("16:9", "16:9"), ("9:16", "9:16"), ("3:2", "4:3"), ("4:3", "4:3"), ("2:3", "3:4"), ("21:9", "1:1"), ("", "1:1")],
)
def test_snap_aspect_ratio(ratio, expected):
    assert snap_aspect_ratio(ratio) == expected


def test_generate_parses_metadata_and_tags_model():
    backend, models = make_backend(SimpleNamespace(text=METADATA_JSON))
    config = GenerationConfig(target_model=TargetModel.DALLE)

    metadata = backend.generate(jpeg_asset("lake.jpg"), config)

    assert metadata.prompt == "misty alpine lake --ar 16:9 --v 6.0"
    assert metadata.technical_settings is None
    assert metadata.generated_for_model is TargetModel.DALLE
    call = models.calls[0]
    assert call["model"] == "text-model"
    assert call["config"].response_mime_type == "application/json"
    assert "TARGET MODEL: dalle" in call["config"].system_instruction


def test_generate_without_text_raises_generation_error():
    backend, _ = make_backend(SimpleNamespace(text=None))

    with pytest.raises(GenerationError, match="No response text"):
        backend.generate(jpeg_asset(), GenerationConfig())


def test_generate_with_malformed_json_raises_generation_error():
    backend, _ = make_backend(SimpleNamespace(text='{"title": "only a title"}'))

    with pytest.raises(GenerationError, match="malformed"):
        backend.generate(jpeg_asset(), GenerationConfig())


def test_generate_wraps_client_failures():
    backend, _ = make_backend(error=RuntimeError("401 API key not valid"))

    with pytest.raises(GenerationError, match="photo.jpg"):
        backend.generate(jpeg_asset(), GenerationConfig())


def test_refine_sends_current_metadata_and_instruction():
    backend, models = make_backend(SimpleNamespace(text=METADATA_JSON))

    backend.refine(make_metadata(), "add a rainbow", GenerationConfig(aspect_ratio="9:16"))

    instruction = models.calls[0]["config"].system_instruction
    assert 'REFINEMENT INSTRUCTION: "add a rainbow"' in instruction
    assert "NEW ASPECT RATIO: 9:16" in instruction
    assert '"ai_prompt"' in instruction


def test_point_analyze_returns_keywords():
    backend, _ = make_backend(SimpleNamespace(text='{"keywords": ["pebble", "shore"]}'))

    assert backend.point_analyze(jpeg_asset(), 10, 90) == ["pebble", "shore"]


@pytest.mark.parametrize("text", ["[\"pebble\"]", "{\"keywords\": \"pebble\"}"])
def test_point_analyze_rejects_malformed_keywords(text):
    backend, _ = make_backend(SimpleNamespace(text=text))

    with pytest.raises(GenerationError):
        backend.point_analyze(jpeg_asset(), 10, 90)


def test_preview_render_extracts_inline_image():
    part = SimpleNamespace(inline_data=SimpleNamespace(data=b"img", mime_type="image/png"))
    response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part]))])
    backend, models = make_backend(response)

    image = backend.preview_render("a prompt", "3:2")

    assert image.data == b"img"
    assert models.calls[0]["model"] == "image-model"
    assert models.calls[0]["config"].image_config.aspect_ratio == "4:3"


def test_preview_render_returns_none_without_image_parts():
    text_part = SimpleNamespace(inline_data=None)
    response = SimpleNamespace(candidates=[SimpleNamespace(content=SimpleNamespace(parts=[text_part]))])
    backend, _ = make_backend(response)

    assert backend.preview_render("a prompt", "1:1") is None


def test_preview_render_failure_raises_preview_error():
    backend, _ = make_backend(error=RuntimeError("unavailable"))

    with pytest.raises(PreviewError):
        backend.preview_render("a prompt", "1:1")


def test_seo_variants_parsed():
    payload = {
        key: {"title": f"{key} title", "description": f"{key} description"}
        for key in ("descriptive", "conceptual", "commercial")
    }
    backend, _ = make_backend(SimpleNamespace(text=json.dumps(payload)))

    variants = backend.seo_variants(make_metadata())

    assert variants.conceptual.title == "conceptual title"
