from __future__ import annotations

from stockprompt_service import prompts
from stockprompt_service.models import GenerationConfig, KeywordDensity, TargetModel


def test_midjourney_instruction_carries_aspect_ratio_parameter():
    config = GenerationConfig(target_model=TargetModel.MIDJOURNEY, aspect_ratio="3:2")

    assert "--ar 3:2 --v 6.0" in prompts.model_instruction(config)


def test_each_target_model_has_its_own_rules():
    rules = {prompts.model_instruction(GenerationConfig(target_model=m)) for m in TargetModel}

    assert len(rules) == len(TargetModel)


def test_keyword_density_rules():
    assert "15-20" in prompts.keyword_rule(KeywordDensity.LOW)
    assert "30-40" in prompts.keyword_rule(KeywordDensity.STANDARD)
    assert "50" in prompts.keyword_rule(KeywordDensity.HIGH)


def test_generation_instruction_reflects_technical_toggle():
    with_tech = prompts.generation_instruction(GenerationConfig(include_technical=True))
    without_tech = prompts.generation_instruction(GenerationConfig(include_technical=False))

    assert "ISO, Aperture" in with_tech
    assert "ISO, Aperture" not in without_tech
    assert "ASPECT RATIO: 16:9" in with_tech


def test_point_instruction_mentions_coordinates():
    assert "X=25%, Y=75%" in prompts.point_instruction(25, 75)
