"""Instruction text sent to the Gemini backend, one builder per call type."""

from __future__ import annotations

import json

from .models import GenerationConfig, KeywordDensity, Metadata, TargetModel

GENERATE_USER_TEXT = (
    "Analyze this file and generate professional stock metadata and a generative AI prompt "
    "according to the configuration."
)
REFINE_USER_TEXT = "Refine the metadata based on the instructions."


def model_instruction(config: GenerationConfig) -> str:
    """How the `ai_prompt` field should be phrased for the target model."""
    if config.target_model is TargetModel.MIDJOURNEY:
        return (
            "Format the 'ai_prompt' specifically for Midjourney v6. Use parameters like "
            f"--ar {config.aspect_ratio} --v 6.0 at the end of the prompt. Use meaningful phrasing, "
            'avoiding filler words like "picture of".'
        )
    if config.target_model is TargetModel.STABLE_DIFFUSION:
        return (
            "Format the 'ai_prompt' for Stable Diffusion XL. Use comma-separated tags and phrases. "
            "Emphasize key elements with (parentheses) if needed. Ensure the style is described first."
        )
    if config.target_model is TargetModel.FIREFLY:
        return (
            "Format the 'ai_prompt' for Adobe Firefly Image 3. Use natural language, descriptive "
            "sentences focusing on lighting, composition, and mood."
        )
    return (
        "Format the 'ai_prompt' for DALL-E 3. Use a detailed, descriptive paragraph that paints a "
        "full scene including specific details about the subject and environment."
    )


def keyword_rule(density: KeywordDensity) -> str:
    if density is KeywordDensity.LOW:
        return (
            "A focused list of 15-20 highly relevant keywords/tags, ranked by relevance. "
            "Focus on the core subject only."
        )
    if density is KeywordDensity.HIGH:
        return (
            "An extensive list of 50 keywords/tags, ranked by relevance. Cover all aspects including "
            "synonyms, conceptual tags, emotions, and technical attributes."
        )
    return "A comprehensive list of 30-40 relevant keywords/tags, ranked by relevance."


def technical_rule(include_technical: bool) -> str:
    if include_technical:
        return (
            "Include specific camera settings (ISO, Aperture, Shutter Speed, Lens type) in the "
            "'technical_settings' field and weave relevant technical terms (like 'depth of field', "
            "'bokeh', '85mm') into the prompt where appropriate for photorealism."
        )
    return (
        "Keep the prompt focused on artistic style and subject matter. Only use technical terms if "
        "they define the art style (e.g. 'macro', 'wide angle')."
    )


def generation_instruction(config: GenerationConfig) -> str:
    return f"""
You are an expert Microstock Contributor and AI Artist (Midjourney/Stable Diffusion/Adobe Firefly expert).
Your task is to analyze the input image or PDF and generate metadata optimized for selling this asset on
Adobe Stock, Shutterstock, and Getty Images.

CRITICAL: All output fields MUST be in ENGLISH, as this is the standard language for global stock platforms.

TARGET MODEL: {config.target_model.value}
ASPECT RATIO: {config.aspect_ratio}

INSTRUCTIONS:
{model_instruction(config)}
{technical_rule(config.include_technical)}

Provide the following:
1. title: A catchy, commercial title (5-10 words).
2. description: A clear description for SEO (15-25 words).
3. ai_prompt: The generative prompt based on the TARGET MODEL instructions above.
4. keywords: {keyword_rule(config.keyword_density)}
5. category: The best category for this asset (e.g., Business, Lifestyle, Technology).
6. technical_settings: Simulated camera settings or art style description.
""".strip()


def refinement_instruction(current: Metadata, instruction: str, config: GenerationConfig) -> str:
    current_json = json.dumps(current.model_dump(mode="json", by_alias=True, exclude={"generated_for_model"}))
    return f"""
You are an expert AI Artist and Stock Contributor.
Update the provided metadata based on the user's refinement instruction.

CURRENT METADATA JSON:
{current_json}

REFINEMENT INSTRUCTION: "{instruction}"

TARGET MODEL: {config.target_model.value}
NEW ASPECT RATIO: {config.aspect_ratio}
KEYWORD DENSITY SETTING: {config.keyword_density.value}

MODEL RULES:
{model_instruction(config)}

REQUIREMENTS:
1. Update 'ai_prompt' to reflect the instruction and new aspect ratio.
2. Update 'keywords' if the instruction adds/removes subjects or changes style.
3. Ensure keyword count matches preference: {keyword_rule(config.keyword_density)}
4. Keep other fields consistent unless the instruction implies changing them.
5. Ensure output is valid JSON matching the schema.
""".strip()


def point_instruction(x_percent: int, y_percent: int) -> str:
    return f"""
Look at the image.
Identify the specific object, texture, color, or detail located exactly at relative coordinates: X={x_percent}%, Y={y_percent}%.
(X is horizontal from left 0 to 100, Y is vertical from top 0 to 100).

Provide 3-5 specific, high-value stock photography keywords describing EXACTLY what is at that point.
Return strictly a JSON object: {{ "keywords": ["keyword1", "keyword2", ...] }}
""".strip()


def seo_instruction(current: Metadata) -> str:
    return f"""
Based on the following existing metadata, generate 3 DISTINCT variations of Title and Description for stock photography SEO.

CURRENT DATA:
Title: {current.title}
Description: {current.description}
Keywords: {", ".join(current.keywords)}

Provide 3 variations:
1. Descriptive: Very literal, focuses on what is visibly present.
2. Conceptual: Focuses on the mood, metaphor, or abstract concepts (e.g., "Freedom", "Innovation").
3. Commercial: Catchy, punchy, designed for advertising/sales impact.

Output strictly JSON.
""".strip()
