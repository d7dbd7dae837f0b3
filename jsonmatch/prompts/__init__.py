"""Prompt assets and builders for the matching pipeline."""

from .prompt_builder import (
    PromptParts,
    PromptTemplateError,
    build_analysis_prompt,
    build_enhance_prompt,
    build_update_prompt,
)

__all__ = [
    "PromptParts",
    "PromptTemplateError",
    "build_analysis_prompt",
    "build_enhance_prompt",
    "build_update_prompt",
]
