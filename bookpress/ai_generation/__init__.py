"""
Illustration prompts and the Replicate-backed renderer.
"""

from .prompting import (
    NEGATIVE_PROMPT,
    CharacterLock,
    IllustrationPrompt,
    StyleLock,
    build_illustration_prompt,
    cover_scene_prompt,
    spread_scene_prompt,
)
from .replicate_service import IllustrationRenderer, ReplicateIllustrationRenderer

__all__ = [
    "NEGATIVE_PROMPT",
    "CharacterLock",
    "IllustrationPrompt",
    "IllustrationRenderer",
    "ReplicateIllustrationRenderer",
    "StyleLock",
    "build_illustration_prompt",
    "cover_scene_prompt",
    "spread_scene_prompt",
]
