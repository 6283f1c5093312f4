"""
Story generation: order details, stage artifacts and the text-generation collaborator.
"""

from .models import (
    Blueprint,
    BlueprintSpread,
    Side,
    SpreadDirective,
    SpreadPlan,
    WritingDirection,
)
from .pages import Page, TextBlock, TextPosition
from .request import StoryRequest
from .story_service import LiteLLMStoryDirector, StoryGenerationService

__all__ = [
    "Blueprint",
    "BlueprintSpread",
    "LiteLLMStoryDirector",
    "Page",
    "Side",
    "SpreadDirective",
    "SpreadPlan",
    "StoryGenerationService",
    "StoryRequest",
    "TextBlock",
    "TextPosition",
    "WritingDirection",
]
