"""
bookpress: print production for personalised children's books.
"""

from .catalog import ProductCatalog, ProductSpec
from .common import ProductionSettings, load_settings
from .pipeline import BookProductionPipeline, ProductionSession, StageOrchestrator
from .story_generation import StoryRequest, WritingDirection

__all__ = [
    "BookProductionPipeline",
    "ProductCatalog",
    "ProductSpec",
    "ProductionSession",
    "ProductionSettings",
    "StageOrchestrator",
    "StoryRequest",
    "WritingDirection",
    "load_settings",
]
