from .metadata import Metadata
from .story import Character, Scene, Story

__all__ = [
    "Metadata",
    "Character", "Scene", "Story",
]
