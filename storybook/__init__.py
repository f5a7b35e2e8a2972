"""Illustrated storybooks from two short video clips."""
from .assets import StillImage, VideoAsset
from .pipeline import Pipeline, generate_story, run_story

__all__ = ["Pipeline", "StillImage", "VideoAsset", "generate_story", "run_story"]
