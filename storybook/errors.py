"""Failure kinds raised by the story pipeline.

Fatal errors abort a request. Illustration errors are per-scene and never
leave the pipeline: each is swapped for a placeholder image.
"""
from __future__ import annotations


class StorybookError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    kind = "storybook_error"


class ConfigurationError(StorybookError):
    kind = "configuration_error"


class InputMissing(StorybookError):
    kind = "input_missing"


class FrameExtractionFailed(StorybookError):
    kind = "frame_extraction_failed"


class AssetPublishFailed(StorybookError):
    kind = "asset_publish_failed"


class AnalysisFailed(StorybookError):
    kind = "analysis_failed"


class ScriptGenerationFailed(StorybookError):
    kind = "script_generation_failed"


class IllustrationError(StorybookError):
    kind = "illustration_error"


class GenerationSubmitFailed(IllustrationError):
    kind = "generation_submit_failed"


class GenerationTimeout(IllustrationError):
    kind = "generation_timeout"


class ServiceError(Exception):
    """A remote service answered with an error status."""

    def __init__(self, status: int, message: str = ""):
        super().__init__(f"HTTP {status}: {message}" if message else f"HTTP {status}")
        self.status = status


class MalformedResponse(Exception):
    """Model output did not match the requested shape. Always retried."""
