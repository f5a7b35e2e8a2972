"""Litestar ASGI application for the Storybook Web API."""
from __future__ import annotations

import functools
import logging
from typing import Any, Callable

from litestar import Litestar, Request, Response
from litestar.config.cors import CORSConfig
from litestar.datastructures import State
from litestar.logging import LoggingConfig

from storybook.config import Config
from storybook.errors import ConfigurationError, InputMissing, StorybookError
from storybook.pipeline import Pipeline
from webui.backend.models import ErrorPayload
from webui.backend.routes.stories import create_story, health

log = logging.getLogger(__name__)


def _status_for(exc: StorybookError) -> int:
    if isinstance(exc, InputMissing):
        return 400
    if isinstance(exc, ConfigurationError):
        return 503
    return 502


def _storybook_error_handler(request: Request, exc: StorybookError) -> Response:
    log.warning("Story request failed (%s): %s", exc.kind, exc)
    payload = ErrorPayload(error=exc.kind, detail=str(exc))
    return Response(content=payload.model_dump(), status_code=_status_for(exc))


@functools.lru_cache(maxsize=1)
def _default_pipeline() -> Pipeline:
    """Built on the first request and shared by every request after it."""
    return Pipeline(Config.load())


def _on_shutdown() -> None:
    if _default_pipeline.cache_info().currsize:
        _default_pipeline().close()
        _default_pipeline.cache_clear()


def create_app(pipeline_factory: Callable[[], Any] = _default_pipeline) -> Litestar:
    return Litestar(
        route_handlers=[create_story, health],
        on_shutdown=[_on_shutdown],
        state=State({"pipeline_factory": pipeline_factory}),
        exception_handlers={StorybookError: _storybook_error_handler},
        cors_config=CORSConfig(
            allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type"],
        ),
        logging_config=LoggingConfig(
            loggers={
                "storybook": {"level": "INFO", "handlers": ["queue_listener"]},
                "webui": {"level": "INFO", "handlers": ["queue_listener"]},
            }
        ),
    )


app = create_app()
