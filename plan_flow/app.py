"""Application factory for the PlanFlow FastAPI backend."""

from __future__ import annotations

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .config import get_settings
from .llm import OpenAIBackend, PlanBackend
from .log_config import configure_logging
from .routers import plans


def create_app(backend: PlanBackend | None = None) -> FastAPI:
    """Create and configure a FastAPI application instance.

    *backend* defaults to the OpenAI implementation; tests inject a scripted one.
    """
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(
        title="PlanFlow Backend",
        version="0.1.0",
        description="Conversational business-plan generation and refinement backend.",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_origin_regex=r"http://localhost:\d+$",
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.backend = backend or OpenAIBackend(settings)
    app.include_router(plans.router)
    return app


app = create_app()
