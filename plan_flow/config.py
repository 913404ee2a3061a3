"""Configuration helpers for the PlanFlow backend."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Mapping

from dotenv import load_dotenv

ENV_PREFIX = "PLANFLOW_"

DEFAULT_ANALYSIS_MODEL = "gpt-4o-mini"
DEFAULT_PLAN_MODEL = "gpt-4o"
DEFAULT_RESEARCH_MODEL = "gpt-4o-mini"
DEFAULT_IMAGE_MODEL = "gpt-image-1"
DEFAULT_TIMEOUT_SECONDS = 90.0
DEFAULT_MAX_ATTEMPTS = 3

DEFAULT_ALLOWED_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]

load_dotenv(override=False)


@dataclass(frozen=True)
class PlanFlowSettings:
    """Settings container for the generative backend and the HTTP surface.

    Model names are split per pipeline stage: the analysis and refinement
    calls are latency sensitive, while the final plan generation benefits from
    the larger model.
    """

    openai_api_key: str | None = None
    openai_base_url: str | None = None
    analysis_model: str = DEFAULT_ANALYSIS_MODEL
    plan_model: str = DEFAULT_PLAN_MODEL
    research_model: str = DEFAULT_RESEARCH_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    backend_timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    backend_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    allowed_origins: List[str] = field(default_factory=lambda: list(DEFAULT_ALLOWED_ORIGINS))
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def has_backend_credentials(self) -> bool:
        """True when an API key for the generative backend is configured."""

        return bool(self.openai_api_key)


def _read_float(environ: Mapping[str, str], key: str, default: float) -> float:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_int(environ: Mapping[str, str], key: str, default: int) -> int:
    raw = environ.get(key)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return value if value > 0 else default


def _read_bool(environ: Mapping[str, str], key: str) -> bool:
    return environ.get(key, "").strip().lower() in {"1", "true", "yes", "on"}


def _read_origins(environ: Mapping[str, str]) -> List[str]:
    """Return allowed origins, optionally sourced from an env override."""

    raw = environ.get(f"{ENV_PREFIX}ALLOWED_ORIGINS")
    if raw:
        return [origin.strip() for origin in raw.split(",") if origin.strip()]
    return list(DEFAULT_ALLOWED_ORIGINS)


@lru_cache(maxsize=1)
def get_settings() -> PlanFlowSettings:
    """Read environment variables and return cached settings."""

    environ = os.environ
    return PlanFlowSettings(
        openai_api_key=environ.get("OPENAI_API_KEY") or None,
        openai_base_url=environ.get("OPENAI_BASE_URL") or None,
        analysis_model=environ.get(f"{ENV_PREFIX}ANALYSIS_MODEL") or DEFAULT_ANALYSIS_MODEL,
        plan_model=environ.get(f"{ENV_PREFIX}PLAN_MODEL") or DEFAULT_PLAN_MODEL,
        research_model=environ.get(f"{ENV_PREFIX}RESEARCH_MODEL") or DEFAULT_RESEARCH_MODEL,
        image_model=environ.get(f"{ENV_PREFIX}IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
        backend_timeout_seconds=_read_float(
            environ, f"{ENV_PREFIX}BACKEND_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS
        ),
        backend_max_attempts=_read_int(environ, f"{ENV_PREFIX}BACKEND_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS),
        allowed_origins=_read_origins(environ),
        log_level=(environ.get(f"{ENV_PREFIX}LOG_LEVEL") or "INFO").upper(),
        log_json=_read_bool(environ, f"{ENV_PREFIX}LOG_JSON"),
    )
