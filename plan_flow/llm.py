"""Generative backend contract and its OpenAI-powered implementation."""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Protocol, Sequence, Type, TypeVar

import structlog
from openai import APIError, APIStatusError, APITimeoutError, AsyncOpenAI
from pydantic import BaseModel, ValidationError
from tenacity import AsyncRetrying, retry_if_exception, stop_after_attempt, wait_exponential
from tenacity.wait import wait_base

from . import prompts
from .config import PlanFlowSettings, get_settings
from .errors import BackendCallError, BackendTimeoutError, ParseError, SchemaViolationError
from .schemas import (
    BusinessPlan,
    ConceptImage,
    ConversationTurn,
    IntentAnalysis,
    Language,
    PlaceResult,
    RegulatoryDetail,
    RegulatoryPatch,
    VendorScript,
)

logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

MAX_PLACES = 3
WEB_SEARCH_TOOL = {"type": "web_search_preview"}


class PlanBackend(Protocol):
    """Calls the orchestrator makes against a generative backend."""

    async def analyze_intent(self, history: Sequence[ConversationTurn], language: Language) -> IntentAnalysis: ...

    async def research(self, query: str) -> str: ...

    async def generate_plan(
        self,
        history: Sequence[ConversationTurn],
        research_context: str,
        language: Language,
        location: str,
    ) -> BusinessPlan: ...

    async def refine_plan(
        self,
        current_plan: BusinessPlan,
        refinement_history: Sequence[ConversationTurn],
        instruction: str,
    ) -> BusinessPlan: ...

    async def generate_script(self, context: str, tone: str, idea_summary: str, location: str) -> VendorScript: ...

    async def regenerate_script(self, script: VendorScript) -> VendorScript: ...

    async def find_nearby_places(self, category: str, location: str) -> List[PlaceResult]: ...

    async def verify_regulatory_detail(self, detail: RegulatoryDetail, location: str) -> RegulatoryPatch: ...

    async def generate_concept_image(self, idea_summary: str, location: str) -> ConceptImage: ...


@dataclass(frozen=True)
class PromptSpec:
    """Container describing how to call the LLM for one contract."""

    user_prompt: str
    model: str
    system_prompt: str = prompts.SYSTEM_INSTRUCTION
    temperature: float = 0.7
    max_tokens: int = 1200


def parse_structured_response(raw_text: str) -> Any:
    """Coerce model output into JSON, tolerating a surrounding code fence."""

    text = raw_text.strip()
    if text.startswith("```"):
        lines = [line.rstrip() for line in text.splitlines()]
        if len(lines) >= 2:
            lines = lines[1:]
            if lines and lines[-1].strip() == "```":
                lines = lines[:-1]
            text = "\n".join(lines).strip()
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Web-search responses often wrap the JSON object in prose.
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            pass
    raise ParseError(f"response is not valid JSON: {text[:120]!r}")


def validate_contract(model: Type[ModelT], data: Any, contract: str) -> ModelT:
    """Validate *data* against *model*, raising :class:`SchemaViolationError`."""

    if not isinstance(data, dict):
        raise SchemaViolationError(contract, [f"expected a JSON object, got {type(data).__name__}"])
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        ]
        raise SchemaViolationError(contract, problems) from exc


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, BackendCallError) and exc.retryable


class OpenAIBackend:
    """:class:`PlanBackend` backed by the OpenAI chat and responses APIs.

    Structured contracts use chat completions in JSON mode and are validated
    against the pydantic models in :mod:`plan_flow.schemas`. Research, place
    lookup and legal verification go through the responses API with the web
    search tool enabled, and the concept picture comes from the images API.
    """

    def __init__(
        self,
        settings: PlanFlowSettings | None = None,
        *,
        client: AsyncOpenAI | None = None,
        wait: wait_base | None = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=10)

    def _get_client(self) -> AsyncOpenAI:
        """Return a cached client, creating it when an API key is configured."""

        if self._client is not None:
            return self._client
        api_key = self._settings.openai_api_key
        if not api_key:
            raise BackendCallError("OPENAI_API_KEY is not configured", retryable=False)
        # Retries are owned by the tenacity loop in _call.
        self._client = AsyncOpenAI(api_key=api_key, base_url=self._settings.openai_base_url, max_retries=0)
        return self._client

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def _call_once(self, operation: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        timeout = self._settings.backend_timeout_seconds
        try:
            return await asyncio.wait_for(factory(), timeout=timeout)
        except (asyncio.TimeoutError, APITimeoutError) as exc:
            raise BackendTimeoutError(f"{operation} timed out after {timeout:.0f}s") from exc
        except APIStatusError as exc:
            retryable = exc.status_code >= 500 or exc.status_code == 429
            raise BackendCallError(f"{operation} failed with status {exc.status_code}", retryable=retryable) from exc
        except APIError as exc:
            raise BackendCallError(f"{operation} failed: {exc}") from exc

    async def _call(self, operation: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.backend_max_attempts),
            wait=self._wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        )
        result: Any = None
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(
                        "backend_retry",
                        operation=operation,
                        attempt=attempt.retry_state.attempt_number,
                    )
                result = await self._call_once(operation, factory)
        return result

    async def _complete_json(self, operation: str, spec: PromptSpec) -> Any:
        client = self._get_client()
        response = await self._call(
            operation,
            lambda: client.chat.completions.create(
                model=spec.model,
                messages=[
                    {"role": "system", "content": spec.system_prompt.strip()},
                    {"role": "user", "content": spec.user_prompt.strip()},
                ],
                temperature=spec.temperature,
                max_tokens=spec.max_tokens,
                response_format={"type": "json_object"},
            ),
        )
        message = response.choices[0].message.content if response.choices else None
        if not message:
            raise ParseError(f"{operation} returned an empty response")
        return parse_structured_response(message)

    async def _search(self, operation: str, query: str, *, instructions: str | None = None) -> str:
        client = self._get_client()
        kwargs: Dict[str, Any] = {
            "model": self._settings.research_model,
            "input": query,
            "tools": [WEB_SEARCH_TOOL],
        }
        if instructions:
            kwargs["instructions"] = instructions
        response = await self._call(operation, lambda: client.responses.create(**kwargs))
        return response.output_text or ""

    # ------------------------------------------------------------------
    # Contracts
    # ------------------------------------------------------------------

    async def analyze_intent(self, history: Sequence[ConversationTurn], language: Language) -> IntentAnalysis:
        spec = PromptSpec(
            user_prompt=prompts.build_analysis_prompt(history, language),
            model=self._settings.analysis_model,
            system_prompt="You triage business-plan requests and decide whether enough detail is known.",
            temperature=0.2,
            max_tokens=400,
        )
        data = await self._complete_json("analyze_intent", spec)
        return validate_contract(IntentAnalysis, data, "intent_analysis")

    async def research(self, query: str) -> str:
        return await self._search(
            "research",
            query,
            instructions="Summarise current, location-specific facts with figures and sources.",
        )

    async def generate_plan(
        self,
        history: Sequence[ConversationTurn],
        research_context: str,
        language: Language,
        location: str,
    ) -> BusinessPlan:
        spec = PromptSpec(
            user_prompt=prompts.build_plan_prompt(history, research_context, language, location),
            model=self._settings.plan_model,
            temperature=0.6,
            max_tokens=6000,
        )
        data = await self._complete_json("generate_plan", spec)
        return validate_contract(BusinessPlan, data, "business_plan")

    async def refine_plan(
        self,
        current_plan: BusinessPlan,
        refinement_history: Sequence[ConversationTurn],
        instruction: str,
    ) -> BusinessPlan:
        spec = PromptSpec(
            user_prompt=prompts.build_refinement_prompt(current_plan, refinement_history, instruction),
            model=self._settings.analysis_model,
            temperature=0.6,
            max_tokens=6000,
        )
        data = await self._complete_json("refine_plan", spec)
        return validate_contract(BusinessPlan, data, "business_plan")

    async def generate_script(self, context: str, tone: str, idea_summary: str, location: str) -> VendorScript:
        spec = PromptSpec(
            user_prompt=prompts.build_script_prompt(context, tone, idea_summary, location),
            model=self._settings.analysis_model,
            temperature=0.8,
            max_tokens=600,
        )
        data = await self._complete_json("generate_script", spec)
        script = validate_contract(VendorScript, data, "vendor_script")
        return script if script.tone else script.model_copy(update={"tone": tone})

    async def regenerate_script(self, script: VendorScript) -> VendorScript:
        spec = PromptSpec(
            user_prompt=prompts.build_script_regeneration_prompt(script),
            model=self._settings.analysis_model,
            temperature=0.9,
            max_tokens=600,
        )
        data = await self._complete_json("regenerate_script", spec)
        regenerated = validate_contract(VendorScript, data, "vendor_script")
        # The context names who the script is for and must survive a rephrase.
        return regenerated.model_copy(update={"context": script.context, "tone": regenerated.tone or script.tone})

    async def find_nearby_places(self, category: str, location: str) -> List[PlaceResult]:
        text = await self._search("find_nearby_places", prompts.build_places_prompt(category, location, MAX_PLACES))
        data = parse_structured_response(text)
        if isinstance(data, dict):
            data = data.get("places")
        if not isinstance(data, list):
            raise SchemaViolationError("places", ["expected a list of places"])
        return [validate_contract(PlaceResult, item, "places") for item in data[:MAX_PLACES]]

    async def verify_regulatory_detail(self, detail: RegulatoryDetail, location: str) -> RegulatoryPatch:
        text = await self._search("verify_regulatory_detail", prompts.build_verification_prompt(detail, location))
        data = parse_structured_response(text)
        return validate_contract(RegulatoryPatch, data, "regulatory_detail")

    async def generate_concept_image(self, idea_summary: str, location: str) -> ConceptImage:
        client = self._get_client()
        response = await self._call(
            "generate_concept_image",
            lambda: client.images.generate(
                model=self._settings.image_model,
                prompt=prompts.build_concept_image_prompt(idea_summary, location),
                size="1024x1024",
                n=1,
            ),
        )
        data = response.data[0].b64_json if response.data else None
        if not data:
            raise ParseError("generate_concept_image returned no image data")
        return ConceptImage(b64_data=data)
