"""Conversation, refinement and plan endpoints for the PlanFlow FastAPI backend."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ..errors import (
    BackendTimeoutError,
    EmptyInputError,
    InvalidIndexError,
    NoPlanError,
    PlanFlowBackendError,
    PlanFlowError,
    SessionBusyError,
    StaleResultError,
)
from ..llm import PlanBackend
from ..memory import session_memory
from ..schemas import (
    ChecklistItemView,
    ConceptImage,
    FinancialSummary,
    Language,
    LanguageOption,
    MessageRequest,
    MessageResponse,
    PlaceResult,
    PlanDocumentResponse,
    RatingRequest,
    RatingResponse,
    RefineRequest,
    RefineResponse,
    RegulatoryDetail,
    ScriptRequest,
    SessionCreated,
    SessionCreateRequest,
    SessionView,
    VendorScript,
)
from ..session import DEFAULT_PLACE_CATEGORY, PlanSession


router = APIRouter(prefix="/plans", tags=["plans"])


def _http_error(exc: PlanFlowError) -> HTTPException:
    """Translate a package error into the matching HTTP status."""

    if isinstance(exc, EmptyInputError):
        return HTTPException(status_code=422, detail=str(exc))
    if isinstance(exc, (SessionBusyError, StaleResultError)):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, NoPlanError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, InvalidIndexError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, BackendTimeoutError):
        return HTTPException(status_code=504, detail=str(exc))
    if isinstance(exc, PlanFlowBackendError):
        return HTTPException(status_code=502, detail=str(exc))
    return HTTPException(status_code=500, detail=str(exc))


def _backend(request: Request) -> PlanBackend:
    return request.app.state.backend


def _session(session_id: str) -> PlanSession:
    session = session_memory.get(session_id)
    if session is None:
        raise HTTPException(status_code=404, detail=f"No planning session found for id '{session_id}'.")
    return session


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    """Simple health check endpoint."""

    return {"status": "ok"}


@router.get("/languages", response_model=list[LanguageOption])
async def list_languages() -> list[LanguageOption]:
    """Expose the language selector options to the UI."""

    return [LanguageOption(code=language, label=language.label) for language in Language]


@router.post("/sessions", response_model=SessionCreated, status_code=201)
async def create_session(
    payload: Optional[SessionCreateRequest] = None,
    backend: PlanBackend = Depends(_backend),
) -> SessionCreated:
    """Open a new planning session."""

    language = payload.language if payload else Language.AUTO
    session = session_memory.create(backend, language)
    return SessionCreated(session_id=session.session_id, language=session.language)


@router.get("/sessions/{session_id}", response_model=SessionView)
async def fetch_session(session: PlanSession = Depends(_session)) -> SessionView:
    """Return conversation, pipeline state and plan for the session."""

    return session.view()


@router.delete("/sessions/{session_id}", response_model=SessionView)
async def reset_session(
    discard: bool = Query(False, description="Also remove the session from the store."),
    session: PlanSession = Depends(_session),
) -> SessionView:
    """Discard the plan and conversations; in-flight results are ignored."""

    if discard:
        session_memory.discard(session.session_id)
    else:
        session.reset()
    return session.view()


@router.post("/sessions/{session_id}/messages", response_model=MessageResponse)
async def submit_message(payload: MessageRequest, session: PlanSession = Depends(_session)) -> MessageResponse:
    """Submit one utterance to the conversation pipeline."""

    try:
        outcome = await session.submit(payload.text, payload.language)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc

    return MessageResponse(
        session_id=session.session_id,
        state=outcome.state,
        reply=outcome.reply,
        plan_ready=outcome.plan is not None,
        plan=outcome.plan,
    )


@router.post("/sessions/{session_id}/refine", response_model=RefineResponse)
async def refine_plan(payload: RefineRequest, session: PlanSession = Depends(_session)) -> RefineResponse:
    """Regenerate the plan from a follow-up instruction."""

    try:
        outcome = await session.refine(payload.instruction)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc
    if outcome.stale or outcome.plan is None:
        raise _http_error(StaleResultError("the plan was replaced or reset while it was being refined"))

    return RefineResponse(
        session_id=session.session_id,
        succeeded=outcome.succeeded,
        replies=list(outcome.replies),
        plan=outcome.plan,
    )


@router.post("/sessions/{session_id}/turns/{turn_index}/rating", response_model=RatingResponse)
async def rate_turn(turn_index: int, payload: RatingRequest, session: PlanSession = Depends(_session)) -> RatingResponse:
    """Attach a thumbs rating to a refinement reply."""

    try:
        outcome = session.rate(turn_index, payload.rating)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc
    return RatingResponse(turn=outcome.turn, prefill=outcome.prefill, focus_input=outcome.focus_input)


@router.post("/sessions/{session_id}/scripts", response_model=VendorScript, status_code=201)
async def add_script(payload: ScriptRequest, session: PlanSession = Depends(_session)) -> VendorScript:
    """Generate a negotiation script and append it to the plan."""

    try:
        return await session.add_script(payload.context, payload.tone)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.post("/sessions/{session_id}/scripts/{index}/regenerate", response_model=VendorScript)
async def regenerate_script(index: int, session: PlanSession = Depends(_session)) -> VendorScript:
    """Rephrase one negotiation script in place."""

    try:
        return await session.regenerate_script(index)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.post("/sessions/{session_id}/legal/{index}/verify", response_model=RegulatoryDetail)
async def verify_legal(index: int, session: PlanSession = Depends(_session)) -> RegulatoryDetail:
    """Refresh one legal requirement with the latest official details."""

    try:
        return await session.verify_legal(index)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.get("/sessions/{session_id}/places", response_model=list[PlaceResult])
async def find_places(
    category: str = Query(DEFAULT_PLACE_CATEGORY),
    session: PlanSession = Depends(_session),
) -> list[PlaceResult]:
    """Top-rated places of a category around the plan's location."""

    try:
        return await session.find_places(category)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.get("/sessions/{session_id}/concept-image", response_model=ConceptImage)
async def concept_image(session: PlanSession = Depends(_session)) -> ConceptImage:
    """Generate an illustrative picture of the planned business."""

    try:
        return await session.concept_image()
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.get("/sessions/{session_id}/financials", response_model=FinancialSummary)
async def fetch_financials(
    price: Optional[float] = None,
    variable_cost: Optional[float] = None,
    fixed_cost: Optional[float] = None,
    session: PlanSession = Depends(_session),
) -> FinancialSummary:
    """Break-even calculator values and cash-flow rows for display."""

    try:
        return session.financials(price=price, variable_cost=variable_cost, fixed_cost=fixed_cost)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc


@router.post("/sessions/{session_id}/checklist/{index}", response_model=list[ChecklistItemView])
async def toggle_checklist_step(index: int, session: PlanSession = Depends(_session)) -> list[ChecklistItemView]:
    """Flip one setup checklist step between done and pending."""

    try:
        session.toggle_step(index)
    except PlanFlowError as exc:
        raise _http_error(exc) from exc
    return session.view().checklist


@router.get("/sessions/{session_id}/export", response_model=PlanDocumentResponse)
async def export_plan(session: PlanSession = Depends(_session)) -> PlanDocumentResponse:
    """Render the plan as a paginated document."""

    try:
        document = session.export()
    except PlanFlowError as exc:
        raise _http_error(exc) from exc
    return PlanDocumentResponse(title=document.title, page_count=document.page_count, pages=document.pages)
