"""Turn-by-turn dialogue that gathers enough detail and drives plan generation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, FrozenSet, List, Tuple

import structlog

from .context import SessionContext
from .errors import EmptyInputError, PlanFlowBackendError, SessionBusyError
from .llm import PlanBackend
from .prompts import build_research_query
from .schemas import BusinessPlan, ConversationTurn, IntentAnalysis, Language, PipelineState, Role

logger = structlog.get_logger(__name__)

GENERIC_FAILURE_MESSAGE = "I encountered an error analyzing that. Could you try again?"

ALLOWED_TRANSITIONS: Dict[PipelineState, FrozenSet[PipelineState]] = {
    PipelineState.IDLE: frozenset({PipelineState.ANALYZING}),
    PipelineState.ANALYZING: frozenset({PipelineState.IDLE, PipelineState.RESEARCHING}),
    PipelineState.RESEARCHING: frozenset({PipelineState.IDLE, PipelineState.GENERATING}),
    PipelineState.GENERATING: frozenset({PipelineState.IDLE}),
}

ANALYZING_STEPS = ("Reading context...", "Identifying business idea...", "Locating target area...")
GENERATING_STEPS = (
    "Research complete.",
    "Synthesizing market data...",
    "Calculating financial projections...",
    "Drafting final consultant report...",
)


@dataclass(frozen=True)
class SubmitOutcome:
    """Result of one :meth:`ConversationStateMachine.submit` call.

    ``reply`` is the assistant turn appended by this submission (a
    clarification or a failure message); ``plan`` is set only when a complete
    plan was generated. ``stale`` marks a result discarded after a reset.
    """

    state: PipelineState
    reply: ConversationTurn | None = None
    plan: BusinessPlan | None = None
    stale: bool = False


class ConversationStateMachine:
    """Own the pre-generation conversation and the three-stage pipeline.

    The pipeline position is a single :class:`PipelineState` value; a new
    submission is rejected unless the machine is idle.
    """

    def __init__(self, backend: PlanBackend, context: SessionContext) -> None:
        self._backend = backend
        self._context = context
        self._turns: List[ConversationTurn] = []
        self._state = PipelineState.IDLE
        self._thinking_steps: Tuple[str, ...] = ()

    @property
    def state(self) -> PipelineState:
        return self._state

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def thinking_steps(self) -> Tuple[str, ...]:
        return self._thinking_steps

    def _transition(self, target: PipelineState, steps: Tuple[str, ...] = ()) -> None:
        if target not in ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(f"illegal pipeline transition {self._state.value} -> {target.value}")
        self._state = target
        self._thinking_steps = steps

    def _reply(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role.ASSISTANT, text=text)
        self._turns.append(turn)
        return turn

    def reset(self) -> None:
        self._turns.clear()
        self._state = PipelineState.IDLE
        self._thinking_steps = ()

    async def submit(self, utterance: str, language: Language | None = None) -> SubmitOutcome:
        """Take one user utterance through analysis, research and generation.

        *language* replaces the session language, but only once the
        submission has been accepted.
        """

        text = utterance.strip()
        if not text:
            raise EmptyInputError("utterance is empty")
        if self._state is not PipelineState.IDLE:
            raise SessionBusyError(f"a submission is already {self._state.value}")
        if language is not None:
            self._context.language = language

        token = self._context.token()
        self._turns.append(ConversationTurn(role=Role.USER, text=text))
        self._transition(PipelineState.ANALYZING, ANALYZING_STEPS)
        try:
            return await self._run_pipeline(token)
        except PlanFlowBackendError as exc:
            if not self._context.is_current(token):
                return SubmitOutcome(state=self._state, stale=True)
            logger.warning(
                "plan_pipeline_failed",
                stage=self._state.value,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            reply = self._reply(GENERIC_FAILURE_MESSAGE)
            self._transition(PipelineState.IDLE)
            return SubmitOutcome(state=self._state, reply=reply)
        finally:
            # Unexpected errors must not leave the machine stuck outside IDLE.
            if self._context.is_current(token) and self._state is not PipelineState.IDLE:
                self._state = PipelineState.IDLE
                self._thinking_steps = ()

    async def _run_pipeline(self, token: int) -> SubmitOutcome:
        language = self._context.language
        analysis = await self._backend.analyze_intent(self.turns, language)
        if not self._context.is_current(token):
            return self._discard("analyzing")

        if not analysis.is_sufficient:
            reply = self._reply(analysis.clarification_question or "")
            self._transition(PipelineState.IDLE)
            logger.info("clarification_requested", turns=len(self._turns))
            return SubmitOutcome(state=self._state, reply=reply)

        query = build_research_query(analysis)
        self._transition(PipelineState.RESEARCHING, self._research_steps(analysis, query))
        research_context = await self._backend.research(query)
        if not self._context.is_current(token):
            return self._discard("researching")

        self._transition(PipelineState.GENERATING, GENERATING_STEPS)
        location = analysis.identified_location or ""
        plan = await self._backend.generate_plan(self.turns, research_context, language, location)
        if not self._context.is_current(token):
            return self._discard("generating")

        self._context.plan = plan
        self._transition(PipelineState.IDLE)
        logger.info(
            "plan_generated",
            business=analysis.identified_business,
            location=plan.target_location,
            legal_items=len(plan.legal_requirements),
        )
        return SubmitOutcome(state=self._state, plan=plan)

    def _discard(self, stage: str) -> SubmitOutcome:
        logger.info("stale_result_discarded", operation="submit", stage=stage)
        return SubmitOutcome(state=self._state, stale=True)

    @staticmethod
    def _research_steps(analysis: IntentAnalysis, query: str) -> Tuple[str, ...]:
        target = f"{analysis.identified_business or 'your idea'} in {analysis.identified_location or 'your area'}"
        snippet = " ".join(query.split())[:60]
        return (
            f"Target identified: {target}",
            f'Running search: "{snippet}..."',
            "Analyzing real-time market data...",
        )
