"""Post-generation chat that regenerates the plan from follow-up instructions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import structlog

from .context import SessionContext
from .errors import EmptyInputError, InvalidIndexError, PlanFlowBackendError, SessionBusyError, StaleResultError
from .llm import PlanBackend
from .schemas import BusinessPlan, ConversationTurn, Rating, Role, VendorScript

logger = structlog.get_logger(__name__)

CONFIRMATION_MESSAGE = "Plan updated. Please review the dashboard."
RATING_SOLICITATION = "How does this look?"
FAILURE_MESSAGE = "Sorry, I couldn't process that update. Try again."
ADJUSTMENT_PREFILL = "I'd like to adjust..."


@dataclass(frozen=True)
class RefineOutcome:
    succeeded: bool
    replies: Tuple[ConversationTurn, ...]
    plan: BusinessPlan | None
    stale: bool = False


@dataclass(frozen=True)
class RatingOutcome:
    """Rated turn plus the input nudge shown after a thumbs-down."""

    turn: ConversationTurn
    prefill: str | None = None
    focus_input: bool = False


class RefinementEngine:
    """Merge follow-up instructions into the existing plan.

    A successful refinement replaces the whole plan with the backend's
    regenerated document. Vendor scripts are the exception: they are appended
    or patched one index at a time without a full-plan round trip.
    """

    def __init__(self, backend: PlanBackend, context: SessionContext) -> None:
        self._backend = backend
        self._context = context
        self._turns: List[ConversationTurn] = []
        self._refining = False
        self._scripting = False

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    @property
    def is_refining(self) -> bool:
        return self._refining

    def reset(self) -> None:
        self._turns.clear()
        self._refining = False
        self._scripting = False

    def clear_history(self) -> None:
        """Drop refinement turns that belong to a plan which has been replaced."""

        self._turns.clear()

    def _reply(self, text: str) -> ConversationTurn:
        turn = ConversationTurn(role=Role.ASSISTANT, text=text)
        self._turns.append(turn)
        return turn

    async def refine(self, instruction: str) -> RefineOutcome:
        """Regenerate the plan according to *instruction*."""

        text = instruction.strip()
        if not text:
            raise EmptyInputError("instruction is empty")
        current_plan = self._context.require_plan()
        if self._refining:
            raise SessionBusyError("a refinement is already in progress")

        token = self._context.token()
        prior_history = self.turns
        self._turns.append(ConversationTurn(role=Role.USER, text=text))
        self._refining = True
        try:
            new_plan = await self._backend.refine_plan(current_plan, prior_history, text)
        except PlanFlowBackendError as exc:
            if not self._context.is_current(token):
                return RefineOutcome(succeeded=False, replies=(), plan=None, stale=True)
            logger.warning("plan_refinement_failed", error_type=type(exc).__name__, error=str(exc))
            reply = self._reply(FAILURE_MESSAGE)
            return RefineOutcome(succeeded=False, replies=(reply,), plan=self._context.plan)
        finally:
            if self._context.is_current(token):
                self._refining = False

        if not self._context.is_current(token):
            logger.info("stale_result_discarded", operation="refine")
            return RefineOutcome(succeeded=False, replies=(), plan=None, stale=True)
        if self._context.plan is not current_plan:
            # The rewrite was derived from a plan that has since been replaced or patched.
            logger.info("stale_result_discarded", operation="refine", reason="plan_changed")
            return RefineOutcome(succeeded=False, replies=(), plan=self._context.plan, stale=True)

        self._context.plan = new_plan
        replies = (self._reply(CONFIRMATION_MESSAGE), self._reply(RATING_SOLICITATION))
        logger.info("plan_refined", location=new_plan.target_location, history=len(prior_history))
        return RefineOutcome(succeeded=True, replies=replies, plan=new_plan)

    def rate(self, turn_index: int, rating: Rating) -> RatingOutcome:
        """Attach a thumbs rating to the assistant turn at *turn_index*."""

        if turn_index < 0 or turn_index >= len(self._turns):
            raise InvalidIndexError(f"no refinement turn at index {turn_index}")
        turn = self._turns[turn_index]
        if turn.role is not Role.ASSISTANT:
            raise InvalidIndexError(f"turn {turn_index} was written by the user and cannot be rated")

        rated = turn.model_copy(update={"rating": rating})
        self._turns[turn_index] = rated
        if rating is Rating.DOWN:
            return RatingOutcome(turn=rated, prefill=ADJUSTMENT_PREFILL, focus_input=True)
        return RatingOutcome(turn=rated)

    # ------------------------------------------------------------------
    # Vendor scripts
    # ------------------------------------------------------------------

    def _begin_script(self) -> int:
        if self._scripting:
            raise SessionBusyError("a script is already being generated")
        self._scripting = True
        return self._context.token()

    def _end_script(self, token: int) -> None:
        if self._context.is_current(token):
            self._scripting = False

    async def add_script(self, context: str, tone: str) -> VendorScript:
        """Generate a new negotiation script and append it to the plan."""

        audience = context.strip()
        if not audience:
            raise EmptyInputError("script context is empty")
        plan = self._context.require_plan()

        token = self._begin_script()
        try:
            script = await self._backend.generate_script(audience, tone, plan.idea_summary, plan.target_location)
        finally:
            self._end_script(token)

        latest = self._context.plan
        if not self._context.is_current(token) or latest is None:
            raise StaleResultError("session was reset while the script was being generated")
        self._context.plan = latest.model_copy(update={"vendor_scripts": [*latest.vendor_scripts, script]})
        logger.info("vendor_script_added", context=script.context, total=len(latest.vendor_scripts) + 1)
        return script

    async def regenerate_script(self, index: int) -> VendorScript:
        """Rephrase the script at *index* in place, keeping its context."""

        plan = self._context.require_plan()
        if index < 0 or index >= len(plan.vendor_scripts):
            raise InvalidIndexError(f"no vendor script at index {index}")
        original = plan.vendor_scripts[index]

        token = self._begin_script()
        try:
            script = await self._backend.regenerate_script(original)
        finally:
            self._end_script(token)

        latest = self._context.plan
        if not self._context.is_current(token) or latest is None:
            raise StaleResultError("session was reset while the script was being regenerated")
        if index >= len(latest.vendor_scripts) or latest.vendor_scripts[index] != original:
            raise StaleResultError(f"vendor script {index} changed while it was being regenerated")

        scripts = list(latest.vendor_scripts)
        scripts[index] = script
        self._context.plan = latest.model_copy(update={"vendor_scripts": scripts})
        logger.info("vendor_script_regenerated", index=index, context=script.context)
        return script
