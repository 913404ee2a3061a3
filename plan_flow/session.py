"""Per-session aggregate tying the conversation, refinement and verification together."""

from __future__ import annotations

from typing import List

import structlog

from . import financials
from .checklist import ChecklistKeying, ChecklistProgress
from .context import SessionContext
from .conversation import ConversationStateMachine, SubmitOutcome
from .errors import StaleResultError
from .export import PlanDocument, export_plan
from .llm import PlanBackend
from .refinement import RatingOutcome, RefineOutcome, RefinementEngine
from .schemas import (
    BusinessPlan,
    ConceptImage,
    FinancialSummary,
    Language,
    PlaceResult,
    Rating,
    RegulatoryDetail,
    SessionView,
    VendorScript,
)
from .verification import LegalVerifier

logger = structlog.get_logger(__name__)

DEFAULT_PLACE_CATEGORY = "wholesale markets"


class PlanSession:
    """One user's planning session.

    The three asynchronous operations (submission, refinement, legal
    verification) may be in flight at the same time; each is serialized
    against itself by its own component.
    """

    def __init__(
        self,
        session_id: str,
        backend: PlanBackend,
        *,
        language: Language = Language.AUTO,
        checklist_keying: ChecklistKeying | None = None,
    ) -> None:
        self.session_id = session_id
        self._backend = backend
        self.context = SessionContext(language)
        self.conversation = ConversationStateMachine(backend, self.context)
        self.refinement = RefinementEngine(backend, self.context)
        self.verifier = LegalVerifier(backend, self.context)
        self.checklist = ChecklistProgress(checklist_keying)
        self._log = logger.bind(session_id=session_id)

    @property
    def plan(self) -> BusinessPlan | None:
        return self.context.plan

    @property
    def language(self) -> Language:
        return self.context.language

    async def submit(self, utterance: str, language: Language | None = None) -> SubmitOutcome:
        """Run one conversation turn; a newly generated plan starts a fresh dashboard."""

        outcome = await self.conversation.submit(utterance, language)
        if outcome.plan is not None:
            # Refinement chat and checklist marks described the replaced plan.
            self.refinement.clear_history()
            self.checklist.clear()
            self._log.info("plan_replaced", location=outcome.plan.target_location)
        return outcome

    async def refine(self, instruction: str) -> RefineOutcome:
        return await self.refinement.refine(instruction)

    def rate(self, turn_index: int, rating: Rating) -> RatingOutcome:
        return self.refinement.rate(turn_index, rating)

    async def add_script(self, context: str, tone: str) -> VendorScript:
        return await self.refinement.add_script(context, tone)

    async def regenerate_script(self, index: int) -> VendorScript:
        return await self.refinement.regenerate_script(index)

    async def verify_legal(self, index: int) -> RegulatoryDetail:
        return await self.verifier.verify(index)

    async def find_places(self, category: str = DEFAULT_PLACE_CATEGORY) -> List[PlaceResult]:
        """Look up top-rated places of *category* around the plan's location."""

        plan = self.context.require_plan()
        token = self.context.token()
        places = await self._backend.find_nearby_places(category.strip() or DEFAULT_PLACE_CATEGORY, plan.target_location)
        if not self.context.is_current(token):
            raise StaleResultError("session was reset while places were being looked up")
        return places

    async def concept_image(self) -> ConceptImage:
        """Render an illustrative picture of the planned business."""

        plan = self.context.require_plan()
        token = self.context.token()
        image = await self._backend.generate_concept_image(plan.idea_summary, plan.target_location)
        if not self.context.is_current(token):
            raise StaleResultError("session was reset while the concept image was being generated")
        return image

    def toggle_step(self, index: int) -> bool:
        plan = self.context.require_plan()
        return self.checklist.toggle(plan.setup_checklist, index)

    def financials(
        self,
        *,
        price: float | None = None,
        variable_cost: float | None = None,
        fixed_cost: float | None = None,
    ) -> FinancialSummary:
        return financials.summarize_financials(
            self.context.require_plan(),
            price=price,
            variable_cost=variable_cost,
            fixed_cost=fixed_cost,
        )

    def export(self) -> PlanDocument:
        return export_plan(self.context.require_plan())

    def reset(self) -> None:
        """Discard the plan and both conversations; in-flight results become stale."""

        self.context.reset()
        self.conversation.reset()
        self.refinement.reset()
        self.checklist.clear()
        self._log.info("session_reset", generation=self.context.generation)

    def view(self) -> SessionView:
        plan = self.context.plan
        return SessionView(
            session_id=self.session_id,
            language=self.context.language,
            state=self.conversation.state,
            thinking_steps=list(self.conversation.thinking_steps),
            turns=list(self.conversation.turns),
            refinement_turns=list(self.refinement.turns),
            plan=plan,
            checklist=self.checklist.view(plan.setup_checklist) if plan else [],
        )
