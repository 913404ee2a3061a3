from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Sequence

import pytest

from plan_flow.config import get_settings
from plan_flow.schemas import (
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


def make_plan(**overrides: Any) -> BusinessPlan:
    """Return a valid coffee-cart plan, with top-level fields optionally replaced."""

    data: Dict[str, Any] = {
        "idea_summary": "Specialty filter coffee cart for office commuters",
        "target_location": "Koramangala, Bangalore",
        "budget_estimate": {"min": 150000, "max": 250000, "currency": "₹"},
        "business_plan": {
            "products": ["Filter coffee", "Cold brew", "Butter biscuits"],
            "target_customers": "Office workers and students around 80 Feet Road",
            "timing": "7 AM - 11 AM, 4 PM - 9 PM",
        },
        "market_insights": {
            "opportunities": ["Tech park footfall", "Weekend brunch crowd"],
            "seasonal_trends": ["Cold brew demand peaks March-May"],
            "underserved_niches": ["Sugar-free filter coffee"],
            "competitor_pricing": "Filter coffee sells for ₹25-40",
            "rental_costs": "₹12,000/month for a cart spot on a side road",
            "supply_chain_options": ["Coffee Board outlet, Basavanagudi"],
            "utility_costs": "₹1,500/month for LPG and water",
            "govt_subsidies": ["PM SVANidhi", "Mudra Shishu loan"],
        },
        "financial_breakdown": {
            "fixed_costs_monthly": ["Rent: ₹12,000", "Helper salary: ₹10,000", "Utilities: ₹1,500"],
            "variable_costs_per_unit": "₹12 per cup",
            "profit_margin_per_unit": "₹18 per cup",
            "break_even_analysis": "Sell 27 cups/day to break even",
            "break_even_learn_more_url": "https://www.investopedia.com/terms/b/breakevenanalysis.asp",
            "financial_projections_year_1": [
                {"month": month, "revenue": 40000 + month * 5000, "expense": 30000, "profit": 10000 + month * 5000}
                for month in range(1, 13)
            ],
        },
        "marketing_strategy": ["WhatsApp pre-order list", "Monthly coffee subscription"],
        "setup_checklist": ["Register FSSAI", "Get BBMP trade licence", "Buy cart", "Source beans"],
        "legal_requirements": [
            {
                "name": "FSSAI Basic Registration",
                "step_by_step": "Apply on foscos.fssai.gov.in with ID proof",
                "estimated_cost": "₹100 per year",
                "processing_time": "7 working days",
                "documents_required": ["Aadhaar", "Photo"],
                "learn_more_url": "https://foscos.fssai.gov.in",
                "local_authority_details": "Food Safety Officer, Bengaluru Urban",
            },
            {
                "name": "BBMP Trade Licence",
                "step_by_step": "Apply at the BBMP ward office",
                "estimated_cost": "₹2,000",
                "processing_time": "15 days",
                "documents_required": ["Rental agreement", "Aadhaar"],
                "learn_more_url": "https://bbmp.gov.in",
                "local_authority_details": "BBMP Health Department",
            },
            {
                "name": "Street Vending Certificate",
                "step_by_step": "Apply to the Town Vending Committee",
                "estimated_cost": "Free",
                "processing_time": "30 days",
                "documents_required": ["Survey ID"],
                "learn_more_url": "https://bbmp.gov.in/vending",
            },
        ],
        "vendor_scripts": [
            {"context": "Landlord", "script": "Could we start with an 11-month agreement?", "tone": "Polite"},
        ],
        "estimated_daily_profit": "₹800 - ₹1,500",
        "optimization_suggestions": ["Add a loyalty card"],
    }
    data.update(overrides)
    return BusinessPlan.model_validate(data)


class ScriptedBackend:
    """In-memory backend replaying queued responses and recording calls.

    Each queue entry is either a value to return or an exception to raise.
    ``gates`` maps a method name to an event the call waits on before
    answering, so tests can act while a call is in flight.
    """

    def __init__(self) -> None:
        self.analyses: List[Any] = []
        self.research_results: List[Any] = []
        self.plans: List[Any] = []
        self.refined_plans: List[Any] = []
        self.scripts: List[Any] = []
        self.places: List[Any] = []
        self.patches: Dict[str, List[Any]] = {}
        self.images: List[Any] = []
        self.calls: List[tuple[str, Dict[str, Any]]] = []
        self.gates: Dict[str, asyncio.Event] = {}

    def called(self, name: str) -> List[Dict[str, Any]]:
        return [kwargs for method, kwargs in self.calls if method == name]

    async def _answer(self, name: str, queue: List[Any], **kwargs: Any) -> Any:
        self.calls.append((name, kwargs))
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if not queue:
            raise AssertionError(f"unexpected call to {name}")
        result = queue.pop(0)
        if isinstance(result, BaseException):
            raise result
        return result

    async def analyze_intent(self, history: Sequence[ConversationTurn], language: Language) -> IntentAnalysis:
        return await self._answer("analyze_intent", self.analyses, history=list(history), language=language)

    async def research(self, query: str) -> str:
        return await self._answer("research", self.research_results, query=query)

    async def generate_plan(
        self,
        history: Sequence[ConversationTurn],
        research_context: str,
        language: Language,
        location: str,
    ) -> BusinessPlan:
        return await self._answer(
            "generate_plan",
            self.plans,
            history=list(history),
            research_context=research_context,
            language=language,
            location=location,
        )

    async def refine_plan(
        self,
        current_plan: BusinessPlan,
        refinement_history: Sequence[ConversationTurn],
        instruction: str,
    ) -> BusinessPlan:
        return await self._answer(
            "refine_plan",
            self.refined_plans,
            current_plan=current_plan,
            refinement_history=list(refinement_history),
            instruction=instruction,
        )

    async def generate_script(self, context: str, tone: str, idea_summary: str, location: str) -> VendorScript:
        return await self._answer(
            "generate_script", self.scripts, context=context, tone=tone, idea_summary=idea_summary, location=location
        )

    async def regenerate_script(self, script: VendorScript) -> VendorScript:
        return await self._answer("regenerate_script", self.scripts, script=script)

    async def find_nearby_places(self, category: str, location: str) -> List[PlaceResult]:
        return await self._answer("find_nearby_places", self.places, category=category, location=location)

    async def verify_regulatory_detail(self, detail: RegulatoryDetail, location: str) -> RegulatoryPatch:
        queue = self.patches.setdefault(detail.name, [])
        return await self._answer("verify_regulatory_detail", queue, detail=detail, location=location)

    async def generate_concept_image(self, idea_summary: str, location: str) -> ConceptImage:
        return await self._answer("generate_concept_image", self.images, idea_summary=idea_summary, location=location)


@pytest.fixture(autouse=True)
def clear_settings_cache() -> None:
    """Ensure cached settings do not leak between tests."""

    get_settings.cache_clear()


@pytest.fixture
def backend() -> ScriptedBackend:
    return ScriptedBackend()


@pytest.fixture
def plan() -> BusinessPlan:
    return make_plan()


@pytest.fixture
def plan_factory():
    return make_plan
