from __future__ import annotations

import pytest
from pydantic import ValidationError

from plan_flow.schemas import BudgetEstimate, BusinessPlan, IntentAnalysis, RegulatoryPatch


def test_insufficient_analysis_requires_clarification() -> None:
    with pytest.raises(ValidationError):
        IntentAnalysis(is_sufficient=False)
    with pytest.raises(ValidationError):
        IntentAnalysis(is_sufficient=False, clarification_question="   ")

    analysis = IntentAnalysis(is_sufficient=False, clarification_question="Where do you want to open it?")
    assert analysis.clarification_question


def test_sufficient_analysis_needs_resolvable_target() -> None:
    with pytest.raises(ValidationError):
        IntentAnalysis(is_sufficient=True, identified_business="coffee")

    by_fields = IntentAnalysis(is_sufficient=True, identified_business="coffee", identified_location="Indiranagar")
    by_query = IntentAnalysis(is_sufficient=True, search_query="coffee cart permits Indiranagar Bangalore")

    assert by_fields.is_sufficient and by_query.is_sufficient


def test_budget_bounds() -> None:
    assert BudgetEstimate(min=0, max=0, currency="₹").max == 0
    with pytest.raises(ValidationError):
        BudgetEstimate(min=500, max=100, currency="₹")
    with pytest.raises(ValidationError):
        BudgetEstimate(min=-1, max=100, currency="₹")


def test_projections_are_sorted_by_month(plan_factory) -> None:
    plan = plan_factory()
    data = plan.model_dump()
    data["financial_breakdown"]["financial_projections_year_1"] = [
        {"month": 3, "revenue": 3, "expense": 1, "profit": 2},
        {"month": 1, "revenue": 1, "expense": 1, "profit": 0},
        {"month": 2, "revenue": 2, "expense": 1, "profit": 5},
    ]

    reordered = BusinessPlan.model_validate(data)

    assert [row.month for row in reordered.financial_breakdown.financial_projections_year_1] == [1, 2, 3]


def test_projection_month_out_of_range_rejected(plan_factory) -> None:
    data = plan_factory().model_dump()
    data["financial_breakdown"]["financial_projections_year_1"] = [
        {"month": 13, "revenue": 1, "expense": 1, "profit": 0}
    ]

    with pytest.raises(ValidationError):
        BusinessPlan.model_validate(data)


def test_market_insights_must_be_present_and_non_null(plan_factory) -> None:
    data = plan_factory().model_dump()
    data["market_insights"]["govt_subsidies"] = None
    with pytest.raises(ValidationError):
        BusinessPlan.model_validate(data)

    data = plan_factory().model_dump()
    data["market_insights"]["opportunities"] = []
    assert BusinessPlan.model_validate(data).market_insights.opportunities == []


def test_regulatory_patch_changes_skip_absent_fields() -> None:
    patch = RegulatoryPatch(processing_time="10 days", documents_required=["Form A"])

    assert patch.changes() == {"processing_time": "10 days", "documents_required": ["Form A"]}
