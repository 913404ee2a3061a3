"""Paginated markdown export of a finalized business plan."""

from __future__ import annotations

import textwrap
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from .schemas import BusinessPlan

DOCUMENT_TITLE = "Business Execution Plan"

PAGE_HEIGHT = 280
TOP_MARGIN = 20
# A section heading never starts this close to the bottom of a page.
SECTION_BREAK_AT = 250
CHARS_PER_LINE = 90
LINE_HEIGHTS: Dict[str, int] = {"title": 12, "heading": 8, "text": 5, "gap": 5}


@dataclass
class PlanDocument:
    title: str
    pages: List[str] = field(default_factory=list)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    @property
    def markdown(self) -> str:
        return "\n\n---\n\n".join(self.pages)


class _PageWriter:
    """Lay out blocks top to bottom, starting a new page past the threshold."""

    def __init__(self) -> None:
        self._pages: List[List[str]] = [[]]
        self._y = TOP_MARGIN

    def new_page(self) -> None:
        self._pages.append([])
        self._y = TOP_MARGIN

    def write(self, text: str, kind: str = "text") -> None:
        line_count = max(1, len(textwrap.wrap(text, CHARS_PER_LINE)))
        height = line_count * LINE_HEIGHTS[kind]
        if self._y + height > PAGE_HEIGHT and self._pages[-1]:
            self.new_page()
        self._pages[-1].append(text)
        self._y += height

    def gap(self) -> None:
        self._y += LINE_HEIGHTS["gap"]

    def section(self, title: str) -> None:
        if self._y > SECTION_BREAK_AT:
            self.new_page()
        self.write(f"## {title}", "heading")

    def bullets(self, items: Iterable[str], marker: str = "-") -> None:
        for item in items:
            self.write(f"{marker} {item}")

    def pages(self) -> List[str]:
        return ["\n\n".join(blocks) for blocks in self._pages if blocks]


def _format_amount(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def export_plan(plan: BusinessPlan, title: str = DOCUMENT_TITLE) -> PlanDocument:
    """Render summary, financials, checklist, legal and market sections in that order."""

    writer = _PageWriter()
    writer.write(f"# {title}", "title")
    writer.gap()

    writer.section("Summary")
    writer.write(f"**Business Concept:** {plan.idea_summary}")
    writer.write(f"**Location:** {plan.target_location}")
    writer.gap()

    budget = plan.budget_estimate
    breakdown = plan.financial_breakdown
    writer.section("Financial Analysis")
    writer.write(
        f"**Investment Range:** {budget.currency} {_format_amount(budget.min)} - {_format_amount(budget.max)}"
    )
    writer.write(f"**Daily Profit Estimate:** {plan.estimated_daily_profit}")
    writer.write(f"*Break-Even Analysis:* {breakdown.break_even_analysis}")
    writer.write("**Estimated Fixed Monthly Costs:**")
    writer.bullets(breakdown.fixed_costs_monthly)
    if breakdown.financial_projections_year_1:
        writer.write("**Year 1 Cash Flow:**")
        writer.bullets(
            f"Month {row.month}: revenue {_format_amount(row.revenue)}, expense {_format_amount(row.expense)}, "
            f"profit {_format_amount(row.profit)}"
            for row in breakdown.financial_projections_year_1
        )
    writer.gap()

    writer.section("Execution Checklist")
    writer.bullets(plan.setup_checklist, marker="- [ ]")
    writer.gap()

    writer.section("Legal & Compliance Roadmap")
    for requirement in plan.legal_requirements:
        writer.write(f"### {requirement.name}", "heading")
        writer.write(f"Steps: {requirement.step_by_step}")
        writer.write(f"Est. Cost: {requirement.estimated_cost}")
        writer.write(f"Processing Time: {requirement.processing_time}")
        if requirement.local_authority_details:
            writer.write(f"Local Authority: {requirement.local_authority_details}")
        writer.gap()

    insights = plan.market_insights
    writer.section("Market Intelligence")
    writer.write(f"**Rent Estimate:** {insights.rental_costs}")
    writer.write(f"**Competitor Pricing:** {insights.competitor_pricing}")
    writer.write("**Growth Strategies:**")
    writer.bullets(plan.marketing_strategy)

    return PlanDocument(title=title, pages=writer.pages())
