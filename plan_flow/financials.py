"""Pure financial derivations computed from plan text at display time.

Every cost and price in a plan is free text written by the backend, so number
extraction is best effort. A value of ``0`` from :func:`extract_leading_number`
means "unparseable", never a genuine zero cost; :func:`parse_amount` exposes
that distinction explicitly.
"""

from __future__ import annotations

import math
import re
from typing import Iterable, List

from .schemas import BusinessPlan, CalculatorInputs, CashFlowRow, FinancialSummary

_NUMBER_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")

UNBOUNDED_LABEL = "unbounded"


def parse_amount(text: str | None) -> float | None:
    """Return the first number found in *text*, or ``None`` when there is none."""

    if not text:
        return None
    match = _NUMBER_PATTERN.search(text)
    if not match:
        return None
    return float(match.group(0).replace(",", ""))


def extract_leading_number(text: str | None) -> float:
    """Parse the first run of digits and separators, e.g. ``"₹10,000/month"``.

    Returns ``0`` when nothing numeric is present.
    """

    amount = parse_amount(text)
    return 0.0 if amount is None else amount


def break_even_units(price: float, variable_cost: float, fixed_cost: float) -> float:
    """Units to sell per period so that contribution covers fixed cost.

    Returns ``math.inf`` when each unit contributes nothing (``price <= variable_cost``).
    """

    contribution = price - variable_cost
    if contribution <= 0:
        return math.inf
    return float(math.ceil(fixed_cost / contribution))


def describe_break_even(units: float) -> str:
    if not math.isfinite(units):
        return UNBOUNDED_LABEL
    return f"{int(units)} units"


def _sum_amounts(texts: Iterable[str], unparsed: List[str], field_name: str) -> float:
    total = 0.0
    for index, text in enumerate(texts):
        amount = parse_amount(text)
        if amount is None:
            unparsed.append(f"{field_name}[{index}]")
            continue
        total += amount
    return total


def seed_calculator(plan: BusinessPlan) -> CalculatorInputs:
    """Pre-populate the break-even calculator from the plan's free text.

    The calculator is display-only: its values are editable by the consumer and
    never written back into the plan.
    """

    breakdown = plan.financial_breakdown
    unparsed: List[str] = []

    variable = parse_amount(breakdown.variable_costs_per_unit)
    if variable is None:
        unparsed.append("variable_costs_per_unit")
    margin = parse_amount(breakdown.profit_margin_per_unit)
    if margin is None:
        unparsed.append("profit_margin_per_unit")
    fixed = _sum_amounts(breakdown.fixed_costs_monthly, unparsed, "fixed_costs_monthly")

    variable_cost = variable or 0.0
    return CalculatorInputs(
        price=variable_cost + (margin or 0.0),
        variable_cost=variable_cost,
        fixed_cost=fixed,
        unparsed_fields=unparsed,
    )


def cash_flow_rows(plan: BusinessPlan) -> List[CashFlowRow]:
    """Year-one projection rows in month order with a running total."""

    rows: List[CashFlowRow] = []
    cumulative = 0.0
    projections = sorted(plan.financial_breakdown.financial_projections_year_1, key=lambda item: item.month)
    for projection in projections:
        cumulative += projection.profit
        rows.append(
            CashFlowRow(
                month=projection.month,
                revenue=projection.revenue,
                expense=projection.expense,
                profit=projection.profit,
                cumulative_profit=cumulative,
                consistent=math.isclose(
                    projection.profit, projection.revenue - projection.expense, rel_tol=1e-6, abs_tol=0.5
                ),
            )
        )
    return rows


def summarize_financials(
    plan: BusinessPlan,
    *,
    price: float | None = None,
    variable_cost: float | None = None,
    fixed_cost: float | None = None,
) -> FinancialSummary:
    """Combine calculator seed, optional user overrides and cash-flow rows."""

    seed = seed_calculator(plan)
    calculator = seed.model_copy(
        update={
            "price": seed.price if price is None else price,
            "variable_cost": seed.variable_cost if variable_cost is None else variable_cost,
            "fixed_cost": seed.fixed_cost if fixed_cost is None else fixed_cost,
        }
    )
    units = break_even_units(calculator.price, calculator.variable_cost, calculator.fixed_cost)
    return FinancialSummary(
        calculator=calculator,
        break_even_units=int(units) if math.isfinite(units) else None,
        break_even_label=describe_break_even(units),
        cash_flow=cash_flow_rows(plan),
    )
