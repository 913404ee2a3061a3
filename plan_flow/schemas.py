"""Pydantic models and enums for the PlanFlow conversation and plan API.

The models double as the schema contracts exchanged with the generative
backend: every structured response is validated against one of them before it
is allowed to reach a session.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator


class Role(str, Enum):
    """Author of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"


class Rating(str, Enum):
    """Thumbs rating a user may attach to an assistant turn."""

    UP = "up"
    DOWN = "down"


class Language(str, Enum):
    """Language tags offered by the language selector."""

    AUTO = "auto"
    EN_IN = "en-IN"
    HI_IN = "hi-IN"
    TE_IN = "te-IN"
    TA_IN = "ta-IN"
    MR_IN = "mr-IN"
    BN_IN = "bn-IN"
    KN_IN = "kn-IN"

    @property
    def label(self) -> str:
        """Return the display label used by the selector."""
        labels = {
            Language.AUTO: "Auto Detect",
            Language.EN_IN: "English (India)",
            Language.HI_IN: "Hindi",
            Language.TE_IN: "Telugu",
            Language.TA_IN: "Tamil",
            Language.MR_IN: "Marathi",
            Language.BN_IN: "Bengali",
            Language.KN_IN: "Kannada",
        }
        return labels[self]


class PipelineState(str, Enum):
    """Single tagged state of the plan-generation pipeline."""

    IDLE = "idle"
    ANALYZING = "analyzing"
    RESEARCHING = "researching"
    GENERATING = "generating"


class ConversationTurn(BaseModel):
    """One message in a conversation."""

    role: Role
    text: str
    rating: Optional[Rating] = None


# ---------------------------------------------------------------------------
# Backend contracts
# ---------------------------------------------------------------------------


def _blank(value: Optional[str]) -> bool:
    return value is None or not value.strip()


class IntentAnalysis(BaseModel):
    """Sufficiency judgment over the whole conversation so far."""

    is_sufficient: bool = Field(
        ...,
        description="True only when both a specific business idea and a specific location (city/area) are known.",
    )
    clarification_question: Optional[str] = Field(
        default=None,
        description="Polite question asking for the missing information, in the user's language.",
    )
    search_query: Optional[str] = Field(
        default=None,
        description="Web search query for local regulations, costs and market trends.",
    )
    identified_location: Optional[str] = None
    identified_business: Optional[str] = None
    detected_language: Optional[str] = Field(
        default=None,
        description="Language the user is speaking, e.g. Hindi, English, Tamil.",
    )

    @model_validator(mode="after")
    def _check_sufficiency(self) -> "IntentAnalysis":
        if not self.is_sufficient:
            if _blank(self.clarification_question):
                raise ValueError("clarification_question is required when is_sufficient is false")
            return self
        resolved = not _blank(self.identified_location) and not _blank(self.identified_business)
        if not resolved and _blank(self.search_query):
            raise ValueError(
                "a sufficient analysis needs identified_location and identified_business, or a search_query"
            )
        return self


class BudgetEstimate(BaseModel):
    min: float = Field(..., ge=0)
    max: float = Field(..., ge=0)
    currency: str = Field(..., description="Currency symbol or code, usually INR or ₹.")

    @model_validator(mode="after")
    def _check_range(self) -> "BudgetEstimate":
        if self.min > self.max:
            raise ValueError(f"budget min {self.min} exceeds max {self.max}")
        return self


class LaunchOffering(BaseModel):
    """What the business sells, to whom and when."""

    products: List[str]
    target_customers: str
    timing: str = Field(..., description="Operating hours.")


class MarketInsights(BaseModel):
    """Location-specific market intelligence."""

    opportunities: List[str]
    seasonal_trends: List[str]
    underserved_niches: List[str]
    competitor_pricing: str
    rental_costs: str
    supply_chain_options: List[str]
    utility_costs: str
    govt_subsidies: List[str]


class MonthlyProjection(BaseModel):
    month: int = Field(..., ge=1, le=12)
    revenue: float
    expense: float
    profit: float


class FinancialBreakdown(BaseModel):
    fixed_costs_monthly: List[str]
    variable_costs_per_unit: str
    profit_margin_per_unit: str
    break_even_analysis: str
    break_even_learn_more_url: Optional[str] = None
    financial_projections_year_1: List[MonthlyProjection]

    @field_validator("financial_projections_year_1")
    @classmethod
    def _order_by_month(cls, value: List[MonthlyProjection]) -> List[MonthlyProjection]:
        return sorted(value, key=lambda projection: projection.month)


class RegulatoryDetail(BaseModel):
    """One licence or permit in the legal roadmap."""

    name: str
    step_by_step: str
    estimated_cost: str
    processing_time: str
    documents_required: List[str]
    learn_more_url: str
    local_authority_details: Optional[str] = None


VERIFIABLE_LEGAL_FIELDS = (
    "estimated_cost",
    "processing_time",
    "documents_required",
    "local_authority_details",
)


class RegulatoryPatch(BaseModel):
    """Partial update for a regulatory entry; absent fields keep prior values."""

    estimated_cost: Optional[str] = None
    processing_time: Optional[str] = None
    documents_required: Optional[List[str]] = None
    local_authority_details: Optional[str] = None

    def changes(self) -> Dict[str, object]:
        """Return only the fields the backend actually supplied."""
        return self.model_dump(include=set(VERIFIABLE_LEGAL_FIELDS), exclude_none=True)


class VendorScript(BaseModel):
    """Negotiation script for a conversation with a landlord, supplier, etc."""

    context: str
    script: str
    tone: Optional[str] = None


class PlaceResult(BaseModel):
    name: str
    address: str
    rating: str

    @field_validator("rating", mode="before")
    @classmethod
    def _coerce_rating(cls, value: object) -> object:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class ConceptImage(BaseModel):
    """Illustrative picture of the business, returned as base64 image data."""

    media_type: str = "image/png"
    b64_data: str = Field(..., min_length=1, repr=False)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def data_url(self) -> str:
        return f"data:{self.media_type};base64,{self.b64_data}"


class BusinessPlan(BaseModel):
    """The full structured business plan aggregate."""

    idea_summary: str
    target_location: str
    budget_estimate: BudgetEstimate
    business_plan: LaunchOffering
    market_insights: MarketInsights
    financial_breakdown: FinancialBreakdown
    marketing_strategy: List[str]
    setup_checklist: List[str]
    legal_requirements: List[RegulatoryDetail]
    vendor_scripts: List[VendorScript]
    estimated_daily_profit: str
    optimization_suggestions: List[str]


# ---------------------------------------------------------------------------
# Financial display models
# ---------------------------------------------------------------------------


class CalculatorInputs(BaseModel):
    """Break-even calculator seed values parsed from plan text."""

    price: float
    variable_cost: float
    fixed_cost: float
    unparsed_fields: List[str] = Field(default_factory=list)


class CashFlowRow(BaseModel):
    month: int
    revenue: float
    expense: float
    profit: float
    cumulative_profit: float
    consistent: bool


class FinancialSummary(BaseModel):
    calculator: CalculatorInputs
    break_even_units: Optional[int]
    break_even_label: str
    cash_flow: List[CashFlowRow]


# ---------------------------------------------------------------------------
# HTTP payloads
# ---------------------------------------------------------------------------


class LanguageOption(BaseModel):
    code: Language
    label: str


class SessionCreateRequest(BaseModel):
    language: Language = Language.AUTO


class SessionCreated(BaseModel):
    session_id: str
    language: Language


class MessageRequest(BaseModel):
    text: str = Field(..., description="Typed or transcribed user utterance.")
    language: Optional[Language] = Field(
        default=None,
        description="Optional language override, applied once the submission is accepted.",
    )


class MessageResponse(BaseModel):
    session_id: str
    state: PipelineState
    reply: Optional[ConversationTurn]
    plan_ready: bool
    plan: Optional[BusinessPlan] = None


class RefineRequest(BaseModel):
    instruction: str


class RefineResponse(BaseModel):
    session_id: str
    succeeded: bool
    replies: List[ConversationTurn]
    plan: BusinessPlan


class RatingRequest(BaseModel):
    rating: Rating


class RatingResponse(BaseModel):
    turn: ConversationTurn
    prefill: Optional[str] = None
    focus_input: bool = False


class ScriptRequest(BaseModel):
    context: str = Field(..., min_length=1, description="Who the script is for, e.g. Landlord or Supplier.")
    tone: str = "Polite"


class ChecklistItemView(BaseModel):
    index: int
    text: str
    completed: bool


class SessionView(BaseModel):
    session_id: str
    language: Language
    state: PipelineState
    thinking_steps: List[str]
    turns: List[ConversationTurn]
    refinement_turns: List[ConversationTurn]
    plan: Optional[BusinessPlan]
    checklist: List[ChecklistItemView]


class PlanDocumentResponse(BaseModel):
    title: str
    page_count: int
    pages: List[str]
