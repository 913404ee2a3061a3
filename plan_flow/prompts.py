"""Prompt builders for every generative backend call."""

from __future__ import annotations

import json
from functools import lru_cache
from textwrap import dedent
from typing import Any, Dict, Sequence, Type

from pydantic import BaseModel

from .schemas import (
    BusinessPlan,
    ConversationTurn,
    IntentAnalysis,
    Language,
    RegulatoryDetail,
    RegulatoryPatch,
    VendorScript,
)

SYSTEM_INSTRUCTION = dedent(
    """
    You are an elite small-business consultant for the Indian market.
    You convert raw spoken or typed ideas into a consultant-grade execution plan.

    Rules:
    1. Depth and reality: never give generic advice. Give specific numbers, specific places and specific legal steps.
    2. Financial math: compute the break-even point from rent, salaries and per-unit margin, and give realistic
       monthly cash-flow projections for the first year.
    3. Hyper-local: contrast high-street and side-road rents for the named area and name local competitors.
    4. Legal roadmap: give official government URLs, exact documents and the specific local municipal body.
    5. Language: write values in the requested language; JSON keys always stay in English exactly as specified.
    """
).strip()

MANDATORY_PLAN_DIRECTIVES = (
    "Financial breakdown: separate fixed monthly costs (rent, salaries) from variable per-unit costs and state the "
    "break-even point as units per day, with a learn-more URL explaining the break-even method.",
    "Cash flow: fill financial_projections_year_1 with twelve months of revenue, expense and profit, starting slow.",
    "Legal roadmap: step-by-step licence process with official fees, processing_time, documents_required, an official "
    "learn_more_url and local_authority_details naming the municipal body responsible.",
    "Marketing: concrete growth tactics such as WhatsApp lists, subscriptions or neighbourhood partnerships.",
    "Location: quote rental costs specific to {location}.",
)

LOCATION_CHANGE_RULE = (
    "If the request changes the target location, regenerate every location-dependent field for the new location "
    "(market_insights rental costs, competitor pricing and subsidies, legal_requirements local authorities and fees, "
    "and any costs derived from them), not only the fields the user mentioned."
)

RESEARCH_TOPICS = (
    "Exact government permit fees and application process (food safety licence, trade licence) for {business} in {location}.",
    "Commercial shop rental listings and prices in {location}.",
    "Wholesale rates for raw materials needed for {business} in {location}.",
    "Competitor pricing for {business} in {location}.",
    "Government subsidy and loan schemes for street vendors and small businesses in {location}.",
)


@lru_cache(maxsize=None)
def schema_hint(model: Type[BaseModel]) -> str:
    """Render the JSON schema of *model* for inclusion in a prompt."""

    return json.dumps(model.model_json_schema(), indent=2, ensure_ascii=False)


def format_history(turns: Sequence[ConversationTurn]) -> str:
    return "\n".join(f"{turn.role.value.upper()}: {turn.text}" for turn in turns)


def language_instruction(language: Language) -> str:
    if language is Language.AUTO:
        return (
            "No language was selected: detect the user's language from the conversation and write every JSON value "
            "in it. JSON keys remain fixed in English."
        )
    return (
        f"The selected language is {language.value} ({language.label}). Every JSON value must be written in this "
        "language. JSON keys remain fixed in English."
    )


def build_analysis_prompt(history: Sequence[ConversationTurn], language: Language) -> str:
    return dedent(
        """
        Analyze this FULL conversation history and decide whether we know BOTH a business idea AND a specific
        target location (city or area).

        CONVERSATION HISTORY:
        {history}

        SELECTED LANGUAGE: {language}

        INSTRUCTIONS:
        - If the user just answered a question (e.g. only a place name), combine it with earlier turns.
        - "is_sufficient" means you know WHAT they want to do and WHERE they want to do it.
        - If insufficient, write one specific clarification_question in the selected language
          (or in the detected language when the selection is "auto").
        - If sufficient, fill identified_business, identified_location and a search_query for local
          regulations, costs and market trends.

        Return only a JSON object matching this schema:
        {schema}
        """
    ).strip().format(
        history=format_history(history),
        language=language.value,
        schema=schema_hint(IntentAnalysis),
    )


def build_research_query(analysis: IntentAnalysis) -> str:
    """Return the backend-proposed query, or a deterministic five-topic query."""

    if analysis.search_query and analysis.search_query.strip():
        return analysis.search_query.strip()

    business = (analysis.identified_business or "").strip()
    location = (analysis.identified_location or "").strip()
    topics = "\n".join(
        f"{number}. {topic.format(business=business, location=location)}"
        for number, topic in enumerate(RESEARCH_TOPICS, start=1)
    )
    return f"Start {business} in {location}, India guide.\nFind:\n{topics}"


def build_plan_prompt(
    history: Sequence[ConversationTurn],
    research_context: str,
    language: Language,
    location: str,
) -> str:
    directives = "\n".join(
        f"{number}. {directive.format(location=location or 'the target area')}"
        for number, directive in enumerate(MANDATORY_PLAN_DIRECTIVES, start=1)
    )
    return dedent(
        """
        Create a consultant-grade execution plan from this user input and market research.

        User input history:
        {history}

        {language}

        Market research context (real-time data):
        {research}

        MANDATORY REQUIREMENTS:
        {directives}

        Return only a JSON object matching this schema:
        {schema}
        """
    ).strip().format(
        history=format_history(history),
        language=language_instruction(language),
        research=research_context.strip() or "No research context was available.",
        directives=directives,
        schema=schema_hint(BusinessPlan),
    )


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


def build_refinement_prompt(
    current_plan: BusinessPlan,
    refinement_history: Sequence[ConversationTurn],
    instruction: str,
) -> str:
    return dedent(
        """
        Current plan: {plan}
        Conversation history: {history}
        User request: "{instruction}"

        Task:
        1. Update the JSON plan according to the user's request.
        2. Return the COMPLETE plan and keep the exact JSON schema below; never drop a section.
        3. Keep values consistent with each other (budget, costs, break-even and projections).
        4. {location_rule}

        Schema:
        {schema}
        """
    ).strip().format(
        plan=current_plan.model_dump_json(),
        history=_dump([turn.text for turn in refinement_history]),
        instruction=instruction,
        location_rule=LOCATION_CHANGE_RULE,
        schema=schema_hint(BusinessPlan),
    )


def build_script_prompt(context: str, tone: str, idea_summary: str, location: str) -> str:
    payload: Dict[str, str] = {"context": context, "script": "...", "tone": tone}
    return (
        f'Generate a short negotiation script for a business owner talking to a "{context}" in the context of: '
        f"{idea_summary} in {location}. Tone: {tone}. Return JSON: {_dump(payload)}"
    )


def build_script_regeneration_prompt(script: VendorScript) -> str:
    payload: Dict[str, Any] = {"context": script.context, "script": "...", "tone": script.tone}
    return (
        "Regenerate this negotiation script with a slightly different, more effective phrasing. "
        f'Keep the context "{script.context}". Original: "{script.script}". Return JSON: {_dump(payload)}'
    )


def build_places_prompt(category: str, location: str, limit: int) -> str:
    return (
        f'Find the {limit} top rated "{category}" in "{location}" useful for a small business. '
        'Return only a JSON object of the form {"places": [{"name": "...", "address": "...", "rating": "..."}]}.'
    )


def build_verification_prompt(detail: RegulatoryDetail, location: str) -> str:
    return dedent(
        """
        Find the absolute latest official requirements for "{name}" in "{location}".
        Current record: {record}
        Update the following fields if they changed: estimated_cost, processing_time,
        documents_required (list specific forms), local_authority_details.
        Return only a JSON object with any of these keys:
        {schema}
        """
    ).strip().format(
        name=detail.name,
        location=location,
        record=detail.model_dump_json(),
        schema=schema_hint(RegulatoryPatch),
    )


def build_concept_image_prompt(idea_summary: str, location: str) -> str:
    return (
        f"Generate a realistic, high-quality concept image of a small business in India: {idea_summary}. "
        f"Location context: {location}. Street photography style, sunny day."
    )
