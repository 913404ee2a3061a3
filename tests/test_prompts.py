from __future__ import annotations

import json

from plan_flow.prompts import (
    LOCATION_CHANGE_RULE,
    MANDATORY_PLAN_DIRECTIVES,
    build_concept_image_prompt,
    build_plan_prompt,
    build_refinement_prompt,
)
from plan_flow.schemas import ConversationTurn, Language, Role

HISTORY = [
    ConversationTurn(role=Role.USER, text="I want to sell coffee"),
    ConversationTurn(role=Role.ASSISTANT, text="Where will you sell it?"),
    ConversationTurn(role=Role.USER, text="Koramangala, Bangalore"),
]


def test_plan_prompt_carries_research_language_and_directives() -> None:
    prompt = build_plan_prompt(HISTORY, "Cart spots rent for ₹10-15k.", Language.HI_IN, "Koramangala, Bangalore")

    assert "Cart spots rent for ₹10-15k." in prompt
    assert "USER: Koramangala, Bangalore" in prompt
    assert "hi-IN (Hindi)" in prompt
    assert "Every JSON value must be written in this language. JSON keys remain fixed in English." in prompt
    for directive in MANDATORY_PLAN_DIRECTIVES:
        assert directive.format(location="Koramangala, Bangalore") in prompt
    assert "rental costs specific to Koramangala, Bangalore" in prompt
    assert '"financial_projections_year_1"' in prompt


def test_plan_prompt_auto_language_asks_for_detection() -> None:
    prompt = build_plan_prompt(HISTORY, "", Language.AUTO, "")

    assert "detect the user's language" in prompt
    assert "JSON keys remain fixed in English" in prompt
    assert "No research context was available." in prompt
    assert "rental costs specific to the target area" in prompt


def test_refinement_prompt_carries_plan_prior_texts_and_location_rule(plan) -> None:
    prior = [
        ConversationTurn(role=Role.USER, text="Add vegetarian options"),
        ConversationTurn(role=Role.ASSISTANT, text="Plan updated. Please review the dashboard."),
    ]

    prompt = build_refinement_prompt(plan, prior, "Move to Indiranagar")

    assert plan.model_dump_json() in prompt
    history = json.dumps([turn.text for turn in prior], ensure_ascii=False)
    assert f"Conversation history: {history}" in prompt
    assert "USER:" not in prompt
    assert prompt.count("Move to Indiranagar") == 1
    assert 'User request: "Move to Indiranagar"' in prompt
    assert LOCATION_CHANGE_RULE in prompt


def test_refinement_prompt_with_no_prior_turns(plan) -> None:
    prompt = build_refinement_prompt(plan, [], "Reduce startup cost by 20%")

    assert "Conversation history: []" in prompt


def test_concept_image_prompt_names_summary_and_location() -> None:
    prompt = build_concept_image_prompt("Filter coffee cart", "Koramangala, Bangalore")

    assert "Filter coffee cart" in prompt
    assert "Location context: Koramangala, Bangalore." in prompt
