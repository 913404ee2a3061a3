from __future__ import annotations

import asyncio

import pytest

from plan_flow.context import SessionContext
from plan_flow.conversation import GENERIC_FAILURE_MESSAGE, ConversationStateMachine
from plan_flow.errors import BackendTimeoutError, EmptyInputError, ParseError, SchemaViolationError, SessionBusyError
from plan_flow.prompts import build_research_query
from plan_flow.schemas import IntentAnalysis, Language, PipelineState, Role


def _machine(backend, language: Language = Language.AUTO) -> tuple[ConversationStateMachine, SessionContext]:
    context = SessionContext(language)
    return ConversationStateMachine(backend, context), context


@pytest.mark.asyncio
async def test_clarification_then_plan_over_combined_history(backend, plan_factory) -> None:
    plan = plan_factory()
    backend.analyses = [
        IntentAnalysis(is_sufficient=False, clarification_question="Great idea! Where do you want to sell coffee?"),
        IntentAnalysis(
            is_sufficient=True,
            identified_business="coffee",
            identified_location="Koramangala, Bangalore",
            search_query="coffee cart licence rent Koramangala Bangalore",
        ),
    ]
    backend.research_results = ["Cart spots rent for ₹10-15k in Koramangala."]
    backend.plans = [plan]
    machine, context = _machine(backend, Language.EN_IN)

    first = await machine.submit("I want to sell coffee")

    assert first.state is PipelineState.IDLE
    assert first.plan is None
    assert first.reply is not None and "Where" in first.reply.text
    assert context.plan is None

    second = await machine.submit("  Koramangala, Bangalore ")

    assert second.plan == plan
    assert second.reply is None
    assert context.plan == plan
    assert machine.state is PipelineState.IDLE

    second_analysis = backend.called("analyze_intent")[1]
    assert [turn.text for turn in second_analysis["history"]] == [
        "I want to sell coffee",
        "Great idea! Where do you want to sell coffee?",
        "Koramangala, Bangalore",
    ]
    assert second_analysis["language"] is Language.EN_IN
    assert backend.called("research")[0]["query"] == "coffee cart licence rent Koramangala Bangalore"

    generation = backend.called("generate_plan")[0]
    assert generation["research_context"].startswith("Cart spots")
    assert generation["location"] == "Koramangala, Bangalore"
    assert len(generation["history"]) == 3


@pytest.mark.asyncio
async def test_empty_utterance_rejected_without_call(backend) -> None:
    machine, _ = _machine(backend)

    with pytest.raises(EmptyInputError):
        await machine.submit("   ")

    assert machine.turns == ()
    assert backend.calls == []
    assert machine.state is PipelineState.IDLE


@pytest.mark.parametrize(
    "failure",
    [
        BackendTimeoutError("analyze_intent timed out"),
        ParseError("not json"),
        SchemaViolationError("business_plan", ["budget_estimate: Field required"]),
    ],
)
@pytest.mark.asyncio
async def test_backend_failure_becomes_conversational_message(backend, plan_factory, failure) -> None:
    backend.analyses = [IntentAnalysis(is_sufficient=True, identified_business="tea", identified_location="Pune")]
    backend.research_results = ["research"]
    backend.plans = [failure]
    machine, context = _machine(backend)
    context.plan = previous = plan_factory(idea_summary="Earlier plan")

    outcome = await machine.submit("Tea stall in Pune")

    assert outcome.plan is None
    assert outcome.reply is not None and outcome.reply.text == GENERIC_FAILURE_MESSAGE
    assert machine.turns[-1].role is Role.ASSISTANT
    assert machine.state is PipelineState.IDLE
    assert context.plan is previous


@pytest.mark.asyncio
async def test_submit_is_not_reentrant(backend, plan_factory) -> None:
    gate = asyncio.Event()
    backend.gates["analyze_intent"] = gate
    backend.analyses = [IntentAnalysis(is_sufficient=False, clarification_question="Which city?")]
    machine, _ = _machine(backend)

    pending = asyncio.create_task(machine.submit("Dosa stall"))
    await asyncio.sleep(0)
    assert machine.state is PipelineState.ANALYZING
    assert machine.thinking_steps

    with pytest.raises(SessionBusyError):
        await machine.submit("in Chennai")

    gate.set()
    outcome = await pending
    assert outcome.reply is not None and outcome.reply.text == "Which city?"
    assert [turn.text for turn in machine.turns] == ["Dosa stall", "Which city?"]


@pytest.mark.parametrize(
    "gated_call, stage, later_calls",
    [
        ("analyze_intent", PipelineState.ANALYZING, ("research", "generate_plan")),
        ("research", PipelineState.RESEARCHING, ("generate_plan",)),
        ("generate_plan", PipelineState.GENERATING, ()),
    ],
)
@pytest.mark.asyncio
async def test_reset_mid_pipeline_discards_stale_result(backend, plan_factory, gated_call, stage, later_calls) -> None:
    gate = asyncio.Event()
    backend.gates[gated_call] = gate
    backend.analyses = [IntentAnalysis(is_sufficient=True, identified_business="coffee", identified_location="Goa")]
    backend.research_results = ["research"]
    backend.plans = [plan_factory()]
    machine, context = _machine(backend)

    pending = asyncio.create_task(machine.submit("Coffee shack in Goa"))
    while machine.state is not stage or not backend.called(gated_call):
        await asyncio.sleep(0)

    context.reset()
    machine.reset()
    gate.set()
    outcome = await pending

    assert outcome.stale
    assert outcome.plan is None
    assert context.plan is None
    assert machine.turns == ()
    assert machine.state is PipelineState.IDLE
    for name in later_calls:
        assert backend.called(name) == []


def test_research_query_synthesized_from_identified_fields() -> None:
    analysis = IntentAnalysis(is_sufficient=True, identified_business="idli stall", identified_location="Jayanagar")

    query = build_research_query(analysis)

    assert query.startswith("Start idli stall in Jayanagar")
    assert query.count("Jayanagar") >= 6
    for topic in ("permit fees", "rental listings", "Wholesale rates", "Competitor pricing", "subsidy"):
        assert topic in query
