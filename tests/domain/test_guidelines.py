"""
Tests for GuidelineMatcher.
"""

import pytest

from convoroute.domain.conditions import EvaluationContext
from convoroute.domain.guidelines import (
    ALWAYS_ACTIVE_RATIONALE,
    PROGRAMMATIC_RATIONALE,
    Guideline,
    GuidelineMatcher,
    normalize_guidelines,
)
from convoroute.exceptions import DefinitionError


@pytest.fixture
def matcher():
    return GuidelineMatcher()


def context_with(**data):
    return EvaluationContext.build(data=data)


class TestMatching:
    @pytest.mark.asyncio
    async def test_mixed_condition_matches_only_when_predicate_holds(self, matcher):
        guideline = Guideline(
            action="Offer priority support",
            condition=["needs help", lambda ctx: ctx.data.get("tier") == "gold"],
        )

        gold = await matcher.evaluate([guideline], context_with(tier="gold"))
        silver = await matcher.evaluate([guideline], context_with(tier="silver"))

        assert len(gold) == 1
        assert gold[0].rationale == "Condition met: needs help"
        assert silver == []

    @pytest.mark.asyncio
    async def test_no_condition_is_always_active(self, matcher):
        matches = await matcher.evaluate([Guideline(action="Be polite")], context_with())

        assert matches[0].rationale == ALWAYS_ACTIVE_RATIONALE

    @pytest.mark.asyncio
    async def test_programmatic_only_rationale(self, matcher):
        guideline = Guideline(action="Upsell", condition=lambda ctx: True)

        matches = await matcher.evaluate([guideline], context_with())

        assert matches[0].rationale == PROGRAMMATIC_RATIONALE

    @pytest.mark.asyncio
    async def test_string_clauses_are_joined(self, matcher):
        guideline = Guideline(action="Slow down", condition=["user is confused", "user asks twice"])

        matches = await matcher.evaluate([guideline], context_with())

        assert matches[0].rationale == "Condition met: user is confused, user asks twice"

    @pytest.mark.asyncio
    async def test_disabled_guidelines_are_excluded(self, matcher):
        evaluated = []

        def spy(ctx):
            evaluated.append(True)
            return True

        guideline = Guideline(action="Never shown", condition=spy, enabled=False)

        matches = await matcher.evaluate([guideline], context_with())

        assert matches == []
        assert evaluated == []

    @pytest.mark.asyncio
    async def test_input_order_is_preserved(self, matcher):
        guidelines = [
            Guideline(action="first", condition=lambda ctx: True),
            Guideline(action="skipped", condition=lambda ctx: False),
            Guideline(action="second"),
            Guideline(action="third", condition="always words"),
        ]

        matches = await matcher.evaluate(guidelines, context_with())

        assert [m.guideline.action for m in matches] == ["first", "second", "third"]


class TestDefinitions:
    def test_empty_action_is_rejected(self):
        with pytest.raises(DefinitionError):
            Guideline(action="  ")

    def test_normalize_assigns_prefixed_ids_and_accepts_dicts(self):
        normalized = normalize_guidelines(
            [{"action": "a"}, Guideline(action="b", id="custom")], "guideline_agent"
        )

        assert [g.id for g in normalized] == ["guideline_agent_0", "custom"]
