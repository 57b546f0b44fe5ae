"""
Domain Layer - Behavioral Guidelines

A guideline is a conditionally-active directive for the response stage
("if the customer sounds frustrated, offer a human handoff"). The matcher
decides which guidelines currently hold; it does not rank or deduplicate them.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..exceptions import DefinitionError
from .conditions import (
    Combinator,
    ConditionEvaluator,
    ConditionExpression,
    EvaluationContext,
    default_evaluator,
)

logger = logging.getLogger(__name__)

ALWAYS_ACTIVE_RATIONALE = "Always active (no conditions)"
PROGRAMMATIC_RATIONALE = "Programmatic condition evaluated to true"


@dataclass
class Guideline:
    """
    Attributes:
        action: Free text instructing the response stage.
        condition: When the guideline applies. None means always.
        id: Unique identifier. Assigned by the owning route/agent if omitted.
        enabled: Disabled guidelines are never matched.
        tags: Labels for organizing guidelines.
        metadata: Free-form extra data.
    """
    action: str
    condition: ConditionExpression = None
    id: Optional[str] = None
    enabled: bool = True
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.action, str) or not self.action.strip():
            raise DefinitionError("Guideline action must be a non-empty string")


@dataclass
class GuidelineMatch:
    guideline: Guideline
    rationale: str


def normalize_guidelines(guidelines: Optional[List[Any]], id_prefix: str) -> List[Guideline]:
    """Accepts Guideline objects or dicts and assigns `{id_prefix}_{n}` ids."""
    normalized: List[Guideline] = []
    for index, item in enumerate(guidelines or []):
        guideline = item if isinstance(item, Guideline) else Guideline(**item)
        if not guideline.id:
            guideline.id = f"{id_prefix}_{index}"
        normalized.append(guideline)
    return normalized


class GuidelineMatcher:
    def __init__(self, evaluator: Optional[ConditionEvaluator] = None):
        self.evaluator = evaluator or default_evaluator

    async def evaluate(
        self, guidelines: List[Guideline], context: EvaluationContext
    ) -> List[GuidelineMatch]:
        """
        Returns the enabled guidelines whose conditions hold, in input order.
        """
        matches: List[GuidelineMatch] = []

        for guideline in guidelines:
            if guideline.enabled is False:
                continue

            if guideline.condition is None:
                matches.append(GuidelineMatch(guideline, ALWAYS_ACTIVE_RATIONALE))
                continue

            outcome = await self.evaluator.evaluate(
                guideline.condition, context, Combinator.AND
            )
            if not outcome.result:
                continue

            if outcome.rationale:
                rationale = "Condition met: " + ", ".join(outcome.rationale)
            elif outcome.has_programmatic:
                rationale = PROGRAMMATIC_RATIONALE
            else:
                # Malformed condition, evaluated as absent.
                rationale = ALWAYS_ACTIVE_RATIONALE
            matches.append(GuidelineMatch(guideline, rationale))

        logger.debug(f"Matched {len(matches)} of {len(guidelines)} guidelines")
        return matches
