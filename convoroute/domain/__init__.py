"""
Domain Layer - Static Configuration

Defines the route/step graph, condition expressions and behavioral
guidelines. These objects are built once at setup time and only read while
conversations are processed.
"""

from convoroute.domain.conditions import (
    Combinator,
    ConditionEvaluator,
    ConditionResult,
    EvaluationContext,
    extract_ai_context_strings,
    has_programmatic_conditions,
)
from convoroute.domain.guidelines import Guideline, GuidelineMatch, GuidelineMatcher
from convoroute.domain.route import Route, RouteTransitionConfig
from convoroute.domain.step import END_ROUTE, Step, StepActivation, StepSkip, Transition

__all__ = [
    "Combinator",
    "ConditionEvaluator",
    "ConditionResult",
    "END_ROUTE",
    "EvaluationContext",
    "Guideline",
    "GuidelineMatch",
    "GuidelineMatcher",
    "Route",
    "RouteTransitionConfig",
    "Step",
    "StepActivation",
    "StepSkip",
    "Transition",
    "extract_ai_context_strings",
    "has_programmatic_conditions",
]
