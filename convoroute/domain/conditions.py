"""
Domain Layer - Condition Expressions

A condition expression is recursively one of:
- a string: a natural-language clause. It never gates execution; it is only
  surfaced to the language model as rationale.
- a predicate: a callable taking an EvaluationContext and returning a bool
  (or an awaitable bool).
- a list of condition expressions, combined with the call-site combinator
  (AND for `when` and guideline conditions, OR for `skip_if`).

Only predicates take part in the boolean combination. An all-string list is
therefore always true under AND and always false under OR.
"""

import copy
import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Awaitable, Callable, List, Mapping, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class Combinator(str, Enum):
    """How the programmatic members of a condition list are combined."""
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True)
class EvaluationContext:
    """
    Read-only view handed to predicates.

    Attributes:
        context: The caller-owned agent context.
        data: Fields collected in the active route.
        session: The session state being processed (a private copy).
        history: Recent interaction history.
    """
    context: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    session: Any = None
    history: Sequence[Any] = ()

    @classmethod
    def build(
        cls,
        session: Any = None,
        context: Optional[Mapping[str, Any]] = None,
        history: Optional[Sequence[Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> "EvaluationContext":
        """Snapshots the inputs so predicates cannot mutate caller state."""
        if data is None:
            data = getattr(session, "data", None) or {}
        if session is not None and hasattr(session, "model_copy"):
            session = session.model_copy(deep=True)
        return cls(
            context=MappingProxyType(dict(context or {})),
            data=MappingProxyType(copy.deepcopy(dict(data))),
            session=session,
            history=tuple(history or ()),
        )


Predicate = Callable[[EvaluationContext], Union[bool, Awaitable[bool]]]
ConditionExpression = Union[str, Predicate, List[Any], None]


@dataclass
class ConditionResult:
    result: bool
    rationale: List[str] = field(default_factory=list)
    has_programmatic: bool = False


def _is_predicate(expression: Any) -> bool:
    return callable(expression) and not isinstance(expression, (str, type))


class ConditionEvaluator:
    """
    Evaluates condition expressions against an EvaluationContext.

    Stateless; a single instance can be shared by every route and session.
    """

    async def evaluate(
        self,
        expression: ConditionExpression,
        context: EvaluationContext,
        combinator: Combinator = Combinator.AND,
    ) -> ConditionResult:
        default = combinator == Combinator.AND

        if expression is None:
            return ConditionResult(result=default)

        if isinstance(expression, str):
            if not expression:
                return ConditionResult(result=default)
            # A clause is vacuously true under AND and never triggers OR.
            return ConditionResult(result=default, rationale=[expression])

        if isinstance(expression, (list, tuple)):
            return await self._evaluate_list(expression, context, combinator)

        if _is_predicate(expression):
            return ConditionResult(
                result=await self._call_predicate(expression, context),
                has_programmatic=True,
            )

        # TODO: decide whether malformed conditions should become a DefinitionError
        # once the route validator checks condition types up front.
        logger.warning(
            f"Unexpected condition type {type(expression).__name__}, treating as absent"
        )
        return ConditionResult(result=default)

    async def _evaluate_list(
        self,
        expressions: Sequence[Any],
        context: EvaluationContext,
        combinator: Combinator,
    ) -> ConditionResult:
        rationale: List[str] = []
        programmatic_results: List[bool] = []

        for member in expressions:
            member_result = await self.evaluate(member, context, combinator)
            rationale.extend(member_result.rationale)
            if member_result.has_programmatic:
                programmatic_results.append(member_result.result)

        if not programmatic_results:
            result = combinator == Combinator.AND
        elif combinator == Combinator.AND:
            result = all(programmatic_results)
        else:
            result = any(programmatic_results)

        return ConditionResult(
            result=result,
            rationale=rationale,
            has_programmatic=bool(programmatic_results),
        )

    async def _call_predicate(self, predicate: Predicate, context: EvaluationContext) -> bool:
        try:
            outcome = predicate(context)
            if inspect.isawaitable(outcome):
                outcome = await outcome
            return bool(outcome)
        except Exception as e:
            # Fail closed: a broken predicate never activates or skips anything.
            logger.warning(f"Condition predicate {predicate!r} raised, treating as false: {e}")
            return False


def extract_ai_context_strings(expression: ConditionExpression) -> List[str]:
    """Collects the string clauses of an expression without evaluating it."""
    if isinstance(expression, str):
        return [expression] if expression else []
    if isinstance(expression, (list, tuple)):
        strings: List[str] = []
        for member in expression:
            strings.extend(extract_ai_context_strings(member))
        return strings
    return []


def has_programmatic_conditions(expression: ConditionExpression) -> bool:
    if isinstance(expression, (list, tuple)):
        return any(has_programmatic_conditions(member) for member in expression)
    return _is_predicate(expression)


default_evaluator = ConditionEvaluator()
