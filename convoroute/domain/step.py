"""
Domain Layer - Steps

A Step is a node in a route's step graph: one interaction unit with a prompt,
the fields it elicits, its preconditions, its activation/skip conditions,
optional tools, and its outgoing transitions.

Steps are created through their route (`route.initial_step.next_step(...)`)
so that ids stay unique within the route and the graph can be frozen once
configuration is finished.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Union

from ..exceptions import DefinitionError, RouteGraphError
from ..tools.models import ToolDefinition
from .conditions import (
    Combinator,
    ConditionExpression,
    EvaluationContext,
    default_evaluator,
)
from .guidelines import Guideline
from .ids import generate_inline_tool_id

if TYPE_CHECKING:
    from .route import Route

logger = logging.getLogger(__name__)

END_ROUTE_ID = "END_ROUTE"

STEP_OPTIONS = (
    "description",
    "prompt",
    "instructions",
    "collect",
    "requires",
    "when",
    "skip_if",
    "tools",
)


class EndRoute:
    """Terminal marker. A transition to it ends the route."""

    id = END_ROUTE_ID

    def next_step(self, *args, **kwargs):
        raise RouteGraphError("Cannot transition from END_ROUTE")

    def branch(self, *args, **kwargs):
        raise RouteGraphError("Cannot branch from END_ROUTE")

    def __repr__(self) -> str:
        return "END_ROUTE"


END_ROUTE = EndRoute()


@dataclass
class Transition:
    """
    Outgoing edge of a step.

    Attributes:
        source_id: Id of the step the edge leaves from.
        target: Destination step, or None for END_ROUTE.
        condition: Optional condition gating the edge (AND semantics).
        branch_name: Name given by `branch()`, None for plain transitions.
    """
    source_id: str
    target: Optional["Step"] = None
    condition: ConditionExpression = None
    branch_name: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.target is None

    def describe(self) -> str:
        target = END_ROUTE_ID if self.target is None else self.target.id
        label = f" [{self.branch_name}]" if self.branch_name else ""
        when = " (conditional)" if self.condition is not None else ""
        return f"{self.source_id} -> {target}{label}{when}"


@dataclass
class StepActivation:
    should_activate: bool
    ai_context_strings: List[str] = field(default_factory=list)
    has_programmatic_conditions: bool = False


@dataclass
class StepSkip:
    should_skip: bool
    ai_context_strings: List[str] = field(default_factory=list)
    has_programmatic_conditions: bool = False


ToolRef = Union[str, ToolDefinition]


class Step:
    """
    Attributes:
        id: Unique within the route. Generated from the description if omitted.
        route_id: Owning route.
        description: Short label, also used for id generation.
        prompt: What the response stage should do while this step is active.
        instructions: Extra directives appended to the prompt.
        collect: Fields this step is responsible for eliciting.
        requires: Fields that must already be in `data` to reach this step.
        when: Activation condition (AND semantics, absent means active).
        skip_if: Skip condition (OR semantics, absent means never skip).
        tools: Tool ids or inline tool definitions to run while active.
    """

    def __init__(
        self,
        route: "Route",
        id: Optional[str] = None,
        description: Optional[str] = None,
        prompt: Optional[str] = None,
        instructions: Optional[str] = None,
        collect: Optional[List[str]] = None,
        requires: Optional[List[str]] = None,
        when: ConditionExpression = None,
        skip_if: ConditionExpression = None,
        tools: Optional[List[Any]] = None,
    ):
        self._route = route
        self.route_id = route.id
        self.description = description
        self.id = route._register_step(self, id, description or prompt)
        self.prompt = prompt
        self.instructions = instructions
        self.collect: List[str] = list(collect or [])
        self.requires: List[str] = list(requires or [])
        self.when = when
        self.skip_if = skip_if
        self.tools: List[ToolRef] = self._normalize_tools(tools)
        self.transitions: List[Transition] = []
        self.branches: Dict[str, "Step"] = {}
        self._guidelines: List[Guideline] = []

    # ==========================================================================
    # Graph Construction
    # ==========================================================================

    def configure(self, **options) -> "Step":
        """Overrides step options after creation. Returns self for chaining."""
        self._route._ensure_mutable()
        unknown = set(options) - set(STEP_OPTIONS)
        if unknown:
            raise DefinitionError(f"Unknown step options: {sorted(unknown)}")

        for name, value in options.items():
            if name in ("collect", "requires"):
                value = list(value or [])
            elif name == "tools":
                value = self._normalize_tools(value)
            setattr(self, name, value)
        return self

    def next_step(
        self,
        target: Union["Step", EndRoute, str, None] = None,
        condition: ConditionExpression = None,
        **options,
    ) -> Union["Step", EndRoute]:
        """
        Adds a transition and returns its target so calls can be chained.

        `target` may be an existing Step (rejoin), a step id of this route,
        END_ROUTE, or omitted to create a new step from `options`.
        """
        self._route._ensure_mutable()

        if target is END_ROUTE or isinstance(target, EndRoute):
            self.transitions.append(Transition(self.id, None, condition))
            return END_ROUTE

        if isinstance(target, str):
            target = self._route.require_step(target)

        if isinstance(target, Step):
            if target.route_id != self.route_id:
                raise DefinitionError(
                    f"Step '{target.id}' belongs to route '{target.route_id}', not '{self.route_id}'"
                )
        else:
            target = Step(self._route, **options)

        self.transitions.append(Transition(self.id, target, condition))
        return target

    def branch(self, specs: List[Mapping[str, Any]]) -> Dict[str, "Step"]:
        """
        Fans out into sibling child steps, one per spec.

        Each spec needs a `name`; the remaining keys are step options plus an
        optional `condition` for the edge. A repeated name rebinds the name
        to the later step (last write wins) but both steps stay in the graph.
        """
        self._route._ensure_mutable()
        created: Dict[str, Step] = {}

        for spec in specs:
            options = dict(spec)
            name = options.pop("name", None)
            if not name:
                raise DefinitionError(f"Branch spec on step '{self.id}' is missing a name")
            condition = options.pop("condition", None)

            child = Step(self._route, **options)
            self.transitions.append(Transition(self.id, child, condition, branch_name=name))
            if name in created:
                logger.warning(f"Branch name '{name}' repeated on step '{self.id}', keeping the last one")
            created[name] = child

        self.branches.update(created)
        return created

    def add_guideline(self, guideline: Guideline) -> "Step":
        self._route._ensure_mutable()
        if not guideline.id:
            guideline.id = f"guideline_{self.id}_{len(self._guidelines)}"
        self._guidelines.append(guideline)
        return self

    def get_guidelines(self) -> List[Guideline]:
        return list(self._guidelines)

    # ==========================================================================
    # Evaluation
    # ==========================================================================

    async def evaluate_when(self, context: EvaluationContext) -> StepActivation:
        outcome = await default_evaluator.evaluate(self.when, context, Combinator.AND)
        return StepActivation(
            should_activate=outcome.result,
            ai_context_strings=outcome.rationale,
            has_programmatic_conditions=outcome.has_programmatic,
        )

    async def evaluate_skip_if(self, context: EvaluationContext) -> StepSkip:
        outcome = await default_evaluator.evaluate(self.skip_if, context, Combinator.OR)
        return StepSkip(
            should_skip=outcome.result,
            ai_context_strings=outcome.rationale,
            has_programmatic_conditions=outcome.has_programmatic,
        )

    def has_requires(self, data: Mapping[str, Any]) -> bool:
        """True iff every `requires` field is present in `data`."""
        return all(name in data for name in self.requires)

    def has_collected(self, data: Mapping[str, Any]) -> bool:
        """True iff every `collect` field is present in `data`."""
        return all(name in data for name in self.collect)

    def missing_requires(self, data: Mapping[str, Any]) -> List[str]:
        return [name for name in self.requires if name not in data]

    # ==========================================================================
    # Helpers
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        """True if the step has an edge to END_ROUTE."""
        return any(t.is_terminal for t in self.transitions)

    def _normalize_tools(self, tools: Optional[List[Any]]) -> List[ToolRef]:
        normalized: List[ToolRef] = []
        for index, tool in enumerate(tools or []):
            if isinstance(tool, (str, ToolDefinition)):
                normalized.append(tool)
            elif callable(tool):
                # Inline handler: wrap it so it can be resolved like any other tool.
                tool_id = generate_inline_tool_id(self.id)
                if index:
                    tool_id = f"{tool_id}_{index}"
                normalized.append(
                    ToolDefinition(
                        id=tool_id,
                        handler=tool,
                        description=f"Inline tool for step {self.id}",
                    )
                )
            else:
                raise DefinitionError(
                    f"Step '{self.id}' tool references must be ids, tool definitions or callables"
                )
        return normalized

    def __repr__(self) -> str:
        return f"Step(id={self.id!r}, route_id={self.route_id!r})"
