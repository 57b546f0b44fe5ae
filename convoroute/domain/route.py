"""
Domain Layer - Routes

A Route is a named, schema-bound conversational flow: a step graph rooted at
`initial_step`, the data fields it collects, its guidelines and tools, and
what should happen once it completes.

Routes are configuration. They are built once at setup time, frozen when
registered with an agent, and afterwards only read, so a single Route can be
shared by any number of concurrent sessions.
"""

import inspect
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from ..exceptions import DefinitionError, RouteGraphError
from ..tools.models import ToolDefinition
from .conditions import ConditionExpression
from .guidelines import Guideline, normalize_guidelines
from .ids import generate_route_id, generate_step_id
from .step import END_ROUTE, Step

logger = logging.getLogger(__name__)


@dataclass
class RouteTransitionConfig:
    """
    Where to go after a route completes.

    Attributes:
        transition_to: Target route id or title.
        condition: Optional natural-language condition for the response stage.
    """
    transition_to: str
    condition: Optional[str] = None


OnComplete = Union[str, RouteTransitionConfig, Callable[..., Any], None]


def is_empty_value(value: Any) -> bool:
    """None, empty strings and empty collections do not count as collected."""
    if value is None:
        return True
    if isinstance(value, str):
        return value == ""
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False


class Route:
    """
    Attributes:
        id: Unique identifier. Derived from the title if omitted.
        title: Human-readable name, also accepted as a lookup key.
        description: What the route accomplishes (used for route selection).
        schema: JSON-schema-like dict describing the collected fields.
        required_fields: Fields that must be non-empty for completion.
        optional_fields: Fields the route may collect but does not need.
        initial_step: Root of the step graph.
        guidelines: Route-scoped guidelines.
        tools: Route-scoped tool definitions.
        rules / prohibitions: Absolute directives for the response stage.
        when / skip_if: Route-level eligibility conditions for selection.
        initial_data: Fills missing `data` fields whenever the route is entered.
        on_complete: Follow-up route (title/id, config, or callable).
        completion_prompt: What the response stage should say on completion.
    """

    def __init__(
        self,
        title: str,
        id: Optional[str] = None,
        description: Optional[str] = None,
        schema: Optional[Dict[str, Any]] = None,
        required_fields: Optional[List[str]] = None,
        optional_fields: Optional[List[str]] = None,
        initial_step: Optional[Mapping[str, Any]] = None,
        steps: Optional[List[Mapping[str, Any]]] = None,
        guidelines: Optional[List[Any]] = None,
        tools: Optional[List[ToolDefinition]] = None,
        rules: Optional[List[str]] = None,
        prohibitions: Optional[List[str]] = None,
        when: ConditionExpression = None,
        skip_if: ConditionExpression = None,
        initial_data: Optional[Dict[str, Any]] = None,
        on_complete: OnComplete = None,
        completion_prompt: Optional[str] = None,
    ):
        if not isinstance(title, str) or not title.strip():
            raise DefinitionError("Route title must be a non-empty string")

        self.id = id or generate_route_id(title)
        self.title = title
        self.description = description
        self.schema = schema
        if required_fields is None and schema:
            required_fields = list(schema.get("required", []))
        self.required_fields: List[str] = list(required_fields or [])
        self.optional_fields: List[str] = list(optional_fields or [])
        self.tools: List[ToolDefinition] = list(tools or [])
        self.rules: List[str] = list(rules or [])
        self.prohibitions: List[str] = list(prohibitions or [])
        self.when = when
        self.skip_if = skip_if
        self.initial_data = dict(initial_data or {})
        self.on_complete = on_complete
        self.completion_prompt = completion_prompt

        self._steps: Dict[str, Step] = {}
        self._frozen = False
        self._guidelines: List[Guideline] = normalize_guidelines(
            guidelines, f"guideline_{self.id}"
        )

        steps = list(steps or [])
        chain_from_root = bool(steps)
        if initial_step is None and steps:
            # The first sequential step becomes the root of the graph.
            initial_step = steps.pop(0)

        initial_options = dict(initial_step or {})
        initial_options.pop("condition", None)
        self.initial_step = Step(self, **initial_options)

        if chain_from_root:
            self._build_sequential_steps(steps)

    # ==========================================================================
    # Construction
    # ==========================================================================

    def _build_sequential_steps(self, steps: List[Mapping[str, Any]]) -> None:
        current: Any = self.initial_step
        for spec in steps:
            options = dict(spec)
            condition = options.pop("condition", None)
            current = current.next_step(condition=condition, **options)
        current.next_step(END_ROUTE)

    def _register_step(self, step: Step, step_id: Optional[str], label: Optional[str]) -> str:
        """Assigns a unique id to a new step and indexes it."""
        self._ensure_mutable()
        if step_id:
            if step_id in self._steps:
                raise DefinitionError(f"Duplicate step id '{step_id}' in route '{self.title}'")
        else:
            base = generate_step_id(self.id, label, None if label else len(self._steps))
            step_id = base
            suffix = 2
            while step_id in self._steps:
                step_id = f"{base}_{suffix}"
                suffix += 1
        self._steps[step_id] = step
        return step_id

    def _ensure_mutable(self) -> None:
        if self._frozen:
            raise RouteGraphError(f"Route '{self.title}' is frozen and cannot be modified")

    def create_guideline(self, guideline: Union[Guideline, Mapping[str, Any]]) -> "Route":
        self._ensure_mutable()
        [normalized] = normalize_guidelines([guideline], f"guideline_{self.id}")
        if normalized.id == f"guideline_{self.id}_0" and self._guidelines:
            normalized.id = f"guideline_{self.id}_{len(self._guidelines)}"
        self._guidelines.append(normalized)
        return self

    def get_guidelines(self) -> List[Guideline]:
        return list(self._guidelines)

    def freeze(self) -> "Route":
        """Validates the route and makes its graph read-only."""
        if not self._frozen:
            self.validate()
            self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    # ==========================================================================
    # Validation
    # ==========================================================================

    def validate(self) -> None:
        errors: List[str] = []
        properties = (self.schema or {}).get("properties")

        if properties is not None:
            declared = set(properties)
            for label, fields in (
                ("required_fields", self.required_fields),
                ("optional_fields", self.optional_fields),
            ):
                unknown = [f for f in fields if f not in declared]
                if unknown:
                    errors.append(f"{label} not in schema: {unknown}")

            for step in self.get_all_steps():
                for label, fields in (("collect", step.collect), ("requires", step.requires)):
                    unknown = [f for f in fields if f not in declared]
                    if unknown:
                        errors.append(f"step '{step.id}' {label} not in schema: {unknown}")

        for tool in self.tools:
            if not isinstance(tool, ToolDefinition):
                errors.append(f"route tools must be ToolDefinition instances, got {type(tool).__name__}")

        if errors:
            raise DefinitionError(f"Route '{self.title}' is invalid: " + "; ".join(errors))

    # ==========================================================================
    # Graph Queries
    # ==========================================================================

    def get_all_steps(self) -> List[Step]:
        """
        Breadth-first walk over transitions and branches from the initial step.

        Steps reachable through several paths (branches rejoining a shared
        step) are listed once.
        """
        visited = set()
        ordered: List[Step] = []
        queue = deque([self.initial_step])

        while queue:
            step = queue.popleft()
            if step.id in visited:
                continue
            visited.add(step.id)
            ordered.append(step)
            for transition in step.transitions:
                if transition.target is not None and transition.target.id not in visited:
                    queue.append(transition.target)

        return ordered

    def get_step(self, step_id: str) -> Optional[Step]:
        return self._steps.get(step_id)

    def require_step(self, step_id: str) -> Step:
        step = self._steps.get(step_id)
        if step is None:
            raise RouteGraphError(f"Route '{self.title}' has no step '{step_id}'")
        return step

    def has_steps(self) -> bool:
        """False for a bare initial step with nothing to do and nowhere to go."""
        root = self.initial_step
        return any([
            root.transitions, root.prompt, root.instructions, root.description,
            root.collect, root.requires, root.tools, root.get_guidelines(),
            root.when is not None, root.skip_if is not None,
        ])

    def is_optional_field(self, name: str) -> bool:
        """True for declared fields the route can complete without."""
        if name in self.required_fields:
            return False
        properties = (self.schema or {}).get("properties") or {}
        return name in self.optional_fields or name in properties

    # ==========================================================================
    # Completion
    # ==========================================================================

    def is_complete(self, data: Mapping[str, Any]) -> bool:
        """True iff every required field is in `data` with a non-empty value."""
        return all(
            name in data and not is_empty_value(data[name])
            for name in self.required_fields
        )

    def missing_required_fields(self, data: Mapping[str, Any]) -> List[str]:
        return [
            name for name in self.required_fields
            if name not in data or is_empty_value(data[name])
        ]

    async def evaluate_on_complete(
        self, session: Any, context: Optional[Mapping[str, Any]] = None
    ) -> Optional[RouteTransitionConfig]:
        """Normalises every `on_complete` form into a RouteTransitionConfig."""
        target = self.on_complete
        if target is None:
            return None

        if callable(target) and not isinstance(target, RouteTransitionConfig):
            target = target(session, context)
            if inspect.isawaitable(target):
                target = await target

        if not target:
            return None
        if isinstance(target, str):
            return RouteTransitionConfig(transition_to=target)
        if isinstance(target, RouteTransitionConfig):
            return target
        if isinstance(target, Mapping) and target.get("transition_to"):
            return RouteTransitionConfig(
                transition_to=target["transition_to"], condition=target.get("condition")
            )

        raise DefinitionError(
            f"Route '{self.title}' on_complete produced an unsupported value: {target!r}"
        )

    # ==========================================================================
    # Debugging
    # ==========================================================================

    def describe(self) -> str:
        lines = [
            f"Route: {self.title}",
            f"ID: {self.id}",
            f"Description: {self.description or 'N/A'}",
            f"Required: {', '.join(self.required_fields) or 'None'}",
            "",
            "Steps:",
        ]
        for step in self.get_all_steps():
            label = f": {step.description}" if step.description else ""
            lines.append(f"  - {step.id}{label}")
            for transition in step.transitions:
                lines.append(f"    -> {transition.describe()}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"Route(id={self.id!r}, title={self.title!r})"
