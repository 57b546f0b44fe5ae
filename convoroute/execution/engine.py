"""
Engine - Route Orchestration Layer

The RouteEngine is the deterministic state machine ("The Manager") that
decides, from the session state and the declared step graph, which step a
conversation is on, whether it advances, skips, branches or completes, which
guidelines apply, and which step tools must run.
-----------------------------------------------

The engine never talks to the language model. It is handed the outcome of
the response stage (extracted data and the model's step preference) and
turns it into pointer movements:

1. With no current step the route's initial step is the starting candidate.
2. A current step is kept while it is unfinished (some `collect` field is
    still missing and it is not skipped). A missing optional field stops
    holding the step once the user has answered a reply given on it.
3. Otherwise successors are searched depth-first in declaration order. A
    candidate is accepted when `when` holds, its `requires` are met and
    `skip_if` does not hold; a rejected candidate is passed over and its own
    successors are tried.
4. Reaching END_ROUTE with nothing accepted runs the completion check.

Every operation works on a copy. The caller's session is never mutated, so a
failed turn leaves the last committed state intact.
"""

import copy
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..domain.conditions import Combinator, EvaluationContext, default_evaluator
from ..domain.guidelines import Guideline, GuidelineMatcher
from ..domain.route import Route
from ..domain.step import Step, Transition
from ..exceptions import RouteGraphError, ToolExecutionError
from ..state.models import CurrentStep, SessionState
from ..state.session import (
    clear_pending_transition,
    complete_route,
    enter_route,
    enter_step,
    merge_collected,
    set_pending_transition,
)
from ..tools.manager import ToolManager
from ..tools.models import ToolContext, ToolDefinition, ToolExecutionResult
from .schemas.state_machine import (
    SkippedStep,
    StateMachineTransition,
    StepResolution,
    TurnState,
)

logger = logging.getLogger(__name__)


class RouteEngine:
    def __init__(
        self,
        tool_manager: Optional[ToolManager] = None,
        guideline_matcher: Optional[GuidelineMatcher] = None,
    ):
        self.tool_manager = tool_manager or ToolManager()
        self.guideline_matcher = guideline_matcher or GuidelineMatcher()

    # ==========================================================================
    # Route Entry
    # ==========================================================================

    def enter_route(self, session: SessionState, route: Route) -> SessionState:
        new_session = enter_route(session, route.id, route.title)
        # Values restored from an earlier visit win over the seed data.
        seed = {k: v for k, v in route.initial_data.items() if k not in new_session.data}
        if seed:
            new_session = merge_collected(new_session, seed)
        logger.debug(f"Session {session.id} entered route '{route.title}'")
        return new_session

    def apply_pending_transition(
        self, session: SessionState, routes: Iterable[Route]
    ) -> Tuple[SessionState, Optional[Route]]:
        """
        Enters the route named by `pending_transition` and clears the marker.

        Returns the new session and the entered route (None if there was no
        pending transition or its target is unknown).
        """
        pending = session.pending_transition
        if pending is None:
            return session, None

        target = next(
            (r for r in routes if pending.target_route_id in (r.id, r.title)), None
        )
        new_session = clear_pending_transition(session)
        if target is None:
            logger.warning(
                f"Pending transition target '{pending.target_route_id}' not found, discarding it"
            )
            return new_session, None

        logger.info(f"Applying pending transition to route '{target.title}' ({pending.reason})")
        return self.enter_route(new_session, target), target

    # ==========================================================================
    # Step Resolution (Pure Domain)
    # ==========================================================================

    async def resolve_step(
        self,
        route: Route,
        session: SessionState,
        *,
        context: Optional[Mapping[str, Any]] = None,
        history: Optional[Sequence[Any]] = None,
        preferred_step_id: Optional[str] = None,
    ) -> StepResolution:
        if not route.has_steps():
            raise RouteGraphError(f"Route '{route.title}' has no steps")

        data = session.data
        eval_context = EvaluationContext.build(session=session, context=context, history=history)
        skipped: List[SkippedStep] = []

        if session.current_step is None:
            origin = route.initial_step
            accepted, rationale = await self._accept(origin, eval_context, data, skipped)
            if accepted and not self._is_finished(origin, route, data, None):
                return StepResolution(step=origin, candidates=[origin], skipped=skipped, rationale=rationale)
        else:
            origin = route.get_step(session.current_step.id)
            if origin is None:
                raise RouteGraphError(
                    f"Session {session.id} points at unknown step '{session.current_step.id}' "
                    f"in route '{route.title}'"
                )
            skip = await origin.evaluate_skip_if(eval_context)
            if not skip.should_skip and not self._is_finished(origin, route, data, session.current_step):
                activation = await origin.evaluate_when(eval_context)
                return StepResolution(
                    step=origin, candidates=[origin], rationale=activation.ai_context_strings
                )
            if skip.should_skip:
                skipped.append(SkippedStep(origin.id, "skip_if"))

        visited: Set[str] = {origin.id}
        candidates, reached_end = await self._search(origin, eval_context, data, visited, skipped)

        if candidates:
            chosen = next((c for c in candidates if c.id == preferred_step_id), candidates[0])
            activation = await chosen.evaluate_when(eval_context)
            return StepResolution(
                step=chosen,
                candidates=candidates,
                skipped=skipped,
                rationale=activation.ai_context_strings,
            )

        fallback = route.get_step(session.current_step.id) if session.current_step else route.initial_step

        if reached_end:
            if route.is_complete(data):
                return StepResolution(step=None, is_route_complete=True, skipped=skipped)
            logger.warning(
                f"Route '{route.title}' reached END_ROUTE with required fields missing: "
                f"{route.missing_required_fields(data)}"
            )
        else:
            logger.debug(f"No reachable successor from step '{origin.id}', staying on '{fallback.id}'")

        return StepResolution(step=fallback, candidates=[fallback], skipped=skipped)

    async def _search(
        self,
        origin: Step,
        eval_context: EvaluationContext,
        data: Mapping[str, Any],
        visited: Set[str],
        skipped: List[SkippedStep],
    ) -> Tuple[List[Step], bool]:
        """
        Depth-first successor search.

        Returns one accepted step per open outgoing transition and whether a
        terminal marker was reached on a path that produced no step. A step
        without transitions ends the route implicitly.
        """
        candidates: List[Step] = []
        reached_end = not origin.transitions

        for transition in origin.transitions:
            if not await self._is_open(transition, eval_context):
                logger.debug(f"Transition {transition.describe()} closed by its condition")
                continue

            target = transition.target
            if target is None:
                reached_end = True
                continue
            if target.id in visited:
                continue
            visited.add(target.id)

            accepted, _ = await self._accept(target, eval_context, data, skipped)
            if accepted:
                candidates.append(target)
                continue

            nested, nested_end = await self._search(target, eval_context, data, visited, skipped)
            if nested:
                candidates.append(nested[0])
            reached_end = reached_end or nested_end

        return candidates, reached_end

    async def _accept(
        self,
        step: Step,
        eval_context: EvaluationContext,
        data: Mapping[str, Any],
        skipped: List[SkippedStep],
    ) -> Tuple[bool, List[str]]:
        """Sequenced when -> requires -> skip_if."""
        activation = await step.evaluate_when(eval_context)
        if not activation.should_activate:
            logger.debug(f"Skipping step '{step.id}': when condition is false")
            skipped.append(SkippedStep(step.id, "when"))
            return False, []

        if not step.has_requires(data):
            logger.debug(f"Skipping step '{step.id}': missing requires {step.missing_requires(data)}")
            skipped.append(SkippedStep(step.id, "requires"))
            return False, []

        skip = await step.evaluate_skip_if(eval_context)
        if skip.should_skip:
            logger.debug(f"Skipping step '{step.id}': skip_if condition met")
            skipped.append(SkippedStep(step.id, "skip_if"))
            return False, []

        return True, activation.ai_context_strings

    @staticmethod
    def _is_finished(
        step: Step, route: Route, data: Mapping[str, Any], current: Optional[CurrentStep]
    ) -> bool:
        if not step.collect:
            return current is not None
        if step.has_collected(data):
            return True
        # Optional fields are given up once the user has answered a reply on this step.
        missing = [name for name in step.collect if name not in data]
        return (
            current is not None
            and current.replies > 1
            and all(route.is_optional_field(name) for name in missing)
        )

    @staticmethod
    async def _is_open(transition: Transition, eval_context: EvaluationContext) -> bool:
        if transition.condition is None:
            return True
        outcome = await default_evaluator.evaluate(transition.condition, eval_context, Combinator.AND)
        return outcome.result

    # ==========================================================================
    # Turn Processing
    # ==========================================================================

    async def run_turn(
        self,
        session: SessionState,
        route: Route,
        *,
        context: Optional[Mapping[str, Any]] = None,
        history: Optional[Sequence[Any]] = None,
        guidelines: Optional[List[Guideline]] = None,
        preferred_step_id: Optional[str] = None,
        data_patch: Optional[Mapping[str, Any]] = None,
    ) -> TurnState:
        """
        Moves the session through one turn of `route`.

        Raises:
            ToolExecutionError: a step tool failed. `error.session` carries
                the working state reached before the failure.
            RouteGraphError: the session points at a step the route does not have.
        """
        transition = StateMachineTransition.HOLD
        working = session

        if working.current_route is None or working.current_route.id != route.id:
            working = self.enter_route(working, route)
            transition = StateMachineTransition.ENTER

        if data_patch:
            working = merge_collected(working, data_patch)

        resolution = await self.resolve_step(
            route, working, context=context, history=history, preferred_step_id=preferred_step_id
        )
        skipped_ids = [s.step_id for s in resolution.skipped]

        if resolution.is_route_complete:
            completed_data = copy.deepcopy(working.data)
            working = complete_route(working)
            working = await self._schedule_follow_up(working, route, context)
            matches = await self._match_guidelines(
                route, None, guidelines, working, context, history, data=completed_data
            )
            return TurnState(
                transition=StateMachineTransition.COMPLETE,
                session=working,
                route=route,
                guideline_matches=matches,
                skipped_step_ids=skipped_ids,
                completed_route_data=completed_data,
            )

        step = resolution.step
        tool_results: List[ToolExecutionResult] = []
        context_update: Dict[str, Any] = {}

        current_id = working.current_step.id if working.current_step else None
        if step.id != current_id:
            if transition != StateMachineTransition.ENTER:
                transition = (
                    StateMachineTransition.ADVANCE if current_id else StateMachineTransition.ENTER
                )
            working = enter_step(working, step.id, step.description)
            working, tool_results, context_update = await self._run_step_tools(
                working, route, step, context, history
            )

        matches = await self._match_guidelines(route, step, guidelines, working, context, history)

        return TurnState(
            transition=transition,
            session=working,
            route=route,
            step=step,
            candidates=resolution.candidates,
            guideline_matches=matches,
            step_rationale=resolution.rationale,
            skipped_step_ids=skipped_ids,
            tool_results=tool_results,
            context_update=context_update,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    async def _schedule_follow_up(
        self, session: SessionState, route: Route, context: Optional[Mapping[str, Any]]
    ) -> SessionState:
        follow_up = await route.evaluate_on_complete(session, context)
        if follow_up is None:
            return session
        logger.info(f"Route '{route.title}' completed, scheduling transition to '{follow_up.transition_to}'")
        return set_pending_transition(session, follow_up.transition_to, follow_up.condition)

    async def _match_guidelines(
        self,
        route: Route,
        step: Optional[Step],
        guidelines: Optional[List[Guideline]],
        session: SessionState,
        context: Optional[Mapping[str, Any]],
        history: Optional[Sequence[Any]],
        data: Optional[Mapping[str, Any]] = None,
    ):
        combined = list(guidelines or []) + route.get_guidelines()
        if step is not None:
            combined += step.get_guidelines()
        eval_context = EvaluationContext.build(
            session=session, context=context, history=history, data=data
        )
        return await self.guideline_matcher.evaluate(combined, eval_context)

    async def _run_step_tools(
        self,
        session: SessionState,
        route: Route,
        step: Step,
        context: Optional[Mapping[str, Any]],
        history: Optional[Sequence[Any]],
    ) -> Tuple[SessionState, List[ToolExecutionResult], Dict[str, Any]]:
        results: List[ToolExecutionResult] = []
        context_update: Dict[str, Any] = {}

        for ref in step.tools:
            tool_id = ref.id if isinstance(ref, ToolDefinition) else ref
            tool_context = ToolContext(
                context=dict(context or {}, **context_update),
                data=copy.deepcopy(session.data),
                history=list(history or []),
                route_id=route.id,
                step_id=step.id,
            )
            try:
                result = await self.tool_manager.execute(
                    tool_id, context=tool_context, step=step, route=route
                )
            except ToolExecutionError as e:
                e.session = session
                raise

            if not result.success:
                error = ToolExecutionError(
                    result.error or f"Tool '{tool_id}' reported failure",
                    tool_id,
                    {"route_id": route.id, "step_id": step.id, "metadata": result.metadata},
                )
                error.session = session
                raise error

            results.append(result)
            if result.data_update:
                session = merge_collected(session, result.data_update)
            if result.context_update:
                context_update.update(result.context_update)

        return session, results, context_update
