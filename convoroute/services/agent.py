"""
Agent Service - Application Orchestration Layer

The Agent is the per-turn entry point. It orchestrates the interaction
between the persistence layer (SessionRepository), the logic layer
(RouteRouter / RouteEngine) and the response stage (ResponseGenerator).

One turn:
1. Apply a pending route transition left by the previous turn.
2. Cold start: if no route is active, ask the router for one.
3. Engine pass before the reply: resolve the step, run step tools,
    match guidelines.
4. Response stage: the LLM replies and extracts field values.
5. Run the tools the LLM asked for.
6. Engine pass after the reply: switch route if the model named another
    eligible one, merge the extracted data and advance or complete the route.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..domain.conditions import EvaluationContext
from ..domain.guidelines import Guideline, GuidelineMatcher, normalize_guidelines
from ..domain.route import Route
from ..domain.step import Step
from ..exceptions import SessionNotFoundError, ToolExecutionError
from ..execution.engine import RouteEngine
from ..execution.responder import ResponseGenerator, describe_fields
from ..execution.schemas.state_machine import TurnState
from ..llm.interface import LLMProvider
from ..repositories.route import InMemoryRouteRepository
from ..repositories.session import InMemorySessionRepository, SessionRepository
from ..schemas.decisions import AgentDecision, ToolCallRequest
from ..state.models import Message, SessionState
from ..state.session import create_session, record_reply
from ..tools.manager import ToolManager
from ..tools.models import ToolContext, ToolDefinition
from .route_router import LLMRouteRouter, RouteRouter, SingleRouteRouter, eligible_routes

logger = logging.getLogger(__name__)


class AgentResponse(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    message: str
    session: SessionState
    is_route_complete: bool = False
    tool_calls: List[ToolCallRequest] = Field(default_factory=list)


class Agent:
    def __init__(
        self,
        name: str,
        llm_provider: LLMProvider,
        router: Optional[RouteRouter] = None,
        routes: Optional[List[Route]] = None,
        guidelines: Optional[List[Any]] = None,
        tools: Optional[List[ToolDefinition]] = None,
        context: Optional[Dict[str, Any]] = None,
        description: Optional[str] = None,
        goal: Optional[str] = None,
        personality: Optional[str] = None,
        session_repository: Optional[SessionRepository] = None,
        tool_manager: Optional[ToolManager] = None,
    ):
        self.name = name
        self.description = description
        self.goal = goal
        self.personality = personality
        self.context: Dict[str, Any] = dict(context or {})

        self.routes = InMemoryRouteRepository(routes)
        self.guidelines: List[Guideline] = normalize_guidelines(guidelines, "guideline_agent")
        self.tool_manager = tool_manager or ToolManager()
        self.tool_manager.register_many(tools or [])

        self.engine = RouteEngine(self.tool_manager)
        self.responder = ResponseGenerator(llm_provider)
        self.guideline_matcher = GuidelineMatcher()
        self.session_repository = session_repository or InMemorySessionRepository()

        if router is None:
            if len(routes or []) > 1:
                router = LLMRouteRouter(llm_provider, agent_name=name)
            else:
                router = SingleRouteRouter()
        self.router = router

    # ==========================================================================
    # Configuration
    # ==========================================================================

    def add_route(self, route: Route) -> Route:
        """Registers (and freezes) a route."""
        return self.routes.add(route)

    def create_guideline(self, guideline: Any) -> Guideline:
        [normalized] = normalize_guidelines([guideline], "guideline_agent")
        if normalized.id == "guideline_agent_0" and self.guidelines:
            normalized.id = f"guideline_agent_{len(self.guidelines)}"
        self.guidelines.append(normalized)
        return normalized

    # ==========================================================================
    # Session Management
    # ==========================================================================

    def create_session(self) -> SessionState:
        return self.session_repository.create()

    def get_session(self, session_id: str) -> Optional[SessionState]:
        return self.session_repository.load(session_id)

    def delete_session(self, session_id: str) -> bool:
        return self.session_repository.delete(session_id)

    async def process_message(self, session_id: str, text: str) -> AgentResponse:
        """
        Load -> respond -> save, with the transcript kept on the session.

        Raises:
            SessionNotFoundError: if the repository has no such session.
        """
        session = self.session_repository.load(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        session.history.append(Message(role="user", content=text))
        response = await self.respond(session.history, session)

        response.session.history.append(Message(role="assistant", content=response.message))
        self.session_repository.save(response.session)
        return response

    # ==========================================================================
    # Per-Turn Entry Point
    # ==========================================================================

    async def respond(
        self,
        history: Sequence[Any],
        session: Optional[SessionState] = None,
        context_override: Optional[Mapping[str, Any]] = None,
    ) -> AgentResponse:
        """
        Processes one turn and returns the reply with the updated session.
        The session passed in is not mutated.

        Raises:
            ToolExecutionError: a tool failed. `error.session` holds the
                working state at the point of failure.
        """
        session = session or create_session()
        context = {**self.context, **(context_override or {})}
        routes = self.routes.list_routes()

        # 1. Pending transition from the previous turn
        session, _ = self.engine.apply_pending_transition(session, routes)

        # 2. Cold start vs. warm start
        route = self._active_route(session)
        if route is None:
            route = await self._select_route(session, history, context)

        if route is None:
            return await self._respond_without_route(session, history, context)

        # 3. Engine pass before the reply
        pre = await self.engine.run_turn(
            session, route, context=context, history=history, guidelines=self.guidelines
        )
        self._apply_context_update(context, pre.context_update)

        if pre.is_route_complete:
            decision = await self._complete(pre, history)
            return AgentResponse(
                message=decision.reply_to_user, session=pre.session, is_route_complete=True
            )

        # 4. Response stage
        decision = await self.responder.respond(
            self,
            pre,
            history,
            tools=self.tool_manager.get_available(pre.step, route),
            other_routes=[r for r in routes if r.id != route.id],
        )
        working = record_reply(pre.session)

        # 5. Tools requested by the model
        tool_patch = await self._run_requested_tools(
            decision, working, route, pre.step, context, history
        )

        # 6. Engine pass after the reply, on the route the model switched to if any
        target = await self._switch_target(decision, route, working, history, context)
        step, preferred_step_id = pre.step, decision.step
        if target is not None:
            logger.info(f"Session {session.id} switching from route '{route.title}' to '{target.title}'")
            route, step, preferred_step_id = target, None, None

        data_patch = {**self._filter_collected(route, step, decision.collected_dict()), **tool_patch}
        post = await self.engine.run_turn(
            working,
            route,
            context=context,
            history=history,
            guidelines=self.guidelines,
            preferred_step_id=preferred_step_id,
            data_patch=data_patch,
        )
        self._apply_context_update(context, post.context_update)

        return AgentResponse(
            message=decision.reply_to_user,
            session=post.session,
            is_route_complete=post.is_route_complete,
            tool_calls=decision.tool_calls,
        )

    # ==========================================================================
    # Helpers
    # ==========================================================================

    def _active_route(self, session: SessionState) -> Optional[Route]:
        if session.current_route is None:
            return None
        route = self.routes.get_route(session.current_route.id)
        if route is None:
            logger.warning(f"Session {session.id} points at unknown route '{session.current_route.id}'")
        return route

    async def _select_route(
        self, session: SessionState, history: Sequence[Any], context: Mapping[str, Any]
    ) -> Optional[Route]:
        selection = await self.router.select_route(
            self.routes.list_routes(), session, history, context
        )
        if not selection or not selection.route_id:
            logger.info(f"No route selected for session {session.id}")
            return None

        route = self.routes.get_route(selection.route_id)
        if route:
            logger.info(f"Cold start: router selected route '{route.title}' for session {session.id}")
        return route

    async def _switch_target(
        self,
        decision: AgentDecision,
        active: Route,
        session: SessionState,
        history: Sequence[Any],
        context: Mapping[str, Any],
    ) -> Optional[Route]:
        """The route named in `decision.route`, if it is known, eligible and not the active one."""
        if not decision.route:
            return None
        target = self.routes.get_route(decision.route)
        if target is None:
            logger.warning(f"Model asked for unknown route '{decision.route}', staying on '{active.title}'")
            return None
        if target.id == active.id:
            return None
        if not await eligible_routes([target], session, history, context):
            logger.info(f"Route '{target.title}' is not eligible, staying on '{active.title}'")
            return None
        return target

    async def _respond_without_route(
        self, session: SessionState, history: Sequence[Any], context: Mapping[str, Any]
    ) -> AgentResponse:
        eval_context = EvaluationContext.build(session=session, context=context, history=history)
        matches = await self.guideline_matcher.evaluate(self.guidelines, eval_context)
        decision = await self.responder.respond(
            self, None, history, tools=self.tool_manager.get_available(), guideline_matches=matches
        )
        await self._run_requested_tools(decision, session, None, None, context, history)
        return AgentResponse(
            message=decision.reply_to_user, session=session, tool_calls=decision.tool_calls
        )

    async def _complete(self, turn: TurnState, history: Sequence[Any]) -> AgentDecision:
        pending = turn.session.pending_transition
        next_route = None
        if pending:
            target = self.routes.get_route(pending.target_route_id)
            next_route = target.title if target else pending.target_route_id
        return await self.responder.complete(
            self,
            turn.route,
            turn.completed_route_data or {},
            history,
            guideline_matches=turn.guideline_matches,
            next_route=next_route,
            next_condition=pending.condition if pending else None,
        )

    async def _run_requested_tools(
        self,
        decision: AgentDecision,
        session: SessionState,
        route: Optional[Route],
        step: Optional[Step],
        context: Dict[str, Any],
        history: Sequence[Any],
    ) -> Dict[str, Any]:
        """Executes model-requested tools and returns their combined data patch."""
        data_patch: Dict[str, Any] = {}
        for call in decision.tool_calls:
            tool_context = ToolContext(
                context=dict(context),
                data={**session.data, **data_patch},
                history=list(history),
                route_id=route.id if route else None,
                step_id=step.id if step else None,
            )
            try:
                result = await self.tool_manager.execute(
                    call.tool_id, call.arguments_dict(), context=tool_context, step=step, route=route
                )
            except ToolExecutionError as e:
                e.session = session
                raise

            if not result.success:
                logger.warning(f"Requested tool '{call.tool_id}' reported failure: {result.error}")
                continue
            if result.data_update:
                data_patch.update(result.data_update)
            self._apply_context_update(context, result.context_update)
        return data_patch

    def _apply_context_update(self, context: Dict[str, Any], update: Optional[Mapping[str, Any]]):
        if not update:
            return
        context.update(update)
        self.context.update(update)

    @staticmethod
    def _filter_collected(route: Route, step: Optional[Step], values: Dict[str, Any]) -> Dict[str, Any]:
        """Drops values for fields the route does not declare (if it declares any)."""
        known = set(describe_fields(route))
        if step is not None:
            known.update(step.collect)
        if not known:
            return values
        dropped = sorted(set(values) - known)
        if dropped:
            logger.debug(f"Ignoring undeclared fields {dropped} for route '{route.title}'")
        return {name: value for name, value in values.items() if name in known}
