"""
Router Service.

Defines the contract for the "Route Router" - the component responsible
for analyzing the conversation and selecting the route it belongs to when
no route is active - plus the two shipped implementations.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Mapping, Optional, Sequence

from ..domain.conditions import Combinator, EvaluationContext, default_evaluator, extract_ai_context_strings
from ..domain.route import Route
from ..execution.prompts.loader import render
from ..execution.prompts.templates import Template
from ..execution.responder import to_chat_messages
from ..llm.interface import LLMProvider
from ..schemas.decisions import RouteSelection
from ..state.models import SessionState

logger = logging.getLogger(__name__)


async def eligible_routes(
    routes: Sequence[Route],
    session: SessionState,
    history: Optional[Sequence[Any]] = None,
    context: Optional[Mapping[str, Any]] = None,
) -> List[Route]:
    """Routes whose `when` holds and whose `skip_if` does not."""
    eval_context = EvaluationContext.build(session=session, context=context, history=history)
    eligible = []
    for route in routes:
        when = await default_evaluator.evaluate(route.when, eval_context, Combinator.AND)
        if not when.result:
            continue
        skip = await default_evaluator.evaluate(route.skip_if, eval_context, Combinator.OR)
        if skip.result:
            logger.debug(f"Route '{route.title}' skipped by skip_if")
            continue
        eligible.append(route)
    return eligible


class RouteRouter(ABC):
    @abstractmethod
    async def select_route(
        self,
        routes: Sequence[Route],
        session: SessionState,
        history: Sequence[Any],
        context: Optional[Mapping[str, Any]] = None,
    ) -> Optional[RouteSelection]:
        """
        Picks the route the conversation belongs to.

        Returns:
            RouteSelection or None if no route matches.
        """
        pass


class SingleRouteRouter(RouteRouter):
    """
    For agents with a single flow: the first eligible route always wins.
    """

    async def select_route(self, routes, session, history, context=None) -> Optional[RouteSelection]:
        eligible = await eligible_routes(routes, session, history, context)
        if not eligible:
            return None
        return RouteSelection(route_id=eligible[0].id, reasoning="Only eligible route")


class LLMRouteRouter(RouteRouter):
    """
    Filters routes by their conditions, then asks the LLM to pick one.
    """

    def __init__(self, llm_provider: LLMProvider, agent_name: str = "the assistant"):
        self.llm = llm_provider
        self.agent_name = agent_name

    async def select_route(self, routes, session, history, context=None) -> Optional[RouteSelection]:
        eligible = await eligible_routes(routes, session, history, context)
        if not eligible:
            return None
        if len(eligible) == 1:
            return RouteSelection(route_id=eligible[0].id, reasoning="Only eligible route")

        system_prompt = render(
            Template.ROUTE_SELECTION,
            agent_name=self.agent_name,
            routes=[
                {
                    "id": route.id,
                    "title": route.title,
                    "description": route.description,
                    "conditions": extract_ai_context_strings(route.when),
                }
                for route in eligible
            ],
            current_route=session.current_route.title if session.current_route else None,
        )

        try:
            selection = await self.llm.generate_structured_output(
                messages=to_chat_messages(system_prompt, history),
                response_model=RouteSelection,
            )
        except Exception as e:
            logger.error(f"Route selection failed: {e}")
            return None

        ids = {route.id for route in eligible}
        if selection.route_id not in ids:
            logger.warning(f"Router returned unknown route '{selection.route_id}'")
            return None
        return selection
