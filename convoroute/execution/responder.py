"""
Responder - Response Generation Stage

The ResponseGenerator is a stateless wrapper around the LLM. It turns the
engine's TurnState into a prompt, asks the provider for an AgentDecision and
hands the decision back untouched. It never moves graph pointers itself.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..domain.guidelines import GuidelineMatch
from ..domain.route import Route
from ..llm.interface import LLMProvider
from ..schemas.decisions import AgentDecision
from ..tools.models import ToolDefinition
from .prompts.loader import render
from .prompts.templates import Template
from .schemas.state_machine import TurnState

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "System Error. Please try again."


def to_chat_messages(system_prompt: str, history: Sequence[Any]) -> List[dict]:
    """Builds provider messages from a system prompt and a transcript of Message objects or dicts."""
    messages = [{"role": "system", "content": system_prompt}]
    for item in history or []:
        if isinstance(item, dict):
            messages.append({"role": item["role"], "content": item["content"]})
        else:
            messages.append({"role": item.role, "content": item.content})
    return messages


def describe_fields(route: Route) -> Dict[str, Optional[str]]:
    properties = (route.schema or {}).get("properties") or {}
    names = list(properties) or route.required_fields + route.optional_fields
    return {name: (properties.get(name) or {}).get("description") for name in names}


class ResponseGenerator:
    def __init__(self, llm_provider: LLMProvider):
        self.llm = llm_provider

    async def respond(
        self,
        agent: Any,
        turn: Optional[TurnState],
        history: Sequence[Any],
        tools: Optional[List[ToolDefinition]] = None,
        guideline_matches: Optional[List[GuidelineMatch]] = None,
        other_routes: Optional[List[Route]] = None,
    ) -> AgentDecision:
        """
        Generates the reply for an in-route turn, or a general reply when
        `turn` is None (no route matched).

        `other_routes` are offered to the model as flows it may switch to.
        """
        if turn is not None:
            data = turn.session.data
            system_prompt = render(
                Template.RESPONSE,
                agent=agent,
                route=turn.route,
                step=turn.step,
                step_rationale=turn.step_rationale,
                candidates=turn.candidates,
                fields=describe_fields(turn.route),
                data=data,
                missing_fields=turn.route.missing_required_fields(data),
                guideline_matches=turn.guideline_matches,
                tools=tools or [],
                other_routes=other_routes or [],
            )
        else:
            system_prompt = render(
                Template.RESPONSE,
                agent=agent,
                route=None,
                guideline_matches=guideline_matches or [],
                tools=tools or [],
            )

        logger.debug(f"Built response prompt for step {turn.step.id if turn and turn.step else None}")
        return await self._generate(system_prompt, history)

    async def complete(
        self,
        agent: Any,
        route: Route,
        data: Dict[str, Any],
        history: Sequence[Any],
        guideline_matches: Optional[List[GuidelineMatch]] = None,
        next_route: Optional[str] = None,
        next_condition: Optional[str] = None,
    ) -> AgentDecision:
        """Generates the closing message of a completed route."""
        system_prompt = render(
            Template.ROUTE_COMPLETION,
            agent=agent,
            route=route,
            data=data,
            guideline_matches=guideline_matches or [],
            next_route=next_route,
            next_condition=next_condition,
        )
        return await self._generate(system_prompt, history)

    async def _generate(self, system_prompt: str, history: Sequence[Any]) -> AgentDecision:
        messages = to_chat_messages(system_prompt, history)
        try:
            return await self.llm.generate_structured_output(
                messages=messages,
                response_model=AgentDecision,
            )
        except Exception as e:
            logger.error(f"LLM Execution failed: {e}")
            return AgentDecision(
                reply_to_user=FALLBACK_REPLY,
                reasoning=f"Error: {str(e)}",
            )
