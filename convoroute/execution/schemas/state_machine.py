"""
Transition Types - Route State Machine Definitions

Type definitions for the per-turn results of the RouteEngine.
Used by both the engine (to classify what happened to the graph pointers)
and the agent (to compose the response).
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional

from ...domain.guidelines import GuidelineMatch
from ...domain.route import Route
from ...domain.step import Step
from ...state.models import SessionState
from ...tools.models import ToolExecutionResult


class StateMachineTransition(Enum):
    """
    Strict State Machine terminology describing what happened to the graph pointers.
    This decouples the engine logic from the LLM's own view of the conversation.
    """

    HOLD = auto()  # The pointer remains on the current step.
    ENTER = auto()  # The route was entered and the pointer set on its first step.
    ADVANCE = auto()  # The pointer moved to a successor step.
    COMPLETE = auto()  # The route completed and the pointers were cleared.


@dataclass
class SkippedStep:
    step_id: str
    reason: str


@dataclass
class StepResolution:
    """
    Outcome of walking the step graph for one turn.

    Attributes:
        step: The step the conversation should be on (None on completion).
        is_route_complete: A terminal marker was reached with all required fields present.
        candidates: Accepted successor steps, one per outgoing transition.
        skipped: Steps passed over during the search, with the reason.
        rationale: Natural-language clauses from the chosen step's `when`.
    """

    step: Optional[Step]
    is_route_complete: bool = False
    candidates: List[Step] = field(default_factory=list)
    skipped: List[SkippedStep] = field(default_factory=list)
    rationale: List[str] = field(default_factory=list)


@dataclass
class TurnState:
    """
    Everything the response stage needs after the engine processed a turn.
    """

    transition: StateMachineTransition
    session: SessionState
    route: Route
    step: Optional[Step] = None
    candidates: List[Step] = field(default_factory=list)
    guideline_matches: List[GuidelineMatch] = field(default_factory=list)
    step_rationale: List[str] = field(default_factory=list)
    skipped_step_ids: List[str] = field(default_factory=list)
    tool_results: List[ToolExecutionResult] = field(default_factory=list)
    context_update: Dict[str, Any] = field(default_factory=dict)
    completed_route_data: Optional[Dict[str, Any]] = None

    @property
    def is_route_complete(self) -> bool:
        return self.transition == StateMachineTransition.COMPLETE
