"""
Example route definitions served by the HTTP app.

Built by a function rather than at import time because routes are frozen
when an agent registers them.
"""

from typing import List

from ..domain.guidelines import Guideline
from ..domain.route import Route
from ..domain.step import END_ROUTE

# ==============================================================================
# ROUTE DEFINITIONS
# ==============================================================================

SUPPORT_TICKET_SCHEMA = {
    "type": "object",
    "properties": {
        "email": {"type": "string", "description": "Customer email address"},
        "product": {"type": "string", "description": "Product the issue is about"},
        "issue": {"type": "string", "description": "Short description of the problem"},
        "urgent": {"type": "boolean", "description": "Whether the issue blocks the customer"},
    },
    "required": ["email", "product", "issue"],
}

FEEDBACK_SCHEMA = {
    "type": "object",
    "properties": {
        "rating": {"type": "number", "description": "Satisfaction from 1 to 5"},
        "comment": {"type": "string", "description": "Optional free-text comment"},
    },
    "required": ["rating"],
}


def build_support_ticket_route() -> Route:
    route = Route(
        title="Open Support Ticket",
        description="Collect what is needed to open a support ticket for a product problem.",
        schema=SUPPORT_TICKET_SCHEMA,
        optional_fields=["urgent"],
        rules=["Ask for one piece of information at a time."],
        prohibitions=["Never promise a resolution date."],
        guidelines=[
            Guideline(
                action="Acknowledge the frustration and mention that urgent tickets are prioritised.",
                condition=["The customer sounds frustrated", lambda ctx: bool(ctx.data.get("urgent"))],
            ),
        ],
        on_complete="Collect Feedback",
        completion_prompt="Tell the customer the ticket is open and a specialist will follow up by email.",
        initial_step={
            "id": "ask_email",
            "description": "Ask for the email address",
            "prompt": "Ask the customer for the email address the ticket should be linked to.",
            "collect": ["email"],
            "skip_if": lambda ctx: bool(ctx.data.get("email")),
        },
    )

    product = route.initial_step.next_step(
        id="ask_product",
        description="Ask which product is affected",
        prompt="Ask which product the problem is about.",
        collect=["product"],
        requires=["email"],
    )
    issue = product.next_step(
        id="ask_issue",
        description="Ask for the problem",
        prompt="Ask the customer to describe the problem and whether it blocks their work.",
        collect=["issue"],
        requires=["product"],
    )
    issue.next_step(END_ROUTE)
    return route


def build_feedback_route() -> Route:
    return Route(
        title="Collect Feedback",
        description="Ask the customer to rate the conversation.",
        schema=FEEDBACK_SCHEMA,
        steps=[
            {
                "id": "ask_rating",
                "prompt": "Ask the customer to rate the help they received from 1 to 5.",
                "collect": ["rating"],
            },
            {
                "id": "ask_comment",
                "prompt": "Invite an optional comment about the experience.",
                "collect": ["comment"],
                "skip_if": lambda ctx: (ctx.data.get("rating") or 0) >= 4,
            },
        ],
    )


def build_example_routes() -> List[Route]:
    return [build_support_ticket_route(), build_feedback_route()]
