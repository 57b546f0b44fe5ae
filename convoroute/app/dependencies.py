"""
Dependency Injection Wiring (Composition Root).

This module acts as the central "container" for the application's services.
It is responsible for:
1. Instantiating the Singleton collaborators (session store, LLM adapter).
2. Wiring them into the Agent together with the route definitions.
3. Managing their lifecycle with @lru_cache so they are created only once
   per application process.

Tests replace `get_agent` through `app.dependency_overrides`.
"""


from functools import lru_cache
from fastapi import Depends

from ..config import settings
from ..data.example_routes import build_example_routes
from ..llm.interface import LLMProvider
from ..llm.adapters.openai_adapter import OpenAIAdapter
from ..repositories.session import SessionRepository, SQLSessionRepository
from ..services.agent import Agent

from ..infrastructure.database.connection import init_db


# LLM Provider (Singleton)
@lru_cache()
def get_llm_provider() -> LLMProvider:
    return OpenAIAdapter(
        api_key=settings.OPENAI_API_KEY,
        model_name=settings.OPENAI_MODEL
    )


# Session Repository (Singleton)
@lru_cache()
def get_session_repository() -> SessionRepository:
    init_db()
    return SQLSessionRepository()


# The Agent (Singleton Service)
@lru_cache()
def get_agent(
    llm: LLMProvider = Depends(get_llm_provider),
    session_repo: SessionRepository = Depends(get_session_repository)
) -> Agent:
    """
    Injects the collaborators and the route definitions into the Agent.
    """
    return Agent(
        name="Support Assistant",
        description="a customer support assistant",
        goal="Help customers open support tickets quickly and politely.",
        llm_provider=llm,
        routes=build_example_routes(),
        session_repository=session_repo,
    )
