import logging

from fastapi import FastAPI, HTTPException, Depends, status
from fastapi.responses import Response

from ..config import settings
from ..exceptions import SessionNotFoundError, ToolExecutionError
from ..services.agent import Agent
from .dependencies import get_agent
from .schemas import (
    CreateSessionResponse,
    UserMessage,
    ChatMessage,
    ChatResponse,
    SessionRead,
    ToolCallRead,
)

logging.basicConfig(level=settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(title="Convoroute Agent")

# --- Endpoints ---

@app.post(
    "/sessions",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED
)
def create_session(
    agent: Agent = Depends(get_agent)
):
    """Starts a new empty session."""
    session = agent.create_session()
    return CreateSessionResponse(session_id=session.id)


@app.get("/sessions/{session_id}", response_model=SessionRead)
def get_session(
    session_id: str,
    agent: Agent = Depends(get_agent)
):
    """Retrieves the full session resource."""
    session = agent.get_session(session_id)
    if not session:
        raise HTTPException(status_code=404, detail="Session not found")

    # Domain 'Message' -> API 'ChatMessage'
    history_dto = [
        ChatMessage(role=msg.role, content=msg.content)
        for msg in session.history
    ]

    return SessionRead(
        session_id=session.id,
        status="IN_ROUTE" if session.current_route else "IDLE",
        current_route=session.current_route.id if session.current_route else None,
        current_step=session.current_step.id if session.current_step else None,
        data=session.data,
        history=history_dto,
        updated_at=session.metadata.get("last_updated_at"),
        debug=session.model_dump(mode='json')
    )


@app.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_session(
    session_id: str,
    agent: Agent = Depends(get_agent)
):
    """
    Deletes a session. Returns 204 No Content on success.
    """
    if not agent.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")

    # For 204, we must explicitly return a Response object with no content
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post("/sessions/{session_id}/messages", response_model=ChatResponse)
async def handle_message(
    session_id: str,
    message: UserMessage,
    agent: Agent = Depends(get_agent)
):
    try:
        result = await agent.process_message(session_id, message.text)
    except SessionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ToolExecutionError as e:
        logger.error(f"Turn failed for session {session_id}: {e}")
        raise HTTPException(status_code=502, detail=f"Tool '{e.tool_id}' failed")

    session = result.session
    # Explicitly Map: AgentResponse (Service) -> ChatResponse (API)
    return ChatResponse(
        reply=result.message,
        is_route_complete=result.is_route_complete,
        current_route=session.current_route.id if session.current_route else None,
        current_step=session.current_step.id if session.current_step else None,
        data=session.data,
        tool_calls=[
            ToolCallRead(tool_id=call.tool_id, arguments=call.arguments_dict())
            for call in result.tool_calls
        ],
    )
