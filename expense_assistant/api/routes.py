"""
Chat endpoint routes for the expense assistant.

Provides:
- POST /api/ai/chat - Send a message; NDJSON event stream in reply
- GET /api/ai/conversations - List the user's conversations
- GET /api/ai/conversations/{id} - Get conversation with messages
- DELETE /api/ai/conversations/{id} - Delete conversation
"""

import asyncio
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, ConfigDict, Field

from expense_assistant.api.deps import SessionIdentity, get_orchestrator, get_session
from expense_assistant.orchestrator import (
    AuthorizationError,
    ConversationNotFoundError,
    TurnOrchestrator,
)
from expense_assistant.streaming import (
    NDJSON_MEDIA_TYPE,
    EventChannel,
    SafetyBlockResponse,
    encode_event,
)


logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api/ai", tags=["chat"])

# Producer tasks outlive the response when the client disconnects
_running_turns: set[asyncio.Task] = set()


class ChatRequest(BaseModel):
    """Request model for sending a chat message."""
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: Optional[str] = Field(default=None, alias="conversationId")
    message: str


@router.post("/chat")
async def chat(
    request: ChatRequest,
    session: SessionIdentity = Depends(get_session),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
):
    """
    Run one chat turn.

    Returns:
        An NDJSON stream of turn events, or a JSON safety_block when the
        message was refused

    Raises:
        HTTPException: 401 without a session, 404 for a conversation the
        user doesn't own
    """
    try:
        prepared = await orchestrator.prepare_turn(
            session.user_id,
            session.organization_id,
            request.message,
            request.conversation_id,
        )
    except AuthorizationError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")

    if isinstance(prepared, SafetyBlockResponse):
        return JSONResponse(prepared.model_dump(mode="json"))

    channel = EventChannel(maxsize=orchestrator.settings.event_queue_size)
    producer = asyncio.create_task(orchestrator.run_turn(prepared, channel))
    _running_turns.add(producer)
    producer.add_done_callback(_running_turns.discard)

    async def iter_events():
        try:
            async for event in channel:
                yield encode_event(event)
        finally:
            if not producer.done():
                logger.info("client_disconnected", conversation_id=str(prepared.conversation.id))
            channel.close()

    return StreamingResponse(iter_events(), media_type=NDJSON_MEDIA_TYPE)


@router.get("/conversations")
async def list_conversations(
    session: SessionIdentity = Depends(get_session),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> list[dict]:
    return await orchestrator.list_conversations(session.user_id, session.organization_id)


@router.get("/conversations/{conversation_id}")
async def get_conversation(
    conversation_id: str,
    session: SessionIdentity = Depends(get_session),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        return await orchestrator.get_conversation(
            conversation_id, session.user_id, session.organization_id
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")


@router.delete("/conversations/{conversation_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_conversation(
    conversation_id: str,
    session: SessionIdentity = Depends(get_session),
    orchestrator: TurnOrchestrator = Depends(get_orchestrator),
) -> Response:
    """Delete a conversation and all its messages."""
    try:
        await orchestrator.delete_conversation(
            conversation_id, session.user_id, session.organization_id
        )
    except ConversationNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Conversation not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
