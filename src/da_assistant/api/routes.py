"""
Assistant REST API: sessions, messages and streamed replies.
"""

import json
from contextlib import aclosing
from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field

from ..agent.orchestrator import AssistantService
from ..exceptions import SessionNotFoundError

logger = structlog.get_logger()

router = APIRouter(tags=["assistant"])


def get_assistant(request: Request) -> AssistantService:
    return request.app.state.assistant


class CreateSessionRequest(BaseModel):
    user_id: str = Field(min_length=1)
    title: str | None = None


class SessionOut(BaseModel):
    id: str
    user_id: str
    title: str | None = None
    summary: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class MessageOut(BaseModel):
    id: str
    session_id: str
    content: str
    sender_id: str
    type: str
    status: str
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class SendMessageRequest(BaseModel):
    user_id: str = Field(min_length=1)
    content: str = Field(min_length=1)
    params: dict[str, str] = Field(default_factory=dict)


@router.get("/sessions/user/{user_id}", response_model=list[SessionOut])
async def list_user_sessions(user_id: str, assistant: AssistantService = Depends(get_assistant)):
    """Sessions of a user, most recent first."""
    return await assistant.get_user_sessions(user_id)


@router.post("/sessions", response_model=SessionOut, status_code=201)
async def create_session(body: CreateSessionRequest, assistant: AssistantService = Depends(get_assistant)):
    session_id = await assistant.create_session(body.user_id, body.title)
    return await assistant.store.get_session(session_id)


@router.delete("/sessions/{session_id}", status_code=204)
async def delete_session(session_id: str, assistant: AssistantService = Depends(get_assistant)):
    if not await assistant.delete_session(session_id):
        raise SessionNotFoundError(session_id)
    return Response(status_code=204)


@router.get("/sessions/{session_id}/messages", response_model=list[MessageOut])
async def list_messages(session_id: str, assistant: AssistantService = Depends(get_assistant)):
    return await assistant.get_session_messages(session_id)


@router.post("/sessions/{session_id}/messages")
async def send_message(
    session_id: str,
    body: SendMessageRequest,
    assistant: AssistantService = Depends(get_assistant),
):
    """Send a message and wait for the whole reply."""
    reply = await assistant.send_message(session_id, body.user_id, body.content, body.params)
    return {"session_id": session_id, "response": reply}


@router.post("/sessions/{session_id}/messages/stream")
async def send_message_stream(
    session_id: str,
    body: SendMessageRequest,
    assistant: AssistantService = Depends(get_assistant),
):
    """Send a message and receive the reply as server-sent events.

    Events: ``{"content": <delta>}`` while the reply grows, then either
    ``{"done": true}`` or ``{"error": <reason>}``.
    """
    if await assistant.store.get_session(session_id) is None:
        raise SessionNotFoundError(session_id)

    async def event_stream():
        events = assistant.send_message_stream(session_id, body.user_id, body.content, body.params)
        try:
            async with aclosing(events):
                async for event in events:
                    if event.type == "data":
                        yield f"data: {json.dumps({'content': event.data})}\n\n"
                    elif event.type == "error":
                        yield f"data: {json.dumps({'error': event.data})}\n\n"
                    else:
                        yield f"data: {json.dumps({'done': True})}\n\n"
        except Exception as e:
            logger.error("Streaming failed", session_id=session_id, error=str(e))
            yield f"data: {json.dumps({'error': 'Internal server error'})}\n\n"

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.post("/chat")
async def chat(body: SendMessageRequest, assistant: AssistantService = Depends(get_assistant)):
    """One-off message in a new temporary session."""
    session_id, reply = await assistant.chat(body.user_id, body.content, body.params)
    return {"session_id": session_id, "response": reply}
