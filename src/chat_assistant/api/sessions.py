"""Session and message endpoints."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from pydantic import BaseModel

from chat_assistant.chat import (
    Attachment,
    CapabilityUnavailableError,
    ChatExchange,
    ChatService,
    EmptyMessageError,
    OwnerIdentity,
    SendInProgressError,
    SessionManager,
    is_temporary,
)
from chat_assistant.chat.segmenter import Segment, renders_as_plain, segment
from chat_assistant.db import MessageRecord, SessionRecord

from .deps import get_chat_service, get_owner, get_session_manager

router = APIRouter(prefix="/sessions", tags=["sessions"])


# --- Schemas ---


class MessageView(BaseModel):
    id: str
    session_id: str
    content: str
    is_user: bool
    message_type: str
    metadata: dict[str, Any]
    created_at: datetime
    segments: list[Segment]
    plain: bool


class ResolveResponse(BaseModel):
    session_id: str
    temporary: bool
    transcript: list[MessageView]


class SessionUpdate(BaseModel):
    title: str


class MessageCreate(BaseModel):
    content: str
    speak: bool = False


def message_view(message: MessageRecord) -> MessageView:
    segments = segment(message.content)
    return MessageView(
        id=message.id,
        session_id=message.session_id,
        content=message.content,
        is_user=message.is_user,
        message_type=message.message_type,
        metadata=message.metadata,
        created_at=message.created_at,
        segments=segments,
        plain=renders_as_plain(segments, message.is_user),
    )


async def _require_access(
    session_id: str, owner: OwnerIdentity, manager: SessionManager
) -> None:
    """Persisted sessions are only visible to the owner who created them."""
    if is_temporary(session_id):
        return
    sessions = await manager.list_sessions(owner)
    if not any(s.id == session_id for s in sessions):
        raise HTTPException(status_code=404, detail="Session not found")


async def _send(
    chat: ChatService,
    session_id: str,
    owner: OwnerIdentity,
    content: str,
    attachments: list[Attachment],
    speak: bool,
) -> ChatExchange:
    try:
        return await chat.send(session_id, owner, content, attachments, speak=speak)
    except EmptyMessageError:
        raise HTTPException(status_code=400, detail="Message is empty")
    except SendInProgressError:
        raise HTTPException(status_code=409, detail="A message is already being sent")
    except CapabilityUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))


# --- Routes ---


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_session(
    owner: OwnerIdentity = Depends(get_owner),
    chat: ChatService = Depends(get_chat_service),
) -> ResolveResponse:
    """Get (or create) the session for the caller's next chat."""
    session_id = await chat.start(owner)
    return ResolveResponse(
        session_id=session_id,
        temporary=is_temporary(session_id),
        transcript=[message_view(m) for m in chat.transcript(session_id)],
    )


@router.get("", response_model=list[SessionRecord])
async def list_sessions(
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
) -> list[SessionRecord]:
    """List the caller's sessions, most recently updated first."""
    return await manager.list_sessions(owner)


@router.get("/{session_id}/messages", response_model=list[MessageView])
async def list_messages(
    session_id: str,
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
    chat: ChatService = Depends(get_chat_service),
) -> list[MessageView]:
    """Messages of a session, oldest first, split into display segments."""
    if is_temporary(session_id):
        messages = chat.transcript(session_id)
    else:
        await _require_access(session_id, owner, manager)
        messages = await manager.list_messages(session_id)
    return [message_view(m) for m in messages]


@router.post("/{session_id}/messages", response_model=ChatExchange)
async def send_message(
    session_id: str,
    data: MessageCreate,
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
    chat: ChatService = Depends(get_chat_service),
) -> ChatExchange:
    """Send a message and get the assistant's reply."""
    await _require_access(session_id, owner, manager)
    return await _send(chat, session_id, owner, data.content, [], data.speak)


@router.post("/{session_id}/messages/upload", response_model=ChatExchange)
async def send_message_with_files(
    session_id: str,
    content: str = Form(...),
    files: list[UploadFile] = File(default=[]),
    speak: bool = Form(False),
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
    chat: ChatService = Depends(get_chat_service),
) -> ChatExchange:
    """Send a message with attached files."""
    await _require_access(session_id, owner, manager)
    attachments = [
        Attachment(
            name=f.filename or "upload",
            content_type=f.content_type or "",
            data=await f.read(),
        )
        for f in files
    ]
    return await _send(chat, session_id, owner, content, attachments, speak)


@router.patch("/{session_id}", response_model=dict)
async def rename_session(
    session_id: str,
    data: SessionUpdate,
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
) -> dict:
    """Rename a session."""
    await _require_access(session_id, owner, manager)
    if not await manager.rename_session(session_id, data.title):
        raise HTTPException(status_code=404, detail="Session not found")
    return {"id": session_id, "title": data.title}


@router.delete("/{session_id}", status_code=204)
async def delete_session(
    session_id: str,
    owner: OwnerIdentity = Depends(get_owner),
    manager: SessionManager = Depends(get_session_manager),
    chat: ChatService = Depends(get_chat_service),
) -> None:
    """Delete a session and its messages."""
    if is_temporary(session_id):
        await chat.teardown(session_id)
        return None
    await _require_access(session_id, owner, manager)
    if not await manager.delete_session(session_id):
        raise HTTPException(status_code=404, detail="Session not found")
    await chat.teardown(session_id)
    return None
