"""Stateless proxy to the completion backend."""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response
from starlette.datastructures import UploadFile

from chat_assistant.chat import Attachment, CompletionBackend, CompletionError
from chat_assistant.chat.completion import wants_document

from .deps import get_completion_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

FAILURE_BODY = {"error": "Failed to get AI response"}


async def _read_request(request: Request) -> tuple[str, list[Attachment]]:
    """Accept JSON {message} or multipart with a message field and files."""
    content_type = request.headers.get("content-type", "")
    if "multipart/form-data" in content_type:
        form = await request.form()
        message = form.get("message") or ""
        attachments = []
        for _, value in form.multi_items():
            if isinstance(value, UploadFile):
                attachments.append(
                    Attachment(
                        name=value.filename or "upload",
                        content_type=value.content_type or "",
                        data=await value.read(),
                    )
                )
        return str(message), attachments

    body = await request.json()
    if not isinstance(body, dict):
        raise ValueError("Expected a JSON object")
    return str(body.get("message") or ""), []


@router.post("/chat-with-ai")
async def chat_with_ai(
    request: Request,
    backend: CompletionBackend = Depends(get_completion_backend),
) -> Response:
    """
    Forward one message to the completion backend.

    Returns {"response": ...}, or the reply as a text file download when
    the message asks for a document. Any failure is a 500 with a fixed
    error body; backend error text is never passed through.
    """
    try:
        message, attachments = await _read_request(request)
        reply = await backend.complete(message, attachments)
    except (CompletionError, ValueError) as e:
        logger.error("Error in chat-with-ai: %s", e)
        return JSONResponse(FAILURE_BODY, status_code=500)

    if wants_document(message):
        return Response(
            content=reply,
            media_type="text/plain",
            headers={"Content-Disposition": 'attachment; filename="ai-response.txt"'},
        )

    return JSONResponse({"response": reply})
