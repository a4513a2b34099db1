"""Completion backends that turn a user message into an assistant reply."""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

import anthropic
import httpx

from chat_assistant.config import ANTHROPIC_API_KEY, CHAT_MODEL

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an intelligent AI assistant. Provide helpful, accurate, and concise "
    "responses. If the user uploads files, summarize what you can based on the "
    "file names, types, and content previews."
)
EMPTY_REPLY = "I apologize, but I could not generate a response."

PREVIEW_CHARS = 1000
_TEXT_EXTENSIONS = re.compile(r"\.(js|ts|py|java|c|cpp|json|md|txt|csv|html|css)$", re.IGNORECASE)
_DOCUMENT_REQUEST = re.compile(
    r"\b(generate|create|download).*\b(document|file|txt|report|summary)", re.IGNORECASE
)


class CompletionError(Exception):
    """The completion backend could not produce a reply."""


@dataclass(frozen=True)
class Attachment:
    """A file uploaded alongside a message."""
    name: str
    content_type: str
    data: bytes

    @property
    def size(self) -> int:
        return len(self.data)

    def is_text(self) -> bool:
        return self.content_type.startswith("text") or bool(_TEXT_EXTENSIONS.search(self.name))


def summarize_attachments(attachments: Sequence[Attachment]) -> str:
    """
    Describe uploaded files for the prompt.

    Text and code files include a preview of their first 1000 characters;
    images and other files are described by name, type and size only.
    """
    if not attachments:
        return ""

    listing = "\n\nThe user also uploaded the following files:\n" + "\n".join(
        f"- {f.name} ({f.content_type or 'unknown'}, {f.size} bytes)" for f in attachments
    )

    details = []
    for f in attachments:
        if f.is_text():
            text = f.data.decode("utf-8", errors="replace")
            preview = text[:PREVIEW_CHARS] + ("\n...[truncated]" if len(text) > PREVIEW_CHARS else "")
            details.append(
                f"\n\nFile: {f.name}\nType: {f.content_type or 'unknown'}\n"
                f"Size: {f.size} bytes\nContent Preview:\n{preview}"
            )
        elif f.content_type.startswith("image/"):
            details.append(f"\n\nImage: {f.name}\nType: {f.content_type}\nSize: {f.size} bytes")
        else:
            details.append(
                f"\n\nFile: {f.name}\nType: {f.content_type or 'unknown'}\nSize: {f.size} bytes"
            )

    return listing + "".join(details)


def wants_document(message: str) -> bool:
    """Whether the user asked for the reply as a downloadable document."""
    return bool(_DOCUMENT_REQUEST.search(message))


class CompletionBackend(ABC):
    """Anything that answers a chat message."""

    @abstractmethod
    async def complete(self, message: str, attachments: Sequence[Attachment] = ()) -> str:
        """
        Get the assistant's reply.

        Raises:
            CompletionError: for any failure, whatever its cause.
        """
        pass


class AnthropicCompletionBackend(CompletionBackend):
    """Calls the Anthropic Messages API directly."""

    def __init__(
        self,
        api_key: str | None = ANTHROPIC_API_KEY,
        model: str = CHAT_MODEL,
        max_tokens: int = 1000,
        temperature: float = 0.7,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self._client = anthropic.AsyncAnthropic(api_key=api_key) if api_key else None

    async def complete(self, message: str, attachments: Sequence[Attachment] = ()) -> str:
        if self._client is None:
            raise CompletionError("Anthropic API key not configured")

        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
                system=SYSTEM_PROMPT,
                messages=[
                    {"role": "user", "content": message + summarize_attachments(attachments)}
                ],
            )
        except anthropic.AnthropicError as e:
            raise CompletionError(str(e)) from e

        text = "".join(block.text for block in response.content if block.type == "text")
        return text.strip() or EMPTY_REPLY


class HttpCompletionBackend(CompletionBackend):
    """Forwards messages to a remote chat endpoint speaking {message} -> {response}."""

    def __init__(self, url: str, timeout: float = 60.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def complete(self, message: str, attachments: Sequence[Attachment] = ()) -> str:
        if attachments:
            request = {
                "data": {"message": message},
                "files": [("files", (f.name, f.data, f.content_type)) for f in attachments],
            }
        else:
            request = {"json": {"message": message}}

        try:
            if self._client is not None:
                response = await self._client.post(self.url, timeout=self.timeout, **request)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.url, timeout=self.timeout, **request)
            response.raise_for_status()
            reply = response.json()["response"]
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise CompletionError(f"Completion endpoint failed: {e}") from e

        if not isinstance(reply, str):
            raise CompletionError("Completion endpoint returned a non-string response")
        return reply
