"""Chat turns: transcript, send guard, completion and persistence."""

import logging
from typing import Sequence
from uuid import uuid4

from pydantic import BaseModel

from chat_assistant.config import TRANSCRIPT_LIMIT
from chat_assistant.db import MessageRecord

from .completion import Attachment, CompletionBackend, CompletionError
from .identity import OwnerIdentity, owner_key
from .manager import SessionManager
from .segmenter import Segment, renders_as_plain, segment
from .speech import CapabilityUnavailableError, SpeechInterrupted, SpeechOutput

logger = logging.getLogger(__name__)

GREETING = (
    "Hello! I'm your assistant. I'm here to help you with anything you need. "
    "How can I assist you today?"
)
FALLBACK_REPLY = "I'm sorry, I'm having trouble connecting right now. Please try again."


class EmptyMessageError(ValueError):
    """The submitted message has no text."""


class SendInProgressError(Exception):
    """A reply is already pending for this session."""

    def __init__(self, session_id: str):
        super().__init__(f"A message is already being sent for session {session_id}")
        self.session_id = session_id


class ChatExchange(BaseModel):
    """One user message and the reply produced for it."""
    session_id: str
    user_message: MessageRecord
    reply: MessageRecord
    segments: list[Segment]
    plain: bool
    failed: bool = False


class ChatService:
    """
    Runs chat turns on top of a SessionManager.

    Keeps each session's in-memory transcript and allows one send in flight
    per session. The in-flight flag is set before the first await, so a
    second send for the same session is rejected rather than interleaved.

    At most max_transcripts transcripts are kept in memory; the least
    recently updated one is dropped first.
    """

    def __init__(
        self,
        sessions: SessionManager,
        backend: CompletionBackend,
        speech: SpeechOutput | None = None,
        max_transcripts: int = TRANSCRIPT_LIMIT,
    ):
        self.sessions = sessions
        self.backend = backend
        self.speech = speech
        self.max_transcripts = max_transcripts
        self._in_flight: set[str] = set()
        # Insertion order is recency order; the first key is evicted first
        self._transcripts: dict[str, tuple[MessageRecord, ...]] = {}
        self._speaking_session: str | None = None

    def is_sending(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def transcript(self, session_id: str) -> list[MessageRecord]:
        return list(self._transcripts.get(session_id, ()))

    def _append(self, message: MessageRecord) -> None:
        # Replace, never mutate: readers may hold the old tuple
        current = self._transcripts.pop(message.session_id, ())
        self._transcripts[message.session_id] = current + (message,)
        while len(self._transcripts) > self.max_transcripts:
            oldest_id = next(iter(self._transcripts))
            del self._transcripts[oldest_id]
            logger.debug("Evicted transcript %s", oldest_id)

    async def start(self, owner: OwnerIdentity | None) -> str:
        """Resolve the owner's session and greet them if it is fresh."""
        session_id = await self.sessions.resolve_session(owner)
        if not self._transcripts.get(session_id):
            self._append(
                MessageRecord(
                    id=str(uuid4()),
                    session_id=session_id,
                    owner_id=owner_key(owner),
                    content=GREETING,
                    is_user=False,
                )
            )
        return session_id

    async def send(
        self,
        session_id: str,
        owner: OwnerIdentity | None,
        text: str,
        attachments: Sequence[Attachment] = (),
        speak: bool = False,
    ) -> ChatExchange:
        """
        Send a user message and get the assistant's reply.

        Raises:
            EmptyMessageError: text is blank
            SendInProgressError: another send for this session is pending
            CapabilityUnavailableError: speak requested without speech output
        """
        if not text.strip():
            raise EmptyMessageError("Message is empty")
        if speak and self.speech is None:
            raise CapabilityUnavailableError("Speech output is not available")
        if session_id in self._in_flight:
            raise SendInProgressError(session_id)

        self._in_flight.add(session_id)
        try:
            owner_id = owner_key(owner)
            user_message = MessageRecord(
                id=str(uuid4()),
                session_id=session_id,
                owner_id=owner_id,
                content=text,
                is_user=True,
            )
            self._append(user_message)

            await self._cancel_speech()
            await self.sessions.append_message(session_id, owner, text, is_user=True)

            failed = False
            try:
                reply_text = await self.backend.complete(text, attachments)
            except CompletionError as e:
                logger.warning("Completion failed for session %s: %s", session_id, e)
                reply_text = FALLBACK_REPLY
                failed = True

            reply = MessageRecord(
                id=str(uuid4()),
                session_id=session_id,
                owner_id=owner_id,
                content=reply_text,
                is_user=False,
            )
            self._append(reply)
            await self.sessions.append_message(session_id, owner, reply_text, is_user=False)

            if speak and not failed:
                await self._speak(session_id, reply_text)

            segments = segment(reply_text)
            return ChatExchange(
                session_id=session_id,
                user_message=user_message,
                reply=reply,
                segments=segments,
                plain=renders_as_plain(segments, is_user=False),
                failed=failed,
            )
        finally:
            self._in_flight.discard(session_id)

    async def teardown(self, session_id: str | None = None) -> None:
        """
        Forget a session's transcript (or all of them).

        Speech is only stopped when it belongs to the session being torn
        down, or when everything is.
        """
        if session_id is None or session_id == self._speaking_session:
            await self._cancel_speech()
        if session_id is None:
            self._transcripts = {}
        else:
            self._transcripts.pop(session_id, None)

    async def _cancel_speech(self) -> None:
        if self.speech is None:
            return
        try:
            await self.speech.cancel()
        except SpeechInterrupted:
            pass
        except Exception:
            logger.exception("Failed to cancel speech output")
        finally:
            self._speaking_session = None

    async def _speak(self, session_id: str, text: str) -> None:
        self._speaking_session = session_id
        try:
            await self.speech.speak(text)
        except SpeechInterrupted:
            pass
        except Exception:
            logger.exception("Speech output failed")
