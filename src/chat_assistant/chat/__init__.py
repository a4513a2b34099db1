"""Chat sessions, reply segmentation and completion."""

from .cache import SessionCache
from .completion import (
    AnthropicCompletionBackend,
    Attachment,
    CompletionBackend,
    CompletionError,
    HttpCompletionBackend,
)
from .identity import ANONYMOUS, Anonymous, LocalAccount, OwnerIdentity, ProvidedAccount
from .manager import SessionManager, is_temporary
from .segmenter import Segment, detect_language, renders_as_plain, segment
from .service import (
    ChatExchange,
    ChatService,
    EmptyMessageError,
    SendInProgressError,
)
from .speech import CapabilityUnavailableError, SpeechInterrupted, SpeechOutput

__all__ = [
    "SessionCache",
    "AnthropicCompletionBackend",
    "Attachment",
    "CompletionBackend",
    "CompletionError",
    "HttpCompletionBackend",
    "ANONYMOUS",
    "Anonymous",
    "LocalAccount",
    "OwnerIdentity",
    "ProvidedAccount",
    "SessionManager",
    "is_temporary",
    "Segment",
    "detect_language",
    "renders_as_plain",
    "segment",
    "ChatExchange",
    "ChatService",
    "EmptyMessageError",
    "SendInProgressError",
    "CapabilityUnavailableError",
    "SpeechInterrupted",
    "SpeechOutput",
]
