"""Assistant chat server."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from chat_assistant import __version__, config
from chat_assistant.api import router
from chat_assistant.chat import (
    AnthropicCompletionBackend,
    ChatService,
    CompletionBackend,
    HttpCompletionBackend,
    SessionManager,
)
from chat_assistant.db import SqlChatStore, async_session
from chat_assistant.logging_config import setup_logging

logger = logging.getLogger(__name__)


def build_completion_backend() -> CompletionBackend:
    """Remote proxy if COMPLETION_URL is set, otherwise Anthropic directly."""
    if config.COMPLETION_URL:
        return HttpCompletionBackend(config.COMPLETION_URL)
    return AnthropicCompletionBackend()


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging(config.LOG_LEVEL, config.LOG_JSON)
    logger.info("Starting chat server v%s", __version__)
    yield
    await app.state.chat_service.teardown()
    await app.state.session_manager.close()
    logger.info("Chat server stopped")


app = FastAPI(title="Assistant Chat", version=__version__, lifespan=lifespan)

# Allow frontend to connect
app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)

# One set of services per process, shared by reference through app.state
app.state.session_manager = SessionManager(SqlChatStore(async_session))
app.state.completion_backend = build_completion_backend()
app.state.chat_service = ChatService(
    app.state.session_manager, app.state.completion_backend
)
