"""Environment configuration."""

import os
from pathlib import Path

from dotenv import load_dotenv

# Project root (src/chat_assistant/config.py -> ./)
PROJECT_ROOT = Path(__file__).parent.parent.parent

load_dotenv(PROJECT_ROOT / ".env")

ANTHROPIC_API_KEY = os.getenv("ANTHROPIC_API_KEY")
CHAT_MODEL = os.getenv("CHAT_MODEL", "claude-sonnet-4-20250514")
COMPLETION_URL = os.getenv("COMPLETION_URL")  # Remote proxy instead of Anthropic

AUTH_JWT_SECRET = os.getenv("AUTH_JWT_SECRET")
AUTH_JWT_ALGORITHM = "HS256"

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_JSON = os.getenv("LOG_JSON", "false").lower() in ("1", "true", "yes")

WRITE_QUEUE_SIZE = int(os.getenv("WRITE_QUEUE_SIZE", "100"))
TRANSCRIPT_LIMIT = int(os.getenv("TRANSCRIPT_LIMIT", "1000"))  # In-memory transcripts kept
