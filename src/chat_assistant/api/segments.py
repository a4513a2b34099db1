"""Reply segmentation endpoint for clients rendering stored text."""

from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel

from chat_assistant.chat.segmenter import (
    DEFAULT_LANGUAGE,
    detect_language,
    renders_as_plain,
    segment,
)

router = APIRouter(prefix="/segments", tags=["segments"])


class SegmentRequest(BaseModel):
    content: str
    is_user: bool = False


class SegmentView(BaseModel):
    kind: Literal["prose", "code"]
    text: str
    language: str | None = None
    display_language: str | None = None


class SegmentResponse(BaseModel):
    segments: list[SegmentView]
    plain: bool


@router.post("", response_model=SegmentResponse)
async def segment_content(data: SegmentRequest) -> SegmentResponse:
    """Split text into prose and code segments, with a display language per code block."""
    parts = segment(data.content)
    views = []
    for part in parts:
        display = None
        if part.kind == "code":
            declared = part.language if part.language != DEFAULT_LANGUAGE else None
            display = detect_language(part.text, declared)
        views.append(
            SegmentView(
                kind=part.kind,
                text=part.text,
                language=part.language,
                display_language=display,
            )
        )
    return SegmentResponse(segments=views, plain=renders_as_plain(parts, data.is_user))
