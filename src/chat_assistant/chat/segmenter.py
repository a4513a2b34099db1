"""Split assistant replies into prose and fenced-code segments."""

from enum import Enum
from typing import Iterator, Literal

from pydantic import BaseModel

FENCE = "```"
DEFAULT_LANGUAGE = "text"


class Segment(BaseModel):
    kind: Literal["prose", "code"]
    text: str
    language: str | None = None  # code segments only

    class Config:
        frozen = True


class _State(Enum):
    OUTSIDE = "outside"
    INSIDE = "inside"


def _tokens(content: str) -> Iterator[str | None]:
    """Yield text chunks, with None standing for each fence marker."""
    start = 0
    while True:
        index = content.find(FENCE, start)
        if index == -1:
            yield content[start:]
            return
        yield content[start:index]
        yield None
        start = index + len(FENCE)


def _is_tag_char(char: str) -> bool:
    return char.isascii() and (char.isalnum() or char == "_")


def _split_info(raw: str) -> tuple[str, str]:
    """Split the text after an opening fence into (language tag, body)."""
    end = 0
    while end < len(raw) and _is_tag_char(raw[end]):
        end += 1
    body = raw[end:]
    if body.startswith("\n"):
        body = body[1:]
    return raw[:end], body


def segment(content: str) -> list[Segment]:
    """
    Split content into prose and code segments, in order.

    A code block opens with ``` plus an optional language tag (no space
    between them) and closes at the next ```. An opening fence that never
    closes is left as prose. Segment texts are trimmed and empty ones are
    dropped. If nothing remains, the untrimmed content comes back as a
    single prose segment.
    """
    segments: list[Segment] = []
    prose: list[str] = []
    code: list[str] = []
    state = _State.OUTSIDE

    def flush_prose() -> None:
        text = "".join(prose).strip()
        prose.clear()
        if text:
            segments.append(Segment(kind="prose", text=text))

    for token in _tokens(content):
        if state is _State.OUTSIDE:
            if token is None:
                state = _State.INSIDE
            else:
                prose.append(token)
        elif token is None:
            language, body = _split_info("".join(code))
            code.clear()
            flush_prose()
            body = body.strip()
            if body:
                segments.append(
                    Segment(kind="code", text=body, language=language or DEFAULT_LANGUAGE)
                )
            state = _State.OUTSIDE
        else:
            code.append(token)

    if state is _State.INSIDE:
        # Unclosed fence stays prose
        prose.append(FENCE)
        prose.extend(code)
    flush_prose()

    if not segments:
        return [Segment(kind="prose", text=content)]
    return segments


# Checked in order; first match wins
_LANGUAGE_MARKERS: list[tuple[str, tuple[str, ...]]] = [
    ("typescript", ("import React", "export const", "useState")),
    ("python", ("def ", "import ")),
    ("java", ("public class", "System.out")),
    ("cpp", ("#include", "int main")),
    ("sql", ("SELECT", "CREATE TABLE")),
    ("html", ("<html>", "<div>")),
]


def detect_language(code: str, declared: str | None = None) -> str:
    """Declared language if given, otherwise a guess from marker substrings."""
    if declared:
        return declared
    for language, markers in _LANGUAGE_MARKERS:
        if any(marker in code for marker in markers):
            return language
    if "{" in code and "}" in code:
        return "css"
    return "plaintext"


def renders_as_plain(segments: list[Segment], is_user: bool) -> bool:
    """User messages and code-free replies are shown as one block of text."""
    return is_user or all(part.kind == "prose" for part in segments)
