"""Chat request composition for artifact generation."""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from quill.core import Result
from quill.notebook.models import Builder, Note

_INSTRUCTION = """\
Using the reference notes provided, produce a {title}. Always include a concise title.
Format requirements:
The first line must be: # <title>
The document body starts on the second line."""


def build_context(notes: Sequence[Note]) -> str:
    """Concatenate notes in the order given, each under its own title line."""
    return "\n\n".join(f"--- Note title: {note.title} ---\n{note.content}" for note in notes)


def build_system_prompt(builder: Builder, notes: Sequence[Note]) -> str:
    return f"{builder.prompt}\n\nReference notes:\n{build_context(notes)}"


def build_instruction(builder: Builder) -> str:
    return _INSTRUCTION.format(title=builder.title)


def build_request(builder: Builder, notes: Sequence[Note], model: str) -> dict[str, Any]:
    """Build the streaming chat-completion request body."""
    return {
        "model": model,
        "messages": [
            {"role": "system", "content": build_system_prompt(builder, notes)},
            {"role": "user", "content": build_instruction(builder)},
        ],
        "stream": True,
    }


def check_generation_input(builder: Builder | None, notes: Sequence[Note]) -> Result[Builder]:
    """Validate a generation request before any session is created."""
    result: Result[Builder] = Result()
    if builder is None:
        result.error("NO_BUILDER", "Builder not found")
        return result
    if not notes:
        result.warning("NO_CONTEXT", "Select the notes to generate from first")
        return result
    result.data = builder
    return result
