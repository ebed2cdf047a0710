"""Split an accumulated model response into (title, content)."""

from __future__ import annotations

HEADER_MARKER = "# "


def split(buffer: str, fallback_title: str) -> tuple[str, str]:
    """Derive the title and body from the whole buffer.

    A buffer starting with "# " carries its title on the first line. Until
    the first newline arrives the body is empty.
    """
    if not buffer.startswith(HEADER_MARKER):
        return fallback_title, buffer

    newline = buffer.find("\n")
    if newline == -1:
        return buffer[len(HEADER_MARKER) :].strip() or fallback_title, ""

    title = buffer[len(HEADER_MARKER) : newline].strip()
    return title or fallback_title, buffer[newline + 1 :].strip()
