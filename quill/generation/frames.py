"""Decode a chat-completion event stream into text deltas.

Frames look like `data: {"choices": [{"delta": {"content": "..."}}]}` and the
stream ends with `data: [DONE]`. Bytes may be split anywhere across reads.
"""

from __future__ import annotations

import codecs
import json
import logging
from collections.abc import AsyncIterable, AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger("quill.frames")

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


@dataclass
class FrameStats:
    """Counters for one decode run."""

    frames: int = 0
    deltas: int = 0
    skipped: int = 0
    done_seen: bool = False


def extract_delta(payload: Any) -> str:
    """Return choices[0].delta.content, or "" when the payload has no text delta."""
    if not isinstance(payload, dict):
        return ""
    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def _parse_line(line: str, stats: FrameStats, on_skip: Callable[[str], None] | None) -> str | None:
    line = line.strip()
    if not line.startswith(DATA_PREFIX):
        return None

    data = line[len(DATA_PREFIX) :].strip()
    stats.frames += 1
    if data == DONE_SENTINEL:
        stats.done_seen = True
        return None

    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        payload = None
    if not isinstance(payload, dict):
        stats.skipped += 1
        logger.debug("Skipping malformed frame: %r", line[:120])
        if on_skip is not None:
            on_skip(line)
        return None

    stats.deltas += 1
    return extract_delta(payload)


async def decode_frames(
    chunks: AsyncIterable[bytes],
    *,
    on_skip: Callable[[str], None] | None = None,
    stats: FrameStats | None = None,
) -> AsyncIterator[str]:
    """Yield one text fragment per parsed frame, in transport order.

    Malformed frames are skipped. The [DONE] sentinel is discarded; reading
    continues until the transport itself is exhausted.
    """
    stats = stats if stats is not None else FrameStats()
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    pending = ""

    async for chunk in chunks:
        pending += decoder.decode(chunk)
        *lines, pending = pending.split("\n")
        for line in lines:
            fragment = _parse_line(line, stats, on_skip)
            if fragment is not None:
                yield fragment

    pending += decoder.decode(b"", final=True)
    if pending:
        fragment = _parse_line(pending, stats, on_skip)
        if fragment is not None:
            yield fragment

    if stats.skipped:
        logger.info("Decoded %d frames, skipped %d malformed", stats.frames, stats.skipped)
