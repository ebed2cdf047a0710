"""Shared test fixtures for quill tests."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator
from typing import Any
from unittest.mock import AsyncMock, MagicMock

from quill.core import Notice, RequestError
from quill.notebook.models import Artifact, ArtifactType, Builder, Note


def make_builder(title: str = "Risk Brief", type: ArtifactType = ArtifactType.TEXT) -> Builder:  # noqa: A002
    return Builder(id="bld_brief", title=title, prompt="Write a risk brief.", type=type)


def make_notes() -> list[Note]:
    return [
        Note(title="Site visit", content="Nets found near the inlet."),
        Note(title="Patrol log", content="Two boats seen at night."),
    ]


def frame(content: str | None) -> bytes:
    """Encode one SSE data frame carrying a content delta."""
    delta: dict[str, Any] = {} if content is None else {"content": content}
    return f"data: {json.dumps({'choices': [{'delta': delta}]}, ensure_ascii=False)}\n\n".encode()


DONE = b"data: [DONE]\n\n"


async def aiter_chunks(chunks: list[bytes]) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk


class FakeStream:
    def __init__(self, chunks: list[bytes], fail_after: int | None = None) -> None:
        self._chunks = chunks
        self._fail_after = fail_after
        self.closed = False

    async def chunks(self) -> AsyncIterator[bytes]:
        for i, chunk in enumerate(self._chunks):
            if self._fail_after is not None and i >= self._fail_after:
                raise RequestError("connection reset")
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


class FakeTransport:
    """Completion transport that replays canned chunks."""

    def __init__(
        self, chunks: list[bytes] | None = None, *, fail_after: int | None = None, error: Exception | None = None
    ) -> None:
        self.chunks = chunks if chunks is not None else [frame("# Hi\n"), frame("Hello world"), DONE]
        self.fail_after = fail_after
        self.error = error
        self.payloads: list[dict[str, Any]] = []
        self.streams: list[FakeStream] = []
        self.closed = False

    async def open(self, payload: dict[str, Any]) -> FakeStream:
        self.payloads.append(payload)
        if self.error is not None:
            raise self.error
        stream = FakeStream(self.chunks, self.fail_after)
        self.streams.append(stream)
        return stream

    async def aclose(self) -> None:
        self.closed = True


class GatedStream:
    """Emits one frame, then waits for the gate before finishing."""

    def __init__(self, gate: asyncio.Event, streaming: asyncio.Event) -> None:
        self._gate = gate
        self._streaming = streaming

    async def chunks(self) -> AsyncIterator[bytes]:
        yield frame("# Hi\n")
        self._streaming.set()
        await self._gate.wait()
        yield frame("Hello world")
        yield DONE

    async def aclose(self) -> None:
        pass


class GatedTransport:
    """Holds the stream open after the first frame until `gate` is set."""

    def __init__(self) -> None:
        self.gate = asyncio.Event()
        self.streaming = asyncio.Event()
        self.opened = 0

    async def open(self, payload: dict[str, Any]) -> GatedStream:
        self.opened += 1
        return GatedStream(self.gate, self.streaming)

    async def aclose(self) -> None:
        pass


class RecordingObserver:
    def __init__(self) -> None:
        self.updates: list[tuple[Artifact, bool, str | None]] = []
        self.states: list[bool] = []
        self.notices: list[Notice] = []

    def on_artifact_update(self, artifact: Artifact, is_final: bool = False, correlation_id: str | None = None) -> None:
        self.updates.append((artifact, is_final, correlation_id))

    def on_generation_state_change(self, is_generating: bool) -> None:
        self.states.append(is_generating)

    def on_notice(self, notice: Notice) -> None:
        self.notices.append(notice)


def mock_repository(artifact_id: str = "rec_123") -> MagicMock:
    """Repository double whose persist echoes its arguments into a stored artifact."""

    async def _persist(
        title: str, content: str, type: str, notebook: str, builder: str, creator: str  # noqa: A002
    ) -> Artifact:
        return Artifact(
            id=artifact_id,
            title=title,
            content=content,
            type=type,
            notebook=notebook,
            builder=builder,
            creator=creator,
        )

    repository = MagicMock()
    repository.persist = AsyncMock(side_effect=_persist)
    repository.increment_generated_count = AsyncMock(return_value=1)
    repository.aclose = AsyncMock()
    return repository
