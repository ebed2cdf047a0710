"""One generation's lifecycle: request, stream, finalize, with rollback on failure.

States:
    idle -> requesting -> streaming -> finalizing -> completed
    requesting | streaming | finalizing -> failed

The placeholder artifact (temp id) is only ever shown to the observer. On
success it is replaced by the persisted record, on failure it is removed and
the partial text is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable, Sequence
from enum import StrEnum
from typing import Protocol

from quill.core import GenerationCancelled, Notice, QuillError, Severity
from quill.generation.client import CompletionTransport
from quill.generation.frames import FrameStats, decode_frames
from quill.generation.prompts import build_request
from quill.generation.splitter import split
from quill.notebook.models import Artifact, Builder, Note, generate_temp_id
from quill.notebook.repository import ArtifactRepository

logger = logging.getLogger("quill.generation")

FAILURE_MESSAGE = "Generation failed, please try again later"
SUCCESS_MESSAGE = "Artifact generated"


class SessionState(StrEnum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.REQUESTING}),
    SessionState.REQUESTING: frozenset({SessionState.STREAMING, SessionState.FAILED}),
    SessionState.STREAMING: frozenset({SessionState.FINALIZING, SessionState.FAILED}),
    SessionState.FINALIZING: frozenset({SessionState.COMPLETED, SessionState.FAILED}),
    SessionState.COMPLETED: frozenset(),
    SessionState.FAILED: frozenset(),
}

TERMINAL_STATES = frozenset({SessionState.COMPLETED, SessionState.FAILED})


class GenerationObserver(Protocol):
    def on_artifact_update(
        self, artifact: Artifact, is_final: bool = False, correlation_id: str | None = None
    ) -> None: ...

    def on_generation_state_change(self, is_generating: bool) -> None: ...

    def on_notice(self, notice: Notice) -> None: ...


class GenerationSession:
    """Runs a single generation. Not reusable: `run` may be called once."""

    def __init__(
        self,
        builder: Builder,
        notes: Sequence[Note],
        *,
        notebook: str,
        creator: str,
        model: str,
        transport: CompletionTransport,
        repository: ArtifactRepository,
        observer: GenerationObserver,
        on_skip: Callable[[str], None] | None = None,
    ) -> None:
        self.builder = builder
        self.notes = tuple(notes)
        self.notebook = notebook
        self.creator = creator
        self.model = model
        self.temp_id = generate_temp_id()
        self.state = SessionState.IDLE
        self.stats = FrameStats()
        self.artifact: Artifact | None = None
        self.error: BaseException | None = None
        self._transport = transport
        self._repository = repository
        self._observer = observer
        self._on_skip = on_skip
        self._buffer = ""
        self._cancelled = False

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def cancel(self) -> None:
        """Request cancellation; honored at the next fragment boundary."""
        self._cancelled = True

    def _transition(self, state: SessionState) -> None:
        if state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal session transition {self.state} -> {state}")
        logger.info("Session %s: %s -> %s", self.temp_id, self.state, state)
        self.state = state

    async def run(self) -> Artifact | None:
        """Drive the session to a terminal state. Returns the persisted artifact on success."""
        if self.state != SessionState.IDLE:
            raise RuntimeError(f"Session {self.temp_id} already ran (state={self.state})")

        self._transition(SessionState.REQUESTING)
        payload = build_request(self.builder, self.notes, self.model)
        try:
            stream = await self._transport.open(payload)
        except asyncio.CancelledError:
            self._fail(GenerationCancelled("Generation task cancelled"))
            raise
        except Exception as e:
            self._fail(e)
            return None

        placeholder = Artifact.placeholder(self.temp_id, self.builder, self.notebook, self.creator)
        try:
            try:
                self._observer.on_artifact_update(placeholder)
                self._transition(SessionState.STREAMING)
                await self._consume(stream.chunks(), placeholder)
            finally:
                await stream.aclose()
            artifact = await self._finalize()
            self._observer.on_artifact_update(artifact, True, self.temp_id)
        except asyncio.CancelledError:
            self._fail(GenerationCancelled("Generation task cancelled"))
            raise
        except Exception as e:
            self._fail(e)
            return None

        self.artifact = artifact
        self._transition(SessionState.COMPLETED)
        self._observer.on_notice(Notice(severity=Severity.SUCCESS, code="GENERATED", message=SUCCESS_MESSAGE))
        return artifact

    async def _consume(self, chunks: AsyncIterator[bytes], placeholder: Artifact) -> None:
        async for fragment in decode_frames(chunks, on_skip=self._on_skip, stats=self.stats):
            if self._cancelled:
                raise GenerationCancelled(f"Session {self.temp_id} cancelled")
            if not fragment:
                continue
            self._buffer += fragment
            title, content = split(self._buffer, self.builder.title)
            self._observer.on_artifact_update(placeholder.model_copy(update={"title": title, "content": content}))
        if self._cancelled:
            raise GenerationCancelled(f"Session {self.temp_id} cancelled")

    async def _finalize(self) -> Artifact:
        self._transition(SessionState.FINALIZING)
        title, content = split(self._buffer, self.builder.title)
        artifact = await self._repository.persist(
            title,
            content,
            self.builder.type.value,
            self.notebook,
            self.builder.id,
            self.creator,
        )
        try:
            await self._repository.increment_generated_count(self.notebook)
        except QuillError:
            logger.warning("Artifact %s persisted but generated_count update failed", artifact.id)
            raise
        return artifact

    def _fail(self, error: BaseException) -> None:
        self.error = error
        self._buffer = ""
        self._transition(SessionState.FAILED)
        if isinstance(error, QuillError):
            logger.warning("Session %s failed: %s: %s", self.temp_id, error.code, error)
        else:
            logger.error("Session %s failed", self.temp_id, exc_info=error)
        self._observer.on_artifact_update(Artifact.removal(self.temp_id), True, self.temp_id)
        self._observer.on_notice(Notice(severity=Severity.ERROR, code="GENERATION_FAILED", message=FAILURE_MESSAGE))
