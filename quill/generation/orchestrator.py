"""Single-flight entry point for artifact generation."""

from __future__ import annotations

import logging
import os
from collections.abc import Sequence

from quill.config import QuillConfig, records_dir
from quill.core import Notice, Severity
from quill.generation.client import CompletionTransport, HttpCompletionClient
from quill.generation.prompts import check_generation_input
from quill.generation.session import GenerationObserver, GenerationSession
from quill.notebook.models import Builder, Note
from quill.notebook.records import FileRecordStore, HttpRecordStore, RecordStore
from quill.notebook.repository import ArtifactRepository

logger = logging.getLogger("quill.generation")


class Orchestrator:
    """Owns at most one active GenerationSession.

    The active session is registered before the first suspension point and
    released once it reaches a terminal state, so concurrent `start` calls
    from the same event loop see it.
    """

    def __init__(self, transport: CompletionTransport, repository: ArtifactRepository, *, model: str) -> None:
        self.transport = transport
        self.repository = repository
        self.model = model
        self.skipped_frames = 0
        self._active: GenerationSession | None = None

    @property
    def active(self) -> GenerationSession | None:
        return self._active

    @property
    def is_generating(self) -> bool:
        return self._active is not None

    def _count_skip(self, line: str) -> None:
        self.skipped_frames += 1

    async def start(
        self,
        builder: Builder,
        notes: Sequence[Note],
        *,
        notebook: str,
        creator: str,
        observer: GenerationObserver,
    ) -> GenerationSession | None:
        """Run one generation to completion.

        Returns None without side effects when another session is active.
        Returns None after a warning notice when there are no notes to use.
        Otherwise returns the finished session, completed or failed.
        """
        if self._active is not None:
            logger.info("Generation already in progress (%s); ignoring start", self._active.temp_id)
            return None

        check = check_generation_input(builder, notes)
        if check.data is None:
            for diag in check.diagnostics:
                observer.on_notice(diag)
            return None

        session = GenerationSession(
            builder,
            notes,
            notebook=notebook,
            creator=creator,
            model=self.model,
            transport=self.transport,
            repository=self.repository,
            observer=observer,
            on_skip=self._count_skip,
        )
        self._active = session
        logger.info(
            "Starting generation %s: builder=%s notebook=%s notes=%d", session.temp_id, builder.id, notebook, len(notes)
        )
        try:
            observer.on_generation_state_change(True)
            await session.run()
        finally:
            self._active = None
            observer.on_generation_state_change(False)
        return session

    async def aclose(self) -> None:
        """Close the completion client and the record store."""
        await self.transport.aclose()
        await self.repository.aclose()

    def cancel(self) -> bool:
        """Cancel the active session, if any."""
        if self._active is None:
            return False
        self._active.cancel()
        return True


def build_repository(config: QuillConfig) -> ArtifactRepository:
    store: RecordStore
    if config.store.kind == "http":
        store = HttpRecordStore(config.store.base_url, token=os.environ.get(config.store.token_env, ""))
    else:
        store = FileRecordStore(records_dir(config))
    return ArtifactRepository(store, atomic_increment=config.store.atomic_increment)


_orchestrator: Orchestrator | None = None


def get_orchestrator(config: QuillConfig | None = None) -> Orchestrator:
    """Get the process-wide orchestrator."""
    global _orchestrator  # noqa: PLW0603
    if _orchestrator is None:
        config = config or QuillConfig()
        _orchestrator = Orchestrator(
            HttpCompletionClient(config.llm),
            build_repository(config),
            model=config.llm.model,
        )
    return _orchestrator


def reset_orchestrator() -> None:
    """Reset the singleton (for testing)."""
    global _orchestrator  # noqa: PLW0603
    _orchestrator = None


def notice_for_busy() -> Notice:
    return Notice(severity=Severity.WARNING, code="BUSY", message="Another artifact is being generated")
