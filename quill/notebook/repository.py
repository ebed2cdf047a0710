"""Artifact persistence: final records, the notebook counter, builder and artifact listings."""

from __future__ import annotations

import logging

from pydantic import ValidationError

from quill.core import PersistenceError
from quill.notebook.models import Artifact, Builder, NotebookRecord
from quill.notebook.records import RecordNotFound, RecordStore

logger = logging.getLogger("quill.notebook")

ARTIFACTS = "notebook_artifacts"
NOTEBOOKS = "notebooks"
BUILDERS = "notebook_builder"


class ArtifactRepository:
    """Maps artifacts and notebooks onto record store collections.

    `increment_generated_count` is a plain read-modify-write unless the store
    offers a server-side increment and `atomic_increment` is set. Two
    generations finishing concurrently against the same notebook can then
    lose one increment.
    """

    def __init__(self, store: RecordStore, *, atomic_increment: bool = False) -> None:
        self._store = store
        self._atomic_increment = atomic_increment

    async def aclose(self) -> None:
        await self._store.aclose()

    async def persist(
        self,
        title: str,
        content: str,
        type: str,  # noqa: A002
        notebook: str,
        builder: str,
        creator: str,
    ) -> Artifact:
        """Create the artifact record in a single store call."""
        try:
            record = await self._store.create(
                ARTIFACTS,
                {
                    "title": title,
                    "type": type,
                    "notebook": notebook,
                    "builder": builder,
                    "content": content,
                    "creator": creator,
                },
            )
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to create artifact: {e}") from e

        artifact = Artifact.from_record(record)
        if artifact.is_placeholder:
            raise PersistenceError(f"Store returned a placeholder id: {artifact.id}")
        logger.info("Persisted artifact %s (notebook=%s, %d chars)", artifact.id, notebook, len(content))
        return artifact

    async def increment_generated_count(self, notebook: str) -> int:
        return await self._adjust_generated_count(notebook, 1)

    async def _adjust_generated_count(self, notebook: str, delta: int) -> int:
        try:
            if self._atomic_increment and delta > 0:
                record = await self._store.increment(NOTEBOOKS, notebook, "generated_count", delta)
                return NotebookRecord.model_validate(record).generated_count

            current = NotebookRecord.model_validate(await self._store.get(NOTEBOOKS, notebook))
            count = max(0, current.generated_count + delta)
            await self._store.update(NOTEBOOKS, notebook, {"generated_count": count})
        except PersistenceError:
            raise
        except Exception as e:
            raise PersistenceError(f"Failed to update generated_count on {notebook}: {e}") from e

        logger.info("Notebook %s generated_count -> %d", notebook, count)
        return count

    async def delete_artifact(self, notebook: str, artifact_id: str) -> None:
        """Delete an artifact and decrement the notebook counter, floored at 0."""
        await self._store.delete(ARTIFACTS, artifact_id)
        await self._adjust_generated_count(notebook, -1)

    async def list_artifacts(self, notebook: str) -> list[Artifact]:
        """Artifacts of a notebook, newest first."""
        records = await self._store.list(ARTIFACTS, where={"notebook": notebook}, sort="-created")
        try:
            return [Artifact.from_record(r) for r in records]
        except ValidationError as e:
            raise PersistenceError(f"Malformed artifact record in notebook {notebook}: {e}") from e

    async def list_builders(self) -> list[Builder]:
        records = await self._store.list(BUILDERS, sort="created")
        try:
            return [Builder.model_validate(r) for r in records]
        except ValidationError as e:
            raise PersistenceError(f"Malformed builder record: {e}") from e

    async def create_notebook(self, title: str) -> NotebookRecord:
        record = await self._store.create(NOTEBOOKS, {"title": title, "generated_count": 0})
        return NotebookRecord.model_validate(record)

    async def save_builder(self, builder: Builder) -> Builder:
        data = builder.model_dump(mode="json")
        try:
            await self._store.get(BUILDERS, builder.id)
        except RecordNotFound:
            await self._store.create(BUILDERS, data)
        else:
            await self._store.update(BUILDERS, builder.id, data)
        return builder
