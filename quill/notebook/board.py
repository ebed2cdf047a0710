"""In-memory artifact list that reconciles generation updates.

Artifacts are kept in an ordered map keyed by id. A placeholder is replaced
by the persisted record via its temp id, or removed when a removal marker
arrives.
"""

from __future__ import annotations

import logging

from quill.core import Notice
from quill.notebook.models import Artifact

logger = logging.getLogger("quill.notebook")


class ArtifactBoard:
    """Observer that keeps the visible artifact list of one notebook."""

    def __init__(self, artifacts: list[Artifact] | None = None) -> None:
        self._items: dict[str, Artifact] = {}
        self.is_generating = False
        self.notices: list[Notice] = []
        if artifacts:
            self.load(artifacts)

    def load(self, artifacts: list[Artifact]) -> None:
        """Replace the board contents with a newest-first listing."""
        self._items = {a.id: a for a in reversed(artifacts)}

    @property
    def artifacts(self) -> list[Artifact]:
        """Newest first."""
        return list(reversed(self._items.values()))

    def get(self, artifact_id: str) -> Artifact | None:
        return self._items.get(artifact_id)

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, artifact_id: object) -> bool:
        return artifact_id in self._items

    def remove(self, artifact_id: str) -> bool:
        return self._items.pop(artifact_id, None) is not None

    def on_artifact_update(self, artifact: Artifact, is_final: bool = False, correlation_id: str | None = None) -> None:
        if artifact.is_removal_marker:
            self._items.pop(artifact.id, None)
            return

        if artifact.id in self._items:
            self._items[artifact.id] = artifact
            return

        if is_final and correlation_id:
            if self._items.pop(correlation_id, None) is None:
                logger.debug("Final artifact %s had no placeholder %s", artifact.id, correlation_id)
        self._items[artifact.id] = artifact

    def on_generation_state_change(self, is_generating: bool) -> None:
        self.is_generating = is_generating

    def on_notice(self, notice: Notice) -> None:
        self.notices.append(notice)
