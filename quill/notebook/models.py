"""Canonical notebook models: builders, context notes and generated artifacts.

An Artifact is either a placeholder (temp id, still generating, never persisted)
or a record returned by the store.
"""

from __future__ import annotations

import itertools
import time
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

TEMP_ID_PREFIX = "temp-"

_temp_counter = itertools.count(1)


def generate_temp_id() -> str:
    """Generate a placeholder ID: 'temp-' + ms timestamp + process-local sequence.

    Record stores never issue ids with this prefix.
    """
    return f"{TEMP_ID_PREFIX}{int(time.time() * 1000)}-{next(_temp_counter)}"


def is_temp_id(artifact_id: str) -> bool:
    return artifact_id.startswith(TEMP_ID_PREFIX)


def _now() -> str:
    return datetime.now(UTC).isoformat()


class ArtifactType(StrEnum):
    MINDMAP = "mindmap"
    TEXT = "text"
    TABLE = "table"


class Builder(BaseModel):
    """A named prompt template plus the artifact type it produces."""

    model_config = ConfigDict(frozen=True)

    id: str
    title: str
    prompt: str
    type: ArtifactType = ArtifactType.TEXT


class Note(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = ""
    content: str = ""


class Artifact(BaseModel):
    id: str
    title: str = ""
    type: str = ArtifactType.TEXT.value
    content: str = ""
    notebook: str = ""
    builder: str = ""
    creator: str = ""
    created: str = Field(default_factory=_now)
    is_generating: bool = False

    @property
    def is_placeholder(self) -> bool:
        return is_temp_id(self.id)

    @property
    def is_removal_marker(self) -> bool:
        """A finished placeholder carries no result: the observer should drop it."""
        return self.is_placeholder and not self.is_generating

    @classmethod
    def placeholder(cls, temp_id: str, builder: Builder, notebook: str, creator: str) -> Artifact:
        return cls(
            id=temp_id,
            title=builder.title,
            type=builder.type.value,
            content="",
            notebook=notebook,
            builder=builder.id,
            creator=creator,
            is_generating=True,
        )

    @classmethod
    def removal(cls, temp_id: str) -> Artifact:
        return cls(id=temp_id, is_generating=False)

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> Artifact:
        """Build a persisted artifact from a store record, ignoring store bookkeeping fields."""
        fields = {k: v for k, v in record.items() if k in cls.model_fields and v is not None}
        fields["is_generating"] = False
        return cls.model_validate(fields)


class NotebookRecord(BaseModel):
    id: str
    title: str = ""
    generated_count: int = 0

    @field_validator("generated_count", mode="before")
    @classmethod
    def _missing_count_is_zero(cls, value: Any) -> Any:
        return 0 if value is None else value
