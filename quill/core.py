"""Core types used across all modules."""

from enum import StrEnum
from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"
    SUCCESS = "success"


class Notice(BaseModel):
    """A user-facing message: validation diagnostics and generation outcomes."""

    severity: Severity
    code: str
    message: str
    hint: str | None = None


class Result(BaseModel, Generic[T]):  # noqa: UP046 — Pydantic requires Generic[T] subclass
    """Result container that pairs output with diagnostics.

    Validation helpers never throw for bad input.
    They return Result with diagnostics instead.
    """

    data: T | None = None
    diagnostics: list[Notice] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(d.severity == Severity.ERROR for d in self.diagnostics)

    @property
    def ok(self) -> bool:
        return not self.has_errors

    def error(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Notice(severity=Severity.ERROR, code=code, message=message, hint=hint))

    def warning(self, code: str, message: str, *, hint: str | None = None) -> None:
        self.diagnostics.append(Notice(severity=Severity.WARNING, code=code, message=message, hint=hint))


class QuillError(Exception):
    """Base class for failures raised inside a generation."""

    code = "GENERATION_ERROR"


class RequestError(QuillError):
    """Completion endpoint returned a non-success status or the network failed."""

    code = "REQUEST_ERROR"

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class PersistenceError(QuillError):
    """A create/get/update against the record store failed."""

    code = "PERSISTENCE_ERROR"


class GenerationCancelled(QuillError):
    code = "CANCELLED"
