"""Tests for core types: Result[T], Notice and the error hierarchy."""

from quill.core import GenerationCancelled, Notice, PersistenceError, QuillError, RequestError, Result, Severity


def test_severity_values() -> None:
    assert Severity.ERROR == "error"
    assert Severity.WARNING == "warning"
    assert Severity.SUCCESS == "success"


def test_notice_with_hint() -> None:
    n = Notice(severity=Severity.WARNING, code="NO_CONTEXT", message="select notes", hint="tick a note")
    assert n.hint == "tick a note"
    assert n.model_dump()["severity"] == "warning"


def test_result_empty_is_ok() -> None:
    r: Result[str] = Result()
    assert r.ok is True
    assert r.has_errors is False
    assert r.data is None
    assert r.diagnostics == []


def test_result_error_helper() -> None:
    r: Result[str] = Result(data="hello")
    r.error("FAIL", "something broke")
    assert r.ok is False
    assert r.diagnostics[0].severity == Severity.ERROR
    assert r.diagnostics[0].code == "FAIL"


def test_result_warning_keeps_ok() -> None:
    r: Result[str] = Result(data="hello")
    r.warning("WARN", "heads up", hint="do something")
    assert r.ok is True
    assert r.diagnostics[0].hint == "do something"


def test_error_codes() -> None:
    assert issubclass(RequestError, QuillError)
    assert issubclass(PersistenceError, QuillError)
    assert RequestError("x", status_code=503).status_code == 503
    assert RequestError("x").code == "REQUEST_ERROR"
    assert PersistenceError("x").code == "PERSISTENCE_ERROR"
    assert GenerationCancelled("x").code == "CANCELLED"
