"""FastAPI server for Quill."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sse_starlette.sse import EventSourceResponse

from quill.config import load_config
from quill.core import Notice, QuillError
from quill.generation.orchestrator import Orchestrator, get_orchestrator, notice_for_busy, reset_orchestrator
from quill.notebook.models import Artifact, Note
from quill.notebook.records import RecordNotFound

logger = logging.getLogger("quill.server")

app = FastAPI(title="Quill", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _orchestrator() -> Orchestrator:
    return get_orchestrator(load_config())


def _sse_error(code: str, message: str) -> EventSourceResponse:
    """Return an SSE response with a single error event."""

    async def _stream() -> AsyncGenerator[dict[str, str]]:
        yield {"event": "error", "data": json.dumps({"code": code, "message": message})}

    return EventSourceResponse(_stream())


class QueueObserver:
    """Forwards generation callbacks to an SSE stream through a queue."""

    def __init__(self) -> None:
        self.queue: asyncio.Queue[dict[str, Any] | None] = asyncio.Queue()
        self.notices = 0

    def on_artifact_update(self, artifact: Artifact, is_final: bool = False, correlation_id: str | None = None) -> None:
        self.queue.put_nowait(
            {
                "event": "artifact",
                "data": {"artifact": artifact.model_dump(), "is_final": is_final, "correlation_id": correlation_id},
            }
        )

    def on_generation_state_change(self, is_generating: bool) -> None:
        self.queue.put_nowait({"event": "state", "data": {"is_generating": is_generating}})

    def on_notice(self, notice: Notice) -> None:
        self.notices += 1
        self.queue.put_nowait({"event": "notice", "data": notice.model_dump()})


@app.on_event("shutdown")
async def _shutdown() -> None:
    """Close the completion client and record store."""
    await _orchestrator().aclose()
    reset_orchestrator()


@app.get("/api/health")
async def health() -> dict[str, Any]:
    orchestrator = _orchestrator()
    result: dict[str, Any] = {"ok": True, "generating": orchestrator.is_generating}
    if orchestrator.active is not None:
        result["session"] = {"temp_id": orchestrator.active.temp_id, "state": orchestrator.active.state}
    return result


@app.get("/api/builders")
async def list_builders() -> Any:
    try:
        builders = await _orchestrator().repository.list_builders()
    except QuillError as e:
        logger.warning("Failed to list builders: %s", e)
        return JSONResponse(status_code=502, content={"error": str(e)})
    return [b.model_dump() for b in builders]


@app.get("/api/notebooks/{notebook_id}/artifacts")
async def list_artifacts(notebook_id: str) -> Any:
    try:
        artifacts = await _orchestrator().repository.list_artifacts(notebook_id)
    except QuillError as e:
        logger.warning("Failed to list artifacts for %s: %s", notebook_id, e)
        return JSONResponse(status_code=502, content={"error": str(e)})
    return [a.model_dump() for a in artifacts]


class GenerateRequest(BaseModel):
    builder_id: str
    notes: list[Note] = Field(default_factory=list)
    creator: str | None = None


@app.post("/api/notebooks/{notebook_id}/generate")
async def generate(notebook_id: str, request: GenerateRequest) -> EventSourceResponse:
    logger.info(
        "POST /api/notebooks/%s/generate builder=%s notes=%d", notebook_id, request.builder_id, len(request.notes)
    )
    orchestrator = _orchestrator()
    if orchestrator.is_generating:
        busy = notice_for_busy()
        return _sse_error(busy.code, busy.message)

    try:
        builders = await orchestrator.repository.list_builders()
    except QuillError as e:
        return _sse_error("STORE_ERROR", str(e))
    builder = next((b for b in builders if b.id == request.builder_id), None)
    if builder is None:
        return _sse_error("NOT_FOUND", f"Builder {request.builder_id} not found")

    creator = request.creator or load_config().settings.default_creator
    observer = QueueObserver()

    async def _run() -> None:
        try:
            session = await orchestrator.start(
                builder, request.notes, notebook=notebook_id, creator=creator, observer=observer
            )
            if session is None and observer.notices == 0:
                observer.on_notice(notice_for_busy())
        except Exception:
            logger.exception("Generation task crashed")
            observer.queue.put_nowait(
                {"event": "error", "data": {"code": "STREAM_ERROR", "message": "Internal server error"}}
            )
        finally:
            observer.queue.put_nowait(None)

    task = asyncio.create_task(_run())

    async def _event_stream() -> AsyncGenerator[dict[str, str]]:
        while True:
            item = await observer.queue.get()
            if item is None:
                break
            logger.debug("SSE >> %s", item["event"])
            yield {"event": item["event"], "data": json.dumps(item["data"], default=str)}
        await task
        logger.info("Generation SSE stream complete")

    return EventSourceResponse(_event_stream())


@app.post("/api/generation/cancel")
async def cancel_generation() -> dict[str, Any]:
    return {"ok": _orchestrator().cancel()}


@app.delete("/api/notebooks/{notebook_id}/artifacts/{artifact_id}")
async def delete_artifact(notebook_id: str, artifact_id: str) -> Any:
    try:
        await _orchestrator().repository.delete_artifact(notebook_id, artifact_id)
    except RecordNotFound:
        return JSONResponse(status_code=404, content={"error": f"Artifact {artifact_id} not found"})
    except QuillError as e:
        logger.warning("Failed to delete artifact %s: %s", artifact_id, e)
        return JSONResponse(status_code=502, content={"error": str(e)})
    return {"ok": True}
