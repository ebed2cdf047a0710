"""Tests for the PocketBase-style HTTP record store."""

from __future__ import annotations

import json

import httpx
import pytest

from quill.core import PersistenceError
from quill.notebook.records import HttpRecordStore, RecordNotFound
from quill.notebook.repository import ArtifactRepository


def _store(handler: httpx.MockTransport) -> HttpRecordStore:
    return HttpRecordStore("http://pb.test", client=httpx.AsyncClient(transport=handler, base_url="http://pb.test"))


async def test_create_posts_record() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        body = json.loads(request.content)
        return httpx.Response(200, json={**body, "id": "abc123", "created": "2026-01-01 10:00:00.000Z"})

    repository = ArtifactRepository(_store(httpx.MockTransport(handler)))
    artifact = await repository.persist("Hi", "Hello", "text", "nb_1", "bld_1", "user_1")

    assert seen[0].method == "POST"
    assert seen[0].url.path == "/api/collections/notebook_artifacts/records"
    assert json.loads(seen[0].content) == {
        "title": "Hi",
        "type": "text",
        "notebook": "nb_1",
        "builder": "bld_1",
        "content": "Hello",
        "creator": "user_1",
    }
    assert artifact.id == "abc123"
    assert artifact.created == "2026-01-01 10:00:00.000Z"


async def test_increment_reads_then_patches() -> None:
    seen: list[tuple[str, str, bytes]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path, request.content))
        if request.method == "GET":
            return httpx.Response(200, json={"id": "nb_1", "generated_count": 4})
        return httpx.Response(200, json={"id": "nb_1", "generated_count": 5})

    repository = ArtifactRepository(_store(httpx.MockTransport(handler)))
    assert await repository.increment_generated_count("nb_1") == 5

    assert [(m, p) for m, p, _ in seen] == [
        ("GET", "/api/collections/notebooks/records/nb_1"),
        ("PATCH", "/api/collections/notebooks/records/nb_1"),
    ]
    assert json.loads(seen[1][2]) == {"generated_count": 5}


async def test_atomic_increment_uses_modifier() -> None:
    bodies: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PATCH"
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"id": "nb_1", "generated_count": 7})

    repository = ArtifactRepository(_store(httpx.MockTransport(handler)), atomic_increment=True)
    assert await repository.increment_generated_count("nb_1") == 7
    assert bodies == [{"generated_count+": 1}]


async def test_not_found_and_server_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/missing"):
            return httpx.Response(404, json={"message": "not found"})
        return httpx.Response(500, text="boom")

    store = _store(httpx.MockTransport(handler))
    with pytest.raises(RecordNotFound):
        await store.get("notebooks", "missing")
    with pytest.raises(PersistenceError, match="500"):
        await store.create("notebook_artifacts", {"title": "x"})


async def test_network_error_becomes_persistence_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(PersistenceError, match="refused"):
        await _store(httpx.MockTransport(handler)).get("notebooks", "nb_1")


async def test_list_follows_pages_and_builds_filter() -> None:
    params: list[httpx.QueryParams] = []

    def handler(request: httpx.Request) -> httpx.Response:
        params.append(request.url.params)
        page = int(request.url.params["page"])
        return httpx.Response(200, json={"items": [{"id": f"r{page}"}], "page": page, "totalPages": 2})

    items = await _store(httpx.MockTransport(handler)).list(
        "notebook_artifacts", where={"notebook": "nb_1"}, sort="-created"
    )

    assert [i["id"] for i in items] == ["r1", "r2"]
    assert params[0]["filter"] == 'notebook = "nb_1"'
    assert params[0]["sort"] == "-created"
