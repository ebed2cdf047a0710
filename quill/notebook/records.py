"""Record store clients: named collections of JSON records with create/get/update.

FileRecordStore keeps one JSON file per collection under a data directory.
HttpRecordStore talks to a PocketBase-style REST API.
"""

from __future__ import annotations

import json
import logging
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

import httpx

from quill.core import PersistenceError

logger = logging.getLogger("quill.records")

Record = dict[str, Any]


class RecordNotFound(PersistenceError):
    code = "NOT_FOUND"


class RecordStore(Protocol):
    async def create(self, collection: str, data: Record) -> Record: ...

    async def get(self, collection: str, record_id: str) -> Record: ...

    async def update(self, collection: str, record_id: str, data: Record) -> Record: ...

    async def delete(self, collection: str, record_id: str) -> None: ...

    async def list(
        self, collection: str, *, where: Record | None = None, sort: str = "created"
    ) -> list[Record]: ...

    async def increment(self, collection: str, record_id: str, field: str, by: int = 1) -> Record: ...

    async def aclose(self) -> None: ...


def generate_record_id() -> str:
    """Generate a record ID: 15 hex chars from uuid4."""
    return uuid.uuid4().hex[:15]


def _sort_records(records: list[Record], sort: str) -> list[Record]:
    key = sort.lstrip("-+")
    return sorted(records, key=lambda r: str(r.get(key, "")), reverse=sort.startswith("-"))


class FileRecordStore:
    """Stores collections as {data_dir}/{collection}.json with atomic writes."""

    def __init__(self, data_dir: Path) -> None:
        self._data_dir = data_dir
        self._data_dir.mkdir(parents=True, exist_ok=True)

    async def aclose(self) -> None:
        pass

    def _path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _read(self, collection: str) -> list[Record]:
        path = self._path(collection)
        if not path.exists():
            return []
        try:
            data = json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Failed to read collection {collection}: {e}") from e
        if not isinstance(data, list):
            raise PersistenceError(f"Collection {collection} is corrupt")
        return data

    def _write(self, collection: str, records: list[Record]) -> None:
        """Atomic write: write to .tmp, then rename."""
        path = self._path(collection)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            tmp_path.write_text(json.dumps(records, indent=2, default=str) + "\n")
            tmp_path.rename(path)
        except OSError as e:
            raise PersistenceError(f"Failed to write collection {collection}: {e}") from e

    def _index(self, records: list[Record], collection: str, record_id: str) -> int:
        for i, record in enumerate(records):
            if record.get("id") == record_id:
                return i
        raise RecordNotFound(f"Record {record_id} not found in {collection}")

    async def create(self, collection: str, data: Record) -> Record:
        records = self._read(collection)
        now = datetime.now(UTC).isoformat()
        record = {**data, "id": data.get("id") or generate_record_id(), "created": now, "updated": now}
        records.append(record)
        self._write(collection, records)
        logger.info("Created %s/%s", collection, record["id"])
        return dict(record)

    async def get(self, collection: str, record_id: str) -> Record:
        records = self._read(collection)
        return dict(records[self._index(records, collection, record_id)])

    async def update(self, collection: str, record_id: str, data: Record) -> Record:
        records = self._read(collection)
        i = self._index(records, collection, record_id)
        records[i] = {**records[i], **data, "id": record_id, "updated": datetime.now(UTC).isoformat()}
        self._write(collection, records)
        return dict(records[i])

    async def delete(self, collection: str, record_id: str) -> None:
        records = self._read(collection)
        records.pop(self._index(records, collection, record_id))
        self._write(collection, records)

    async def list(self, collection: str, *, where: Record | None = None, sort: str = "created") -> list[Record]:
        records = self._read(collection)
        if where:
            records = [r for r in records if all(r.get(k) == v for k, v in where.items())]
        return _sort_records(records, sort)

    async def increment(self, collection: str, record_id: str, field: str, by: int = 1) -> Record:
        # Read and write happen without a suspension point in between.
        records = self._read(collection)
        i = self._index(records, collection, record_id)
        records[i][field] = int(records[i].get(field) or 0) + by
        self._write(collection, records)
        return dict(records[i])


class HttpRecordStore:
    """PocketBase-style REST client: /api/collections/{collection}/records."""

    PAGE_SIZE = 200

    def __init__(self, base_url: str, *, token: str = "", client: httpx.AsyncClient | None = None) -> None:
        headers = {"Authorization": token} if token else {}
        self._client = client or httpx.AsyncClient(base_url=base_url, headers=headers, timeout=30.0)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            raise PersistenceError(f"{method} {url} failed: {e}") from e
        if response.status_code == 404:
            raise RecordNotFound(f"{url} not found")
        if response.is_error:
            raise PersistenceError(f"{method} {url} returned {response.status_code}: {response.text[:200]}")
        return response

    @staticmethod
    def _records_url(collection: str, record_id: str | None = None) -> str:
        url = f"/api/collections/{collection}/records"
        return f"{url}/{record_id}" if record_id else url

    async def create(self, collection: str, data: Record) -> Record:
        response = await self._request("POST", self._records_url(collection), json=data)
        return response.json()  # type: ignore[no-any-return]

    async def get(self, collection: str, record_id: str) -> Record:
        response = await self._request("GET", self._records_url(collection, record_id))
        return response.json()  # type: ignore[no-any-return]

    async def update(self, collection: str, record_id: str, data: Record) -> Record:
        response = await self._request("PATCH", self._records_url(collection, record_id), json=data)
        return response.json()  # type: ignore[no-any-return]

    async def delete(self, collection: str, record_id: str) -> None:
        await self._request("DELETE", self._records_url(collection, record_id))

    async def list(self, collection: str, *, where: Record | None = None, sort: str = "created") -> list[Record]:
        params: dict[str, Any] = {"sort": sort, "perPage": self.PAGE_SIZE}
        if where:
            params["filter"] = " && ".join(f"{k} = {json.dumps(v)}" for k, v in where.items())
        items: list[Record] = []
        page = 1
        while True:
            response = await self._request("GET", self._records_url(collection), params={**params, "page": page})
            body = response.json()
            items.extend(body.get("items", []))
            if page >= int(body.get("totalPages", 1)):
                return items
            page += 1

    async def increment(self, collection: str, record_id: str, field: str, by: int = 1) -> Record:
        """Server-side increment using the `field+` update modifier."""
        return await self.update(collection, record_id, {f"{field}+": by})
