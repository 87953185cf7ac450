"""
HTTP persistence collaborators backed by the canvas backend REST API.

Both stores share one `ApiClient` (an httpx.AsyncClient wrapper). Pass a
custom `transport` to run against an in-process app, e.g.
``httpx.ASGITransport(app=app)``.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from .errors import NotFoundError, PersistenceError
from .logging import get_logger
from .models import Connection, ConnectionKind, Entity, EntityKind, Point

logger = get_logger("http_store")

DEFAULT_API_BASE = "http://127.0.0.1:8765/api"

_ITEM_KINDS = {"entities": "Entity", "connections": "Connection"}


class ApiClient:
    """Async JSON client for the backend API."""

    def __init__(
        self,
        base_url: str = DEFAULT_API_BASE,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def close(self):
        await self._client.aclose()

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def request(self, method: str, endpoint: str, **kwargs) -> Any:
        """
        Make a request and return the decoded JSON body.

        Raises NotFoundError on 404 and PersistenceError on any other
        error status or transport failure.
        """
        try:
            response = await self._client.request(method, endpoint, **kwargs)
        except httpx.HTTPError as e:
            logger.warning("%s %s failed: %s", method, endpoint, e)
            raise PersistenceError(f"Connection failed: {e}. Is the canvas backend running?") from e

        if response.status_code >= 400:
            try:
                detail = response.json().get("detail", "Unknown error")
            except ValueError:
                detail = response.text or "Unknown error"
            if response.status_code == 404:
                collection, _, item_id = endpoint.strip("/").partition("/")
                raise NotFoundError(_ITEM_KINDS.get(collection, "Item"), item_id or endpoint)
            raise PersistenceError(f"API error ({response.status_code}): {detail}")
        return response.json()


class HttpEntityStore:
    def __init__(self, client: ApiClient):
        self._client = client

    async def create(
        self,
        kind: EntityKind,
        name: str,
        position: Point,
        properties: dict[str, Any],
    ) -> Entity:
        data = await self._client.request("POST", "/entities", json={
            "type": EntityKind(kind).value,
            "name": name,
            "position": {"x": position.x, "y": position.y},
            "properties": properties,
        })
        return Entity.model_validate(data)

    async def update(self, entity_id: str, patch: dict[str, Any]) -> Entity:
        body = {}
        for key, value in patch.items():
            if isinstance(value, Point):
                value = {"x": value.x, "y": value.y}
            body[key] = value
        data = await self._client.request("PATCH", f"/entities/{entity_id}", json=body)
        return Entity.model_validate(data)

    async def delete(self, entity_id: str) -> None:
        await self._client.request("DELETE", f"/entities/{entity_id}")

    async def list_all(self) -> list[Entity]:
        data = await self._client.request("GET", "/entities")
        return [Entity.model_validate(e) for e in data]


class HttpConnectionStore:
    def __init__(self, client: ApiClient):
        self._client = client

    async def create(
        self,
        source: str,
        target: str,
        kind: ConnectionKind,
        label: str,
    ) -> Connection:
        data = await self._client.request("POST", "/connections", json={
            "from": source,
            "to": target,
            "type": ConnectionKind(kind).value,
            "label": label,
        })
        return Connection.model_validate(data)

    async def delete(self, connection_id: str) -> None:
        await self._client.request("DELETE", f"/connections/{connection_id}")

    async def list_all(self) -> list[Connection]:
        data = await self._client.request("GET", "/connections")
        return [Connection.model_validate(c) for c in data]
