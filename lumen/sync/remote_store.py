"""
Remote document store adapter.

HTTP client for the networked document database that backs the Lumen data
layer. One named collection per entity type; identity, unit, task and
organization documents are keyed by their own id (upsert), submissions are
auto-keyed (append).

Every call returns ``Ok | Err`` and never raises on infrastructure failure:
callers must not crash on remote failure, degraded operation is always the
fallback.

Usage:
    store = RemoteStore.from_settings()
    result = await store.list("learning_units")
    if result.ok:
        documents = result.value
"""

from __future__ import annotations

from typing import Any

import httpx
from loguru import logger

from config import Settings, get_settings
from lumen.core.results import Err, ErrorKind, Ok, Result, status_to_kind

COLLECTIONS = ("organizations", "identities", "learning_units", "tasks", "submissions")


class RemoteStore:
    """
    Async adapter for the remote document database.

    A store built without a base URL is "unconfigured": every call returns
    ``Err(UNCONFIGURED)`` without touching the network.
    """

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None = None,
        timeout: float = 15.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        if self.configured:
            logger.info(f"RemoteStore initialized ({self.base_url})")
        else:
            logger.info("RemoteStore unconfigured - operating on seed and local data")

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "RemoteStore":
        settings = settings or get_settings()
        return cls(
            base_url=settings.remote_store_url if settings.has_remote_store else None,
            api_key=settings.remote_store_api_key,
            timeout=settings.request_timeout_seconds,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def __aenter__(self) -> "RemoteStore":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    # =========================================================================
    # Request Plumbing
    # =========================================================================

    @staticmethod
    def _documents_path(collection: str, document_id: str | None = None) -> str:
        if collection not in COLLECTIONS:
            raise ValueError(f"Unknown remote collection: {collection}")
        path = f"/v1/collections/{collection}/documents"
        if document_id is not None:
            path += f"/{document_id}"
        return path

    async def _request(
        self,
        method: str,
        path: str,
        *,
        timeout: float | None = None,
        **kwargs: Any,
    ) -> Result[Any]:
        """Issue a request and fold every failure into an ``Err``."""
        if not self.configured:
            return Err(ErrorKind.UNCONFIGURED, "remote store not configured")

        try:
            client = await self._ensure_client()
            if timeout is not None:
                kwargs["timeout"] = timeout
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Remote {method} {path} timed out: {e}")
            return Err(ErrorKind.CONNECTIVITY, f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Remote {method} {path} failed: {e}")
            return Err(ErrorKind.CONNECTIVITY, str(e))

        if response.status_code >= 400:
            kind = status_to_kind(response.status_code)
            logger.warning(f"Remote {method} {path} -> {response.status_code} ({kind.value})")
            return Err(kind, f"HTTP {response.status_code}")

        if response.status_code == 204 or not response.content:
            return Ok(None)

        try:
            return Ok(response.json())
        except ValueError as e:
            logger.error(f"Remote {method} {path} returned invalid JSON: {e}")
            return Err(ErrorKind.INVALID, "invalid JSON body")

    # =========================================================================
    # Collection Operations
    # =========================================================================

    async def list(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> Result[list[dict[str, Any]]]:
        """
        List documents, optionally filtered by field equality.

        Returns:
            Ok(list of documents, each including its "id")
        """
        params: dict[str, Any] = dict(filters or {})
        if limit is not None:
            params["limit"] = limit

        result = await self._request("GET", self._documents_path(collection), params=params, timeout=timeout)
        if not result.ok:
            return result

        body = result.value or {}
        documents = body.get("documents", []) if isinstance(body, dict) else body
        if not isinstance(documents, list):
            return Err(ErrorKind.INVALID, "documents is not a list")
        logger.debug(f"Fetched {len(documents)} {collection} documents from remote")
        return Ok([doc for doc in documents if isinstance(doc, dict)])

    async def get(self, collection: str, document_id: str) -> Result[dict[str, Any]]:
        """Fetch a single document by id (``Err(NOT_FOUND)`` when absent)."""
        result = await self._request("GET", self._documents_path(collection, document_id))
        if result.ok and not isinstance(result.value, dict):
            return Err(ErrorKind.INVALID, "document is not an object")
        if result.ok:
            return Ok({"id": document_id, **result.value})
        return result

    async def put(self, collection: str, record: dict[str, Any]) -> Result[None]:
        """Upsert a document keyed by its own id."""
        result = await self._request("PUT", self._documents_path(collection, record["id"]), json=record)
        return Ok(None) if result.ok else result

    async def update(
        self,
        collection: str,
        document_id: str,
        fields: dict[str, Any],
        expected_revision: int | None = None,
    ) -> Result[None]:
        """
        Partially update a document.

        When ``expected_revision`` is given the write is conditional
        (``If-Match``); a mismatch comes back as ``Err(CONFLICT)``.
        """
        headers = {}
        if expected_revision is not None:
            headers["If-Match"] = f'"{expected_revision}"'
        result = await self._request(
            "PATCH", self._documents_path(collection, document_id), json=fields, headers=headers
        )
        return Ok(None) if result.ok else result

    async def append(self, collection: str, record: dict[str, Any]) -> Result[str]:
        """Append an auto-keyed document; returns the server-assigned key."""
        result = await self._request("POST", self._documents_path(collection), json=record)
        if not result.ok:
            return result
        body = result.value or {}
        return Ok(body.get("id", "") if isinstance(body, dict) else "")
