"""
Binary blob store adapter.

Thin async HTTP client for the object storage that holds uploaded assets
(course videos, audio, attachments). Follows the same contract as the
remote document store: every call returns ``Ok | Err`` and never raises.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from config import Settings, get_settings
from lumen.core.results import Err, ErrorKind, Ok, Result, status_to_kind

ProgressCallback = Callable[[int, int], None]


class BlobStore:
    """Async adapter for the blob store (unconfigured when no base URL)."""

    def __init__(
        self,
        base_url: str | None,
        api_key: str | None = None,
        timeout: float = 15.0,
        chunk_size: int = 64 * 1024,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.api_key = api_key
        self.timeout = timeout
        self.chunk_size = chunk_size
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "BlobStore":
        settings = settings or get_settings()
        return cls(
            base_url=settings.blob_store_url if settings.has_blob_store else None,
            api_key=settings.blob_store_api_key,
            timeout=settings.request_timeout_seconds,
            chunk_size=settings.upload_chunk_size,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return self.base_url is not None

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {}
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

    async def _send(self, method: str, path: str, **kwargs: Any) -> Result[httpx.Response]:
        if not self.configured:
            return Err(ErrorKind.UNCONFIGURED, "blob store not configured")
        try:
            client = await self._ensure_client()
            response = await client.request(method, path, **kwargs)
        except httpx.TimeoutException as e:
            logger.warning(f"Blob store {method} {path} timed out: {e}")
            return Err(ErrorKind.CONNECTIVITY, f"timeout: {e}")
        except httpx.HTTPError as e:
            logger.warning(f"Blob store {method} {path} failed: {e}")
            return Err(ErrorKind.CONNECTIVITY, str(e))

        if response.status_code >= 400:
            kind = status_to_kind(response.status_code)
            logger.warning(f"Blob store {method} {path} -> {response.status_code} ({kind.value})")
            return Err(kind, f"HTTP {response.status_code}")
        return Ok(response)

    # =========================================================================
    # Operations
    # =========================================================================

    async def list(self, prefix: str = "", max_results: int = 1, timeout: float | None = None) -> Result[list[str]]:
        """List object names under ``prefix`` (bounded by ``max_results``)."""
        kwargs: dict[str, Any] = {"params": {"prefix": prefix, "maxResults": max_results}}
        if timeout is not None:
            kwargs["timeout"] = timeout
        result = await self._send("GET", "/v1/objects", **kwargs)
        if not result.ok:
            return result
        try:
            items = result.value.json().get("items", [])
        except ValueError:
            return Err(ErrorKind.INVALID, "invalid JSON body")
        return Ok([item.get("name", "") for item in items if isinstance(item, dict)])

    async def upload(
        self,
        data: bytes,
        destination_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> Result[str]:
        """
        Stream ``data`` to ``destination_path`` and return its download URL.

        ``on_progress(bytes_sent, total)`` is invoked after every chunk.
        """
        total = len(data)
        chunk_size = max(1, self.chunk_size)

        async def body() -> AsyncIterator[bytes]:
            sent = 0
            for offset in range(0, total, chunk_size):
                chunk = data[offset:offset + chunk_size]
                sent += len(chunk)
                yield chunk
                if on_progress:
                    on_progress(sent, total)

        result = await self._send(
            "PUT",
            f"/v1/objects/{quote(destination_path.lstrip('/'), safe='/')}",
            content=body(),
            headers={"Content-Type": "application/octet-stream", "Content-Length": str(total)},
        )
        if not result.ok:
            return result

        try:
            url = result.value.json().get("download_url")
        except ValueError:
            url = None
        if not url:
            return Err(ErrorKind.INVALID, "upload response missing download_url")
        logger.debug(f"Uploaded {total} bytes to {destination_path}")
        return Ok(url)
