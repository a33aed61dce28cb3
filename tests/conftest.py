"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import json
import sys
from pathlib import Path

import httpx
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from lumen.data.local_cache import LocalOverrideCache  # noqa: E402
from lumen.repository import LumenRepository  # noqa: E402
from lumen.sync.blob_store import BlobStore  # noqa: E402
from lumen.sync.remote_store import RemoteStore  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (multiple tiers together)")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


# ========================================
# Fake Remote Services
# ========================================


class FakeDocumentServer:
    """
    In-memory document database speaking the remote store wire format.

    Plug into RemoteStore through ``httpx.MockTransport(server.handler)``.
    Set ``fail_with`` to an exception or status code to simulate outages.
    """

    def __init__(self):
        self.collections: dict[str, dict[str, dict]] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with = None
        self._auto_id = 0

    def seed(self, collection: str, *documents: dict) -> None:
        docs = self.collections.setdefault(collection, {})
        for document in documents:
            docs[document["id"]] = dict(document)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if isinstance(self.fail_with, Exception):
            raise self.fail_with
        if isinstance(self.fail_with, int):
            return httpx.Response(self.fail_with, json={"error": "simulated"})

        parts = request.url.path.strip("/").split("/")
        # v1 / collections / {name} / documents [/ {id}]
        collection = parts[2]
        document_id = parts[4] if len(parts) > 4 else None
        docs = self.collections.setdefault(collection, {})

        if request.method == "GET" and document_id is None:
            params = dict(request.url.params)
            limit = int(params.pop("limit", 0)) or None
            matches = [
                d for d in docs.values()
                if all(str(d.get(k)) == v for k, v in params.items())
            ]
            return httpx.Response(200, json={"documents": matches[:limit] if limit else matches})

        if request.method == "GET":
            if document_id not in docs:
                return httpx.Response(404, json={"error": "not found"})
            return httpx.Response(200, json=docs[document_id])

        if request.method == "PUT":
            docs[document_id] = json.loads(request.content)
            return httpx.Response(200, json={"id": document_id})

        if request.method == "PATCH":
            if document_id not in docs:
                return httpx.Response(404, json={"error": "not found"})
            if_match = request.headers.get("If-Match")
            if if_match is not None and if_match.strip('"') != str(docs[document_id].get("revision", 0)):
                return httpx.Response(412, json={"error": "revision mismatch"})
            docs[document_id].update(json.loads(request.content))
            return httpx.Response(200, json={"id": document_id})

        if request.method == "POST":
            self._auto_id += 1
            new_id = f"auto-{self._auto_id}"
            docs[new_id] = json.loads(request.content)
            return httpx.Response(201, json={"id": new_id})

        return httpx.Response(405)


@pytest.fixture
def cache(tmp_path):
    """Local override cache in a temp directory."""
    return LocalOverrideCache(tmp_path / "cache")


@pytest.fixture
def server():
    """Fake remote document database."""
    return FakeDocumentServer()


@pytest.fixture
def remote(server):
    """RemoteStore wired to the fake server."""
    return RemoteStore("http://remote.test", api_key="test-key", transport=httpx.MockTransport(server.handler))


@pytest.fixture
def offline_remote():
    """RemoteStore with no credentials."""
    return RemoteStore(None)


@pytest.fixture
def offline_repo(cache, offline_remote):
    """Repository with no remote store and no blob store."""
    return LumenRepository(remote=offline_remote, blobs=BlobStore(None), cache=cache)


@pytest.fixture
def online_repo(cache, remote):
    """Repository backed by the fake remote store (blob store offline)."""
    return LumenRepository(remote=remote, blobs=BlobStore(None), cache=cache)
