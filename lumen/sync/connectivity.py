"""
Connectivity probe.

Cheap, point-in-time reachability checks against the remote document store
and the blob store. No retries: callers re-invoke as needed.

The blob store probe treats "permission denied" as reachable, because the
service did respond. That separates "feature unavailable" (permissions)
from "infrastructure unavailable" (no response) in status views.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone

from loguru import logger

from lumen.core.results import Err, ErrorKind
from lumen.sync.blob_store import BlobStore
from lumen.sync.remote_store import RemoteStore


@dataclass
class ServiceStatus:
    """Reachability of one backing service."""

    name: str
    reachable: bool
    configured: bool
    error_kind: ErrorKind | None = None
    detail: str = ""

    @property
    def label(self) -> str:
        if not self.configured:
            return "offline (unconfigured)"
        if self.error_kind is ErrorKind.PERMISSION:
            return "reachable (permission denied)"
        return "online" if self.reachable else "unreachable"


@dataclass
class ConnectivityReport:
    """Diagnostic snapshot for status views."""

    remote_store: ServiceStatus
    blob_store: ServiceStatus
    checked_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def fully_offline(self) -> bool:
        return not (self.remote_store.reachable or self.blob_store.reachable)


class ConnectivityProbe:
    """Classifies current reachability of the remote services."""

    def __init__(self, remote: RemoteStore, blobs: BlobStore, timeout: float = 5.0):
        self.remote = remote
        self.blobs = blobs
        self.timeout = timeout

    async def is_remote_store_reachable(self) -> bool:
        """Fetch at most one organization document."""
        status = await self.remote_store_status()
        return status.reachable

    async def is_blob_store_reachable(self) -> bool:
        """List the blob root with a small cap; permission denied counts as reachable."""
        status = await self.blob_store_status()
        return status.reachable

    async def remote_store_status(self) -> ServiceStatus:
        result = await self.remote.list("organizations", limit=1, timeout=self.timeout)
        if isinstance(result, Err):
            return ServiceStatus(
                name="remote_store",
                reachable=False,
                configured=self.remote.configured,
                error_kind=result.kind,
                detail=result.detail,
            )
        return ServiceStatus(name="remote_store", reachable=True, configured=True)

    async def blob_store_status(self) -> ServiceStatus:
        result = await self.blobs.list(prefix="", max_results=1, timeout=self.timeout)
        if isinstance(result, Err):
            return ServiceStatus(
                name="blob_store",
                reachable=result.kind is ErrorKind.PERMISSION,
                configured=self.blobs.configured,
                error_kind=result.kind,
                detail=result.detail,
            )
        return ServiceStatus(name="blob_store", reachable=True, configured=True)

    async def diagnose(self) -> ConnectivityReport:
        """Probe both services and return a report."""
        report = ConnectivityReport(
            remote_store=await self.remote_store_status(),
            blob_store=await self.blob_store_status(),
        )
        logger.info(
            f"Connectivity: remote_store={report.remote_store.label} "
            f"blob_store={report.blob_store.label}"
        )
        return report
