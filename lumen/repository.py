"""
Lumen repository: the single entry point the UI layer talks to.

Reads fan out to the remote store and the local override cache, use the seed
dataset as the baseline and reduce all three through the merge engine before
tenant scoping. Writes commit to the local override cache first (so the
caller always reads its own write), then try the remote store. A remote
failure is logged and reported as ``False`` but never undoes the local commit.

Usage:
    async with LumenRepository.from_settings() as repo:
        units = await repo.list_learning_units("CLI-TESLA")
        result = await repo.award_experience("OP-442", 150)
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any, TypeVar

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from config import Settings, get_settings
from lumen.core.errors import DuplicateEmailError, ValidationError
from lumen.core.models import (
    Identity,
    IdentityRole,
    IdentityStatus,
    LearningUnit,
    LumenRecord,
    Organization,
    ProgressionState,
    Submission,
    Task,
)
from lumen.core.results import ErrorKind, Result
from lumen.data import local_cache
from lumen.data.local_cache import LocalOverrideCache
from lumen.data.merge import merge, scope_by_organization, scope_units
from lumen.data.seed import DEFAULT_SEED, SeedDataset
from lumen.learning.grading import AssessmentGrader
from lumen.progression.engine import ActivitySummary, AwardResult, ProgressionEngine
from lumen.sync.blob_store import BlobStore, ProgressCallback
from lumen.sync.connectivity import ConnectivityProbe, ConnectivityReport
from lumen.sync.remote_store import RemoteStore
from lumen.sync.uploads import AssetUploadGateway

M = TypeVar("M", bound=LumenRecord)

# Local namespace -> remote collection
REMOTE_COLLECTIONS = {
    local_cache.ORGANIZATIONS: "organizations",
    local_cache.IDENTITIES: "identities",
    local_cache.LEARNING_UNITS: "learning_units",
    local_cache.TASKS: "tasks",
    local_cache.SUBMISSIONS: "submissions",
}


def _coerce(model: type[M], record: M | dict[str, Any]) -> M:
    """Accept a model or a plain dict; reject invalid input as ValidationError."""
    if isinstance(record, model):
        return record
    try:
        return model.model_validate(record)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {model.__name__}: {e}") from e


class LumenRepository:
    """
    Offline-tolerant, multi-tenant data access for the training front end.

    Collaborators are injected so each tier can be tested in isolation.
    """

    def __init__(
        self,
        remote: RemoteStore,
        blobs: BlobStore,
        cache: LocalOverrideCache,
        seed: SeedDataset = DEFAULT_SEED,
        grader: AssessmentGrader | None = None,
        mock_storage_base_url: str = "https://mock-storage.lumen.ai",
        probe_timeout: float = 5.0,
        max_retries: int = 5,
    ):
        self.remote = remote
        self.blobs = blobs
        self.cache = cache
        self.seed = seed
        self.grader = grader
        self.progression = ProgressionEngine(remote, cache, seed, max_retries=max_retries)
        self.uploads = AssetUploadGateway(blobs, mock_base_url=mock_storage_base_url)
        self.probe = ConnectivityProbe(remote, blobs, timeout=probe_timeout)

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "LumenRepository":
        settings = settings or get_settings()
        return cls(
            remote=RemoteStore.from_settings(settings),
            blobs=BlobStore.from_settings(settings),
            cache=LocalOverrideCache(settings.local_cache_dir),
            grader=AssessmentGrader.from_settings(settings),
            mock_storage_base_url=settings.mock_storage_base_url,
            probe_timeout=settings.probe_timeout_seconds,
            max_retries=settings.progression_max_retries,
        )

    async def __aenter__(self) -> "LumenRepository":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def close(self) -> None:
        await self.remote.close()
        await self.blobs.close()
        if self.grader:
            await self.grader.close()

    # ========================================
    # Fan-out Helpers
    # ========================================

    async def _load_local(self, namespace: str) -> list[dict[str, Any]]:
        return self.cache.load(namespace)

    async def _fetch(
        self,
        model: type[M],
        namespace: str,
        filters: dict[str, Any] | None = None,
    ) -> tuple[list[M], list[M]]:
        """Fetch remote and local tiers concurrently; returns (local, remote)."""
        remote_result, local_records = await asyncio.gather(
            self.remote.list(REMOTE_COLLECTIONS[namespace], filters=filters),
            self._load_local(namespace),
        )

        remote_records: list[dict[str, Any]] = []
        if remote_result.ok:
            remote_records = remote_result.value
        elif remote_result.kind is not ErrorKind.UNCONFIGURED:
            logger.warning(f"DB error listing {namespace} ({remote_result.kind.value}), using local data")

        if filters:
            local_records = [
                r for r in local_records
                if all(r.get(field) == value for field, value in filters.items())
            ]

        return self._parse_many(model, local_records, "local"), self._parse_many(model, remote_records, "remote")

    @staticmethod
    def _parse_many(model: type[M], records: list[dict[str, Any]], source: str) -> list[M]:
        parsed = []
        for record in records:
            try:
                parsed.append(model.from_record(record))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed {source} {model.__name__} {record.get('id')}: {e}")
        return parsed

    async def _commit(self, namespace: str, record: LumenRecord, append: bool = False) -> bool:
        """Local commit first, then remote. Returns True if the remote write succeeded."""
        data = record.to_record()
        self.cache.append(namespace, data)

        collection = REMOTE_COLLECTIONS[namespace]
        result: Result[Any]
        if append:
            result = await self.remote.append(collection, data)
        else:
            result = await self.remote.put(collection, data)

        if result.ok:
            return True
        if result.kind is not ErrorKind.UNCONFIGURED:
            logger.warning(
                f"Failed to write {namespace} record {record.id} ({result.kind.value}), kept in local cache"
            )
        return False

    # ========================================
    # Organizations
    # ========================================

    async def list_organizations(self) -> list[Organization]:
        local, remote = await self._fetch(Organization, local_cache.ORGANIZATIONS)
        return merge(self.seed.organizations(), local, remote)

    async def create_organization(self, record: Organization | dict[str, Any]) -> bool:
        organization = _coerce(Organization, record)
        return await self._commit(local_cache.ORGANIZATIONS, organization)

    # ========================================
    # Identities
    # ========================================

    async def list_identities(self, organization_id: str | None = None) -> list[Identity]:
        filters = {"organization_id": organization_id} if organization_id else None
        local, remote = await self._fetch(Identity, local_cache.IDENTITIES, filters)
        merged = merge(self.seed.identities(), local, remote)
        return scope_by_organization(merged, organization_id)

    async def get_identity(self, identity_id: str) -> Identity | None:
        return await self.progression.get_identity(identity_id)

    async def _assert_email_available(self, email: str, identity_id: str | None = None) -> None:
        """
        Raise DuplicateEmailError if another identity already holds ``email``.

        Checked against the merged view, so an address released by a local
        override is free again. A record never collides with itself (same
        ``identity_id``), which keeps re-saving an identity an upsert.
        """
        key = email.strip().lower()
        local, remote = await self._fetch(Identity, local_cache.IDENTITIES)

        sources = {identity.id: "seed" for identity in self.seed.identities()}
        sources.update({identity.id: "remote" for identity in remote})
        sources.update({identity.id: "local" for identity in local})

        for identity in merge(self.seed.identities(), local, remote):
            if identity.id != identity_id and identity.email_key == key:
                raise DuplicateEmailError(email, source=sources[identity.id])

    async def create_identity(self, record: Identity | dict[str, Any]) -> bool:
        identity = _coerce(Identity, record)
        await self._assert_email_available(identity.email, identity.id)
        return await self._commit(local_cache.IDENTITIES, identity)

    async def register_identity(
        self,
        name: str,
        email: str,
        role: IdentityRole | str = IdentityRole.STUDENT,
        organization_id: str | None = None,
    ) -> Identity:
        """
        Register a new identity.

        Raises:
            ValidationError: missing name / email or invalid role
            DuplicateEmailError: email already present in any tier
        """
        if not name or not name.strip():
            raise ValidationError("name is required")
        if not email or not email.strip():
            raise ValidationError("email is required")

        await self._assert_email_available(email)

        identity = _coerce(Identity, {
            "id": f"USR-{uuid.uuid4().hex[:12].upper()}",
            "name": name.strip(),
            "email": email.strip(),
            "role": role,
            "organization_id": organization_id or "GLOBAL",
            "status": IdentityStatus.ACTIVE,
            "progression": ProgressionState(rank=self.progression.ranks[0].name),
        })

        if not await self._commit(local_cache.IDENTITIES, identity):
            logger.info(f"Registered {identity.id} in local session cache only")
        return identity

    # ========================================
    # Learning Units
    # ========================================

    async def _all_learning_units(self) -> list[LearningUnit]:
        local, remote = await self._fetch(LearningUnit, local_cache.LEARNING_UNITS)
        return merge(self.seed.learning_units(), local, remote)

    async def list_learning_units(
        self,
        organization_id: str | None = None,
        unscoped: bool = False,
    ) -> list[LearningUnit]:
        """Global units plus the tenant's own; ``unscoped`` is the operator view."""
        return scope_units(await self._all_learning_units(), organization_id, unscoped=unscoped)

    async def get_learning_unit(self, unit_id: str) -> LearningUnit | None:
        for unit in await self._all_learning_units():
            if unit.id == unit_id:
                return unit
        return None

    async def create_learning_unit(self, record: LearningUnit | dict[str, Any]) -> bool:
        unit = _coerce(LearningUnit, record)
        return await self._commit(local_cache.LEARNING_UNITS, unit)

    async def patch_learning_unit(self, unit_id: str, fields: dict[str, Any]) -> bool:
        """
        Structurally edit a unit (e.g. its node list) without a full round-trip.

        Raises:
            ValidationError: unknown unit or fields that make the unit invalid
        """
        current = await self.get_learning_unit(unit_id)
        if current is None:
            raise ValidationError(f"Unknown learning unit: {unit_id}")

        updated = _coerce(LearningUnit, {**current.to_record(), **fields, "id": unit_id})
        serialized = updated.to_record()
        patch = {key: serialized[key] for key in fields if key in serialized and key != "id"}

        if not self.cache.patch(local_cache.LEARNING_UNITS, unit_id, patch):
            self.cache.append(local_cache.LEARNING_UNITS, serialized)

        result = await self.remote.update("learning_units", unit_id, patch)
        if not result.ok and result.kind is not ErrorKind.UNCONFIGURED:
            logger.warning(f"Failed to patch learning unit {unit_id} remotely ({result.kind.value})")
        return result.ok

    # ========================================
    # Tasks & Submissions
    # ========================================

    async def list_tasks(self, unit_id: str) -> list[Task]:
        local, remote = await self._fetch(Task, local_cache.TASKS, {"unit_id": unit_id})
        return merge(self.seed.tasks(unit_id), local, remote)

    async def create_task(self, record: Task | dict[str, Any]) -> bool:
        task = _coerce(Task, record)
        return await self._commit(local_cache.TASKS, task)

    async def record_submission(
        self,
        record: Submission | dict[str, Any],
        task_title: str | None = None,
    ) -> bool:
        """
        Append a submission to the log.

        When ``task_title`` is given and the submission has no grade yet, it is
        graded first (degraded grades are recorded as-is).
        """
        submission = _coerce(Submission, record)
        if task_title and submission.grade is None and self.grader is not None:
            grade = await self.grader.grade(task_title, submission.response)
            submission = submission.model_copy(update={"grade": grade})
        return await self._commit(local_cache.SUBMISSIONS, submission, append=True)

    # ========================================
    # Progression
    # ========================================

    async def award_experience(self, identity_id: str, amount: int) -> AwardResult:
        return await self.progression.award_experience(identity_id, amount)

    async def award_badge(self, identity_id: str, badge_id: str) -> bool:
        return await self.progression.award_badge(identity_id, badge_id)

    async def evaluate_badges(self, identity_id: str, activity: ActivitySummary) -> list[str]:
        return await self.progression.evaluate_badges(identity_id, activity)

    async def complete_unit(self, identity_id: str, unit_id: str) -> AwardResult:
        """Grant a unit's reward on first completion."""
        unit = await self.get_learning_unit(unit_id)
        if unit is None:
            raise ValidationError(f"Unknown learning unit: {unit_id}")
        return await self.progression.complete_unit(identity_id, unit)

    # ========================================
    # Assets & Connectivity
    # ========================================

    async def upload_asset(self, data: bytes, path: str, on_progress: ProgressCallback | None = None) -> str:
        return await self.uploads.upload(data, path, on_progress=on_progress)

    async def is_remote_store_reachable(self) -> bool:
        return await self.probe.is_remote_store_reachable()

    async def is_blob_store_reachable(self) -> bool:
        return await self.probe.is_blob_store_reachable()

    async def is_grader_available(self) -> bool:
        """True when the language model answers with the configured key (False in demo mode)."""
        if self.grader is None:
            return False
        return await self.grader.ping()

    async def diagnose(self) -> ConnectivityReport:
        return await self.probe.diagnose()
