"""
Progression engine: experience, ranks, badges.

Experience only ever grows, so rank (a pure function of experience) only
ever climbs. Writes go to whichever store yielded the identity record,
with an unconditional shadow write to the local override cache so the UI
sees its own write immediately.

Concurrent writers (two tabs / processes sharing one cache directory) are
serialized with compare-and-set on the record's ``revision`` stamp:

    1. Resolve the identity (remote -> local -> seed) and note revisions.
       A local shadow left ahead by a failed remote write is folded in.
    2. Compute the new progression state.
    3. Conditionally write; on a revision conflict, go back to 1.

Badge evaluation is declarative and stays outside the hot path: callers
decide which badges an identity has earned (see ``eligible_badges``), the
engine only appends them without duplicates.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from lumen.core.errors import ValidationError
from lumen.core.models import Badge, Identity, LearningUnit, ProgressionState, Rank
from lumen.core.results import ErrorKind
from lumen.data.local_cache import IDENTITIES, LocalOverrideCache
from lumen.data.seed import DEFAULT_SEED, SeedDataset
from lumen.progression.ranks import rank_change, rank_index
from lumen.sync.remote_store import RemoteStore

SOURCE_REMOTE = "remote"
SOURCE_LOCAL = "local"
SOURCE_SEED = "seed"


@dataclass(frozen=True)
class AwardResult:
    """Outcome of an experience award."""

    new_total: int
    new_rank: str | None = None  # Set only on promotion
    applied: bool = True


@dataclass
class ActivitySummary:
    """Recorded activity that badge predicates inspect."""

    units_completed: int = 0
    best_score: float = 0.0
    fastest_cycle_sec: int | None = None
    safety_units_completed: int = 0
    tutor_sessions: int = 0


@dataclass(frozen=True)
class BadgeRule:
    """Declarative badge definition: a badge id plus its predicate."""

    badge_id: str
    predicate: Callable[[Identity, ActivitySummary], bool]


DEFAULT_BADGE_RULES: tuple[BadgeRule, ...] = (
    BadgeRule("b1", lambda identity, activity: activity.units_completed >= 1
              or bool(identity.progression.completed_units)),
    BadgeRule("b2", lambda identity, activity: activity.best_score >= 100),
    BadgeRule("b3", lambda identity, activity: activity.fastest_cycle_sec is not None
              and activity.fastest_cycle_sec <= 60),
    BadgeRule("b4", lambda identity, activity: activity.safety_units_completed >= 1),
    BadgeRule("b5", lambda identity, activity: activity.tutor_sessions >= 10),
)


def eligible_badges(
    identity: Identity,
    activity: ActivitySummary,
    rules: Iterable[BadgeRule] = DEFAULT_BADGE_RULES,
) -> list[str]:
    """Badge ids the identity qualifies for but has not earned yet."""
    earned = set(identity.progression.badges)
    return [
        rule.badge_id for rule in rules
        if rule.badge_id not in earned and rule.predicate(identity, activity)
    ]


@dataclass
class _Resolved:
    identity: Identity
    source: str
    local_revision: int | None = None


class ProgressionEngine:
    """
    Applies progression changes to identities.

    Responsibilities:
    - Resolve the current identity record (remote, then local, then seed)
    - Compute experience totals and rank transitions
    - Append badges / completed units without duplicates
    - Persist with compare-and-set, retrying on revision conflicts
    """

    def __init__(
        self,
        remote: RemoteStore,
        cache: LocalOverrideCache,
        seed: SeedDataset = DEFAULT_SEED,
        ranks: Sequence[Rank] | None = None,
        badges: Sequence[Badge] | None = None,
        max_retries: int = 5,
    ):
        self.remote = remote
        self.cache = cache
        self.seed = seed
        self.ranks = tuple(ranks if ranks is not None else seed.ranks)
        self.badges = {badge.id: badge for badge in (badges if badges is not None else seed.badges)}
        self.max_retries = max(1, max_retries)

    # ========================================
    # Public Operations
    # ========================================

    async def award_experience(self, identity_id: str, amount: int) -> AwardResult:
        """
        Add ``amount`` experience points to an identity.

        Returns:
            AwardResult with the new total and the new rank name when the
            award caused a promotion (None otherwise).

        Raises:
            ValidationError: amount is not a non-negative integer
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValidationError(f"Experience amount must be a non-negative integer, got {amount!r}")

        def add_xp(state: ProgressionState) -> ProgressionState | None:
            if amount == 0:
                return None
            return state.model_copy(update={"xp": state.xp + amount})

        return await self._mutate(identity_id, add_xp)

    async def complete_unit(self, identity_id: str, unit: LearningUnit) -> AwardResult:
        """Grant a unit's experience reward, only on its first completion."""

        def first_completion(state: ProgressionState) -> ProgressionState | None:
            if unit.id in state.completed_units:
                return None
            return state.model_copy(update={
                "xp": state.xp + unit.xp_reward,
                "completed_units": [*state.completed_units, unit.id],
            })

        return await self._mutate(identity_id, first_completion)

    async def award_badge(self, identity_id: str, badge_id: str) -> bool:
        """
        Append a badge to the identity's earned list.

        Returns:
            True if the badge was newly added, False if already earned
            (or the identity is unknown).

        Raises:
            ValidationError: unknown badge id
        """
        if badge_id not in self.badges:
            raise ValidationError(f"Unknown badge: {badge_id}")

        added = False

        def append_badge(state: ProgressionState) -> ProgressionState | None:
            nonlocal added
            added = False
            if badge_id in state.badges:
                return None
            added = True
            return state.model_copy(update={"badges": [*state.badges, badge_id]})

        result = await self._mutate(identity_id, append_badge)
        return added and result.applied

    async def evaluate_badges(
        self,
        identity_id: str,
        activity: ActivitySummary,
        rules: Iterable[BadgeRule] = DEFAULT_BADGE_RULES,
    ) -> list[str]:
        """Award every badge whose predicate now holds; returns the new badge ids."""
        resolved = await self._resolve(identity_id)
        if resolved is None:
            return []
        awarded = []
        for badge_id in eligible_badges(resolved.identity, activity, rules):
            if await self.award_badge(identity_id, badge_id):
                awarded.append(badge_id)
        return awarded

    async def get_identity(self, identity_id: str) -> Identity | None:
        """Point lookup with remote -> local -> seed priority."""
        resolved = await self._resolve(identity_id)
        return resolved.identity if resolved else None

    # ========================================
    # Resolution
    # ========================================

    async def _resolve(self, identity_id: str) -> _Resolved | None:
        local_record = self.cache.get(IDENTITIES, identity_id)
        local_revision = local_record.get("revision", 0) if local_record is not None else None

        result = await self.remote.get("identities", identity_id)
        if result.ok:
            identity = self._parse(result.value, SOURCE_REMOTE)
            if identity is not None:
                if local_record is not None:
                    shadow = self._parse(local_record, SOURCE_LOCAL)
                    if shadow is not None:
                        identity = self._reconcile(identity, shadow)
                return _Resolved(identity, SOURCE_REMOTE, local_revision)
        elif result.kind not in (ErrorKind.NOT_FOUND, ErrorKind.UNCONFIGURED):
            logger.debug(f"Remote lookup of {identity_id} failed ({result.kind.value}), trying local")

        if local_record is not None:
            identity = self._parse(local_record, SOURCE_LOCAL)
            if identity is not None:
                return _Resolved(identity, SOURCE_LOCAL, local_revision)

        identity = self.seed.get_identity(identity_id)
        if identity is not None:
            return _Resolved(identity, SOURCE_SEED, local_revision)
        return None

    def _reconcile(self, remote: Identity, shadow: Identity) -> Identity:
        """
        Fold a local shadow into the remote record.

        A shadow can be ahead of the remote document when an earlier remote
        write failed. Progression only grows, so the combined state takes the
        larger XP, the higher rank and the union of badges and completions.
        The remote revision is kept for the conditional write.
        """
        ours, theirs = shadow.progression, remote.progression
        if (
            ours.xp <= theirs.xp
            and set(ours.badges) <= set(theirs.badges)
            and set(ours.completed_units) <= set(theirs.completed_units)
            and rank_index(ours.rank, self.ranks) <= rank_index(theirs.rank, self.ranks)
        ):
            return remote

        logger.info(f"Local progression for {remote.id} is ahead of the remote store, reconciling")
        rank = ours.rank if rank_index(ours.rank, self.ranks) > rank_index(theirs.rank, self.ranks) else theirs.rank
        combined = ProgressionState(
            xp=max(ours.xp, theirs.xp),
            rank=rank,
            badges=[*theirs.badges, *ours.badges],
            completed_units=[*theirs.completed_units, *ours.completed_units],
        )
        return remote.model_copy(update={"progression": combined})

    @staticmethod
    def _parse(record: dict[str, Any], source: str) -> Identity | None:
        try:
            return Identity.from_record(record)
        except PydanticValidationError as e:
            logger.error(f"Ignoring malformed {source} identity {record.get('id')}: {e}")
            return None

    # ========================================
    # Mutation Loop
    # ========================================

    async def _mutate(
        self,
        identity_id: str,
        change: Callable[[ProgressionState], ProgressionState | None],
    ) -> AwardResult:
        """Resolve, apply ``change``, persist with CAS; retry on conflict."""
        for attempt in range(self.max_retries):
            resolved = await self._resolve(identity_id)
            if resolved is None:
                logger.warning(f"Progression update for unknown identity {identity_id}")
                return AwardResult(new_total=0, new_rank=None, applied=False)

            identity = resolved.identity
            state = identity.progression
            updated_state = change(state)
            if updated_state is None:
                return AwardResult(new_total=state.xp, new_rank=None)

            promotion = rank_change(updated_state.xp, state.rank, self.ranks)
            if promotion:
                updated_state = updated_state.model_copy(update={"rank": promotion})
            updated = identity.model_copy(update={"progression": updated_state})

            if await self._persist(resolved, updated):
                if promotion:
                    logger.info(f"{identity_id} promoted to {promotion} ({updated_state.xp} XP)")
                return AwardResult(new_total=updated_state.xp, new_rank=promotion)

            logger.debug(f"Revision conflict on {identity_id}, retrying ({attempt + 1}/{self.max_retries})")

        logger.error(f"Gave up updating {identity_id} after {self.max_retries} conflicting attempts")
        current = await self._resolve(identity_id)
        total = current.identity.progression.xp if current else 0
        return AwardResult(new_total=total, new_rank=None, applied=False)

    async def _persist(self, resolved: _Resolved, updated: Identity) -> bool:
        """
        Write ``updated`` back. Returns False on a revision conflict that
        requires re-resolving the identity.
        """
        progression = updated.progression.model_dump(mode="json")

        if resolved.source == SOURCE_REMOTE:
            remote_revision = resolved.identity.revision
            result = await self.remote.update(
                "identities",
                updated.id,
                {"progression": progression, "revision": remote_revision + 1},
                expected_revision=remote_revision,
            )
            if not result.ok and result.kind is ErrorKind.CONFLICT:
                return False
            if not result.ok:
                logger.warning(f"Remote progression write for {updated.id} failed ({result.kind.value})")
            mirrored = updated.model_copy(update={"revision": remote_revision + 1})
            self._shadow_write(mirrored)
            return True

        # Local or seed record: the local cache is the only writable store
        return self.cache.compare_and_set(IDENTITIES, updated.to_record(), resolved.local_revision)

    def _shadow_write(self, identity: Identity) -> None:
        """Mirror a remote-committed state locally, overwriting whatever is cached."""
        for _ in range(self.max_retries):
            current = self.cache.get(IDENTITIES, identity.id)
            expected = current.get("revision", 0) if current is not None else None
            if self.cache.compare_and_set(IDENTITIES, identity.to_record(), expected):
                return
        logger.warning(f"Local shadow write for {identity.id} kept conflicting")
