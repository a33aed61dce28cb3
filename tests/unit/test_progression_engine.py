"""
Unit tests for the progression engine.

Covers experience accrual, rank transitions, badges and the compare-and-set
retry loop, against an offline remote and against the fake remote server.
"""

import httpx
import pytest

from lumen.core.errors import ValidationError
from lumen.core.models import Identity, LearningUnit, ProgressionState, Rank
from lumen.data.local_cache import IDENTITIES
from lumen.progression.engine import ActivitySummary, ProgressionEngine, eligible_badges
from lumen.progression.ranks import rank_change, resolve_rank
from lumen.sync.remote_store import RemoteStore

RANKS = (
    Rank(name="Operative", min_xp=0),
    Rank(name="Technician", min_xp=1000),
    Rank(name="Specialist", min_xp=3000),
)


def make_identity(xp=0, rank="Operative", id_="OP-900", **extra):
    return Identity(
        id=id_,
        name="Test Operative",
        email=f"{id_.lower()}@example.com",
        organization_id="CLI-TESLA",
        progression=ProgressionState(xp=xp, rank=rank),
        **extra,
    )


@pytest.fixture
def engine(offline_remote, cache):
    return ProgressionEngine(offline_remote, cache, ranks=RANKS)


class TestRankResolution:
    """Tests for the rank table lookup."""

    @pytest.mark.parametrize("xp,name", [
        (0, "Operative"),
        (999, "Operative"),
        (1000, "Technician"),
        (2999, "Technician"),
        (3000, "Specialist"),
        (50000, "Specialist"),
    ])
    def test_resolve_rank(self, xp, name):
        assert resolve_rank(xp, RANKS).name == name

    def test_no_promotion_to_lowest_rank(self):
        """An unknown stored rank resolving to the first rank is not a promotion."""
        assert rank_change(10, "Rookie", RANKS) is None

    def test_no_downgrade(self):
        """A stored rank above the computed one is kept."""
        assert rank_change(1200, "Specialist", RANKS) is None

    def test_promotion(self):
        assert rank_change(1050, "Operative", RANKS) == "Technician"


class TestAwardExperience:
    """Tests for award_experience on local / seed identities."""

    @pytest.mark.asyncio
    async def test_promotion_scenario(self, engine, cache):
        """900 XP + 150 => 1050, promoted to Technician."""
        cache.append(IDENTITIES, make_identity(xp=900).to_record())

        result = await engine.award_experience("OP-900", 150)

        assert result.new_total == 1050
        assert result.new_rank == "Technician"
        stored = cache.get(IDENTITIES, "OP-900")
        assert stored["progression"]["xp"] == 1050
        assert stored["progression"]["rank"] == "Technician"

    @pytest.mark.asyncio
    async def test_zero_award_is_noop(self, engine, cache):
        """Awarding 0 returns the current total and no rank change, without writing."""
        cache.append(IDENTITIES, make_identity(xp=1200, rank="Technician").to_record())
        before = cache.load(IDENTITIES)

        result = await engine.award_experience("OP-900", 0)

        assert result.new_total == 1200
        assert result.new_rank is None
        assert cache.load(IDENTITIES) == before

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
    async def test_invalid_amount_rejected(self, engine, amount):
        with pytest.raises(ValidationError):
            await engine.award_experience("OP-900", amount)

    @pytest.mark.asyncio
    async def test_repeated_awards_are_monotonic(self, engine, cache):
        """XP and rank never decrease across a sequence of awards."""
        cache.append(IDENTITIES, make_identity(xp=0).to_record())
        totals, ranks = [], []

        for amount in (0, 400, 700, 0, 2500, 1):
            result = await engine.award_experience("OP-900", amount)
            totals.append(result.new_total)
            ranks.append(resolve_rank(result.new_total, RANKS).min_xp)

        assert totals == sorted(totals)
        assert ranks == sorted(ranks)
        assert totals[-1] == 3601

    @pytest.mark.asyncio
    async def test_no_rank_signal_without_change(self, engine, cache):
        cache.append(IDENTITIES, make_identity(xp=1100, rank="Technician").to_record())

        result = await engine.award_experience("OP-900", 100)

        assert result.new_rank is None
        assert result.new_total == 1200

    @pytest.mark.asyncio
    async def test_seed_identity_shadowed_locally(self, offline_remote, cache):
        """Seed identities are never mutated; the update lands in the cache."""
        engine = ProgressionEngine(offline_remote, cache)

        result = await engine.award_experience("OP-445", 600)

        assert result.new_total == 1100
        assert result.new_rank == "Technician"
        assert cache.get(IDENTITIES, "OP-445")["progression"]["xp"] == 1100
        assert engine.seed.get_identity("OP-445").progression.xp == 500

    @pytest.mark.asyncio
    async def test_unknown_identity(self, engine):
        result = await engine.award_experience("NOBODY", 100)

        assert result.new_total == 0
        assert result.new_rank is None
        assert result.applied is False


class TestConcurrentWriters:
    """Tests for the compare-and-set retry loop."""

    @pytest.mark.asyncio
    async def test_conflicting_writer_is_not_lost(self, engine, cache, monkeypatch):
        """Another writer sneaking in between read and write is retried, not overwritten."""
        cache.append(IDENTITIES, make_identity(xp=100).to_record())
        original_cas = cache.compare_and_set
        interfered = False

        def interfering_cas(key, record, expected_revision):
            nonlocal interfered
            if not interfered:
                interfered = True
                # Simulate another tab committing +50 first
                current = cache.get(IDENTITIES, "OP-900")
                other = dict(current)
                other["progression"] = {**current["progression"], "xp": current["progression"]["xp"] + 50}
                original_cas(key, other, current.get("revision", 0))
            return original_cas(key, record, expected_revision)

        monkeypatch.setattr(cache, "compare_and_set", interfering_cas)

        result = await engine.award_experience("OP-900", 25)

        assert result.new_total == 175
        assert cache.get(IDENTITIES, "OP-900")["progression"]["xp"] == 175

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, offline_remote, cache, monkeypatch):
        engine = ProgressionEngine(offline_remote, cache, ranks=RANKS, max_retries=3)
        cache.append(IDENTITIES, make_identity(xp=100).to_record())
        monkeypatch.setattr(cache, "compare_and_set", lambda *args: False)

        result = await engine.award_experience("OP-900", 10)

        assert result.applied is False
        assert result.new_total == 100


class TestRemoteIdentities:
    """Tests for identities resolved from the remote store."""

    @pytest.mark.asyncio
    async def test_remote_identity_updated_and_shadowed(self, server, remote, cache):
        server.seed("identities", make_identity(xp=900, revision=4).to_record())
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        result = await engine.award_experience("OP-900", 150)

        assert result.new_total == 1050
        assert result.new_rank == "Technician"
        remote_doc = server.collections["identities"]["OP-900"]
        assert remote_doc["progression"]["xp"] == 1050
        assert remote_doc["revision"] == 5
        assert cache.get(IDENTITIES, "OP-900")["progression"]["xp"] == 1050

    @pytest.mark.asyncio
    async def test_remote_preferred_over_local(self, server, remote, cache):
        """Point lookup priority is remote, then local, then seed."""
        server.seed("identities", make_identity(xp=2000, rank="Technician").to_record())
        cache.append(IDENTITIES, make_identity(xp=50).to_record())
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        result = await engine.award_experience("OP-900", 10)

        assert result.new_total == 2010

    @pytest.mark.asyncio
    async def test_remote_failure_still_writes_local(self, server, cache):
        """A failed remote write does not stop the local shadow write."""
        server.seed("identities", make_identity(xp=900).to_record())

        def fail_patches(request):
            if request.method == "PATCH":
                return httpx.Response(503)
            return server.handler(request)

        remote = RemoteStore("http://remote.test", transport=httpx.MockTransport(fail_patches))
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        result = await engine.award_experience("OP-900", 200)

        assert result.new_total == 1100
        assert server.collections["identities"]["OP-900"]["progression"]["xp"] == 900
        assert cache.get(IDENTITIES, "OP-900")["progression"]["xp"] == 1100

    @pytest.mark.asyncio
    async def test_remote_revision_conflict_retries(self, server, cache):
        """A 412 on the conditional update re-reads and re-applies."""
        server.seed("identities", make_identity(xp=100, revision=1).to_record())
        bumped = False

        def racing_handler(request):
            nonlocal bumped
            if request.method == "PATCH" and not bumped:
                bumped = True
                # Another client commits first
                doc = server.collections["identities"]["OP-900"]
                doc["progression"] = {**doc["progression"], "xp": 300}
                doc["revision"] = 2
            return server.handler(request)

        remote = RemoteStore("http://remote.test", transport=httpx.MockTransport(racing_handler))
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        result = await engine.award_experience("OP-900", 10)

        assert result.new_total == 310
        assert server.collections["identities"]["OP-900"]["progression"]["xp"] == 310

    @pytest.mark.asyncio
    async def test_recovered_remote_never_lowers_progress(self, server, cache):
        """A shadow left ahead by a failed remote write is carried into the next award."""
        server.seed("identities", make_identity(xp=100).to_record())
        outage = True

        def flaky_patches(request):
            if request.method == "PATCH" and outage:
                return httpx.Response(503)
            return server.handler(request)

        remote = RemoteStore("http://remote.test", transport=httpx.MockTransport(flaky_patches))
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        first = await engine.award_experience("OP-900", 1000)
        outage = False
        second = await engine.award_experience("OP-900", 50)

        assert first.new_total == 1100
        assert first.new_rank == "Technician"
        assert second.new_total == 1150
        assert second.new_rank is None
        remote_doc = server.collections["identities"]["OP-900"]
        assert remote_doc["progression"]["xp"] == 1150
        assert remote_doc["progression"]["rank"] == "Technician"
        assert cache.get(IDENTITIES, "OP-900")["progression"]["xp"] == 1150

    @pytest.mark.asyncio
    async def test_local_badges_survive_stale_remote(self, server, remote, cache):
        server.seed("identities", make_identity(xp=100).to_record())
        cache.append(IDENTITIES, make_identity(xp=100).model_copy(
            update={"progression": ProgressionState(xp=100, badges=["b1"])}
        ).to_record())
        engine = ProgressionEngine(remote, cache, ranks=RANKS)

        identity = await engine.get_identity("OP-900")

        assert identity.progression.badges == ["b1"]


class TestBadgesAndCompletion:
    """Tests for badges and first-completion rewards."""

    @pytest.mark.asyncio
    async def test_badge_appended_once(self, offline_remote, cache):
        engine = ProgressionEngine(offline_remote, cache)
        cache.append(IDENTITIES, make_identity().to_record())

        assert await engine.award_badge("OP-900", "b1") is True
        assert await engine.award_badge("OP-900", "b1") is False
        assert cache.get(IDENTITIES, "OP-900")["progression"]["badges"] == ["b1"]

    @pytest.mark.asyncio
    async def test_unknown_badge_rejected(self, engine):
        with pytest.raises(ValidationError):
            await engine.award_badge("OP-900", "b999")

    @pytest.mark.asyncio
    async def test_unit_reward_only_on_first_completion(self, engine, cache):
        cache.append(IDENTITIES, make_identity(xp=0).to_record())
        unit = LearningUnit(id="PHY-202", title="Torque & Leverage", xp_reward=1000)

        first = await engine.complete_unit("OP-900", unit)
        second = await engine.complete_unit("OP-900", unit)

        assert first.new_total == 1000
        assert first.new_rank == "Technician"
        assert second.new_total == 1000
        assert second.new_rank is None

    def test_eligible_badges_skips_earned(self):
        identity = make_identity()
        identity.progression.badges.append("b1")
        activity = ActivitySummary(units_completed=1, best_score=100)

        assert eligible_badges(identity, activity) == ["b2"]

    @pytest.mark.asyncio
    async def test_evaluate_badges(self, offline_remote, cache):
        engine = ProgressionEngine(offline_remote, cache)
        cache.append(IDENTITIES, make_identity().to_record())

        awarded = await engine.evaluate_badges("OP-900", ActivitySummary(safety_units_completed=1))

        assert awarded == ["b4"]
