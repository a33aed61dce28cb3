"""
Unit tests for the merge engine and tenant scoping.
"""

import pytest

from lumen.core.models import Identity, LearningUnit
from lumen.data.merge import merge, scope_by_organization, scope_units


def unit(id_, title="Unit", org=None):
    return LearningUnit(id=id_, title=title, organization_id=org)


class TestMergePrecedence:
    """Tests for seed < remote < local precedence."""

    def test_remote_overrides_seed(self):
        """Remote record replaces the seed record with the same id."""
        result = merge([unit("A", "seed")], [], [unit("A", "remote")])

        assert len(result) == 1
        assert result[0].title == "remote"

    def test_local_overrides_remote_and_seed(self):
        """Local override wins over both other tiers."""
        result = merge([unit("A", "seed")], [unit("A", "local")], [unit("A", "remote")])

        assert [u.title for u in result] == ["local"]

    def test_seed_survives_when_not_overridden(self):
        """Seed-only ids stay in the merged view."""
        result = merge([unit("A"), unit("B")], [unit("C")], [unit("B", "remote")])

        assert [u.id for u in result] == ["A", "B", "C"]
        assert result[1].title == "remote"

    def test_order_keeps_first_insertion_position(self):
        """An overridden id keeps the position where it first appeared."""
        result = merge([unit("A"), unit("B")], [unit("A", "local")], [unit("R")])

        assert [u.id for u in result] == ["A", "B", "R"]
        assert result[0].title == "local"

    def test_empty_remote_behaves_like_absent_remote(self):
        """An empty remote result still lets the seed baseline through."""
        seed = [unit("A"), unit("B")]

        assert merge(seed, [], []) == seed

    def test_duplicates_within_a_tier_collapse(self):
        """The same id never appears twice in the output."""
        result = merge([], [unit("X", "first"), unit("X", "second")], [])

        assert len(result) == 1
        assert result[0].title == "second"


class TestMergeProperties:
    """Tests for determinism and idempotence."""

    @pytest.fixture
    def tiers(self):
        seed = [unit("A", "seed-a"), unit("B", "seed-b")]
        local = [unit("B", "local-b"), unit("L", "local-l")]
        remote = [unit("A", "remote-a"), unit("R", "remote-r")]
        return seed, local, remote

    def test_idempotent(self, tiers):
        """Merging the output with itself yields the same collection."""
        merged = merge(*tiers)

        assert merge(merged, merged, merged) == merged

    def test_deterministic(self, tiers):
        """Same inputs, same output."""
        assert merge(*tiers) == merge(*tiers)

    def test_winner_per_id(self, tiers):
        """Local if present, else remote, else seed."""
        merged = {u.id: u.title for u in merge(*tiers)}

        assert merged == {"A": "remote-a", "B": "local-b", "L": "local-l", "R": "remote-r"}


class TestTenantScoping:
    """Tests for scoping applied after the merge."""

    @pytest.fixture
    def units(self):
        return [unit("G1"), unit("T1", org="CLI-TESLA"), unit("S1", org="CLI-SPACEX"), unit("G2")]

    def test_tenant_sees_global_and_own(self, units):
        assert [u.id for u in scope_units(units, "CLI-TESLA")] == ["G1", "T1", "G2"]

    def test_no_tenant_sees_global_only(self, units):
        assert [u.id for u in scope_units(units)] == ["G1", "G2"]

    def test_unscoped_operator_view_sees_everything(self, units):
        assert len(scope_units(units, unscoped=True)) == 4

    def test_identities_by_organization(self):
        people = [
            Identity(id="1", name="A", email="a@x.com", organization_id="CLI-TESLA"),
            Identity(id="2", name="B", email="b@x.com", organization_id="CLI-SPACEX"),
        ]

        assert [p.id for p in scope_by_organization(people, "CLI-SPACEX")] == ["2"]
        assert len(scope_by_organization(people)) == 2
