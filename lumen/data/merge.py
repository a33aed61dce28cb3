"""
Merge engine: reduce seed, remote and local collections to one view.

Precedence is fixed (seed < remote < local):

    1. Seed records form the baseline.
    2. Remote records overwrite seed records with the same id.
    3. Local override records overwrite both; a local write not yet
       confirmed remotely is the user's most recent action.

Ids keep the position of their first insertion. Tenant scoping is applied
to the merged result, never to the individual tiers, so a locally created
record is visible immediately whichever tier it would normally come from.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, TypeVar


class HasId(Protocol):
    id: str


R = TypeVar("R", bound=HasId)


def merge(seed: Iterable[R], local: Iterable[R], remote: Iterable[R]) -> list[R]:
    """
    Merge three tiers into a de-duplicated, precedence-ordered list.

    An empty ``remote`` is indistinguishable from an absent remote: the seed
    baseline still shows through.
    """
    merged: dict[str, R] = {}
    for tier in (seed, remote, local):
        for record in tier:
            merged[record.id] = record
    return list(merged.values())


# =============================================================================
# Tenant Scoping
# =============================================================================


def scope_units(units: Iterable[R], organization_id: str | None = None, unscoped: bool = False) -> list[R]:
    """
    Visible learning units for a tenant.

    - ``unscoped=True``: every unit (operator view)
    - no tenant: global units only
    - tenant: global units plus that tenant's private units
    """
    if unscoped:
        return list(units)
    return [
        unit for unit in units
        if unit.organization_id is None or (organization_id is not None and unit.organization_id == organization_id)
    ]


def scope_by_organization(records: Iterable[R], organization_id: str | None = None) -> list[R]:
    """Records belonging to one tenant; every record when no tenant is given."""
    if organization_id is None:
        return list(records)
    return [record for record in records if record.organization_id == organization_id]
