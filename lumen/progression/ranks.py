"""
Rank resolution.

Ranks are a small, fixed table ordered by ascending experience threshold,
so a reverse scan is all the lookup needs.
"""

from __future__ import annotations

from collections.abc import Sequence

from lumen.core.models import Rank


def resolve_rank(xp: int, ranks: Sequence[Rank]) -> Rank:
    """Return the highest-threshold rank whose minimum does not exceed ``xp``."""
    if not ranks:
        raise ValueError("rank table is empty")
    for rank in reversed(ranks):
        if xp >= rank.min_xp:
            return rank
    return ranks[0]


def rank_index(name: str, ranks: Sequence[Rank]) -> int:
    """Position of a rank in the table, -1 for unknown names."""
    for index, rank in enumerate(ranks):
        if rank.name == name:
            return index
    return -1


def rank_change(xp: int, current_rank: str, ranks: Sequence[Rank]) -> str | None:
    """
    Name of the rank the identity should move to, or None.

    A change is reported only when the resolved rank is above the stored one.
    The lowest rank is never reported as a promotion, and a stored rank above
    the computed one is left alone (ranks never downgrade).
    """
    resolved = resolve_rank(xp, ranks)
    if resolved.name == current_rank or resolved == ranks[0]:
        return None
    if rank_index(resolved.name, ranks) < rank_index(current_rank, ranks):
        return None
    return resolved.name
