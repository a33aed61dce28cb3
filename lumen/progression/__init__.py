"""Experience, rank and badge progression."""

from lumen.progression.engine import ActivitySummary, AwardResult, BadgeRule, ProgressionEngine
from lumen.progression.ranks import rank_change, resolve_rank

__all__ = [
    "ActivitySummary",
    "AwardResult",
    "BadgeRule",
    "ProgressionEngine",
    "rank_change",
    "resolve_rank",
]
