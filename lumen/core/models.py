"""
Canonical records for the Lumen data layer.

Every collection the data layer serves is described here as a Pydantic
model. Records are round-tripped through the remote document store and the
local override cache as plain JSON dictionaries, so each model exposes
``to_record()`` / ``from_record()`` helpers that keep that translation in one
place.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrganizationStatus(str, Enum):
    """Lifecycle of a tenant organization."""

    ACTIVE = "Active"
    PENDING = "Pending"
    SUSPENDED = "Suspended"


class IdentityRole(str, Enum):
    """Role of an identity within its organization."""

    STUDENT = "Student"
    TEACHER = "Teacher"
    ADMIN = "Admin"  # Operator / superuser


class IdentityStatus(str, Enum):
    ACTIVE = "Active"
    INACTIVE = "Inactive"
    ADVANCED = "Advanced"


class UnitStatus(str, Enum):
    """Lifecycle of a learning unit."""

    LOCKED = "locked"
    ACTIVE = "active"
    COMPLETED = "completed"


class NodeKind(str, Enum):
    """Kind of sub-step inside a learning unit."""

    VIDEO = "video"
    READ = "read"
    QUIZ = "quiz"


class MissionType(str, Enum):
    MAIN_QUEST = "Main Quest"
    SIDE_QUEST = "Side Quest"


class LumenRecord(BaseModel):
    """Base class for every stored record."""

    model_config = ConfigDict(use_enum_values=False, populate_by_name=True)

    id: str = Field(min_length=1)

    def to_record(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dictionary."""
        return self.model_dump(mode="json")

    @classmethod
    def from_record(cls, data: dict[str, Any]):
        """Build a model from a stored dictionary."""
        return cls.model_validate(data)


# =============================================================================
# Organizations & Identities
# =============================================================================


class Organization(LumenRecord):
    """A tenant: the root of data isolation."""

    name: str = Field(min_length=1)
    industry: str = ""
    seat_count: int = Field(default=0, ge=0)
    status: OrganizationStatus = OrganizationStatus.PENDING
    logo_initials: str = ""
    domain: str = ""  # e.g. tesla.com, used for auto-assignment


class ProgressionState(BaseModel):
    """Experience, rank and earned badges for one identity."""

    xp: int = Field(default=0, ge=0)
    rank: str = "Operative"
    badges: list[str] = Field(default_factory=list)
    completed_units: list[str] = Field(default_factory=list)

    @field_validator("badges", "completed_units")
    @classmethod
    def _dedupe(cls, values: list[str]) -> list[str]:
        # Keep first occurrence order
        return list(dict.fromkeys(values))


class Identity(LumenRecord):
    """A user of the platform."""

    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    role: IdentityRole = IdentityRole.STUDENT
    organization_id: str = "GLOBAL"
    status: IdentityStatus = IdentityStatus.ACTIVE
    progression: ProgressionState = Field(default_factory=ProgressionState)
    revision: int = Field(default=0, ge=0)

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value

    @property
    def email_key(self) -> str:
        """Case-insensitive uniqueness key."""
        return self.email.lower()


# =============================================================================
# Learning Content
# =============================================================================


class UnitNode(BaseModel):
    """One ordered sub-step of a learning unit."""

    id: str
    title: str
    kind: NodeKind = NodeKind.READ
    completed: bool = False


class MapCoordinates(BaseModel):
    x: float = 0.0
    y: float = 0.0


class LearningUnit(LumenRecord):
    """A course / module. ``organization_id=None`` means globally visible."""

    title: str = Field(min_length=1)
    category: str = ""
    status: UnitStatus = UnitStatus.LOCKED
    progress: int = Field(default=0, ge=0, le=100)
    organization_id: str | None = None
    nodes: list[UnitNode] = Field(default_factory=list)
    xp_reward: int = Field(default=0, ge=0)
    content: str | None = None
    video_id: str | None = None
    start_sec: int | None = None
    coordinates: MapCoordinates | None = None
    mission_type: MissionType = MissionType.MAIN_QUEST

    @property
    def is_global(self) -> bool:
        return self.organization_id is None

    @property
    def is_locked(self) -> bool:
        return self.status == UnitStatus.LOCKED


class Task(LumenRecord):
    """An exercise belonging to a learning unit."""

    unit_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    difficulty: str = "Medium"
    completed: bool = False


# =============================================================================
# Submissions & Grading
# =============================================================================


class GradeCriterion(BaseModel):
    name: str
    score: float
    explanation: str = ""


class GradeFeedback(BaseModel):
    overall: str = ""
    criteria: list[GradeCriterion] = Field(default_factory=list)


class Grade(BaseModel):
    """Result of grading a submission."""

    score: float = Field(default=0, ge=0, le=100)
    feedback: GradeFeedback = Field(default_factory=GradeFeedback)
    reflection_prompt: str = "N/A"
    experiment_difficulty: str | None = None
    latency_ms: int = 0
    degraded: bool = False  # True when the grader could not do its job


class Submission(LumenRecord):
    """A learner's answer to a task. Submissions form an append-only log."""

    identity_id: str = Field(min_length=1)
    organization_id: str = Field(min_length=1)
    unit_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    response: str
    started_at: int = Field(ge=0)  # epoch millis
    submitted_at: int = Field(ge=0)
    time_sec: int = Field(default=0, ge=0)
    grade: Grade | None = None


# =============================================================================
# Gamification Catalogue
# =============================================================================


class Rank(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    min_xp: int = Field(ge=0)


class Badge(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    icon: str = ""
    description: str = ""
