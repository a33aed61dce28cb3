"""
Seed dataset: immutable baseline records shipped with the data layer.

Used when neither the remote store nor the local override cache has data.
Records are kept as tuples of plain dictionaries and materialized into fresh
model instances on every read, so callers can never mutate the baseline.
Runtime writes belong in the LocalOverrideCache, never here.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from lumen.core.models import Badge, Identity, LearningUnit, Organization, Rank, Task

SEED_VERSION = "2024.11"

RANKS: tuple[Rank, ...] = (
    Rank(name="Operative", min_xp=0),
    Rank(name="Technician", min_xp=1000),
    Rank(name="Specialist", min_xp=3000),
    Rank(name="Senior Engineer", min_xp=6000),
    Rank(name="Systems Architect", min_xp=10000),
)

BADGES: tuple[Badge, ...] = (
    Badge(id="b1", name="System Initialization", icon="zap",
          description="First module successfully integrated."),
    Badge(id="b2", name="Zero Tolerance", icon="crosshair",
          description="Achieved 100% calibration accuracy on assessment."),
    Badge(id="b3", name="Velocity Efficiency", icon="timer",
          description="Completed operation cycle in record time."),
    Badge(id="b4", name="Protocol Alpha", icon="shield",
          description="Full compliance with Safety Standards."),
    Badge(id="b5", name="Neural Uplink", icon="brain",
          description="Established high-bandwidth connection with AI Core."),
)

_ORGANIZATIONS: tuple[dict[str, Any], ...] = (
    {"id": "CLI-TESLA", "name": "Tesla Gigafactory", "industry": "Automotive",
     "seat_count": 1420, "status": "Active", "logo_initials": "TG", "domain": "tesla.com"},
    {"id": "CLI-SPACEX", "name": "SpaceX Ops", "industry": "Aerospace",
     "seat_count": 850, "status": "Active", "logo_initials": "SX", "domain": "spacex.com"},
    {"id": "CLI-SHELL", "name": "Shell Refinery", "industry": "Oil & Gas",
     "seat_count": 2100, "status": "Pending", "logo_initials": "SR", "domain": "shell.com"},
)


def _identity(id_, name, email, role, org, xp, rank, badges=()):
    return {
        "id": id_,
        "name": name,
        "email": email,
        "role": role,
        "organization_id": org,
        "status": "Active",
        "progression": {"xp": xp, "rank": rank, "badges": list(badges)},
    }


_IDENTITIES: tuple[dict[str, Any], ...] = (
    _identity("ADM-001", "Sarah Connor", "sarah@lumen.ai", "Admin", "LUMEN-CORE",
              12500, "Systems Architect", ("b1", "b2")),
    # Tesla
    _identity("TCH-102", "Dr. Octavius", "doc@tesla.com", "Teacher", "CLI-TESLA",
              8000, "Senior Engineer", ("b2",)),
    _identity("OP-442", "Rivera, Alex", "arivera@tesla.com", "Student", "CLI-TESLA",
              2400, "Technician", ("b1",)),
    _identity("OP-445", "Kowalski, P", "pkowalski@tesla.com", "Student", "CLI-TESLA",
              500, "Operative"),
    # SpaceX
    _identity("OP-443", "Chen, Wei", "wchen@spacex.com", "Student", "CLI-SPACEX",
              4500, "Specialist", ("b1", "b3")),
    _identity("OP-444", "Smith, J", "jsmith@spacex.com", "Student", "CLI-SPACEX",
              1200, "Technician"),
)

_UNITS: tuple[dict[str, Any], ...] = (
    {"id": "SAF-100", "title": "Lockout / Tagout", "category": "Safety",
     "status": "completed", "progress": 100, "xp_reward": 500,
     "coordinates": {"x": 20, "y": 50}, "mission_type": "Main Quest"},
    {"id": "ALG-101", "title": "Algebra Foundations", "category": "Math",
     "status": "active", "progress": 45, "video_id": "LwCRRUa8yTU", "start_sec": 0,
     "content": (
         "Algebra is the study of mathematical symbols and the rules for manipulating "
         "these symbols. In industrial settings, variables often represent pressure, "
         "temperature, or voltage."
     ),
     "nodes": [
         {"id": "n1", "title": "Variables", "kind": "video", "completed": True},
         {"id": "n2", "title": "Linear Eq", "kind": "read", "completed": False},
         {"id": "n3", "title": "Final Test", "kind": "quiz", "completed": False},
     ],
     "xp_reward": 800, "coordinates": {"x": 40, "y": 30}, "mission_type": "Main Quest"},
    {"id": "PHY-202", "title": "Torque & Leverage", "category": "Physics",
     "status": "locked", "progress": 0,
     "content": (
         "Torque is a measure of the force that can cause an object to rotate about "
         "an axis. T = F * r * sin(theta)."
     ),
     "nodes": [
         {"id": "n1", "title": "Force Vectors", "kind": "video", "completed": False},
         {"id": "n2", "title": "Lever Arms", "kind": "read", "completed": False},
         {"id": "n3", "title": "Wrench Exam", "kind": "quiz", "completed": False},
     ],
     "xp_reward": 1000, "coordinates": {"x": 60, "y": 60}, "mission_type": "Main Quest"},
    {"id": "MEC-303", "title": "Hydraulic Systems", "category": "Mechanics",
     "status": "locked", "progress": 0, "xp_reward": 1500,
     "coordinates": {"x": 80, "y": 40}, "mission_type": "Main Quest"},
    # Tenant-private content
    {"id": "TSLA-900", "title": "Giga Press Safety", "category": "Mechanics",
     "status": "locked", "progress": 0, "organization_id": "CLI-TESLA", "xp_reward": 2000,
     "coordinates": {"x": 50, "y": 80}, "mission_type": "Side Quest"},
    {"id": "SPX-101", "title": "Orbital Mechanics", "category": "Physics",
     "status": "locked", "progress": 0, "organization_id": "CLI-SPACEX", "xp_reward": 2500,
     "coordinates": {"x": 50, "y": 20}, "mission_type": "Side Quest"},
)


@dataclass(frozen=True)
class SeedDataset:
    """Read-only view over the baseline records."""

    organizations_data: tuple[dict[str, Any], ...] = _ORGANIZATIONS
    identities_data: tuple[dict[str, Any], ...] = _IDENTITIES
    units_data: tuple[dict[str, Any], ...] = _UNITS
    ranks: tuple[Rank, ...] = RANKS
    badges: tuple[Badge, ...] = BADGES
    version: str = SEED_VERSION

    def organizations(self) -> list[Organization]:
        return [Organization.from_record(data) for data in self.organizations_data]

    def identities(self) -> list[Identity]:
        return [Identity.from_record(data) for data in self.identities_data]

    def learning_units(self) -> list[LearningUnit]:
        return [LearningUnit.from_record(data) for data in self.units_data]

    def tasks(self, unit_id: str) -> list[Task]:
        """Every unit gets the same two baseline tasks."""
        return [
            Task(id=f"T-{unit_id}-1", unit_id=unit_id, title="Concept Verification",
                 difficulty="Easy", completed=True),
            Task(id=f"T-{unit_id}-2", unit_id=unit_id, title="Practical Application",
                 difficulty="Medium", completed=False),
        ]

    def get_identity(self, identity_id: str) -> Identity | None:
        for identity in self.identities():
            if identity.id == identity_id:
                return identity
        return None

    def get_badge(self, badge_id: str) -> Badge | None:
        for badge in self.badges:
            if badge.id == badge_id:
                return badge
        return None


DEFAULT_SEED = SeedDataset()
