"""
Core Module - Shared domain models, results and errors.

Components:
- models: Pydantic records (Organization, Identity, LearningUnit, Task, Submission)
- results: Ok / Err adapter outcomes with ErrorKind
- errors: Validation errors that cross the data layer boundary
"""

from lumen.core.errors import DuplicateEmailError, IllegalTransitionError, LumenError, ValidationError
from lumen.core.models import (
    Badge,
    Grade,
    Identity,
    IdentityRole,
    LearningUnit,
    Organization,
    ProgressionState,
    Rank,
    Submission,
    Task,
    UnitStatus,
)
from lumen.core.results import Err, ErrorKind, Ok, Result

__all__ = [
    # Models
    "Badge",
    "Grade",
    "Identity",
    "IdentityRole",
    "LearningUnit",
    "Organization",
    "ProgressionState",
    "Rank",
    "Submission",
    "Task",
    "UnitStatus",
    # Results
    "Ok",
    "Err",
    "ErrorKind",
    "Result",
    # Errors
    "LumenError",
    "ValidationError",
    "DuplicateEmailError",
    "IllegalTransitionError",
]
