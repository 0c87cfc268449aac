"""Intent models produced by the output schema gate.

Model output is untrusted. ``ValidatedTaskIntent`` is the only shape that is
allowed to reach the mutation dispatcher, and it is strict:
unknown fields are rejected and no field is coerced from another type.
"""

import re
from datetime import date
from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, StringConstraints, field_validator

from ..config import settings

DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")
UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"
)

TaskName = Annotated[
    StrictStr,
    StringConstraints(
        strip_whitespace=True,
        min_length=1,
        max_length=settings.max_task_name_length,
    ),
]
OriginalRequest = Annotated[
    StrictStr,
    StringConstraints(max_length=settings.max_original_request_length),
]


class TaskIntent(str, Enum):
    """What the model says the user wants to do."""

    CREATE = "create_task"
    EDIT = "edit_task"
    DELETE = "delete_task"


def check_calendar_date(value: str | None) -> str | None:
    """Require YYYY-MM-DD that names a real calendar day."""
    if value is None:
        return None
    if not DATE_PATTERN.fullmatch(value):
        raise ValueError("Date must be in YYYY-MM-DD format")
    try:
        date.fromisoformat(value)
    except ValueError:
        raise ValueError(f"Invalid calendar date: {value}") from None
    return value


class ValidatedTaskIntent(BaseModel):
    """A task intent that passed the schema gate (or a safe fallback)."""

    model_config = ConfigDict(extra="forbid")

    task_name: TaskName
    due_date: StrictStr | None = None
    is_completed: StrictBool = False
    original_request: OriginalRequest | None = None
    intent: Literal["create_task", "edit_task", "delete_task"]
    task_id: StrictStr | None = None

    @field_validator("due_date")
    @classmethod
    def _real_date(cls, value: str | None) -> str | None:
        return check_calendar_date(value)

    @field_validator("task_id")
    @classmethod
    def _uuid(cls, value: str | None) -> str | None:
        if value is not None and not UUID_PATTERN.fullmatch(value):
            raise ValueError("Task ID must be a valid UUID")
        return value

    @property
    def requires_task_id(self) -> bool:
        """Edit and delete both target an existing task."""
        return self.intent in (TaskIntent.EDIT.value, TaskIntent.DELETE.value)


class ValidationIssue(BaseModel):
    """A single field-level reason for rejecting model output."""

    field: str
    code: str
    message: str


class ValidationResult(BaseModel):
    """Tagged result of the schema gate: success with data, or failure with issues."""

    success: bool
    data: ValidatedTaskIntent | None = None
    issues: list[ValidationIssue] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: ValidatedTaskIntent) -> "ValidationResult":
        return cls(success=True, data=data)

    @classmethod
    def rejected(cls, issues: list[ValidationIssue]) -> "ValidationResult":
        return cls(success=False, issues=issues)


class GateOutcome(BaseModel):
    """What the gate hands to the dispatcher."""

    intent: ValidatedTaskIntent
    used_fallback: bool = False
    issues: list[ValidationIssue] = Field(default_factory=list)
