"""Task-related Pydantic models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from .intent import TaskName, check_calendar_date


class TaskContextItem(BaseModel):
    """An existing task shown to the model so it can pick edit/delete targets."""

    id: str
    task_name: str
    due_date: str | None = None
    is_completed: bool = False


class StoredTask(BaseModel):
    """A task row as returned by the task store."""

    id: str
    user_id: str
    task_name: str
    due_date: str | None = None
    is_completed: bool = False
    original_request: str | None = None
    is_archived: bool = False
    created_at: datetime
    updated_at: datetime


class VoiceTaskRequest(BaseModel):
    """Transcribed voice input from the client."""

    transcribed_text: str | None = Field(
        None,
        description="Raw transcript like 'remind me to feed the cat tomorrow'",
    )
    client_date: str | None = Field(None, description="Client clock as an ISO 8601 timestamp")
    client_timezone_offset: int | None = Field(
        None,
        description="Minutes behind UTC, as reported by Date.getTimezoneOffset()",
    )


class DispatchAction(str, Enum):
    """What the dispatcher ended up doing."""

    CREATED = "created"
    UPDATED = "updated"
    PENDING_CONFIRMATION = "pending_confirmation"


class DeleteConfirmationPrompt(BaseModel):
    """Sent to the client when a delete needs explicit confirmation."""

    requires_confirmation: bool = True
    confirmation_id: str
    task_id: str
    message: str = "Please confirm task deletion"
    timeout_seconds: float


class DispatchOutcome(BaseModel):
    """Result of dispatching a validated intent."""

    action: DispatchAction
    task: StoredTask | None = None
    confirmation: DeleteConfirmationPrompt | None = None
    requested_intent: str
    downgraded: bool = False
    used_fallback: bool = False


class TaskUpdateRequest(BaseModel):
    """Manual edit from the task list. Omitted fields keep their stored value."""

    model_config = ConfigDict(extra="forbid")

    task_name: TaskName | None = None
    due_date: StrictStr | None = Field(None, description="Due date in YYYY-MM-DD format")
    is_completed: StrictBool | None = None

    @field_validator("due_date")
    @classmethod
    def _real_date(cls, value: str | None) -> str | None:
        return check_calendar_date(value)


class ArchiveRequest(BaseModel):
    """Archive or unarchive a task."""

    model_config = ConfigDict(extra="forbid")

    is_archived: StrictBool


class ConfirmDeleteRequest(BaseModel):
    """Client answer to a delete confirmation prompt."""

    confirmed: bool | None = None


class ConfirmationState(str, Enum):
    """Terminal states of a pending deletion."""

    CONFIRMED = "confirmed"
    DENIED = "denied"
    EXPIRED = "expired"


class ConfirmationOutcome(BaseModel):
    """Result of resolving a pending deletion."""

    state: ConfirmationState
    confirmation_id: str
    task_id: str


class SuggestionResponse(BaseModel):
    """A single task suggestion."""

    suggestion: str
    fallback: bool = False
