"""Email intake models."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictStr, field_validator

from .intent import TaskName, check_calendar_date
from .task import StoredTask


class EmailTaskRequest(BaseModel):
    """Email content handed over by the ingestion layer."""

    model_config = ConfigDict(extra="forbid")

    subject: str = Field(..., min_length=1, max_length=500)
    body: str = ""
    html_body: str | None = None
    message_id: str | None = None
    sender: str | None = None


class ExtractedEmailTask(BaseModel):
    """A single task the model pulled out of an email."""

    model_config = ConfigDict(extra="forbid")

    task_name: TaskName
    due_date: StrictStr | None = None
    priority: Literal["low", "medium", "high"] = "medium"
    source: Literal["email"] = "email"
    attachments: list[StrictStr] | None = None

    @field_validator("due_date")
    @classmethod
    def _real_date(cls, value: str | None) -> str | None:
        return check_calendar_date(value)


class EmailExtractionOutput(BaseModel):
    """Full model output for email task extraction."""

    model_config = ConfigDict(extra="forbid")

    tasks: list[ExtractedEmailTask]
    has_actionable_items: StrictBool


class SentinelVerdict(BaseModel):
    """Prompt-injection verdict from the sentinel prompt."""

    model_config = ConfigDict(extra="forbid")

    is_malicious: StrictBool


class EmailIntakeResponse(BaseModel):
    """Tasks created from one email."""

    tasks: list[StoredTask] = Field(default_factory=list)
    used_fallback: bool = False
    flagged_malicious: bool = False

