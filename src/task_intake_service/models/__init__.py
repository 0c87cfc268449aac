"""Pydantic models for request/response schemas."""

from .completion import CompletionFailureKind, CompletionResult, CompletionTier, TierError
from .email import (
    EmailExtractionOutput,
    EmailIntakeResponse,
    EmailTaskRequest,
    ExtractedEmailTask,
    SentinelVerdict,
)
from .intent import GateOutcome, TaskIntent, ValidatedTaskIntent, ValidationIssue, ValidationResult
from .task import (
    ArchiveRequest,
    ConfirmationOutcome,
    ConfirmationState,
    ConfirmDeleteRequest,
    DeleteConfirmationPrompt,
    DispatchAction,
    DispatchOutcome,
    StoredTask,
    SuggestionResponse,
    TaskContextItem,
    TaskUpdateRequest,
    VoiceTaskRequest,
)

__all__ = [
    "CompletionFailureKind",
    "CompletionResult",
    "CompletionTier",
    "TierError",
    "EmailExtractionOutput",
    "EmailIntakeResponse",
    "EmailTaskRequest",
    "ExtractedEmailTask",
    "SentinelVerdict",
    "GateOutcome",
    "TaskIntent",
    "ValidatedTaskIntent",
    "ValidationIssue",
    "ValidationResult",
    "ConfirmationOutcome",
    "ConfirmationState",
    "ConfirmDeleteRequest",
    "TaskUpdateRequest",
    "ArchiveRequest",
    "DeleteConfirmationPrompt",
    "DispatchAction",
    "DispatchOutcome",
    "StoredTask",
    "SuggestionResponse",
    "TaskContextItem",
    "VoiceTaskRequest",
]
