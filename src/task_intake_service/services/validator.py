"""
Output schema gate: the trust boundary between model output and mutations.

Model output is untrusted. A candidate either passes every rule and becomes a
``ValidatedTaskIntent``, or it is discarded wholesale and replaced by a safe
fallback. None of a rejected candidate's fields are ever used.
"""

import logging
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ValidationError

from ..config import settings
from ..models.email import EmailExtractionOutput
from ..models.intent import GateOutcome, ValidatedTaskIntent, ValidationIssue, ValidationResult
from .audit import SecuritySignal, audit_event

logger = logging.getLogger(__name__)

FALLBACK_TASK_NAME = "Untitled task"


def _issues_from(error: ValidationError) -> list[ValidationIssue]:
    return [
        ValidationIssue(
            field=".".join(str(part) for part in err["loc"]) or "(root)",
            code=err["type"],
            message=err["msg"],
        )
        for err in error.errors()
    ]


def _validate_mapping(model: type[BaseModel], candidate: Any) -> tuple[BaseModel | None, list[ValidationIssue]]:
    if not isinstance(candidate, Mapping):
        return None, [
            ValidationIssue(
                field="(root)",
                code="invalid_type",
                message=f"Expected a JSON object, got {type(candidate).__name__}",
            )
        ]
    try:
        return model.model_validate(dict(candidate)), []
    except ValidationError as e:
        return None, _issues_from(e)


def validate_task_output(candidate: Any) -> ValidationResult:
    """
    Validate raw model output against the strict task intent schema.

    Pure: never raises and never repairs. Edit and delete intents without a
    task_id fail here rather than defaulting to anything.
    """
    intent, issues = _validate_mapping(ValidatedTaskIntent, candidate)
    if intent is None:
        return ValidationResult.rejected(issues)

    if intent.requires_task_id and not intent.task_id:
        return ValidationResult.rejected([
            ValidationIssue(
                field="task_id",
                code="missing_task_id",
                message=f"task_id is required when intent is {intent.intent}",
            )
        ])

    return ValidationResult.ok(intent)


def create_safe_fallback_intent(original_request: Any, subject: str | None = None) -> ValidatedTaskIntent:
    """
    Build the non-destructive intent used whenever model output can't be trusted.

    Deterministic: the same input always yields an equal object.

    Args:
        original_request: The user's (cleaned) input text
        subject: Email subject, which takes precedence for the task name

    Returns:
        A create_task intent with no task_id and no due date
    """
    original = original_request if isinstance(original_request, str) else str(original_request or "")
    max_name = settings.max_task_name_length

    if subject:
        task_name = f"Review email: {subject.strip()}"[:max_name].strip()
    else:
        task_name = original.strip()[:max_name].strip()

    return ValidatedTaskIntent(
        task_name=task_name or FALLBACK_TASK_NAME,
        due_date=None,
        is_completed=False,
        original_request=original[: settings.max_original_request_length],
        intent="create_task",
        task_id=None,
    )


def gate_task_output(
    candidate: Any,
    original_request: str,
    *,
    request_id: str,
    user_id: str | None,
    subject: str | None = None,
) -> GateOutcome:
    """
    Apply the schema gate and substitute the safe fallback on any failure.

    Args:
        candidate: Parsed model output, or None when no tier produced output
        original_request: Cleaned user input the fallback is derived from
        request_id: Correlation id for audit events
        user_id: Acting user for audit events
        subject: Email subject for email-derived fallbacks

    Returns:
        GateOutcome whose intent is safe to dispatch
    """
    if candidate is None:
        audit_event(
            "fallback_activated",
            "No model output available, using safe fallback",
            request_id=request_id,
            user_id=user_id,
            level=logging.WARNING,
            security_signal=SecuritySignal.NO_LLM_OUTPUT,
            reason="no_llm_output",
        )
        return GateOutcome(intent=create_safe_fallback_intent(original_request, subject), used_fallback=True)

    result = validate_task_output(candidate)
    if result.success and result.data is not None:
        audit_event(
            "validation_success",
            "Model output passed schema validation",
            request_id=request_id,
            user_id=user_id,
            intent=result.data.intent,
            has_task_id=result.data.task_id is not None,
        )
        return GateOutcome(intent=result.data)

    audit_event(
        "validation_failed",
        "Model output failed schema validation - potential prompt injection or malformed output",
        request_id=request_id,
        user_id=user_id,
        level=logging.WARNING,
        security_signal=SecuritySignal.VALIDATION_FAILURE,
        issues=[issue.model_dump() for issue in result.issues],
        output_keys=sorted(str(key) for key in candidate) if isinstance(candidate, Mapping) else None,
    )
    audit_event(
        "fallback_activated",
        "Using safe fallback task creation",
        request_id=request_id,
        user_id=user_id,
        level=logging.WARNING,
        reason="validation_failed",
    )
    return GateOutcome(
        intent=create_safe_fallback_intent(original_request, subject),
        used_fallback=True,
        issues=result.issues,
    )


def validate_email_output(candidate: Any) -> tuple[EmailExtractionOutput | None, list[ValidationIssue]]:
    """Validate email extraction output with the same all-or-nothing rules."""
    output, issues = _validate_mapping(EmailExtractionOutput, candidate)
    return output, issues
