"""Intake pipeline: raw text -> sanitize -> prompt -> complete -> gate -> dispatch."""

import logging
import secrets
import time
from collections.abc import Mapping
from dataclasses import replace
from datetime import date, datetime, timedelta, timezone

from pydantic import ValidationError

from ..config import Settings, settings
from ..exceptions import InputValidationError, TaskNotFoundError
from ..models.email import EmailIntakeResponse, EmailTaskRequest, SentinelVerdict
from ..models.intent import TaskIntent, ValidatedTaskIntent
from ..models.task import (
    ConfirmationOutcome,
    DispatchOutcome,
    StoredTask,
    SuggestionResponse,
    TaskContextItem,
    TaskUpdateRequest,
    VoiceTaskRequest,
)
from .audit import SecuritySignal, audit_event
from .completion import TieredCompletionClient, build_default_tiers
from .confirmation import DeleteConfirmationManager
from .dispatcher import IntentDispatcher
from .prompt_builder import (
    build_email_parsing_prompt,
    build_sentinel_prompt,
    build_task_parsing_prompt,
    build_task_suggestion_prompt,
)
from .sanitizer import process_user_input, sanitize_user_input, strip_html
from .task_store import SQLiteTaskStore, TaskStore
from .validator import create_safe_fallback_intent, gate_task_output, validate_email_output

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION = "Consider organizing your desk."


def new_request_id(prefix: str = "req") -> str:
    """Correlation id carried by every audit event of one request."""
    return f"{prefix}_{int(time.time() * 1000)}_{secrets.token_hex(4)}"


def resolve_current_date(client_date: str | None, timezone_offset: int | None) -> str:
    """
    Work out the user's local date from the client clock.

    ``timezone_offset`` follows ``Date.getTimezoneOffset()``: minutes to add to
    local time to get UTC (so UTC+2 is -120). Falls back to the server's date
    when the client sends nothing usable.
    """
    if client_date:
        try:
            parsed = datetime.fromisoformat(client_date.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unparseable client date: {client_date!r}")
        else:
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=timezone.utc)
            local = parsed.astimezone(timezone.utc) - timedelta(minutes=timezone_offset or 0)
            return local.date().isoformat()
    return date.today().isoformat()


class TaskIntakePipeline:
    """Runs untrusted voice and email input through the trust boundary."""

    def __init__(
        self,
        task_store: TaskStore,
        completion_client: TieredCompletionClient,
        confirmations: DeleteConfirmationManager,
        dispatcher: IntentDispatcher | None = None,
    ):
        self.task_store = task_store
        self.completion_client = completion_client
        self.confirmations = confirmations
        self.dispatcher = dispatcher or IntentDispatcher(task_store, confirmations)

    async def list_tasks(self, user_id: str, include_archived: bool = False) -> list[StoredTask]:
        """Tasks of the user, archived ones only on request."""
        return await self.task_store.list_tasks(user_id, include_archived)

    def _task_missing(self, operation: str, task_id: str, *, request_id: str, user_id: str) -> TaskNotFoundError:
        audit_event(
            "database_operation_failed",
            f"Manual {operation} failed - task not found",
            request_id=request_id,
            user_id=user_id,
            level=logging.WARNING,
            operation=operation,
            task_id=task_id,
        )
        return TaskNotFoundError("Task not found or user not authorized.")

    async def update_task(
        self,
        task_id: str,
        user_id: str,
        request: TaskUpdateRequest,
        request_id: str | None = None,
    ) -> StoredTask:
        """
        Apply a manual edit from the task list.

        Raises:
            TaskNotFoundError: No such task for this user
        """
        request_id = request_id or new_request_id("update_req")
        updated = await self.task_store.update_task(task_id, user_id, request.model_dump(exclude_none=True))
        if updated is None:
            raise self._task_missing("update_task", task_id, request_id=request_id, user_id=user_id)

        audit_event(
            "database_operation_success",
            "Task updated manually",
            request_id=request_id,
            user_id=user_id,
            operation="update_task",
            task_id=task_id,
        )
        return updated

    async def set_archived(
        self,
        task_id: str,
        user_id: str,
        is_archived: bool,
        request_id: str | None = None,
    ) -> StoredTask:
        """Archive or unarchive a task. Archived tasks drop out of the model's context."""
        request_id = request_id or new_request_id("archive_req")
        updated = await self.task_store.set_archived(task_id, user_id, is_archived)
        if updated is None:
            raise self._task_missing("archive_task", task_id, request_id=request_id, user_id=user_id)

        audit_event(
            "database_operation_success",
            "Task archived" if is_archived else "Task unarchived",
            request_id=request_id,
            user_id=user_id,
            operation="archive_task",
            task_id=task_id,
            is_archived=is_archived,
        )
        return updated

    async def delete_task(self, task_id: str, user_id: str, request_id: str | None = None) -> None:
        """
        Delete a task the user picked by hand.

        Model-derived deletes never come through here; they always go through
        delete confirmation.
        """
        request_id = request_id or new_request_id("delete_req")
        if not await self.task_store.delete_task(task_id, user_id):
            raise self._task_missing("delete_task", task_id, request_id=request_id, user_id=user_id)

        audit_event(
            "database_operation_success",
            "Task deleted manually",
            request_id=request_id,
            user_id=user_id,
            operation="delete_task",
            task_id=task_id,
        )

    async def process_voice_input(
        self,
        request: VoiceTaskRequest,
        user_id: str,
        request_id: str | None = None,
    ) -> DispatchOutcome:
        """
        Turn a voice transcript into one authorized task operation.

        Raises:
            InputValidationError: Empty or oversized input (no model call is made)
            TaskNotFoundError: A verified edit target vanished mid-request
        """
        request_id = request_id or new_request_id()
        raw = request.transcribed_text

        audit_event(
            "llm_request_start",
            "LLM task parsing request initiated",
            request_id=request_id,
            user_id=user_id,
            raw_input_length=len(raw) if isinstance(raw, str) else 0,
        )

        if isinstance(raw, str) and len(raw) > settings.max_raw_input_length:
            audit_event(
                "input_validation_failed",
                "Request rejected: transcribed text too large",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                reason="oversized_input",
            )
            raise InputValidationError("Transcribed text is too long.")

        text = process_user_input(raw, user_id)
        sanitized = sanitize_user_input(text)
        if not text or not sanitized:
            audit_event(
                "input_validation_failed",
                "Request rejected: empty transcribed text",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                reason="empty_transcribed_text",
            )
            raise InputValidationError("Transcribed text is required.")

        current_date = resolve_current_date(request.client_date, request.client_timezone_offset)
        existing = [
            TaskContextItem(id=t.id, task_name=t.task_name, due_date=t.due_date, is_completed=t.is_completed)
            for t in await self.task_store.list_tasks(user_id)
        ]

        if sanitized != text:
            audit_event(
                "input_sanitized",
                "User input was sanitized before LLM processing",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                original_length=len(text),
                sanitized_length=len(sanitized),
                neutralized_count=sanitized.count(settings.sanitizer_sentinel),
            )

        prompt = build_task_parsing_prompt(sanitized, current_date, existing)
        audit_event(
            "prompt_constructed",
            "LLM prompt constructed",
            request_id=request_id,
            user_id=user_id,
            level=logging.DEBUG,
            prompt_length=len(prompt),
            existing_tasks_count=len(existing),
        )

        result = await self.completion_client.complete(prompt, request_id=request_id, user_id=user_id)
        if result.success:
            audit_event(
                "llm_output_received",
                "Raw LLM output received",
                request_id=request_id,
                user_id=user_id,
                tier=result.tier,
                output_keys=sorted(str(k) for k in result.data) if isinstance(result.data, Mapping) else None,
            )

        gate = gate_task_output(
            result.data if result.success else None,
            text,
            request_id=request_id,
            user_id=user_id,
        )
        audit_event(
            "task_data_validated",
            "Task data validated and ready for processing",
            request_id=request_id,
            user_id=user_id,
            llm_used=result.tier or "fallback",
            intent=gate.intent.intent,
            task_id=gate.intent.task_id,
            used_fallback=gate.used_fallback,
        )

        try:
            return await self.dispatcher.dispatch(
                gate.intent,
                user_id,
                request_id=request_id,
                used_fallback=gate.used_fallback,
            )
        except Exception as e:
            audit_event(
                "request_failed",
                f"Error processing task from voice: {e}",
                request_id=request_id,
                user_id=user_id,
                level=logging.ERROR,
                error=str(e),
            )
            raise

    async def _email_is_malicious(self, content: str, *, request_id: str, user_id: str) -> bool:
        result = await self.completion_client.complete(
            build_sentinel_prompt(content), request_id=request_id, user_id=user_id
        )
        if not result.success or not isinstance(result.data, Mapping):
            audit_event(
                "sentinel_unavailable",
                "Sentinel check produced no usable verdict, relying on the schema gate",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
            )
            return False
        try:
            verdict = SentinelVerdict.model_validate(dict(result.data))
        except ValidationError:
            audit_event(
                "sentinel_unavailable",
                "Sentinel verdict failed validation, relying on the schema gate",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
            )
            return False
        return verdict.is_malicious

    async def _create_fallback_email_task(
        self, original: str, subject: str, *, request_id: str, user_id: str
    ) -> StoredTask:
        fallback = create_safe_fallback_intent(original or subject, subject=subject)
        outcome = await self.dispatcher.dispatch(fallback, user_id, request_id=request_id, used_fallback=True)
        return outcome.task

    async def process_email(
        self,
        request: EmailTaskRequest,
        user_id: str,
        request_id: str | None = None,
        config: Settings = settings,
    ) -> EmailIntakeResponse:
        """
        Extract tasks from an email and create them for the user.

        Email intake only ever creates tasks. Unusable model output produces a
        single "Review email: <subject>" task instead.
        """
        request_id = request_id or new_request_id("email_req")
        if len(request.body or request.html_body or "") > config.max_raw_input_length:
            audit_event(
                "input_validation_failed",
                "Request rejected: email body too large",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                reason="oversized_input",
                message_id=request.message_id,
            )
            raise InputValidationError("Email body is too long.")

        body = request.body or strip_html(request.html_body or "")
        text = process_user_input(body, user_id)
        subject = process_user_input(request.subject, user_id)
        if not subject:
            raise InputValidationError("Email subject is required.")

        audit_event(
            "email_llm_request_start",
            "LLM email parsing request initiated",
            request_id=request_id,
            user_id=user_id,
            message_id=request.message_id,
            content_length=len(text),
        )

        if not text:
            task = await self._create_fallback_email_task(text, subject, request_id=request_id, user_id=user_id)
            return EmailIntakeResponse(tasks=[task], used_fallback=True)

        if config.email_sentinel_enabled and await self._email_is_malicious(
            text, request_id=request_id, user_id=user_id
        ):
            audit_event(
                "email_flagged_malicious",
                "Sentinel flagged email content as a prompt-injection attempt",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                security_signal=SecuritySignal.MALICIOUS_EMAIL,
                message_id=request.message_id,
            )
            task = await self._create_fallback_email_task(text, subject, request_id=request_id, user_id=user_id)
            return EmailIntakeResponse(tasks=[task], used_fallback=True, flagged_malicious=True)

        prompt = build_email_parsing_prompt(text, subject, date.today().isoformat())
        result = await self.completion_client.complete(prompt, request_id=request_id, user_id=user_id)

        output, issues = validate_email_output(result.data) if result.success else (None, [])
        if output is None:
            audit_event(
                "validation_failed" if result.success else "fallback_activated",
                "Email extraction output unusable, using safe fallback",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                security_signal=SecuritySignal.VALIDATION_FAILURE if result.success else SecuritySignal.NO_LLM_OUTPUT,
                issues=[issue.model_dump() for issue in issues],
            )
            task = await self._create_fallback_email_task(text, subject, request_id=request_id, user_id=user_id)
            return EmailIntakeResponse(tasks=[task], used_fallback=True)

        created: list[StoredTask] = []
        for extracted in output.tasks:
            intent = ValidatedTaskIntent(
                task_name=extracted.task_name,
                due_date=extracted.due_date,
                is_completed=False,
                original_request=text[: settings.max_original_request_length],
                intent=TaskIntent.CREATE.value,
                task_id=None,
            )
            outcome = await self.dispatcher.dispatch(intent, user_id, request_id=request_id)
            created.append(outcome.task)

        audit_event(
            "email_processing_complete",
            f"Processed email and created {len(created)} task(s)",
            request_id=request_id,
            user_id=user_id,
            llm_used=result.tier,
            task_count=len(created),
            has_actionable_items=output.has_actionable_items,
        )
        return EmailIntakeResponse(tasks=created)

    async def suggest_task(self, user_id: str, request_id: str | None = None) -> SuggestionResponse:
        """One generated task suggestion, or a fixed fallback."""
        request_id = request_id or new_request_id("suggest_req")
        # Suggestions are cosmetic, so every tier gets the short budget
        tiers = [
            replace(tier, timeout_seconds=min(tier.timeout_seconds, settings.suggestion_timeout_seconds))
            for tier in self.completion_client.tiers
        ]
        result = await self.completion_client.complete(
            build_task_suggestion_prompt(), tiers, request_id=request_id, user_id=user_id
        )
        suggestion = result.data.get("suggestion") if result.success and isinstance(result.data, Mapping) else None
        if not isinstance(suggestion, str) or not suggestion.strip():
            return SuggestionResponse(suggestion=DEFAULT_SUGGESTION, fallback=True)
        return SuggestionResponse(suggestion=suggestion.strip()[: settings.max_task_name_length])

    async def confirm_delete(
        self,
        confirmation_id: str,
        user_id: str,
        confirmed: bool | None,
        request_id: str | None = None,
    ) -> ConfirmationOutcome:
        """Resolve a pending deletion for the user."""
        return await self.confirmations.resolve(
            confirmation_id,
            user_id,
            confirmed,
            request_id=request_id or new_request_id("confirm_req"),
        )


def build_pipeline(config: Settings = settings) -> TaskIntakePipeline:
    """Wire the pipeline from configuration."""
    task_store = SQLiteTaskStore(config.db_path)
    task_store.init_db()
    confirmations = DeleteConfirmationManager(
        task_store, timeout_seconds=config.delete_confirmation_timeout_seconds
    )
    return TaskIntakePipeline(
        task_store=task_store,
        completion_client=TieredCompletionClient(build_default_tiers(config)),
        confirmations=confirmations,
    )
