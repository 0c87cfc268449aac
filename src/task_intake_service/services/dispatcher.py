"""Intent authorization and mutation dispatch.

The model only suggests; this module decides. Every edit or delete is
re-verified against the store for the acting user, and anything that cannot be
authorized fails closed to creating a new task for that user.
"""

import logging

from ..exceptions import TaskNotFoundError
from ..models.intent import TaskIntent, ValidatedTaskIntent
from ..models.task import DispatchAction, DispatchOutcome
from .audit import SecuritySignal, audit_event
from .confirmation import DeleteConfirmationManager
from .task_store import TaskStore
from .validator import create_safe_fallback_intent

logger = logging.getLogger(__name__)


class IntentDispatcher:
    """Turns a validated intent into exactly one authorized operation."""

    def __init__(self, task_store: TaskStore, confirmations: DeleteConfirmationManager):
        self.task_store = task_store
        self.confirmations = confirmations

    def _downgrade(self, intent: ValidatedTaskIntent, reason: str, *, request_id: str, user_id: str) -> ValidatedTaskIntent:
        audit_event(
            "intent_downgraded",
            f"{intent.intent} not authorized ({reason}) - failing closed to create_task",
            request_id=request_id,
            user_id=user_id,
            level=logging.WARNING,
            security_signal=SecuritySignal.INTENT_DOWNGRADE,
            original_intent=intent.intent,
            new_intent=TaskIntent.CREATE.value,
            task_id=intent.task_id,
            reason=reason,
        )
        return intent.model_copy(update={"intent": TaskIntent.CREATE.value, "task_id": None})

    async def dispatch(
        self,
        intent: ValidatedTaskIntent,
        user_id: str,
        *,
        request_id: str,
        used_fallback: bool = False,
    ) -> DispatchOutcome:
        """
        Execute the single operation the intent is authorized for.

        - create_task: insert for the acting user
        - edit_task: update only if the task exists and belongs to the user
        - delete_task: same check, then hand off to delete confirmation
        - anything else, or a missing task_id: create with the fallback name

        Raises:
            TaskNotFoundError: The verified task vanished before the update ran
        """
        requested = intent.intent
        downgraded = False

        if requested not in {member.value for member in TaskIntent}:
            audit_event(
                "intent_unrecognized",
                f"Unrecognized intent {requested!r} - failing closed to create_task",
                request_id=request_id,
                user_id=user_id,
                level=logging.WARNING,
                security_signal=SecuritySignal.INTENT_DOWNGRADE,
                original_intent=requested,
            )
            intent = create_safe_fallback_intent(intent.original_request or "")
            downgraded = True
        elif intent.requires_task_id:
            if not intent.task_id:
                # No target to verify; use the fallback name
                self._downgrade(intent, "missing_task_id", request_id=request_id, user_id=user_id)
                intent = create_safe_fallback_intent(intent.original_request or "")
                downgraded = True
            elif not await self.task_store.task_exists(intent.task_id, user_id):
                intent = self._downgrade(
                    intent, "task_not_found_or_unauthorized", request_id=request_id, user_id=user_id
                )
                downgraded = True

        if intent.intent == TaskIntent.EDIT.value and intent.task_id:
            audit_event(
                "database_operation",
                "Executing task update operation",
                request_id=request_id,
                user_id=user_id,
                operation="update_task",
                task_id=intent.task_id,
            )
            updated = await self.task_store.update_task(
                intent.task_id,
                user_id,
                {
                    "task_name": intent.task_name,
                    "due_date": intent.due_date,
                    "is_completed": intent.is_completed,
                    "original_request": intent.original_request,
                },
            )
            if updated is None:
                audit_event(
                    "database_operation_failed",
                    "Task update failed - task not found",
                    request_id=request_id,
                    user_id=user_id,
                    level=logging.ERROR,
                    operation="update_task",
                    task_id=intent.task_id,
                )
                raise TaskNotFoundError("Task not found or user not authorized for update.")

            audit_event(
                "database_operation_success",
                "Task updated",
                request_id=request_id,
                user_id=user_id,
                operation="update_task",
                task_id=updated.id,
            )
            return DispatchOutcome(
                action=DispatchAction.UPDATED,
                task=updated,
                requested_intent=requested,
                used_fallback=used_fallback,
            )

        if intent.intent == TaskIntent.DELETE.value and intent.task_id:
            audit_event(
                "delete_confirmation_requested",
                "Requesting deletion confirmation from user",
                request_id=request_id,
                user_id=user_id,
                operation="delete_task",
                task_id=intent.task_id,
            )
            prompt = self.confirmations.request_deletion(intent.task_id, user_id, request_id)
            return DispatchOutcome(
                action=DispatchAction.PENDING_CONFIRMATION,
                confirmation=prompt,
                requested_intent=requested,
                used_fallback=used_fallback,
            )

        audit_event(
            "database_operation",
            "Executing task creation operation",
            request_id=request_id,
            user_id=user_id,
            operation="create_task",
            is_fail_closed=requested != TaskIntent.CREATE.value,
        )
        created = await self.task_store.insert_task(
            user_id,
            intent.task_name,
            intent.due_date,
            intent.is_completed,
            intent.original_request,
        )
        audit_event(
            "database_operation_success",
            "Task created",
            request_id=request_id,
            user_id=user_id,
            operation="create_task",
            task_id=created.id,
        )
        return DispatchOutcome(
            action=DispatchAction.CREATED,
            task=created,
            requested_intent=requested,
            downgraded=downgraded,
            used_fallback=used_fallback,
        )
