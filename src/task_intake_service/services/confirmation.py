"""Delete confirmation state machine.

NONE -> PENDING -> {CONFIRMED, DENIED, EXPIRED}

A pending deletion lives only in a ``PendingDeletionStore``. Whoever removes
the record from the store owns the transition; every other confirm, deny or
expiry for the same id finds nothing and does nothing.
"""

import asyncio
import logging
import secrets
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Protocol

from ..config import settings
from ..exceptions import ConfirmationForbiddenError, ConfirmationNotFoundError, TaskNotFoundError
from ..models.task import ConfirmationOutcome, ConfirmationState, DeleteConfirmationPrompt
from .audit import SecuritySignal, audit_event
from .task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PendingDeletion:
    """A delete waiting for the user to confirm it."""

    task_id: str
    user_id: str
    request_id: str
    created_at: datetime


ExpiryCallback = Callable[[str, PendingDeletion], None]


class PendingDeletionStore(Protocol):
    """Keyed store with per-entry expiry. Swap in a shared backend to scale out."""

    def put(self, key: str, record: PendingDeletion, ttl_seconds: float, on_expire: ExpiryCallback | None = None) -> None: ...

    def get(self, key: str) -> PendingDeletion | None: ...

    def remove(self, key: str) -> PendingDeletion | None: ...


@dataclass
class _Entry:
    record: PendingDeletion
    deadline: float
    handle: asyncio.TimerHandle | None
    on_expire: ExpiryCallback | None


class InMemoryPendingDeletionStore:
    """
    Process-local pending deletion store.

    Expiry is driven two ways: a timer on the running event loop removes the
    entry when its TTL elapses, and any access after the deadline (per the
    injected clock) treats the entry as expired. The second path lets tests
    control expiry with a fake clock.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def put(
        self,
        key: str,
        record: PendingDeletion,
        ttl_seconds: float,
        on_expire: ExpiryCallback | None = None,
    ) -> None:
        try:
            handle = asyncio.get_running_loop().call_later(ttl_seconds, self._expire, key)
        except RuntimeError:
            handle = None  # No loop; expiry is checked on access
        with self._lock:
            self._entries[key] = _Entry(record, self._clock() + ttl_seconds, handle, on_expire)

    def _pop(self, key: str) -> _Entry | None:
        with self._lock:
            entry = self._entries.pop(key, None)
        if entry is not None and entry.handle is not None:
            entry.handle.cancel()
        return entry

    def _expire(self, key: str) -> None:
        entry = self._pop(key)
        if entry is not None and entry.on_expire is not None:
            entry.on_expire(key, entry.record)

    def _is_expired(self, entry: _Entry) -> bool:
        return self._clock() >= entry.deadline

    def get(self, key: str) -> PendingDeletion | None:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            self._expire(key)
            return None
        return entry.record

    def remove(self, key: str) -> PendingDeletion | None:
        entry = self._pop(key)
        if entry is None:
            return None
        if self._is_expired(entry):
            if entry.on_expire is not None:
                entry.on_expire(key, entry.record)
            return None
        return entry.record


class DeleteConfirmationManager:
    """Holds destructive intents until the owning user confirms or the window closes."""

    def __init__(
        self,
        task_store: TaskStore,
        store: PendingDeletionStore | None = None,
        timeout_seconds: float | None = None,
    ):
        self.task_store = task_store
        self.store = store if store is not None else InMemoryPendingDeletionStore()
        self.timeout_seconds = (
            settings.delete_confirmation_timeout_seconds if timeout_seconds is None else timeout_seconds
        )

    def _on_expire(self, confirmation_id: str, record: PendingDeletion) -> None:
        audit_event(
            "delete_confirmation_timeout",
            f"Delete confirmation timed out after {self.timeout_seconds:g} seconds",
            request_id=record.request_id,
            user_id=record.user_id,
            confirmation_id=confirmation_id,
            task_id=record.task_id,
            state=ConfirmationState.EXPIRED.value,
        )

    def request_deletion(self, task_id: str, user_id: str, request_id: str) -> DeleteConfirmationPrompt:
        """
        Move an authorized delete into PENDING.

        The caller must already have verified that the task belongs to the user.

        Returns:
            The prompt to send over the confirmation channel
        """
        confirmation_id = secrets.token_hex(16)
        record = PendingDeletion(
            task_id=task_id,
            user_id=user_id,
            request_id=request_id,
            created_at=datetime.now(timezone.utc),
        )
        self.store.put(confirmation_id, record, self.timeout_seconds, on_expire=self._on_expire)

        audit_event(
            "delete_confirmation_pending",
            "Delete confirmation pending",
            request_id=request_id,
            user_id=user_id,
            confirmation_id=confirmation_id,
            task_id=task_id,
            timeout_seconds=self.timeout_seconds,
        )
        return DeleteConfirmationPrompt(
            confirmation_id=confirmation_id,
            task_id=task_id,
            timeout_seconds=self.timeout_seconds,
        )

    async def resolve(
        self,
        confirmation_id: str,
        user_id: str,
        confirmed: bool | None,
        request_id: str | None = None,
    ) -> ConfirmationOutcome:
        """
        Confirm or deny a pending deletion.

        Args:
            confirmation_id: Id from the confirmation prompt
            user_id: The user answering the prompt
            confirmed: True deletes; False or None cancels
            request_id: Correlation id of the confirming request

        Returns:
            ConfirmationOutcome in state CONFIRMED or DENIED

        Raises:
            ConfirmationNotFoundError: Unknown, expired or already resolved id
            ConfirmationForbiddenError: Another user owns the pending deletion
            TaskNotFoundError: The task disappeared before the delete ran
        """
        audit_event(
            "delete_confirmation_received",
            "Delete confirmation response received",
            request_id=request_id or confirmation_id,
            user_id=user_id,
            confirmation_id=confirmation_id,
            confirmed=confirmed,
        )

        record = self.store.get(confirmation_id)
        if record is None:
            audit_event(
                "delete_confirmation_not_found",
                "No pending deletion for this confirmation id",
                request_id=request_id or confirmation_id,
                user_id=user_id,
                level=logging.WARNING,
                confirmation_id=confirmation_id,
            )
            raise ConfirmationNotFoundError("Confirmation not found or expired.")

        if record.user_id != user_id:
            audit_event(
                "delete_confirmation_unauthorized",
                "User does not own this confirmation",
                request_id=record.request_id,
                user_id=user_id,
                level=logging.WARNING,
                security_signal=SecuritySignal.CONFIRMATION_FORBIDDEN,
                confirmation_id=confirmation_id,
                owner_id=record.user_id,
            )
            raise ConfirmationForbiddenError("Not authorized to confirm this deletion.")

        # Remove-then-check: only the caller that removes the record acts on it
        claimed = self.store.remove(confirmation_id)
        if claimed is None:
            raise ConfirmationNotFoundError("Confirmation not found or expired.")

        if confirmed is not True:
            audit_event(
                "delete_cancelled",
                "User cancelled deletion",
                request_id=claimed.request_id,
                user_id=user_id,
                confirmation_id=confirmation_id,
                task_id=claimed.task_id,
                state=ConfirmationState.DENIED.value,
            )
            return ConfirmationOutcome(
                state=ConfirmationState.DENIED,
                confirmation_id=confirmation_id,
                task_id=claimed.task_id,
            )

        audit_event(
            "delete_confirmed",
            "User confirmed deletion - proceeding",
            request_id=claimed.request_id,
            user_id=user_id,
            confirmation_id=confirmation_id,
            task_id=claimed.task_id,
        )
        deleted = await self.task_store.delete_task(claimed.task_id, user_id)
        if not deleted:
            audit_event(
                "database_operation_failed",
                "Task deletion failed - task not found",
                request_id=claimed.request_id,
                user_id=user_id,
                level=logging.ERROR,
                operation="delete_task",
                task_id=claimed.task_id,
            )
            raise TaskNotFoundError("Task not found or user not authorized for deletion.")

        audit_event(
            "database_operation_success",
            "Task deleted after confirmation",
            request_id=claimed.request_id,
            user_id=user_id,
            operation="delete_task",
            task_id=claimed.task_id,
            state=ConfirmationState.CONFIRMED.value,
        )
        return ConfirmationOutcome(
            state=ConfirmationState.CONFIRMED,
            confirmation_id=confirmation_id,
            task_id=claimed.task_id,
        )
