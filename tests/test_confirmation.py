"""Tests for the delete confirmation state machine."""

import asyncio
import logging

import pytest

from conftest import OTHER_USER_ID, USER_ID, run
from task_intake_service.exceptions import (
    ConfirmationForbiddenError,
    ConfirmationNotFoundError,
    TaskNotFoundError,
)
from task_intake_service.models.task import ConfirmationState
from task_intake_service.services.confirmation import DeleteConfirmationManager, InMemoryPendingDeletionStore
from task_intake_service.services.task_store import SQLiteTaskStore


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(task_store: SQLiteTaskStore, clock: FakeClock) -> DeleteConfirmationManager:
    return DeleteConfirmationManager(task_store, InMemoryPendingDeletionStore(clock=clock), timeout_seconds=10.0)


@pytest.fixture
def task_id(task_store: SQLiteTaskStore) -> str:
    return run(task_store.insert_task(USER_ID, "Water plants", None, False, None)).id


def test_confirm_deletes_task(manager: DeleteConfirmationManager, task_store: SQLiteTaskStore, task_id: str) -> None:
    """Test that confirming removes the task."""
    prompt = manager.request_deletion(task_id, USER_ID, "req-1")
    assert prompt.timeout_seconds == 10.0

    outcome = run(manager.resolve(prompt.confirmation_id, USER_ID, True))

    assert outcome.state == ConfirmationState.CONFIRMED
    assert outcome.task_id == task_id
    assert not run(task_store.task_exists(task_id, USER_ID))


def test_second_confirm_not_found(manager: DeleteConfirmationManager, task_id: str) -> None:
    """Test that a confirmation id can only be used once."""
    prompt = manager.request_deletion(task_id, USER_ID, "req-2")
    run(manager.resolve(prompt.confirmation_id, USER_ID, True))

    with pytest.raises(ConfirmationNotFoundError):
        run(manager.resolve(prompt.confirmation_id, USER_ID, True))


@pytest.mark.parametrize("answer", [False, None])
def test_deny_keeps_task(
    manager: DeleteConfirmationManager,
    task_store: SQLiteTaskStore,
    task_id: str,
    answer: bool | None,
) -> None:
    """Test that anything but an explicit true cancels."""
    prompt = manager.request_deletion(task_id, USER_ID, "req-3")

    outcome = run(manager.resolve(prompt.confirmation_id, USER_ID, answer))

    assert outcome.state == ConfirmationState.DENIED
    assert run(task_store.task_exists(task_id, USER_ID))
    assert len(manager.store) == 0


def test_other_user_forbidden(
    manager: DeleteConfirmationManager,
    task_store: SQLiteTaskStore,
    task_id: str,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that another user cannot resolve the confirmation, and the owner still can."""
    caplog.set_level(logging.INFO, logger="task_intake_service.audit")
    prompt = manager.request_deletion(task_id, USER_ID, "req-4")

    with pytest.raises(ConfirmationForbiddenError):
        run(manager.resolve(prompt.confirmation_id, OTHER_USER_ID, True))

    assert run(task_store.task_exists(task_id, USER_ID))
    signals = [r.audit.get("security_signal") for r in caplog.records if hasattr(r, "audit")]
    assert "CONFIRMATION_FORBIDDEN" in signals

    outcome = run(manager.resolve(prompt.confirmation_id, USER_ID, True))
    assert outcome.state == ConfirmationState.CONFIRMED


def test_unknown_id_not_found(manager: DeleteConfirmationManager) -> None:
    """Test that unknown ids are rejected."""
    with pytest.raises(ConfirmationNotFoundError):
        run(manager.resolve("does-not-exist", USER_ID, True))


def test_expiry_discards_pending_deletion(
    manager: DeleteConfirmationManager,
    task_store: SQLiteTaskStore,
    clock: FakeClock,
    task_id: str,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that an expired confirmation deletes nothing and cannot be confirmed."""
    caplog.set_level(logging.INFO, logger="task_intake_service.audit")
    prompt = manager.request_deletion(task_id, USER_ID, "req-5")

    clock.now += 10.0

    with pytest.raises(ConfirmationNotFoundError):
        run(manager.resolve(prompt.confirmation_id, USER_ID, True))

    assert run(task_store.task_exists(task_id, USER_ID))
    assert len(manager.store) == 0
    timeouts = [r.audit for r in caplog.records if getattr(r, "audit", {}).get("event") == "delete_confirmation_timeout"]
    assert len(timeouts) == 1
    assert timeouts[0]["state"] == ConfirmationState.EXPIRED.value


def test_confirm_just_before_expiry(manager: DeleteConfirmationManager, clock: FakeClock, task_id: str) -> None:
    """Test that a confirmation inside the window succeeds."""
    prompt = manager.request_deletion(task_id, USER_ID, "req-6")
    clock.now += 9.9

    outcome = run(manager.resolve(prompt.confirmation_id, USER_ID, True))

    assert outcome.state == ConfirmationState.CONFIRMED


def test_timer_expires_on_running_loop(task_store: SQLiteTaskStore, task_id: str) -> None:
    """Test that the loop timer removes the entry without any access."""
    expired = []
    store = InMemoryPendingDeletionStore()
    manager = DeleteConfirmationManager(task_store, store, timeout_seconds=0.01)
    manager._on_expire = lambda key, record: expired.append(key)

    async def scenario() -> str:
        prompt = manager.request_deletion(task_id, USER_ID, "req-7")
        await asyncio.sleep(0.05)
        return prompt.confirmation_id

    confirmation_id = run(scenario())

    assert expired == [confirmation_id]
    assert len(store) == 0
    assert run(task_store.task_exists(task_id, USER_ID))


def test_task_vanished_before_confirm(
    manager: DeleteConfirmationManager,
    task_store: SQLiteTaskStore,
    task_id: str,
) -> None:
    """Test that confirming a delete for a task that is already gone reports not found."""
    prompt = manager.request_deletion(task_id, USER_ID, "req-8")
    run(task_store.delete_task(task_id, USER_ID))

    with pytest.raises(TaskNotFoundError):
        run(manager.resolve(prompt.confirmation_id, USER_ID, True))
