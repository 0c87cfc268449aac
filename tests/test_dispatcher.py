"""Tests for intent authorization and dispatch."""

import logging

import pytest

from conftest import OTHER_USER_ID, USER_ID, run
from task_intake_service.models.intent import ValidatedTaskIntent
from task_intake_service.models.task import DispatchAction
from task_intake_service.services.confirmation import DeleteConfirmationManager
from task_intake_service.services.dispatcher import IntentDispatcher
from task_intake_service.services.task_store import SQLiteTaskStore

MISSING_ID = "0f8fad5b-d9cb-469f-a165-70867728950e"


@pytest.fixture
def dispatcher(task_store: SQLiteTaskStore) -> IntentDispatcher:
    return IntentDispatcher(task_store, DeleteConfirmationManager(task_store, timeout_seconds=10.0))


def intent(**fields) -> ValidatedTaskIntent:
    data = {"task_name": "Call mom", "original_request": "call mom", "intent": "create_task"}
    data.update(fields)
    return ValidatedTaskIntent(**data)


def test_create_inserts_for_acting_user(dispatcher: IntentDispatcher, task_store: SQLiteTaskStore) -> None:
    """Test that create_task inserts a task owned by the acting user."""
    outcome = run(dispatcher.dispatch(intent(due_date="2025-12-25"), USER_ID, request_id="req-1"))

    assert outcome.action == DispatchAction.CREATED
    assert outcome.task.user_id == USER_ID
    assert outcome.task.due_date == "2025-12-25"
    assert not outcome.downgraded
    assert len(run(task_store.list_tasks(USER_ID))) == 1


def test_edit_own_task_updates(dispatcher: IntentDispatcher, task_store: SQLiteTaskStore) -> None:
    """Test that an authorized edit updates the existing task."""
    existing = run(task_store.insert_task(USER_ID, "Call dad", None, False, "call dad"))

    outcome = run(dispatcher.dispatch(
        intent(task_name="Call mom", intent="edit_task", task_id=existing.id, is_completed=True),
        USER_ID,
        request_id="req-2",
    ))

    assert outcome.action == DispatchAction.UPDATED
    assert outcome.task.id == existing.id
    assert outcome.task.task_name == "Call mom"
    assert outcome.task.is_completed is True
    assert len(run(task_store.list_tasks(USER_ID))) == 1


def test_edit_other_users_task_downgrades(
    dispatcher: IntentDispatcher,
    task_store: SQLiteTaskStore,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Test that an edit aimed at another user's task creates a new task instead."""
    caplog.set_level(logging.INFO, logger="task_intake_service.audit")
    victim = run(task_store.insert_task(OTHER_USER_ID, "Pay rent", None, False, "pay rent"))

    outcome = run(dispatcher.dispatch(
        intent(task_name="Hacked", intent="edit_task", task_id=victim.id),
        USER_ID,
        request_id="req-3",
    ))

    assert outcome.action == DispatchAction.CREATED
    assert outcome.downgraded
    assert outcome.requested_intent == "edit_task"
    assert outcome.task.user_id == USER_ID
    assert outcome.task.id != victim.id

    untouched = run(task_store.list_tasks(OTHER_USER_ID))
    assert [t.task_name for t in untouched] == ["Pay rent"]

    signals = [r.audit.get("security_signal") for r in caplog.records if hasattr(r, "audit")]
    assert "INTENT_DOWNGRADE" in signals


def test_delete_missing_task_downgrades(dispatcher: IntentDispatcher, task_store: SQLiteTaskStore) -> None:
    """Test that a delete of an unknown task never reaches confirmation."""
    outcome = run(dispatcher.dispatch(
        intent(intent="delete_task", task_id=MISSING_ID),
        USER_ID,
        request_id="req-4",
    ))

    assert outcome.action == DispatchAction.CREATED
    assert outcome.confirmation is None
    assert outcome.downgraded
    assert len(dispatcher.confirmations.store) == 0


def test_edit_without_task_id_downgrades(dispatcher: IntentDispatcher) -> None:
    """Test that a targeted intent with no target becomes a create named from the request."""
    outcome = run(dispatcher.dispatch(
        intent(task_name="Wipe every task", intent="edit_task", is_completed=True),
        USER_ID,
        request_id="req-5",
    ))

    assert outcome.action == DispatchAction.CREATED
    assert outcome.downgraded
    assert outcome.task.task_name == "call mom"
    assert outcome.task.is_completed is False


def test_delete_own_task_requests_confirmation(dispatcher: IntentDispatcher, task_store: SQLiteTaskStore) -> None:
    """Test that an authorized delete waits for confirmation and deletes nothing yet."""
    existing = run(task_store.insert_task(USER_ID, "Water plants", None, False, None))

    outcome = run(dispatcher.dispatch(
        intent(task_name="Water plants", intent="delete_task", task_id=existing.id),
        USER_ID,
        request_id="req-6",
    ))

    assert outcome.action == DispatchAction.PENDING_CONFIRMATION
    assert outcome.task is None
    assert outcome.confirmation.task_id == existing.id
    assert outcome.confirmation.requires_confirmation
    assert run(task_store.task_exists(existing.id, USER_ID))
