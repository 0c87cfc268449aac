"""Tests for the SQLite task store."""

from conftest import OTHER_USER_ID, USER_ID, run
from task_intake_service.services.task_store import SQLiteTaskStore


def test_list_orders_undated_first(task_store: SQLiteTaskStore) -> None:
    """Test that undated tasks come first, then by due date."""
    run(task_store.insert_task(USER_ID, "Later", "2025-12-31", False, None))
    run(task_store.insert_task(USER_ID, "Someday", None, False, None))
    run(task_store.insert_task(USER_ID, "Soon", "2025-06-01", False, None))

    names = [t.task_name for t in run(task_store.list_tasks(USER_ID))]

    assert names == ["Someday", "Soon", "Later"]


def test_operations_scoped_by_user(task_store: SQLiteTaskStore) -> None:
    """Test that no operation reaches another user's task."""
    task = run(task_store.insert_task(OTHER_USER_ID, "Private", None, False, None))

    assert run(task_store.list_tasks(USER_ID)) == []
    assert not run(task_store.task_exists(task.id, USER_ID))
    assert run(task_store.update_task(task.id, USER_ID, {"task_name": "Mine now"})) is None
    assert not run(task_store.delete_task(task.id, USER_ID))
    assert run(task_store.task_exists(task.id, OTHER_USER_ID))


def test_update_ignores_none_values(task_store: SQLiteTaskStore) -> None:
    """Test that None never overwrites a stored value."""
    task = run(task_store.insert_task(USER_ID, "Call dad", "2025-12-24", False, "call dad"))

    updated = run(task_store.update_task(task.id, USER_ID, {"task_name": "Call mom", "due_date": None}))

    assert updated.task_name == "Call mom"
    assert updated.due_date == "2025-12-24"


def test_update_ignores_unknown_fields(task_store: SQLiteTaskStore) -> None:
    """Test that only task fields can be updated."""
    task = run(task_store.insert_task(USER_ID, "Call dad", None, False, None))

    updated = run(task_store.update_task(task.id, USER_ID, {"user_id": OTHER_USER_ID, "is_completed": True}))

    assert updated.user_id == USER_ID
    assert updated.is_completed is True


def test_delete(task_store: SQLiteTaskStore) -> None:
    """Test deleting a task."""
    task = run(task_store.insert_task(USER_ID, "Water plants", None, False, None))

    assert run(task_store.delete_task(task.id, USER_ID))
    assert not run(task_store.task_exists(task.id, USER_ID))
    assert not run(task_store.delete_task(task.id, USER_ID))


def test_archived_tasks_hidden_by_default(task_store: SQLiteTaskStore) -> None:
    """Test that archived tasks only appear when asked for."""
    kept = run(task_store.insert_task(USER_ID, "Keep", None, False, None))
    archived = run(task_store.insert_task(USER_ID, "Old", None, False, None))

    result = run(task_store.set_archived(archived.id, USER_ID, True))

    assert result.is_archived
    assert [t.id for t in run(task_store.list_tasks(USER_ID))] == [kept.id]
    assert {t.id for t in run(task_store.list_tasks(USER_ID, include_archived=True))} == {kept.id, archived.id}

    restored = run(task_store.set_archived(archived.id, USER_ID, False))
    assert not restored.is_archived
    assert len(run(task_store.list_tasks(USER_ID))) == 2


def test_archive_scoped_by_user(task_store: SQLiteTaskStore) -> None:
    """Test that a user cannot archive someone else's task."""
    task = run(task_store.insert_task(OTHER_USER_ID, "Private", None, False, None))

    assert run(task_store.set_archived(task.id, USER_ID, True)) is None
    assert [t.id for t in run(task_store.list_tasks(OTHER_USER_ID))] == [task.id]
