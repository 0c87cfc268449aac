"""Task endpoints: listing, manual edits, voice intake, delete confirmation and suggestions."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse

from ..exceptions import TaskIntakeError
from ..models.task import (
    ArchiveRequest,
    ConfirmationState,
    ConfirmDeleteRequest,
    DispatchAction,
    StoredTask,
    SuggestionResponse,
    TaskUpdateRequest,
    VoiceTaskRequest,
)
from ..services.pipeline import TaskIntakePipeline
from .deps import get_pipeline, get_user_id, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tasks"])


@router.get("/tasks", response_model=list[StoredTask])
async def list_tasks(
    include_archived: bool = False,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> list[StoredTask]:
    """Return the user's tasks, undated first. Archived tasks only when asked for."""
    return await pipeline.list_tasks(user_id, include_archived)


@router.put("/tasks/{task_id}", response_model=StoredTask)
async def update_task(
    task_id: str,
    request: TaskUpdateRequest,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> StoredTask:
    """Edit a task by hand. Omitted fields keep their stored value."""
    try:
        return await pipeline.update_task(task_id, user_id, request)
    except TaskIntakeError as e:
        raise to_http_error(e) from e


@router.put("/tasks/{task_id}/archive", response_model=StoredTask)
async def archive_task(
    task_id: str,
    request: ArchiveRequest,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> StoredTask:
    """Archive or unarchive a task."""
    try:
        return await pipeline.set_archived(task_id, user_id, request.is_archived)
    except TaskIntakeError as e:
        raise to_http_error(e) from e


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(
    task_id: str,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> Response:
    """Delete a task the user picked from the list. Returns 204, or 404 for unknown ids."""
    try:
        await pipeline.delete_task(task_id, user_id)
    except TaskIntakeError as e:
        raise to_http_error(e) from e
    return Response(status_code=204)


@router.post("/tasks/create-from-voice")
async def create_from_voice(
    request: VoiceTaskRequest,
    response: Response,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> dict[str, Any]:
    """
    Create, edit or request deletion of a task from a voice transcript.

    The model only suggests an operation; the service decides:
    - 201 with the new task when a task was created (including fail-closed downgrades)
    - 200 with the updated task for an authorized edit
    - 202 with a confirmation prompt for an authorized delete
    - 400 when the transcript is empty or too long
    """
    try:
        outcome = await pipeline.process_voice_input(request, user_id)
    except TaskIntakeError as e:
        raise to_http_error(e) from e

    if outcome.action == DispatchAction.PENDING_CONFIRMATION:
        response.status_code = 202
        return outcome.confirmation.model_dump(mode="json")

    response.status_code = 201 if outcome.action == DispatchAction.CREATED else 200
    return outcome.task.model_dump(mode="json")


@router.post("/tasks/confirm-delete/{confirmation_id}")
async def confirm_delete(
    confirmation_id: str,
    request: ConfirmDeleteRequest,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> Response:
    """
    Answer a pending delete confirmation.

    `confirmed: true` deletes the task (204). `false` or omitted cancels (200).
    Unknown, expired or already-used ids return 404; another user's id returns 403.
    """
    try:
        outcome = await pipeline.confirm_delete(confirmation_id, user_id, request.confirmed)
    except TaskIntakeError as e:
        raise to_http_error(e) from e

    if outcome.state == ConfirmationState.CONFIRMED:
        return Response(status_code=204)
    return JSONResponse({"message": "Deletion cancelled."})


@router.post("/task-suggestion", response_model=SuggestionResponse)
async def task_suggestion(
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> SuggestionResponse:
    """Suggest a simple task. Falls back to a fixed suggestion if no model answers."""
    return await pipeline.suggest_task(user_id)
