"""Email-to-task endpoint.

The ingestion layer (mail watch, webhooks, sender verification) lives
elsewhere and posts the message content here for the recipient user.
"""

import logging

from fastapi import APIRouter, Depends

from ..exceptions import TaskIntakeError
from ..models.email import EmailIntakeResponse, EmailTaskRequest
from ..services.pipeline import TaskIntakePipeline
from .deps import get_pipeline, get_user_id, to_http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["email"])


@router.post("/tasks/from-email", response_model=EmailIntakeResponse, status_code=201)
async def create_from_email(
    request: EmailTaskRequest,
    user_id: str = Depends(get_user_id),
    pipeline: TaskIntakePipeline = Depends(get_pipeline),
) -> EmailIntakeResponse:
    """
    Extract actionable tasks from an email and create them.

    Email content only ever creates tasks. When the content is flagged as a
    prompt-injection attempt, or the model output is unusable, a single
    "Review email: <subject>" task is created instead.
    """
    logger.info(f"Email intake for user {user_id}: message_id={request.message_id}")
    try:
        return await pipeline.process_email(request, user_id)
    except TaskIntakeError as e:
        raise to_http_error(e) from e
