"""Shared route dependencies."""

from functools import lru_cache

from fastapi import Header, HTTPException

from ..exceptions import TaskIntakeError
from ..services.pipeline import TaskIntakePipeline, build_pipeline


@lru_cache(maxsize=1)
def get_pipeline() -> TaskIntakePipeline:
    """Get or create the TaskIntakePipeline singleton."""
    return build_pipeline()


async def get_user_id(x_user_id: str | None = Header(None)) -> str:
    """
    Authenticated user id, set by the upstream auth layer.

    Authentication itself happens before requests reach this service.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required.")
    return x_user_id.strip()


def to_http_error(error: TaskIntakeError) -> HTTPException:
    """Map an intake error to its HTTP response."""
    return HTTPException(status_code=error.status_code, detail=str(error))
