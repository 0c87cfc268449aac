"""Structured audit events for the LLM trust boundary."""

import logging
from enum import Enum
from typing import Any

logger = logging.getLogger("task_intake_service.audit")


class SecuritySignal(str, Enum):
    """Tags that separate security-relevant events from ordinary errors."""

    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    NO_LLM_OUTPUT = "NO_LLM_OUTPUT"
    INTENT_DOWNGRADE = "INTENT_DOWNGRADE"
    CONFIRMATION_FORBIDDEN = "CONFIRMATION_FORBIDDEN"
    MALICIOUS_EMAIL = "MALICIOUS_EMAIL"


def audit_event(
    event: str,
    message: str,
    *,
    request_id: str,
    user_id: str | None,
    level: int = logging.INFO,
    security_signal: SecuritySignal | None = None,
    **fields: Any,
) -> dict[str, Any]:
    """
    Log one audit event.

    The human-readable message goes to the log line; the structured payload is
    attached as ``record.audit`` so handlers can ship it as JSON.

    Returns:
        The structured payload that was logged
    """
    payload: dict[str, Any] = {
        "event": event,
        "request_id": request_id,
        "user_id": user_id,
    }
    if security_signal is not None:
        payload["security_signal"] = security_signal.value
    payload.update(fields)

    signal = f" [{security_signal.value}]" if security_signal else ""
    logger.log(level, f"{event}{signal} request={request_id} user={user_id}: {message}", extra={"audit": payload})
    return payload
