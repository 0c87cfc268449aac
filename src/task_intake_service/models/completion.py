"""Completion tier and result models."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field


class CompletionBackend(Protocol):
    """A text-completion capability. Text is expected to be JSON but is not trusted."""

    async def complete(self, prompt: str, model: str) -> str: ...


@dataclass(frozen=True)
class CompletionTier:
    """One backend + model + timeout in the ordered fallback sequence."""

    name: str
    backend: CompletionBackend
    model: str
    timeout_seconds: float


class CompletionFailureKind(str, Enum):
    """Why a tier (or the whole chain) produced no usable output."""

    TIMEOUT = "timeout"
    TRANSPORT_ERROR = "transport_error"
    MALFORMED_JSON = "malformed_json"
    NO_TIERS = "no_tiers"


class TierError(BaseModel):
    """Failure of a single tier attempt."""

    tier: str
    kind: CompletionFailureKind
    message: str
    elapsed_ms: int


class CompletionResult(BaseModel):
    """Parsed JSON from the first tier that succeeded, or a typed failure."""

    success: bool
    data: Any = None
    tier: str | None = None
    elapsed_ms: int = 0
    failure: CompletionFailureKind | None = None
    errors: list[TierError] = Field(default_factory=list)
