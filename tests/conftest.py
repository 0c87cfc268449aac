"""Shared fixtures: a throwaway SQLite store and a scripted completion backend."""

import asyncio
import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from task_intake_service.main import app
from task_intake_service.models.completion import CompletionTier
from task_intake_service.routes.deps import get_pipeline
from task_intake_service.services.completion import TieredCompletionClient
from task_intake_service.services.confirmation import DeleteConfirmationManager
from task_intake_service.services.pipeline import TaskIntakePipeline
from task_intake_service.services.task_store import SQLiteTaskStore

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


class FakeBackend:
    """
    Completion backend that replays scripted responses.

    Each response is a string (returned as-is), a dict (returned as JSON) or
    an exception (raised). The last response repeats once the script runs out.
    """

    def __init__(self, *responses: Any, delay: float = 0.0):
        self.responses = list(responses)
        self.delay = delay
        self.prompts: list[str] = []

    async def complete(self, prompt: str, model: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if isinstance(response, dict):
            return json.dumps(response)
        return response


def make_tier(backend: FakeBackend, name: str = "fake", timeout_seconds: float = 1.0) -> CompletionTier:
    return CompletionTier(name=name, backend=backend, model=f"{name}-model", timeout_seconds=timeout_seconds)


def run(coro: Any) -> Any:
    """Drive a coroutine from a sync test."""
    return asyncio.run(coro)


@pytest.fixture
def task_store(tmp_path: Path) -> SQLiteTaskStore:
    store = SQLiteTaskStore(tmp_path / "tasks.db")
    store.init_db()
    return store


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend({"error": "no script"})


@pytest.fixture
def pipeline(task_store: SQLiteTaskStore, backend: FakeBackend) -> TaskIntakePipeline:
    return TaskIntakePipeline(
        task_store=task_store,
        completion_client=TieredCompletionClient([make_tier(backend)]),
        confirmations=DeleteConfirmationManager(task_store, timeout_seconds=10.0),
    )


@pytest.fixture
def client(pipeline: TaskIntakePipeline) -> Iterator[TestClient]:
    app.dependency_overrides[get_pipeline] = lambda: pipeline
    try:
        yield TestClient(app, headers={"X-User-Id": USER_ID})
    finally:
        app.dependency_overrides.clear()
