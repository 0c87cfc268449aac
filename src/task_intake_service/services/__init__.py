"""Business logic services."""

from .completion import TieredCompletionClient, build_default_tiers
from .confirmation import DeleteConfirmationManager, InMemoryPendingDeletionStore
from .dispatcher import IntentDispatcher
from .pipeline import TaskIntakePipeline, build_pipeline
from .prompt_builder import build_hierarchical_prompt, build_task_parsing_prompt
from .sanitizer import process_user_input, sanitize_user_input
from .task_store import SQLiteTaskStore
from .validator import create_safe_fallback_intent, gate_task_output, validate_task_output

__all__ = [
    "sanitize_user_input",
    "process_user_input",
    "build_hierarchical_prompt",
    "build_task_parsing_prompt",
    "TieredCompletionClient",
    "build_default_tiers",
    "validate_task_output",
    "create_safe_fallback_intent",
    "gate_task_output",
    "IntentDispatcher",
    "DeleteConfirmationManager",
    "InMemoryPendingDeletionStore",
    "SQLiteTaskStore",
    "TaskIntakePipeline",
    "build_pipeline",
]
