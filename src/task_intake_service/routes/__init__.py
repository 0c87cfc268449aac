"""API route modules."""

from . import email, health, tasks

__all__ = ["health", "tasks", "email"]
