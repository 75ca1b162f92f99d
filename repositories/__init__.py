"""
In-memory persistence collaborators.
Can import from: models
Must NOT import from: services, routers
"""

from .user_repository import UserRepository
from .task_repository import TaskRepository

__all__ = [
    "UserRepository",
    "TaskRepository",
]
