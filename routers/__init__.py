"""
API endpoints and request handling.
Can import from: services, models, middleware.auth_dependency
Must NOT import from: repositories (call via services)
"""

from . import auth, realtime, storage, tasks, user

__all__ = [
    "auth",
    "realtime",
    "storage",
    "tasks",
    "user"
]
