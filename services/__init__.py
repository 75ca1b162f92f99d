"""
Business logic layer.
Can import from: repositories, models, security, utils
Must NOT import from: routers
"""

from .attempt_tracker import AttemptTracker, InMemoryAttemptStore
from .rate_controller import RateController

__all__ = [
    "AttemptTracker",
    "InMemoryAttemptStore",
    "RateController"
]
