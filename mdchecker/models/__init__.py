"""
Models package

- tracked_title.py: per (user, title) watermarks and cached title metadata
- check_run.py: one row per job invocation
- failed_title.py: titles whose metadata currently cannot be resolved
- user.py: users allowed to query, with their push tokens
"""

from .tracked_title import TrackedTitle
from .check_run import CheckRun
from .failed_title import FailedTitle
from .user import User

__all__ = [
    "TrackedTitle",
    "CheckRun",
    "FailedTitle",
    "User",
]
