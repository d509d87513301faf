"""
Jobs package - update check, deep check and title refresh, plus their coordination
"""

from .results import RunResult, RunStatus
from .coordinator import RunCoordinator, RunGuard
from .scheduler import JobScheduler

__all__ = ['RunResult', 'RunStatus', 'RunCoordinator', 'RunGuard', 'JobScheduler']
