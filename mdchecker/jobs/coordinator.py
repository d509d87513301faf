"""
Run coordinator
One single-flight guard per job type, and the one entry point both the scheduler
and the control socket use to run a job.
"""

import threading
from typing import Callable, Dict, Optional

import structlog

from mdchecker.catalog import CatalogClient
from mdchecker.constants import JOB_DEEP_CHECK, JOB_TITLE_CHECK, JOB_UPDATE_CHECK
from mdchecker.jobs.deep_check import DeepProber
from mdchecker.jobs.incremental import IncrementalScanner
from mdchecker.jobs.results import RunResult
from mdchecker.jobs.title_refresh import TitleRefresher
from mdchecker.metrics import ActiveRunTracker, runs_total
from mdchecker.notifications import NotificationDispatcher
from mdchecker.repositories import WatermarkRepository
from mdchecker.utils import now_ms

logger = structlog.get_logger("jobs.coordinator")

ProgressCallback = Callable[[int, int], None]


class RunGuard:
    """In-process "is running" flag for one job type"""

    def __init__(self):
        self._lock = threading.Lock()
        self._running = False

    def acquire(self) -> bool:
        with self._lock:
            if self._running:
                return False
            self._running = True
            return True

    def release(self):
        with self._lock:
            self._running = False

    @property
    def running(self) -> bool:
        with self._lock:
            return self._running


class RunCoordinator:
    def __init__(self, app, store, runners: Dict[str, Callable], clock=now_ms, quiet: bool = False):
        self.app = app
        self.store = store
        self.runners = runners
        self.clock = clock
        self.quiet = quiet
        self.guards = {job_type: RunGuard() for job_type in runners}

    @classmethod
    def from_settings(cls, app, settings: Dict, store=WatermarkRepository):
        catalog = CatalogClient.from_settings(settings)
        dispatcher = NotificationDispatcher.from_settings(store, settings)
        runners = {
            JOB_UPDATE_CHECK: IncrementalScanner.from_settings(store, catalog, dispatcher, settings).run,
            JOB_TITLE_CHECK: TitleRefresher.from_settings(store, catalog, settings).run,
            JOB_DEEP_CHECK: DeepProber.from_settings(store, catalog, dispatcher, settings).run,
        }
        return cls(app, store, runners, quiet=settings["logging"]["no_start_stop_logs"])

    @property
    def job_types(self):
        return list(self.runners)

    def is_running(self, job_type: str) -> bool:
        return self.guards[job_type].running

    def trigger(self, job_type: str, on_progress: Optional[ProgressCallback] = None) -> RunResult:
        """Run a job now unless one of the same type is in flight. Never raises for run failures."""
        if job_type not in self.runners:
            raise ValueError(f"Unknown job type: {job_type}")

        guard = self.guards[job_type]
        if not guard.acquire():
            logger.info(f"{job_type} already in progress.")
            return RunResult.already_running()

        try:
            with self.app.app_context():
                return self._execute(job_type, on_progress)
        finally:
            guard.release()

    def _execute(self, job_type: str, on_progress: Optional[ProgressCallback]) -> RunResult:
        epoch = self.clock()
        if not self.quiet:
            logger.info(f"Starting {job_type} run", epoch=epoch)

        with ActiveRunTracker(job_type):
            try:
                self.store.start_run(job_type, epoch)
            except Exception as e:
                logger.error(f"Could not record start of {job_type} run: {e}")
                runs_total.labels(job_type=job_type, result="unknown_error").inc()
                return RunResult.unknown_error()

            try:
                result = self.runners[job_type](epoch, on_progress)
            except Exception as e:
                logger.error(f"Error during {job_type} run: {e}", exc_info=True)
                result = RunResult.unknown_error()

            self._complete(job_type, epoch, result)

        runs_total.labels(job_type=job_type, result=result.status).inc()
        if not self.quiet or result.is_failure:
            logger.info(f"Finished {job_type} run", result_code=result.code, extra=result.extra)
        return result

    def _complete(self, job_type: str, epoch: int, result: RunResult):
        try:
            self.store.complete_run(job_type, epoch, self.clock(), result.code, result.extra)
        except Exception as e:
            logger.error(f"Encountered error updating {job_type} run result: {e}")
