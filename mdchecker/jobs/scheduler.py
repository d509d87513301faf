"""
Background Jobs - cron bindings for every job type
"""
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
import structlog

from mdchecker.constants import JOB_DEEP_CHECK, JOB_TITLE_CHECK, JOB_UPDATE_CHECK

logger = structlog.get_logger('jobs.scheduler')

# job type -> settings["schedules"] key
SCHEDULE_KEYS = {
    JOB_UPDATE_CHECK: 'update',
    JOB_TITLE_CHECK: 'title',
    JOB_DEEP_CHECK: 'deep',
}


class JobScheduler:
    """Fires coordinator runs on cron-like ticks"""

    def __init__(self, coordinator, schedules, scheduler=None):
        self.coordinator = coordinator
        self.schedules = schedules
        self.scheduler = scheduler or BackgroundScheduler()
        self._jobs_registered = False

    def start(self):
        self._register_jobs()
        self.scheduler.start()
        logger.info("Job scheduler started")

    def _register_jobs(self):
        if self._jobs_registered:
            return

        for job_type, key in SCHEDULE_KEYS.items():
            expression = self.schedules.get(key)
            if not expression:
                logger.warning(f"No schedule configured for {job_type}, it will only run on demand")
                continue
            self.scheduler.add_job(
                func=self._run_job,
                trigger=CronTrigger.from_crontab(expression),
                id=job_type,
                name=job_type,
                args=[job_type],
                max_instances=1,
                coalesce=True,
            )
            logger.info(f"Scheduled {job_type} at '{expression}'")

        self._jobs_registered = True

    def _run_job(self, job_type):
        # The result is already persisted and logged by the coordinator
        self.coordinator.trigger(job_type)

    def shutdown(self):
        if self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Job scheduler shutdown")
