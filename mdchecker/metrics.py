from prometheus_client import Counter, Histogram, Gauge, generate_latest, CONTENT_TYPE_LATEST
from flask import Response

# Job Metrics
runs_total = Counter("mdchecker_runs_total", "Total job runs by result", ["job_type", "result"])

run_duration_seconds = Histogram("mdchecker_run_duration_seconds", "Job run duration", ["job_type"])

runs_active = Gauge("mdchecker_runs_active", "Number of job runs in progress", ["job_type"])

# Catalog Metrics
catalog_requests_total = Counter(
    "mdchecker_catalog_requests_total", "Total catalog requests", ["endpoint", "outcome"]
)

# Notification Metrics
notifications_total = Counter("mdchecker_notifications_total", "Push notifications sent", ["outcome"])


class ActiveRunTracker:
    """Context manager for tracking active runs of one job type.

    Example:
        with ActiveRunTracker('deep-check'):
            perform_run()
    """

    def __init__(self, job_type):
        self.job_type = job_type
        self._timer = None

    def __enter__(self):
        runs_active.labels(job_type=self.job_type).inc()
        self._timer = run_duration_seconds.labels(job_type=self.job_type).time()
        self._timer.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._timer.__exit__(exc_type, exc_val, exc_tb)
        runs_active.labels(job_type=self.job_type).dec()
        return False


def init_metrics(app):
    """Expose Prometheus metrics on /metrics"""

    @app.route("/metrics")
    def metrics():
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST)
