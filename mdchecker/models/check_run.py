"""
Model: CheckRun
"""

from mdchecker.db import db


class CheckRun(db.Model):
    """Execution log for update, title and deep check jobs"""

    __tablename__ = "check_run"

    run_type = db.Column(db.String(20), primary_key=True)
    start_time = db.Column(db.BigInteger, primary_key=True)
    end_time = db.Column(db.BigInteger)  # null while running
    result_code = db.Column(db.Integer)

    # update-check: 1 if the pagination cap was hit; deep-check: titles probed
    extra = db.Column(db.Integer)
    # deep-check: titles processed so far
    progress = db.Column(db.Integer, default=0)

    @property
    def is_running(self):
        return self.end_time is None or self.end_time <= 0
