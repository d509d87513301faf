"""
Model: FailedTitle
"""

from mdchecker.db import db


class FailedTitle(db.Model):
    __tablename__ = "failed_title"

    manga_id = db.Column(db.String, primary_key=True)
    last_failure = db.Column(db.BigInteger, nullable=False)
