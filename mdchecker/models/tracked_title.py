"""
Model: TrackedTitle
"""

from mdchecker.db import db


class TrackedTitle(db.Model):
    """A title some user has asked about. All times are epoch milliseconds."""

    __tablename__ = "user_manga"

    user_id = db.Column(db.String, primary_key=True)
    manga_id = db.Column(db.String, primary_key=True, index=True)

    # Watermarks
    last_check = db.Column(db.BigInteger, nullable=False, default=0, index=True)
    last_update = db.Column(db.BigInteger, nullable=False, default=0)
    last_deep_check = db.Column(db.BigInteger, nullable=False, default=0)
    last_deep_check_find = db.Column(db.BigInteger, nullable=False, default=0)

    # Cached catalog metadata
    title = db.Column(db.String)
    status = db.Column(db.String(20))
    last_volume = db.Column(db.String(20))
    last_chapter = db.Column(db.String(20))
    last_title_check = db.Column(db.BigInteger, nullable=False, default=0)
