"""
Model: User
"""

from mdchecker.constants import ROLE_ADMIN
from mdchecker.db import db


class User(db.Model):
    __tablename__ = "user_id"

    user_id = db.Column(db.String, primary_key=True)
    roles = db.Column(db.String)  # Comma separated
    pushover_token = db.Column(db.String)
    pushover_app_token_override = db.Column(db.String)

    @property
    def role_list(self):
        return [r.strip() for r in (self.roles or "").split(",") if r.strip()]

    @property
    def is_admin(self):
        return ROLE_ADMIN in self.role_list
