"""
mdchecker - Application factory
"""
import os

from flask import Flask

from mdchecker.constants import CONFIG_DIR, MDCHECKER_DB
from mdchecker.db import db, init_db
from mdchecker.exceptions import register_exception_handlers
from mdchecker.metrics import init_metrics
from mdchecker.routes.checks import checks_bp
from mdchecker.routes.system import system_bp
from mdchecker.settings import load_settings


def create_app(settings=None):
    """Application factory, shared by the web and worker processes"""
    settings = settings or load_settings()
    database_uri = settings["database"]["uri"]
    if database_uri == MDCHECKER_DB:
        os.makedirs(CONFIG_DIR, exist_ok=True)

    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = database_uri
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MDCHECKER_SETTINGS"] = settings

    db.init_app(app)
    register_exception_handlers(app)

    app.register_blueprint(checks_bp)
    app.register_blueprint(system_bp)
    init_metrics(app)

    init_db(app)
    return app
