from flask_sqlalchemy import SQLAlchemy
import structlog

logger = structlog.get_logger("db")

db = SQLAlchemy()


def init_db(app):
    """Create any missing tables. The schema itself is owned by the deployment."""
    # Models must be imported so their tables are registered on the metadata
    from mdchecker import models  # noqa: F401

    with app.app_context():
        db.create_all()
        logger.info(f"Database ready ({app.config['SQLALCHEMY_DATABASE_URI'].split('://')[0]})")


def shutdown_db(app):
    with app.app_context():
        db.session.remove()
        db.engine.dispose()
