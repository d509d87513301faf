"""
Pytest fixtures and configuration for mdchecker tests
"""
import pytest
from unittest.mock import MagicMock

from mdchecker.app import create_app
from mdchecker.catalog import CatalogClient
from mdchecker.constants import DEFAULT_SETTINGS, HOUR
from mdchecker.db import db
from mdchecker.models import TrackedTitle, User
from mdchecker.repositories import WatermarkRepository
from mdchecker.settings import merge_settings

# A fixed "now" for every run, in epoch milliseconds
NOW = 1_760_000_000_000


@pytest.fixture
def settings():
    """Default settings bound to an in-memory database"""
    return merge_settings(DEFAULT_SETTINGS, {
        "database": {"uri": "sqlite://"},
        "push": {"app_token": "app-token"},
    })


@pytest.fixture
def app(settings):
    app = create_app(settings)
    with app.app_context():
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def store(app):
    return WatermarkRepository


@pytest.fixture
def catalog():
    """Catalog client double; configure side effects per test"""
    return MagicMock(spec=CatalogClient)


@pytest.fixture
def mock_logger():
    logger = MagicMock()
    logger.info = MagicMock()
    logger.error = MagicMock()
    logger.warning = MagicMock()
    logger.debug = MagicMock()
    return logger


@pytest.fixture
def track(app):
    """Add a tracked (user, title) row and commit it"""
    def _track(manga_id, user_id="user-1", last_check=NOW - HOUR, **fields):
        row = TrackedTitle(user_id=user_id, manga_id=manga_id, last_check=last_check, **fields)
        db.session.add(row)
        db.session.commit()
        return row
    return _track


@pytest.fixture
def add_user(app):
    def _add_user(user_id, roles=None, pushover_token=None, pushover_app_token_override=None):
        user = User(user_id=user_id, roles=roles, pushover_token=pushover_token,
                    pushover_app_token_override=pushover_app_token_override)
        db.session.add(user)
        db.session.commit()
        return user
    return _add_user


@pytest.fixture
def load_title(app):
    """Read a tracked row fresh from the database"""
    def _load(manga_id, user_id="user-1"):
        db.session.expire_all()
        return db.session.get(TrackedTitle, (user_id, manga_id))
    return _load
