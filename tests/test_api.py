"""
Tests for the HTTP query API
"""
import json

import pytest
from unittest.mock import patch

from mdchecker.constants import DAY, HOUR, JOB_UPDATE_CHECK, MINUTE, SECOND
from mdchecker.exceptions import StoreException

from conftest import NOW


@pytest.fixture
def frozen_now():
    with patch("mdchecker.routes.checks.now_ms", return_value=NOW):
        yield NOW


def manga_check(client, manga_id="m1", last_check_epoch=0, user_id="user-1"):
    headers = {"user-id": user_id} if user_id else {}
    response = client.get(f"/manga-check?mangaId={manga_id}&lastCheckEpoch={last_check_epoch}", headers=headers)
    assert response.status_code == 200
    return json.loads(response.data)


class TestMangaCheck:
    """Tests for /manga-check"""

    def test_missing_user(self, client):
        assert manga_check(client, user_id=None) == {"epoch": 0, "state": "no-user"}

    def test_unknown_user(self, client):
        assert manga_check(client, user_id="stranger")["state"] == "no-user"

    def test_first_check_is_unknown_and_tracks(self, client, add_user, frozen_now, load_title):
        add_user("user-1")

        data = manga_check(client)

        assert data == {"epoch": NOW, "state": "unknown"}
        row = load_title("m1")
        assert row.last_check == NOW
        assert row.last_update == 0

    def test_stale_row_is_unknown(self, client, add_user, track, frozen_now):
        add_user("user-1")
        track("m1", last_check=NOW - 7 * DAY)

        assert manga_check(client)["state"] == "unknown"

    def test_single_view_is_updated(self, client, add_user, track, frozen_now, load_title):
        add_user("user-1")
        track("m1", last_check=NOW - DAY, last_update=0)

        assert manga_check(client, last_check_epoch=NOW - HOUR)["state"] == "updated"
        assert load_title("m1").last_check == NOW

    def test_library_sweep_current(self, client, add_user, track, frozen_now):
        add_user("user-1")
        track("m2", last_check=NOW - SECOND)
        track("m3", last_check=NOW - 2 * SECOND)
        track("m1", last_check=NOW - DAY, last_update=NOW - 2 * DAY)

        assert manga_check(client, last_check_epoch=NOW - DAY)["state"] == "current"

    def test_library_sweep_updated(self, client, add_user, track, frozen_now):
        add_user("user-1")
        track("m2", last_check=NOW - SECOND)
        track("m3", last_check=NOW - 2 * SECOND)
        track("m1", last_check=NOW - DAY, last_update=NOW - MINUTE)

        assert manga_check(client, last_check_epoch=NOW - DAY)["state"] == "updated"

    def test_missing_manga_id(self, client, add_user):
        add_user("user-1")
        response = client.get("/manga-check", headers={"user-id": "user-1"})
        assert json.loads(response.data)["state"] == "error"

    def test_store_failure_is_error_state(self, client, add_user):
        add_user("user-1")
        with patch("mdchecker.routes.checks.WatermarkRepository.recent_check_count",
                   side_effect=RuntimeError("database is locked")):
            assert manga_check(client) == {"epoch": 0, "state": "error"}


class TestLastUpdateCheck:
    """Tests for /last-update-check"""

    def get(self, client, user_id="user-1"):
        response = client.get(f"/last-update-check?userId={user_id}")
        assert response.status_code == 200
        return json.loads(response.data)

    def test_unknown_user(self, client):
        assert self.get(client, "stranger") == {"state": "no-user"}

    def test_no_runs(self, client, add_user):
        add_user("user-1")
        assert self.get(client) == {"state": "unknown"}

    def test_running(self, client, add_user, store):
        add_user("user-1")
        store.start_run(JOB_UPDATE_CHECK, NOW)

        data = self.get(client)

        assert data["state"] == "running"
        assert "start" in data

    def test_completed_hides_count_from_regular_users(self, client, add_user, store):
        add_user("user-1")
        store.start_run(JOB_UPDATE_CHECK, NOW)
        store.complete_run(JOB_UPDATE_CHECK, NOW, NOW + 3 * SECOND, 5)

        data = self.get(client)

        assert data["state"] == "completed"
        assert data["duration"] == "3 s"
        assert "count" not in data

    def test_admin_sees_count(self, client, add_user, store):
        add_user("admin", roles="ADMIN")
        store.start_run(JOB_UPDATE_CHECK, NOW)
        store.complete_run(JOB_UPDATE_CHECK, NOW, NOW + SECOND, 5)

        assert self.get(client, "admin")["count"] == 5

    def test_no_series(self, client, add_user, store):
        add_user("user-1")
        store.start_run(JOB_UPDATE_CHECK, NOW)
        store.complete_run(JOB_UPDATE_CHECK, NOW, NOW + SECOND, -1)

        assert self.get(client)["state"] == "no-series"

    def test_user_fetch_activity(self, client, add_user, track):
        add_user("user-1")
        track("m1", last_check=NOW, last_update=NOW + MINUTE)
        track("m2", last_check=NOW - HOUR, last_update=0)

        data = self.get(client)

        assert data["updatesSinceLastFetch"] == 1
        assert "lastUserFetch" in data


class TestSystemRoutes:
    def test_health(self, client):
        response = client.get("/health")
        data = json.loads(response.data)
        assert response.status_code == 200
        assert data["status"] == "healthy"

    def test_metrics(self, client):
        response = client.get("/metrics")
        assert response.status_code == 200
        assert b"mdchecker_runs_total" in response.data


class TestErrorHandlers:
    """Unhandled errors never leak their message to the client"""

    def test_checker_exception_is_generic_error(self, app):
        @app.route("/store-failure")
        def store_failure():
            raise StoreException("UPDATE user_manga failed: database is locked")

        response = app.test_client().get("/store-failure")

        assert response.status_code == 500
        assert json.loads(response.data) == {"state": "error"}
        assert b"database is locked" not in response.data

    def test_unexpected_exception_is_generic_error(self, app):
        @app.route("/crash")
        def crash():
            raise RuntimeError("secret internals")

        response = app.test_client().get("/crash")

        assert response.status_code == 500
        assert json.loads(response.data) == {"state": "error"}
