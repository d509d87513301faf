"""
Tests for the watermark store
"""
from mdchecker.constants import DAY, HOUR, JOB_DEEP_CHECK, JOB_UPDATE_CHECK, MINUTE, WEEK
from mdchecker.catalog import TitleInfo

from conftest import NOW


class TestTrackedTitleQueries:
    """Tests for the reads the jobs rely on"""

    def test_tracked_title_ids_only_recent_and_distinct(self, store, track):
        """Titles checked in the window are returned once, old ones are left out"""
        track("a", user_id="u1")
        track("a", user_id="u2")
        track("b", user_id="u1", last_check=NOW - 2 * DAY)
        track("old", user_id="u1", last_check=NOW - 2 * WEEK)

        ids = store.tracked_title_ids(NOW - WEEK)

        assert sorted(ids) == ["a", "b"]

    def test_latest_update_watermark_none_when_never_updated(self, store, track):
        track("a")
        assert store.latest_update_watermark() is None

    def test_latest_update_watermark_is_max(self, store, track):
        track("a", last_update=NOW - DAY)
        track("b", last_update=NOW - HOUR)
        assert store.latest_update_watermark() == NOW - HOUR

    def test_stale_deep_check_candidates_order_and_filter(self, store, track):
        """Least recently deep-checked first, fresh and abandoned titles excluded"""
        threshold = NOW - DAY + MINUTE
        track("never", last_deep_check=0)
        track("older", last_deep_check=NOW - 5 * DAY, last_deep_check_find=NOW - 6 * DAY)
        track("fresh-update", last_update=NOW - HOUR)
        track("fresh-deep", last_deep_check=NOW - HOUR)
        track("abandoned", last_check=NOW - 2 * WEEK)

        candidates = store.stale_deep_check_candidates(10, NOW - WEEK, threshold)

        assert [c.manga_id for c in candidates] == ["never", "older"]
        assert candidates[1].last_deep_check_find == NOW - 6 * DAY

    def test_stale_deep_check_candidates_respects_limit(self, store, track):
        for i in range(5):
            track(f"m{i}")
        assert len(store.stale_deep_check_candidates(3, NOW - WEEK, NOW)) == 3

    def test_stale_title_candidates(self, store, track):
        track("never-fetched")
        track("stale", last_title_check=NOW - 3 * DAY)
        track("fresh", last_title_check=NOW - HOUR)

        ids = store.stale_title_candidates(10, NOW - 2 * DAY)

        assert ids == ["never-fetched", "stale"]

    def test_failed_titles_go_last(self, store, track):
        """A title the catalog keeps failing on does not hold the head of the batch"""
        track("a-gone")
        track("b-failed-later")
        track("c-healthy", last_title_check=NOW - 3 * DAY)
        store.record_failed_titles(["b-failed-later"], NOW - HOUR)
        store.record_failed_titles(["a-gone"], NOW - DAY)

        ids = store.stale_title_candidates(10, NOW - 2 * DAY)

        assert ids == ["c-healthy", "a-gone", "b-failed-later"]


class TestWatermarkWrites:
    """Watermarks must only ever move forward"""

    def test_apply_update_batch_sets_every_user_row(self, store, track, load_title):
        track("a", user_id="user-1")
        track("a", user_id="user-2")
        track("b", user_id="user-1")

        store.apply_update_batch(["a"], NOW)

        assert load_title("a", "user-1").last_update == NOW
        assert load_title("a", "user-2").last_update == NOW
        assert load_title("b", "user-1").last_update == 0

    def test_apply_update_batch_never_moves_back(self, store, track, load_title):
        track("a", last_update=NOW)
        store.apply_update_batch(["a"], NOW - DAY)
        assert load_title("a").last_update == NOW

    def test_apply_deep_check_batch_is_monotonic(self, store, track, load_title):
        track("a", last_deep_check=NOW - DAY, last_deep_check_find=NOW - 2 * DAY)

        store.apply_deep_check_batch([("a", NOW - 3 * DAY)], NOW)
        row = load_title("a")
        assert row.last_deep_check == NOW
        assert row.last_deep_check_find == NOW - 2 * DAY

        store.apply_deep_check_batch([("a", NOW - HOUR)], NOW - DAY)
        row = load_title("a")
        assert row.last_deep_check == NOW
        assert row.last_deep_check_find == NOW - HOUR

    def test_apply_title_metadata(self, store, track, load_title):
        track("a")
        store.apply_title_metadata([TitleInfo("a", "Title A", "ongoing", "3", "21")], NOW)

        row = load_title("a")
        assert row.title == "Title A"
        assert row.status == "ongoing"
        assert row.last_volume == "3"
        assert row.last_chapter == "21"
        assert row.last_title_check == NOW


class TestFailedTitles:
    def test_record_replaces_previous_failure(self, store):
        store.record_failed_titles(["a"], NOW - DAY)
        store.record_failed_titles(["a", "b"], NOW)

        assert store.failed_title_ids() == ["a", "b"]

    def test_clear(self, store):
        store.record_failed_titles(["a", "b"], NOW)
        store.clear_failed_titles(["a", "missing"])
        assert store.failed_title_ids() == ["b"]


class TestCheckRuns:
    def test_run_lifecycle(self, store):
        store.start_run(JOB_DEEP_CHECK, NOW)
        run = store.latest_run(JOB_DEEP_CHECK)
        assert run.is_running

        store.update_run_progress(JOB_DEEP_CHECK, NOW, 30)
        store.complete_run(JOB_DEEP_CHECK, NOW, NOW + MINUTE, 4, 50)

        run = store.latest_run(JOB_DEEP_CHECK)
        assert not run.is_running
        assert run.progress == 30
        assert run.result_code == 4
        assert run.extra == 50
        assert store.latest_run(JOB_UPDATE_CHECK) is None


class TestUsersToNotify:
    def test_counts_titles_updated_at_epoch(self, store, track, add_user):
        add_user("user-1", pushover_token="tok-1")
        add_user("user-2", pushover_token="tok-2", pushover_app_token_override="app-2")
        add_user("user-3")
        track("a", user_id="user-1", last_update=NOW)
        track("b", user_id="user-1", last_update=NOW)
        track("c", user_id="user-1", last_update=NOW - DAY)
        track("a", user_id="user-2", last_update=NOW)
        track("a", user_id="user-3", last_update=NOW)

        targets = store.users_to_notify(NOW)

        assert [(t.user_id, t.count) for t in targets] == [("user-1", 2), ("user-2", 1)]
        assert targets[1].pushover_app_token_override == "app-2"
