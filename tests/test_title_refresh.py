"""
Tests for the title metadata refresh
"""
import pytest

from mdchecker.catalog import TitleInfo
from mdchecker.constants import DAY, HOUR
from mdchecker.exceptions import CatalogUnavailableException
from mdchecker.jobs.results import RunStatus
from mdchecker.jobs.title_refresh import TitleRefresher

from conftest import NOW


@pytest.fixture
def refresher(store, catalog):
    return TitleRefresher(store, catalog)


class TestTitleRefresher:
    """Tests for TitleRefresher.run"""

    def test_nothing_stale(self, refresher, catalog, track):
        track("a", last_title_check=NOW - HOUR)

        assert refresher.run(NOW).status == RunStatus.NO_ITEMS
        catalog.title_details.assert_not_called()

    def test_partial_resolution(self, refresher, store, catalog, track, load_title):
        """Titles the catalog omits are recorded as failed and retried next time"""
        track("a")
        track("b")
        track("c")
        store.record_failed_titles(["a"], NOW - DAY)
        catalog.title_details.return_value = [
            TitleInfo("a", "Title A", "ongoing", None, "12"),
            TitleInfo("c", "Title C", "completed", "4", "40"),
        ]

        result = refresher.run(NOW)

        assert result.count == 2
        assert result.extra == 1
        assert store.failed_title_ids() == ["b"]
        assert load_title("a").title == "Title A"
        assert load_title("a").last_title_check == NOW
        assert load_title("c").last_volume == "4"
        assert load_title("b").last_title_check == 0
        assert store.stale_title_candidates(10, NOW - HOUR) == ["b"]

    def test_full_resolution_is_idempotent(self, refresher, store, catalog, track, load_title):
        track("a")
        catalog.title_details.return_value = [TitleInfo("a", "Title A", "ongoing")]

        refresher.run(NOW)
        later = NOW + 3 * DAY
        result = refresher.run(later)

        assert result.count == 1
        assert store.failed_title_ids() == []
        assert load_title("a").last_title_check == later

    def test_ignores_unrequested_titles(self, refresher, store, catalog, track, load_title):
        track("a")
        catalog.title_details.return_value = [TitleInfo("a", "A"), TitleInfo("zz", "Unknown")]

        result = refresher.run(NOW)

        assert result.count == 1
        assert result.extra == 0

    def test_catalog_failure(self, refresher, store, catalog, track, load_title):
        track("a")
        catalog.title_details.side_effect = CatalogUnavailableException("down", 503)

        result = refresher.run(NOW)

        assert result.code == -2
        assert store.failed_title_ids() == []
        assert load_title("a").last_title_check == 0

    def test_requests_one_page(self, store, catalog, track):
        for i in range(5):
            track(f"m{i}")
        catalog.title_details.return_value = []
        refresher = TitleRefresher(store, catalog, batch_size=3)

        result = refresher.run(NOW)

        ids = catalog.title_details.call_args[0][0]
        assert len(ids) == 3
        assert catalog.title_details.call_args[1]["page_size"] == 3
        assert result.count == 0
        assert result.extra == 3

    def test_failing_title_does_not_starve_batch(self, store, catalog, track):
        """With a batch of one, a title the catalog never returns still lets healthy titles through"""
        track("a-gone")
        track("b-healthy")
        catalog.title_details.side_effect = lambda ids, page_size: [
            TitleInfo(manga_id, "Title") for manga_id in ids if manga_id != "a-gone"
        ]
        refresher = TitleRefresher(store, catalog, batch_size=1)

        for cycle in range(5):
            refresher.run(NOW + cycle * 6 * HOUR)

        requested = [call[0][0] for call in catalog.title_details.call_args_list]
        assert requested[:2] == [["a-gone"], ["b-healthy"]]
        assert store.failed_title_ids() == ["a-gone"]
