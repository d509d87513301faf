"""
Incremental update check
Walks the catalog chapter feed newest-first down to the update watermark and
bumps last_update for every tracked title that published something.
"""

from typing import Dict, List, Set, Tuple

import structlog

from mdchecker.exceptions import CatalogException, CatalogMalformedResponse, CatalogUnavailableException
from mdchecker.jobs.results import RunResult

logger = structlog.get_logger("jobs.incremental")


class IncrementalScanner:
    def __init__(self, store, catalog, dispatcher=None, page_size: int = 100, max_requests: int = 100,
                 safety_margin_ms: int = 60_000, fallback_window_ms: int = 86_400_000,
                 recent_window_ms: int = 604_800_000):
        self.store = store
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.page_size = page_size
        self.max_requests = max_requests
        self.safety_margin_ms = safety_margin_ms
        self.fallback_window_ms = fallback_window_ms
        self.recent_window_ms = recent_window_ms

    @classmethod
    def from_settings(cls, store, catalog, dispatcher, settings: Dict):
        return cls(store, catalog, dispatcher, **settings["incremental"])

    def determine_watermark(self, now: int) -> int:
        latest = self.store.latest_update_watermark()
        if latest is None:
            # No update seen yet, look one window back
            return now - self.fallback_window_ms
        return latest - self.safety_margin_ms

    def find_updated(self, tracked: Set[str], since: int) -> Tuple[List[str], bool]:
        """Page through the feed and collect tracked titles. Returns (titles, hit_pagination_cap)."""
        updated = []
        seen = set()
        offset = 0
        requests_made = 0

        while True:
            try:
                page = self.catalog.changes_since(since, offset, self.page_size)
            except CatalogMalformedResponse:
                if offset == 0:
                    raise
                logger.warning(f"Stopping feed scan at offset {offset} after a malformed page")
                return updated, False
            requests_made += 1

            if page is None:
                logger.debug(f"Feed returned no content at offset {offset}")
                return updated, False

            for item in page.items:
                if item.manga_id in tracked and item.manga_id not in seen:
                    seen.add(item.manga_id)
                    updated.append(item.manga_id)

            offset += self.page_size
            if not page.items or page.total <= offset:
                return updated, False
            if requests_made >= self.max_requests:
                logger.warning(f"Hit the feed pagination cap of {self.max_requests} requests at offset {offset}")
                return updated, True

    def run(self, now: int, on_progress=None) -> RunResult:
        tracked = self.store.tracked_title_ids(now - self.recent_window_ms)
        if not tracked:
            logger.info("No titles checked recently, nothing to scan")
            return RunResult.no_items()

        since = self.determine_watermark(now)
        try:
            updated, hit_cap = self.find_updated(set(tracked), since)
        except CatalogUnavailableException as e:
            logger.warning(f"Update check aborted, catalog unavailable: {e.message}")
            return RunResult.service_unavailable()
        except CatalogException as e:
            logger.error(f"Update check aborted: {e.message}")
            return RunResult.unknown_error()

        extra = 1 if hit_cap else 0
        if not updated:
            return RunResult.completed(0, extra=extra)

        self.store.apply_update_batch(updated, now)
        logger.info(f"Update check found {len(updated)} updated titles out of {len(tracked)} tracked")

        if self.dispatcher:
            try:
                self.dispatcher.dispatch(now)
            except Exception as e:
                logger.error(f"Notification dispatch failed after update check: {e}", exc_info=True)

        return RunResult.completed(len(updated), extra=extra)
