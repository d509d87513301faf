"""
Deep check
Probes the latest chapter of each stale title one at a time, to catch updates the
feed-based update check missed. Results are only persisted if every probe succeeds.
"""

import time
from typing import Dict

import structlog

from mdchecker.constants import JOB_DEEP_CHECK
from mdchecker.exceptions import CatalogException, CatalogMalformedResponse, CatalogUnavailableException
from mdchecker.jobs.results import RunResult

logger = structlog.get_logger("jobs.deep_check")


def deep_check_floor(candidate) -> int:
    """Publish time a chapter must beat to count as an update"""
    if candidate.last_update > candidate.last_deep_check:
        return candidate.last_update
    return candidate.last_deep_check_find


class DeepProber:
    def __init__(self, store, catalog, dispatcher=None, batch_size: int = 200, pause_every: int = 5,
                 pause_seconds: float = 1.0, progress_every: int = 10, stale_after_ms: int = 86_340_000,
                 recent_window_ms: int = 604_800_000, sleep=time.sleep):
        self.store = store
        self.catalog = catalog
        self.dispatcher = dispatcher
        self.batch_size = batch_size
        self.pause_every = pause_every
        self.pause_seconds = pause_seconds
        self.progress_every = progress_every
        self.stale_after_ms = stale_after_ms
        self.recent_window_ms = recent_window_ms
        self.sleep = sleep

    @classmethod
    def from_settings(cls, store, catalog, dispatcher, settings: Dict):
        return cls(store, catalog, dispatcher, **settings["deep"])

    def probe(self, candidate):
        """Returns (find_time, updated) for one title"""
        try:
            chapter = self.catalog.latest_chapter(candidate.manga_id)
        except CatalogMalformedResponse:
            chapter = None

        if chapter is None:
            return candidate.last_deep_check_find, False

        updated = chapter.publish_at > deep_check_floor(candidate)
        return max(chapter.publish_at, candidate.last_deep_check_find), updated

    def run(self, now: int, on_progress=None) -> RunResult:
        candidates = self.store.stale_deep_check_candidates(
            self.batch_size, now - self.recent_window_ms, now - self.stale_after_ms
        )
        if not candidates:
            logger.info("No stale titles to deep check")
            return RunResult.no_items()

        total = len(candidates)
        results = []
        updated = []
        logger.info(f"Deep checking {total} titles")

        try:
            for index, candidate in enumerate(candidates, start=1):
                find_time, is_updated = self.probe(candidate)
                results.append((candidate.manga_id, find_time))
                if is_updated:
                    updated.append(candidate.manga_id)

                if index % self.progress_every == 0:
                    if on_progress:
                        on_progress(index, total)
                    self.store.update_run_progress(JOB_DEEP_CHECK, now, index)

                # Respect catalog rate limits
                if index % self.pause_every == 0 and index < total:
                    self.sleep(self.pause_seconds)
        except CatalogUnavailableException as e:
            logger.warning(f"Deep check aborted after {len(results)} probes, catalog unavailable: {e.message}")
            return RunResult.service_unavailable()
        except CatalogException as e:
            logger.error(f"Deep check aborted after {len(results)} probes: {e.message}")
            return RunResult.unknown_error()

        self.store.apply_deep_check_batch(results, now)

        if updated:
            self.store.apply_update_batch(updated, now)
            logger.info(f"Deep check found {len(updated)} updated titles out of {total}")
            if self.dispatcher:
                try:
                    self.dispatcher.dispatch(now)
                except Exception as e:
                    logger.error(f"Notification dispatch failed after deep check: {e}", exc_info=True)

        return RunResult.completed(len(updated), extra=len(results))
