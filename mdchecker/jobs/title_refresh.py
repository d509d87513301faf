"""
Title refresh
Batch-fetches display metadata for titles whose cached metadata is missing or stale.
"""

from typing import Dict

import structlog

from mdchecker.exceptions import CatalogException
from mdchecker.jobs.results import RunResult

logger = structlog.get_logger("jobs.title_refresh")


class TitleRefresher:
    def __init__(self, store, catalog, batch_size: int = 100, stale_after_ms: int = 172_800_000):
        self.store = store
        self.catalog = catalog
        self.batch_size = batch_size
        self.stale_after_ms = stale_after_ms

    @classmethod
    def from_settings(cls, store, catalog, settings: Dict):
        return cls(store, catalog, **settings["titles"])

    def run(self, now: int, on_progress=None) -> RunResult:
        manga_ids = self.store.stale_title_candidates(self.batch_size, now - self.stale_after_ms)
        if not manga_ids:
            return RunResult.no_items()

        try:
            infos = self.catalog.title_details(manga_ids, page_size=self.batch_size)
        except CatalogException as e:
            logger.error(f"Title refresh of {len(manga_ids)} titles failed: {e.message}")
            return RunResult.unknown_error()

        requested = set(manga_ids)
        resolved = {info.manga_id: info for info in infos if info.manga_id in requested}
        missing = [manga_id for manga_id in manga_ids if manga_id not in resolved]

        if resolved:
            self.store.apply_title_metadata(resolved.values(), now)
            self.store.clear_failed_titles(list(resolved))
        if missing:
            # Left with the old last_title_check so the next cycle retries them
            self.store.record_failed_titles(missing, now)
            logger.warning(f"Catalog returned no metadata for {len(missing)} titles", titles=missing[:10])

        logger.info(f"Title refresh resolved {len(resolved)} of {len(manga_ids)} titles")
        return RunResult.completed(len(resolved), extra=len(missing))
