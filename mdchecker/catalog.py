"""
Catalog client for the MangaDex API
Stateless wrapper around the chapter feed, the latest-chapter probe and the title details endpoint
"""

import html
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import requests
import structlog

from mdchecker.constants import MANGADEX_API, MANGADEX_DOMAIN
from mdchecker.exceptions import CatalogException, CatalogMalformedResponse
from mdchecker.metrics import catalog_requests_total
from mdchecker.utils import epoch_to_iso, parse_iso_epoch

logger = structlog.get_logger("catalog")

LATIN_LETTER = re.compile(r"[A-Za-z]")

LATEST_CHAPTER_LIMIT = 10

# Raised while reading a single item of an otherwise valid payload
MALFORMED_ITEM_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


@dataclass
class ChapterEvent:
    """One published chapter from the feed"""

    manga_id: Optional[str]
    publish_at: int
    pages: int


@dataclass
class ChangePage:
    items: List[ChapterEvent] = field(default_factory=list)
    total: int = 0


@dataclass
class TitleInfo:
    manga_id: str
    title: Optional[str]
    status: Optional[str] = None
    last_volume: Optional[str] = None
    last_chapter: Optional[str] = None


def _empty_to_none(value):
    if value is None:
        return None
    value = str(value)
    return value if value else None


def choose_title(attributes: Dict) -> Optional[str]:
    """Prefer the english title, then the first alternate title with a latin letter, then any alternate, else None"""
    titles = attributes.get("title") or {}
    title = titles.get("en")
    if not title:
        alternates = []
        for alt in attributes.get("altTitles") or []:
            alternates.extend(v for v in alt.values() if v)
        title = next((t for t in alternates if LATIN_LETTER.search(t)), None)
        if not title:
            title = alternates[0] if alternates else None
    return html.unescape(title) if title else None


def parse_chapter(chapter: Dict) -> ChapterEvent:
    manga_id = next(
        (rel.get("id") for rel in chapter.get("relationships") or [] if rel.get("type") == "manga"),
        None,
    )
    attributes = chapter.get("attributes") or {}
    return ChapterEvent(
        manga_id=manga_id,
        publish_at=parse_iso_epoch(attributes.get("publishAt")) or 0,
        pages=int(attributes.get("pages") or 0),
    )


def parse_title(manga: Dict) -> TitleInfo:
    attributes = manga.get("attributes") or {}
    return TitleInfo(
        manga_id=manga.get("id"),
        title=choose_title(attributes),
        status=_empty_to_none(attributes.get("status")),
        last_volume=_empty_to_none(attributes.get("lastVolume")),
        last_chapter=_empty_to_none(attributes.get("lastChapter")),
    )


class CatalogClient:
    """Issues filtered, paginated queries against the catalog and classifies the outcome.

    Every method raises CatalogUnavailableException for rate limit / availability statuses,
    CatalogException for any other failure, and CatalogMalformedResponse when a 200 carries no data.
    """

    def __init__(self, api_url: str = MANGADEX_API, site_url: str = MANGADEX_DOMAIN,
                 timeout: float = 15, languages: List[str] = None, session: requests.Session = None):
        self.api_url = api_url.rstrip("/")
        self.site_url = site_url.rstrip("/")
        self.timeout = timeout
        self.languages = languages or ["en"]
        self.session = session or requests.Session()
        self.session.headers.update({"Referer": f"{self.site_url}/", "User-Agent": "mdchecker"})

    @classmethod
    def from_settings(cls, settings: Dict):
        catalog = settings["catalog"]
        return cls(
            api_url=catalog["api_url"],
            site_url=catalog["site_url"],
            timeout=catalog["timeout"],
            languages=catalog["languages"],
        )

    def _get(self, endpoint: str, params: Dict) -> Optional[Dict]:
        """GET an endpoint; None means the catalog had no content"""
        url = f"{self.api_url}/{endpoint}"
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            catalog_requests_total.labels(endpoint=endpoint, outcome="transport_error").inc()
            raise CatalogException(f"Request to catalog {endpoint} failed: {e}") from e

        if response.status_code == 204:
            catalog_requests_total.labels(endpoint=endpoint, outcome="empty").inc()
            return None

        if response.status_code != 200:
            error = CatalogException.from_status(response.status_code, endpoint)
            catalog_requests_total.labels(endpoint=endpoint, outcome=error.code.lower()).inc()
            raise error

        try:
            payload = response.json()
        except ValueError as e:
            catalog_requests_total.labels(endpoint=endpoint, outcome="malformed").inc()
            raise CatalogMalformedResponse(f"{endpoint} returned invalid JSON") from e

        if not isinstance(payload, dict) or payload.get("data") is None:
            catalog_requests_total.labels(endpoint=endpoint, outcome="malformed").inc()
            raise CatalogMalformedResponse(f"{endpoint} response has no data (params={params})")

        catalog_requests_total.labels(endpoint=endpoint, outcome="success").inc()
        return payload

    def changes_since(self, since: int, offset: int, page_size: int) -> Optional[ChangePage]:
        """One page of the chapter feed published since `since` (epoch ms), newest first"""
        payload = self._get("chapter", {
            "limit": page_size,
            "offset": offset,
            "publishAtSince": epoch_to_iso(since),
            "order[publishAt]": "desc",
            "translatedLanguage[]": self.languages,
            "includeFutureUpdates": "0",
        })
        if payload is None:
            return None
        try:
            return ChangePage(
                items=[parse_chapter(chapter) for chapter in payload["data"]],
                total=int(payload.get("total") or 0),
            )
        except MALFORMED_ITEM_ERRORS as e:
            raise CatalogMalformedResponse(f"chapter feed page at offset {offset} has an unreadable item: {e}") from e

    def latest_chapter(self, manga_id: str) -> Optional[ChapterEvent]:
        """Most recent chapter of a title that actually has pages"""
        payload = self._get("chapter", {
            "manga": manga_id,
            "limit": LATEST_CHAPTER_LIMIT,
            "order[publishAt]": "desc",
            "translatedLanguage[]": self.languages,
            "includeFutureUpdates": "0",
        })
        if payload is None:
            return None
        try:
            for chapter in payload["data"]:
                event = parse_chapter(chapter)
                if event.pages > 0:
                    return event
        except MALFORMED_ITEM_ERRORS as e:
            raise CatalogMalformedResponse(f"latest chapter of {manga_id} is unreadable: {e}") from e
        return None

    def title_details(self, manga_ids: List[str], page_size: int = 100) -> List[TitleInfo]:
        if len(manga_ids) > page_size:
            raise ValueError(f"Cannot fetch {len(manga_ids)} titles in one page of {page_size}")
        if not manga_ids:
            return []
        payload = self._get("manga", {"ids[]": list(manga_ids), "limit": page_size})
        if payload is None:
            return []
        try:
            return [parse_title(manga) for manga in payload["data"] if manga.get("id")]
        except MALFORMED_ITEM_ERRORS as e:
            raise CatalogMalformedResponse(f"manga details have an unreadable item: {e}") from e
