"""
Directory acquisition pipeline.

Fetches paginated college listing pages, parses college cards out of the
markup, and inserts colleges that are not stored yet. Pages are processed
strictly in order; the records of one page are written concurrently.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional

import requests
from bs4 import BeautifulSoup

from models import CollegeRecord, ScrapeSummary
from utils import make_request_id

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; PathfinderCollegeDirectory/0.1) python-requests"

SleepFn = Callable[[float], Awaitable[None]]
FetchFn = Callable[[str], Awaitable[str]]


class FetchError(Exception):
    """Raised when a page could not be fetched within the retry budget."""

    def __init__(self, url: str, attempts: int, last_error: Optional[BaseException] = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"Failed to fetch {url} after {attempts} attempt(s): {last_error}")


def _get(url: str, timeout: float) -> str:
    resp = requests.get(
        url,
        headers={"User-Agent": USER_AGENT, "Accept-Language": "en-US,en;q=0.9"},
        timeout=timeout,
    )
    resp.raise_for_status()
    return resp.text


async def fetch_page(
    url: str,
    *,
    retries: int = 3,
    base_delay: float = 1.0,
    timeout: float = 20,
    sleep: SleepFn = asyncio.sleep,
) -> str:
    """GET ``url``, retrying with a linearly growing delay (``base_delay * attempt``)."""
    retries = max(1, retries)
    last_error: Optional[BaseException] = None
    for attempt in range(1, retries + 1):
        try:
            return await asyncio.to_thread(_get, url, timeout)
        except requests.RequestException as e:
            last_error = e
            logger.warning("[Scraper] Attempt %d/%d failed for %s: %s", attempt, retries, url, e)
            if attempt < retries:
                await sleep(base_delay * attempt)
    logger.error("[Scraper] All retries failed for %s", url)
    raise FetchError(url, retries, last_error)


def classify_ownership(text: str) -> str:
    lowered = text.lower()
    if "private" in lowered:
        return "Private"
    if "public" in lowered or "government" in lowered or "govt" in lowered:
        return "Government"
    return "Unknown"


class ListingParser(ABC):
    """Turns one listing page of a directory source into college records."""

    source: str = ""

    @abstractmethod
    def page_url(self, base_url: str, page: int) -> str:
        ...

    @abstractmethod
    def parse(self, html: str) -> List[CollegeRecord]:
        ...


class CollegeduniaParser(ListingParser):
    source = "collegedunia"

    def page_url(self, base_url: str, page: int) -> str:
        return f"{base_url.rstrip('/')}/colleges?page={page}"

    def parse(self, html: str) -> List[CollegeRecord]:
        # Upstream markup changes show up as an empty page rather than a crash
        try:
            return self._parse_cards(html)
        except Exception:
            logger.exception("[Scraper] Failed to parse %s listing markup", self.source)
            return []

    def _parse_cards(self, html: str) -> List[CollegeRecord]:
        soup = BeautifulSoup(html or "", "lxml")
        colleges: List[CollegeRecord] = []

        for card in soup.select("div.clg-tpl-parent-card"):
            name_el = card.select_one("h3.college_name")
            location_el = card.select_one('span[itemprop="addressLocality"]')
            name = name_el.get_text(strip=True) if name_el else ""
            location = location_el.get_text(strip=True) if location_el else ""
            parts = [p.strip() for p in location.split(",")]
            city = parts[0] if parts else ""
            state = parts[1] if len(parts) > 1 else ""

            link = card.select_one('a[data-csm-title="Official Website"]')
            website = link.get("href") if link else None

            category = None
            ownership = "Unknown"
            for detail in card.select(".clg-slice-parent > *"):
                text = detail.get_text(" ", strip=True)
                if not text or "approved by" in text.lower():
                    continue
                detected = classify_ownership(text)
                if detected != "Unknown":
                    ownership = detected
                elif not category:
                    category = text

            if name and city and state:
                colleges.append(CollegeRecord(
                    name=name,
                    city=city,
                    state=state,
                    category=category or "Unknown",
                    ownership=ownership,
                    website=website or None,
                ))

        return colleges


@dataclass
class PagePersistResult:
    inserted: int = 0
    skipped: int = 0
    failures: List[str] = field(default_factory=list)


async def persist_page(records: List[CollegeRecord], store: Any) -> PagePersistResult:
    """Insert-if-absent every record of one page concurrently.

    ``store`` needs ``insert_college_if_absent(doc_id, data) -> bool``. Each
    record's outcome is collected separately so a failed write does not hide
    the writes that succeeded.
    """
    async def _save(record: CollegeRecord) -> bool:
        return await asyncio.to_thread(
            store.insert_college_if_absent,
            record.key,
            record.model_dump(exclude_none=True),
        )

    outcomes = await asyncio.gather(*(_save(r) for r in records), return_exceptions=True)

    result = PagePersistResult()
    for record, outcome in zip(records, outcomes):
        if isinstance(outcome, BaseException):
            result.failures.append(f"Failed to save {record.name} ({record.key}): {outcome}")
        elif outcome:
            result.inserted += 1
        else:
            result.skipped += 1
    return result


async def run_pipeline(
    store: Any,
    parser: Optional[ListingParser] = None,
    *,
    base_url: str = "https://collegedunia.com",
    max_pages: int = 5,
    page_delay: float = 1.0,
    fetch_retries: int = 3,
    request_timeout: float = 20,
    sleep: SleepFn = asyncio.sleep,
    fetch: Optional[FetchFn] = None,
) -> ScrapeSummary:
    """
    Scrape listing pages from page 1 and store new colleges.

    Stops on the first page that cannot be fetched, the first page with no
    colleges, a persistence failure, or once ``max_pages`` pages are done.
    Always returns a summary; ``aborted`` is set when the run ended on an
    unexpected or persistence error.
    """
    parser = parser or CollegeduniaParser()
    if fetch is None:
        async def fetch(url: str) -> str:
            return await fetch_page(
                url,
                retries=fetch_retries,
                base_delay=page_delay,
                timeout=request_timeout,
                sleep=sleep,
            )

    run_id = make_request_id("scrape")
    summary = ScrapeSummary()
    logger.info("[Scraper] [%s] Starting college scraping process (max %d pages)...", run_id, max_pages)

    page = 1
    try:
        while page <= max_pages:
            url = parser.page_url(base_url, page)
            logger.info("[Scraper] [%s] Scraping page %d: %s", run_id, page, url)
            try:
                html = await fetch(url)
            except FetchError as e:
                error_msg = f"Failed to fetch page {page}. Stopping process."
                logger.error("[Scraper] [%s] %s (%s)", run_id, error_msg, e)
                summary.errors.append(error_msg)
                break

            colleges = parser.parse(html)
            if not colleges:
                logger.info("[Scraper] [%s] No colleges found on page %d. Assuming end of list.", run_id, page)
                break

            summary.total_scraped += len(colleges)
            result = await persist_page(colleges, store)
            summary.total_inserted += result.inserted
            summary.total_skipped += result.skipped
            logger.info(
                "[Scraper] [%s] Page %d - Scraped: %d, Inserted: %d, Skipped: %d",
                run_id, page, len(colleges), result.inserted, result.skipped,
            )

            if result.failures:
                summary.errors.extend(result.failures)
                summary.errors.append(f"Failed to save colleges from page {page}. Stopping process.")
                summary.aborted = True
                logger.error("[Scraper] [%s] %d record(s) failed on page %d", run_id, len(result.failures), page)
                break

            page += 1
            if page > max_pages:
                logger.info("[Scraper] [%s] Reached page limit of %d.", run_id, max_pages)
                break
            await sleep(page_delay)
    except Exception as e:
        logger.exception("[Scraper] [%s] An unexpected error occurred during the scraping process", run_id)
        summary.errors.append(str(e) or "An unknown error occurred.")
        summary.aborted = True
        return summary

    logger.info(
        "[Scraper] [%s] Scraping process completed: scraped=%d inserted=%d skipped=%d errors=%d",
        run_id, summary.total_scraped, summary.total_inserted, summary.total_skipped, len(summary.errors),
    )
    return summary


async def run_pipeline_from_settings(settings, store: Any) -> ScrapeSummary:
    return await run_pipeline(
        store,
        base_url=settings.scrape_base_url,
        max_pages=settings.scrape_max_pages,
        page_delay=settings.scrape_page_delay_seconds,
        fetch_retries=settings.scrape_fetch_retries,
        request_timeout=settings.scrape_request_timeout_seconds,
    )


def main() -> int:
    from config import get_settings
    from firebase_service import get_firebase_service

    parser = argparse.ArgumentParser(description="Scrape the college directory into Firestore.")
    parser.add_argument("--max-pages", type=int, default=None, help="Override SCRAPE_MAX_PAGES.")
    parser.add_argument("--base-url", default=None, help="Override SCRAPE_BASE_URL.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = get_settings()
    if args.max_pages is not None:
        settings.scrape_max_pages = args.max_pages
    if args.base_url:
        settings.scrape_base_url = args.base_url

    summary = asyncio.run(run_pipeline_from_settings(settings, get_firebase_service()))
    print(json.dumps(summary.model_dump(by_alias=True), indent=2))
    return 1 if summary.aborted else 0


if __name__ == "__main__":
    raise SystemExit(main())
