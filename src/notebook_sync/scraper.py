"""Kindle notebook scraper: library list, per-book highlights, sync runner."""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, Optional

from playwright.async_api import (
    Error as PlaywrightError,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
)

from .catalog import CatalogStore
from .config import Settings, settings as default_settings
from .errors import ExtractionError, SyncInProgressError
from .models import Annotation, Credential, LibraryItem
from .session import capture_markup, open_session

logger = logging.getLogger(__name__)


LIBRARY_ITEM_SELECTOR = ".kp-notebook-library-each-book"
HIGHLIGHT_SELECTOR = ".kp-notebook-highlight"

FALLBACK_ID_NAMESPACE = uuid.UUID("6f1c5d2e-8a8b-4c1e-9a57-2f0b8c1d7e44")

LIBRARY_ROWS_SCRIPT = """
    (selector) => Array.from(document.querySelectorAll(selector)).map(book => {
        const text = el => (el && el.textContent) ? el.textContent.trim() : null;
        const searchable = book.querySelectorAll('.kp-notebook-searchable');
        const img = book.querySelector('img');
        return {
            title: text(searchable[0]),
            author: text(searchable[1]),
            cover: img ? img.src : null,
            id: book.getAttribute('id'),
        };
    })
"""

# Absence of a note element must come back as null, not ''.
HIGHLIGHT_ROWS_SCRIPT = """
    (selector) => Array.from(document.querySelectorAll(selector)).map(el => {
        const text = sel => {
            const node = el.querySelector(sel);
            return node ? (node.textContent || '').trim() : null;
        };
        return {
            text: text('.kp-notebook-highlight-text'),
            location: text('.kp-notebook-metadata'),
            note: text('.kp-notebook-note-text'),
        };
    })
"""


# =============================================================================
# Library view
# =============================================================================


def fallback_item_id(title: str, author: str, taken: set[str]) -> str:
    """
    Identifier for a library item whose markup carries no id.

    Derived from title and author so the same book keeps its id across
    syncs; same-named books within one sync get a numeric suffix.
    """
    base = "book-" + uuid.uuid5(FALLBACK_ID_NAMESPACE, f"{title}\x1f{author}").hex[:12]
    candidate = base
    suffix = 2
    while candidate in taken:
        candidate = f"{base}-{suffix}"
        suffix += 1
    return candidate


def parse_library_rows(rows: Iterable[dict], scraped_at: datetime) -> list[LibraryItem]:
    """Turn raw library rows (document order) into catalog items."""
    items: list[LibraryItem] = []
    taken: set[str] = set()

    for position, row in enumerate(rows):
        title = (row.get("title") or "").strip()
        if not title:
            logger.warning(f"Library item #{position} has no title element, skipping")
            continue

        author = (row.get("author") or "").strip() or "Unknown"
        native_id = (row.get("id") or "").strip()
        item_id = native_id or fallback_item_id(title, author, taken)
        if not native_id:
            logger.debug(f"No id on '{title}', using generated id {item_id}")
        taken.add(item_id)

        items.append(
            LibraryItem(
                id=item_id,
                title=title,
                author=author,
                cover_url=row.get("cover") or None,
                scraped_at=scraped_at,
                position=position,
                native_id=bool(native_id),
            )
        )

    return items


def on_library_view(page: Page, settings: Settings) -> bool:
    current = page.url.split("?", 1)[0].split("#", 1)[0].rstrip("/")
    return current == settings.library_url.rstrip("/")


async def _log_library_diagnostics(page: Page, settings: Settings) -> None:
    logger.warning("Library selector not found, capturing page for diagnosis")
    logger.info(f"Current URL: {page.url}")
    try:
        logger.info(f"Page title: {await page.title()}")
    except PlaywrightError as e:
        logger.warning(f"Could not read page title: {e}")
    snippet = await capture_markup(page, settings.diagnostic_snippet_chars)
    if snippet is not None:
        logger.info(f"Start of HTML: {snippet}")


async def extract_library(
    page: Page, settings: Settings = default_settings
) -> list[LibraryItem]:
    """
    Read the books listed on the notebook library view.

    An empty list is returned when the library never renders; the logged
    diagnostics are the only way to tell that apart from an empty library.

    Raises:
        ExtractionError: the view could not be opened or read.
    """
    if not on_library_view(page, settings):
        try:
            await page.goto(settings.library_url, wait_until="domcontentloaded")
        except PlaywrightError as e:
            raise ExtractionError(
                f"Could not open the library view: {e}", url=page.url
            ) from e

    try:
        await page.wait_for_selector(
            LIBRARY_ITEM_SELECTOR, timeout=settings.library_timeout_ms
        )
    except PlaywrightTimeoutError:
        await _log_library_diagnostics(page, settings)
        return []

    await page.wait_for_timeout(settings.library_settle_ms)  # Let dynamic content settle

    scraped_at = datetime.now(timezone.utc)
    try:
        rows = await page.evaluate(LIBRARY_ROWS_SCRIPT, LIBRARY_ITEM_SELECTOR)
    except PlaywrightError as e:
        raise ExtractionError(f"Could not read the library items: {e}", url=page.url) from e

    items = parse_library_rows(rows, scraped_at)
    logger.info(f"Extracted {len(items)} books from {len(rows)} library entries")
    return items


# =============================================================================
# Detail view
# =============================================================================


def parse_highlight_rows(rows: Iterable[dict]) -> list[Annotation]:
    return [
        Annotation(
            text=row.get("text") or "",
            location_label=row.get("location") or "",
            note=row.get("note"),
        )
        for row in rows
    ]


def detail_control(page: Page, item: LibraryItem) -> Locator:
    """Locator for the element that opens an item's highlights."""
    if item.native_id:
        return page.locator(f"id={item.id}")
    return page.locator(LIBRARY_ITEM_SELECTOR).nth(item.position)


async def return_to_library(page: Page, settings: Settings) -> None:
    await page.go_back(wait_until="domcontentloaded")
    if not on_library_view(page, settings):
        await page.goto(settings.library_url, wait_until="domcontentloaded")
    await page.wait_for_timeout(settings.return_dwell_ms)


async def extract_item_detail(
    page: Page, item: LibraryItem, settings: Settings = default_settings
) -> list[Annotation]:
    """Open one book, read its highlights in document order, come back."""
    await detail_control(page, item).first.click(
        timeout=settings.detail_click_timeout_ms
    )
    await page.wait_for_timeout(settings.detail_dwell_ms)

    rows = await page.evaluate(HIGHLIGHT_ROWS_SCRIPT, HIGHLIGHT_SELECTOR)
    highlights = parse_highlight_rows(rows)

    await return_to_library(page, settings)
    return highlights


async def _recover_library_view(page: Page, settings: Settings) -> None:
    if on_library_view(page, settings):
        return
    try:
        await page.goto(settings.library_url, wait_until="domcontentloaded")
        await page.wait_for_timeout(settings.return_dwell_ms)
    except PlaywrightError as e:
        logger.warning(f"Could not get back to the library view: {e}")


async def enrich_items(
    page: Page, items: list[LibraryItem], settings: Settings = default_settings
) -> list[LibraryItem]:
    """
    Attach highlights to every item, one book at a time, in library order.

    A book whose detail view fails comes back with no highlights and its
    ``detail_error`` set; the remaining books are still processed.
    """
    enriched: list[LibraryItem] = []
    total = len(items)

    for index, item in enumerate(items, start=1):
        logger.info(f"[{index}/{total}] Reading highlights: {item.title[:40]}...")
        try:
            highlights = await extract_item_detail(page, item, settings)
        except Exception as e:
            logger.warning(
                f"Failed to read highlights for '{item.title}' ({item.id}): {e}"
            )
            enriched.append(
                item.model_copy(
                    update={"highlights": [], "detail_error": str(e) or type(e).__name__}
                )
            )
            await _recover_library_view(page, settings)
            continue

        logger.info(f"  -> {len(highlights)} highlights")
        enriched.append(
            item.model_copy(update={"highlights": highlights, "detail_error": None})
        )

    return enriched


# =============================================================================
# Pipeline
# =============================================================================


Pipeline = Callable[[Credential, Settings], Awaitable[list[LibraryItem]]]


async def run_pipeline(
    credential: Credential, settings: Settings = default_settings
) -> list[LibraryItem]:
    """Sign in, read the library, then every book's highlights."""
    async with open_session(credential, settings) as session:
        items = await extract_library(session.page, settings)
        return await enrich_items(session.page, items, settings)


class SyncRunner:
    """Runs the pipeline and commits its result to the catalog, one sync at a time."""

    def __init__(
        self,
        store: CatalogStore,
        pipeline: Pipeline = run_pipeline,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.pipeline = pipeline
        self.settings = settings or default_settings
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    async def sync(self, credential: Credential) -> list[LibraryItem]:
        """
        Run a full sync and replace the catalog with its result.

        Raises:
            SyncInProgressError: another sync is running; requests are
                rejected rather than queued.
            AuthenticationError, ExtractionError: the pipeline failed and
                the catalog was left as it was.
        """
        if self._lock.locked():
            raise SyncInProgressError()

        async with self._lock:
            started = time.monotonic()
            logger.info("Starting sync...")
            items = await self.pipeline(credential, self.settings)
            self.store.replace(items)

            failed = sum(1 for item in items if item.detail_error)
            logger.info(
                f"Sync complete: {len(items)} books, "
                f"{failed} without highlights, {time.monotonic() - started:.1f}s"
            )
            if failed:
                logger.warning(
                    "Books without highlights: "
                    + ", ".join(item.title[:40] for item in items if item.detail_error)
                )
            return items
