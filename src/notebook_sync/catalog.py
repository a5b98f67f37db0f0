"""In-memory catalog of synced books."""

import logging
from datetime import datetime
from typing import Iterable, Optional

from .models import CatalogStats, LibraryItem

logger = logging.getLogger(__name__)


class CatalogStore:
    """
    Holds the result of the last successful sync.

    ``replace`` swaps a single immutable snapshot, so readers see either
    the old catalog or the new one, never a mix. Reads take the snapshot
    reference once and never modify it.
    """

    def __init__(self, items: Iterable[LibraryItem] = ()):
        self._snapshot: tuple[tuple[LibraryItem, ...], dict[str, LibraryItem]] = (
            self._build(items)
        )

    @staticmethod
    def _build(items: Iterable[LibraryItem]):
        ordered = tuple(items)
        index: dict[str, LibraryItem] = {}
        for item in ordered:
            # First occurrence wins, matching a linear scan
            index.setdefault(item.id, item)
        return ordered, index

    def replace(self, items: Iterable[LibraryItem]) -> None:
        """Swap the whole catalog for ``items``."""
        snapshot = self._build(items)
        self._snapshot = snapshot
        logger.info(f"Catalog replaced: {len(snapshot[0])} books")

    def all(self) -> list[LibraryItem]:
        """Current catalog in sync order."""
        return list(self._snapshot[0])

    def get(self, item_id: str) -> Optional[LibraryItem]:
        """Get a single book by id, or None if it is not in the catalog."""
        return self._snapshot[1].get(item_id)

    def last_sync(self) -> Optional[datetime]:
        """Extraction time of the first book, or None for an empty catalog."""
        items = self._snapshot[0]
        return items[0].scraped_at if items else None

    def stats(self) -> CatalogStats:
        """Totals, mean highlights per book and the most highlighted book."""
        items = self._snapshot[0]
        total_books = len(items)
        total_highlights = sum(item.highlight_count for item in items)

        most_highlighted: Optional[LibraryItem] = None
        for item in items:
            # Strict comparison keeps the first of several tied books
            if most_highlighted is None or item.highlight_count > most_highlighted.highlight_count:
                most_highlighted = item

        return CatalogStats(
            total_books=total_books,
            total_highlights=total_highlights,
            average_highlights_per_book=(
                round(total_highlights / total_books, 2) if total_books else 0
            ),
            most_highlighted_book=most_highlighted,
        )
