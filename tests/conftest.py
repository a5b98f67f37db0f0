"""Pytest configuration and shared fixtures."""

import os
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient, ASGITransport

# Set test environment variables before importing app modules
os.environ["BROWSER_HEADLESS"] = "true"
os.environ["API_PREFIX"] = ""

from notebook_sync.catalog import CatalogStore
from notebook_sync.config import Settings
from notebook_sync.models import Annotation, LibraryItem
from notebook_sync.scraper import SyncRunner


SCRAPED_AT = datetime(2024, 1, 15, 9, 30, tzinfo=timezone.utc)


def make_item(item_id: str, title: str, highlights: int = 0, **kwargs) -> LibraryItem:
    """Library item with ``highlights`` numbered annotations."""
    return LibraryItem(
        id=item_id,
        title=title,
        author=kwargs.pop("author", "Test Author"),
        cover_url=kwargs.pop("cover_url", f"https://example.com/{item_id}.jpg"),
        scraped_at=kwargs.pop("scraped_at", SCRAPED_AT),
        highlights=[
            Annotation(text=f"{title} highlight {n}", location_label=f"Location {n * 10}")
            for n in range(1, highlights + 1)
        ],
        **kwargs,
    )


@pytest.fixture
def test_settings():
    """Settings with every dwell period disabled."""
    return Settings(
        entry_dwell_ms=0,
        sign_in_dwell_ms=0,
        typing_delay_ms=0,
        post_type_dwell_ms=0,
        continue_dwell_ms=0,
        library_settle_ms=0,
        detail_dwell_ms=0,
        return_dwell_ms=0,
    )


@pytest.fixture
def sample_items():
    """Three synced books: A (2 highlights), B (failed), C (5 highlights)."""
    return [
        make_item("A", "The Great Book", highlights=2),
        make_item("B", "Another Book", detail_error="Timeout 10000ms exceeded"),
        make_item("C", "Third Book", highlights=5),
    ]


@pytest.fixture
def catalog():
    """Empty catalog store."""
    return CatalogStore()


class FakePipeline:
    """Stands in for the browser pipeline; records the credentials it saw."""

    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.calls = []

    async def __call__(self, credential, settings):
        self.calls.append(credential)
        if self.error is not None:
            raise self.error
        return list(self.items)


@pytest.fixture
def fake_pipeline(sample_items):
    """Pipeline that returns the sample items."""
    return FakePipeline(items=sample_items)


@pytest.fixture
def runner(catalog, fake_pipeline, test_settings):
    """Sync runner wired to the fake pipeline."""
    return SyncRunner(catalog, pipeline=fake_pipeline, settings=test_settings)


@pytest.fixture
async def async_client(catalog, runner, test_settings):
    """Create an async HTTP client for API testing."""
    from notebook_sync.main import create_app

    app = create_app(catalog=catalog, runner=runner, app_settings=test_settings)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
