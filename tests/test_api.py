"""Tests for API endpoints."""

import asyncio

import pytest
from httpx import AsyncClient

from conftest import make_item
from notebook_sync.errors import ExtractionError, LoginTimeoutError, SelectorNotFoundError


CREDENTIALS = {"identifier": "reader@example.com", "secret": "hunter2-secret"}


@pytest.mark.asyncio
class TestHealthEndpoint:
    """Tests for /health endpoint."""

    async def test_health_returns_healthy(self, async_client: AsyncClient):
        """GET /health should return healthy status."""
        response = await async_client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data

    async def test_health_reports_last_sync(self, async_client: AsyncClient, catalog, sample_items):
        """GET /health should include when the catalog was last synced."""
        catalog.replace(sample_items)

        response = await async_client.get("/health")

        assert response.json()["lastSync"].startswith("2024-01-15T09:30:00")


@pytest.mark.asyncio
class TestSyncEndpoint:
    """Tests for /sync endpoint."""

    async def test_sync_returns_items(self, async_client: AsyncClient, fake_pipeline):
        """POST /sync should run the pipeline and return the enriched items."""
        response = await async_client.post("/sync", json=CREDENTIALS)

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["itemCount"] == 3
        assert [item["id"] for item in data["items"]] == ["A", "B", "C"]
        assert [item["highlightCount"] for item in data["items"]] == [2, 0, 5]
        assert "syncedAt" in data
        assert len(fake_pipeline.calls) == 1

    async def test_sync_replaces_catalog(self, async_client: AsyncClient, catalog):
        """POST /sync should make the new items visible through /books."""
        catalog.replace([make_item("OLD", "Old Book")])

        await async_client.post("/sync", json=CREDENTIALS)
        response = await async_client.get("/books")

        assert [item["id"] for item in response.json()["items"]] == ["A", "B", "C"]

    async def test_sync_accepts_email_password_aliases(
        self, async_client: AsyncClient, fake_pipeline
    ):
        """POST /sync should accept email/password field names."""
        response = await async_client.post(
            "/sync", json={"email": "reader@example.com", "password": "pw"}
        )

        assert response.status_code == 200
        assert fake_pipeline.calls[0].identifier == "reader@example.com"
        assert fake_pipeline.calls[0].secret.get_secret_value() == "pw"

    @pytest.mark.parametrize(
        "body",
        [
            {},
            {"identifier": "reader@example.com"},
            {"secret": "pw"},
            {"identifier": "   ", "secret": "pw"},
            {"identifier": "reader@example.com", "secret": ""},
        ],
    )
    async def test_sync_missing_fields_returns_400(
        self, async_client: AsyncClient, fake_pipeline, body
    ):
        """POST /sync should answer 400 before any browser work."""
        response = await async_client.post("/sync", json=body)

        assert response.status_code == 400
        assert "error" in response.json()
        assert fake_pipeline.calls == []

    async def test_sync_without_body_returns_400(self, async_client: AsyncClient, fake_pipeline):
        """POST /sync with no body at all should also be a 400."""
        response = await async_client.post("/sync")

        assert response.status_code == 400
        assert fake_pipeline.calls == []

    async def test_sync_non_string_secret_returns_400_without_echo(
        self, async_client: AsyncClient, fake_pipeline
    ):
        """A malformed credential should be a 400 that does not repeat the value."""
        response = await async_client.post(
            "/sync", json={"identifier": "reader@example.com", "secret": 987654321}
        )

        assert response.status_code == 400
        data = response.json()
        assert "error" in data
        assert "detail" not in data
        assert "987654321" not in response.text
        assert fake_pipeline.calls == []

    async def test_sync_diagnostics_never_echo_secret(
        self, async_client: AsyncClient, fake_pipeline
    ):
        """Markup captured on failure must not carry the secret back."""
        fake_pipeline.error = LoginTimeoutError(
            "https://www.amazon.com/ap/signin",
            30000,
            markup_snippet=f'<input value="{CREDENTIALS["secret"]}">',
        )

        response = await async_client.post("/sync", json=CREDENTIALS)

        assert response.status_code == 500
        assert "markupSnippet" in response.json()["diagnostics"]
        assert CREDENTIALS["secret"] not in response.text

    async def test_sync_failure_returns_500_and_keeps_catalog(
        self, async_client: AsyncClient, catalog, fake_pipeline
    ):
        """A failed sync should answer 500 and leave the previous catalog queryable."""
        catalog.replace([make_item("OLD", "Old Book", highlights=1)])
        fake_pipeline.error = ExtractionError("Could not read the library items")

        response = await async_client.post("/sync", json=CREDENTIALS)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "Sync failed"
        assert "Could not read the library items" in data["details"]

        books = (await async_client.get("/books")).json()
        assert [item["id"] for item in books["items"]] == ["OLD"]

    async def test_sync_selector_failure_reports_diagnostics(
        self, async_client: AsyncClient, fake_pipeline
    ):
        """Authentication failures should carry the attempted selectors."""
        fake_pipeline.error = SelectorNotFoundError(
            "identifier",
            ["#ap_email", 'input[name="email"]'],
            [{"type": "text", "id": "search", "name": "q", "placeholder": ""}],
        )

        response = await async_client.post("/sync", json=CREDENTIALS)

        assert response.status_code == 500
        diagnostics = response.json()["diagnostics"]
        assert diagnostics["attemptedSelectors"] == ["#ap_email", 'input[name="email"]']
        assert diagnostics["availableInputs"][0]["id"] == "search"

    async def test_sync_error_never_echoes_secret(
        self, async_client: AsyncClient, fake_pipeline
    ):
        """The secret must not appear in the error payload."""
        fake_pipeline.error = RuntimeError(f"typing {CREDENTIALS['secret']} failed")

        response = await async_client.post("/sync", json=CREDENTIALS)

        assert response.status_code == 500
        assert CREDENTIALS["secret"] not in response.text

    async def test_concurrent_sync_is_rejected(self, async_client: AsyncClient, runner):
        """A second sync while one is running should get 409."""
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_pipeline(credential, settings):
            started.set()
            await release.wait()
            return [make_item("A", "The Great Book")]

        runner.pipeline = slow_pipeline

        first = asyncio.create_task(async_client.post("/sync", json=CREDENTIALS))
        await started.wait()

        second = await async_client.post("/sync", json=CREDENTIALS)
        release.set()
        first_response = await first

        assert second.status_code == 409
        assert first_response.status_code == 200


@pytest.mark.asyncio
class TestBooksEndpoint:
    """Tests for /books endpoints."""

    async def test_books_empty_initially(self, async_client: AsyncClient):
        """GET /books should return an empty list before any sync."""
        response = await async_client.get("/books")

        assert response.status_code == 200
        data = response.json()
        assert data["items"] == []
        assert data["count"] == 0
        assert data["lastSync"] is None

    async def test_books_returns_catalog(self, async_client: AsyncClient, catalog, sample_items):
        """GET /books should return all books in sync order."""
        catalog.replace(sample_items)

        response = await async_client.get("/books")

        data = response.json()
        assert data["count"] == 3
        assert [item["title"] for item in data["items"]] == [
            "The Great Book",
            "Another Book",
            "Third Book",
        ]
        assert data["lastSync"].startswith("2024-01-15T09:30:00")

    async def test_book_by_id(self, async_client: AsyncClient, catalog, sample_items):
        """GET /books/{id} should return the book with its highlights."""
        catalog.replace(sample_items)

        response = await async_client.get("/books/C")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "C"
        assert data["highlightCount"] == 5
        assert data["highlights"][0]["locationLabel"] == "Location 10"
        assert "position" not in data

    async def test_book_404_for_missing(self, async_client: AsyncClient):
        """GET /books/{id} should return 404 for an unknown id."""
        response = await async_client.get("/books/NONEXISTENT")

        assert response.status_code == 404
        assert "error" in response.json()

    async def test_note_null_and_empty_survive(self, async_client: AsyncClient, catalog):
        """A null note and an empty note should stay distinct over the API."""
        item = make_item("N", "Noted Book", highlights=2)
        item.highlights[0].note = None
        item.highlights[1].note = ""
        catalog.replace([item])

        highlights = (await async_client.get("/books/N")).json()["highlights"]

        assert highlights[0]["note"] is None
        assert highlights[1]["note"] == ""


@pytest.mark.asyncio
class TestStatsEndpoint:
    """Tests for /stats endpoint."""

    async def test_stats_empty(self, async_client: AsyncClient):
        """GET /stats on an empty catalog should return zeros."""
        response = await async_client.get("/stats")

        assert response.status_code == 200
        assert response.json() == {
            "totalBooks": 0,
            "totalHighlights": 0,
            "averageHighlightsPerBook": 0,
            "mostHighlightedBook": None,
        }

    async def test_stats_after_sync(self, async_client: AsyncClient):
        """GET /stats should aggregate the synced catalog."""
        await async_client.post("/sync", json=CREDENTIALS)

        data = (await async_client.get("/stats")).json()

        assert data["totalBooks"] == 3
        assert data["totalHighlights"] == 7
        assert data["averageHighlightsPerBook"] == 2.33
        assert data["mostHighlightedBook"]["id"] == "C"


@pytest.mark.asyncio
class TestApiPrefix:
    """Routes can be mounted under a prefix such as /api."""

    async def test_prefixed_routes(self, test_settings):
        from httpx import ASGITransport, AsyncClient

        from notebook_sync.main import create_app

        test_settings.api_prefix = "/api"
        app = create_app(app_settings=test_settings)

        transport = ASGITransport(app=app)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            assert (await client.get("/api/health")).status_code == 200
            assert (await client.get("/health")).status_code == 404
