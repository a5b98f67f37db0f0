"""FastAPI application exposing the synced Kindle notebook."""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from playwright.async_api import Error as PlaywrightError

from .catalog import CatalogStore
from .config import Settings, settings
from .errors import NotebookSyncError, SyncInProgressError
from .models import (
    BooksResponse,
    CatalogStats,
    Credential,
    ErrorResponse,
    HealthResponse,
    LibraryItem,
    SyncRequest,
    SyncResponse,
)
from .scraper import SyncRunner

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

router = APIRouter()

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
}


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def get_runner(request: Request) -> SyncRunner:
    return request.app.state.runner


def error_response(
    status_code: int,
    error: str,
    details: Optional[str] = None,
    diagnostics: Optional[dict] = None,
) -> JSONResponse:
    payload = ErrorResponse(error=error, details=details, diagnostics=diagnostics)
    return JSONResponse(status_code=status_code, content=payload.model_dump(exclude_none=True))


def scrub(message: str, credential: Credential) -> str:
    """Remove the secret from anything echoed back to the caller."""
    secret = credential.secret.get_secret_value()
    return message.replace(secret, "***") if secret else message


def scrub_diagnostics(diagnostics: dict, credential: Credential) -> Optional[dict]:
    cleaned = {
        key: scrub(value, credential) if isinstance(value, str) else value
        for key, value in diagnostics.items()
    }
    return cleaned or None


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Answer malformed bodies with 400 and never echo the submitted values."""
    fields = sorted(
        {".".join(str(part) for part in error["loc"][1:]) or "body" for error in exc.errors()}
    )
    logger.warning(f"Rejected request to {request.url.path}: invalid {', '.join(fields)}")
    return error_response(
        400, "Invalid request body", details=f"Invalid fields: {', '.join(fields)}"
    )


# Routes


@router.get("/health", response_model=HealthResponse)
async def health_check(catalog: CatalogStore = Depends(get_catalog)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        last_sync=catalog.last_sync(),
    )


@router.post("/sync", response_model=SyncResponse, responses=ERROR_RESPONSES)
async def sync_library(
    body: Optional[SyncRequest] = Body(default=None),
    runner: SyncRunner = Depends(get_runner),
):
    """
    Sign in with the given credentials and replace the catalog.
    Runs the whole extraction before answering; only one sync at a time.
    """
    identifier = (body.identifier or "").strip() if body else ""
    secret = body.secret.get_secret_value() if body and body.secret else ""
    if not identifier or not secret:
        return error_response(400, "identifier and secret are required")

    credential = Credential(identifier=identifier, secret=secret)
    try:
        items = await runner.sync(credential)
    except SyncInProgressError as e:
        return error_response(409, str(e))
    except NotebookSyncError as e:
        logger.error(f"Sync failed: {scrub(str(e), credential)}")
        return error_response(
            500,
            "Sync failed",
            details=scrub(str(e), credential),
            diagnostics=scrub_diagnostics(e.diagnostics(), credential),
        )
    except PlaywrightError as e:
        logger.error(f"Sync failed in the browser: {scrub(str(e), credential)}")
        return error_response(500, "Sync failed", details=scrub(str(e), credential))
    except Exception as e:
        logger.error(f"Sync error ({type(e).__name__}): {scrub(str(e), credential)}")
        return error_response(500, "Sync failed", details=scrub(str(e), credential))

    return SyncResponse(
        success=True,
        message=f"{len(items)} books synchronized",
        item_count=len(items),
        items=items,
        synced_at=datetime.now(timezone.utc).isoformat(),
    )


@router.get("/books", response_model=BooksResponse)
async def list_books(catalog: CatalogStore = Depends(get_catalog)) -> BooksResponse:
    """Get every book of the last successful sync."""
    items = catalog.all()
    return BooksResponse(items=items, count=len(items), last_sync=catalog.last_sync())


@router.get("/books/{item_id}", response_model=LibraryItem, responses=ERROR_RESPONSES)
async def get_book(item_id: str, catalog: CatalogStore = Depends(get_catalog)):
    """Get a specific book with its highlights."""
    item = catalog.get(item_id)
    if item is None:
        return error_response(404, "Book not found")
    return item


@router.get("/stats", response_model=CatalogStats)
async def get_stats(catalog: CatalogStore = Depends(get_catalog)) -> CatalogStats:
    """Highlight statistics over the catalog."""
    return catalog.stats()


def create_app(
    catalog: Optional[CatalogStore] = None,
    runner: Optional[SyncRunner] = None,
    app_settings: Settings = settings,
) -> FastAPI:
    """Build the API around a catalog store and the runner that fills it."""
    if catalog is None:
        catalog = runner.store if runner is not None else CatalogStore()
    if runner is None:
        runner = SyncRunner(catalog, settings=app_settings)

    app = FastAPI(
        title="Kindle Notebook Sync API",
        description="Kindle library, highlights and notes extracted from the notebook",
        version="1.0.0",
    )
    app.state.catalog = catalog
    app.state.runner = runner

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.include_router(router, prefix=app_settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Entry point for running the server."""
    import uvicorn

    uvicorn.run(
        "notebook_sync.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=False,
    )


if __name__ == "__main__":
    run()
