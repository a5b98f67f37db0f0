"""Pydantic models for the extracted catalog and the API schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    computed_field,
)
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Snake case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# =============================================================================
# Catalog
# =============================================================================


class Credential(BaseModel):
    """Sign-in pair for one session. Never persisted."""

    model_config = ConfigDict(frozen=True)

    identifier: str
    secret: SecretStr

    def masked_identifier(self) -> str:
        """Identifier safe for log lines, e.g. 'j***@example.com'."""
        name, at, domain = self.identifier.partition("@")
        if not name:
            return "***"
        return f"{name[0]}***{at}{domain}"


class Annotation(CamelModel):
    """One highlight with its location marker and optional note."""

    text: str
    location_label: str = ""
    note: Optional[str] = None


class LibraryItem(CamelModel):
    """One book of the library, enriched with its highlights."""

    id: str
    title: str
    author: str = "Unknown"
    cover_url: Optional[str] = None
    scraped_at: datetime
    highlights: list[Annotation] = Field(default_factory=list)
    detail_error: Optional[str] = None

    # Where the item sat in the library view, used to reach its detail
    # control when the markup gave it no id.
    position: int = Field(default=0, exclude=True)
    native_id: bool = Field(default=True, exclude=True)

    @computed_field(alias="highlightCount")
    @property
    def highlight_count(self) -> int:
        return len(self.highlights)


class CatalogStats(CamelModel):
    """Aggregates over the current catalog."""

    total_books: int
    total_highlights: int
    average_highlights_per_book: float
    most_highlighted_book: Optional[LibraryItem] = None


# =============================================================================
# API schemas
# =============================================================================


class HealthResponse(CamelModel):
    """Health check response."""

    status: str
    timestamp: str
    last_sync: Optional[datetime] = None


class SyncRequest(BaseModel):
    """Sync request body. Fields are optional so the handler can answer 400."""

    identifier: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("identifier", "email")
    )
    secret: Optional[SecretStr] = Field(
        default=None, validation_alias=AliasChoices("secret", "password")
    )


class SyncResponse(CamelModel):
    """Successful sync response."""

    success: bool
    message: str
    item_count: int
    items: list[LibraryItem]
    synced_at: str


class BooksResponse(CamelModel):
    """Catalog listing response."""

    items: list[LibraryItem]
    count: int
    last_sync: Optional[datetime] = None


class ErrorResponse(BaseModel):
    """Error payload shared by the 4xx/5xx responses."""

    error: str
    details: Optional[str] = None
    diagnostics: Optional[dict[str, Any]] = None
