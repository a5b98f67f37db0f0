"""Exceptions raised by the extraction pipeline."""

from typing import Any, Optional


class NotebookSyncError(Exception):
    """Base class for pipeline failures."""

    def diagnostics(self) -> dict[str, Any]:
        """Context safe to hand back to API callers (never credentials)."""
        return {}


class AuthenticationError(NotebookSyncError):
    """Sign-in could not be completed."""


class SelectorNotFoundError(AuthenticationError):
    """None of the candidate selectors for a login control matched."""

    def __init__(
        self,
        field: str,
        attempted: list[str],
        available_inputs: Optional[list[dict]] = None,
        markup_snippet: Optional[str] = None,
    ):
        self.field = field
        self.attempted = list(attempted)
        self.available_inputs = available_inputs or []
        self.markup_snippet = markup_snippet
        super().__init__(
            f"Could not find the {field} field "
            f"(tried {len(self.attempted)} selectors: {', '.join(self.attempted)})"
        )

    def diagnostics(self) -> dict[str, Any]:
        details = {
            "field": self.field,
            "attemptedSelectors": self.attempted,
            "availableInputs": self.available_inputs,
        }
        if self.markup_snippet:
            details["markupSnippet"] = self.markup_snippet
        return details


class LoginTimeoutError(AuthenticationError):
    """The post-login redirect did not happen in time."""

    def __init__(
        self,
        url: str,
        timeout_ms: int,
        reason: Optional[str] = None,
        markup_snippet: Optional[str] = None,
    ):
        self.url = url
        self.timeout_ms = timeout_ms
        self.reason = reason
        self.markup_snippet = markup_snippet
        message = f"No redirect to the notebook within {timeout_ms} ms (stuck on {url})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)

    def diagnostics(self) -> dict[str, Any]:
        details = {"url": self.url, "timeoutMs": self.timeout_ms, "reason": self.reason}
        if self.markup_snippet:
            details["markupSnippet"] = self.markup_snippet
        return details


class ExtractionError(NotebookSyncError):
    """The library view could not be read."""

    def __init__(self, message: str, url: Optional[str] = None):
        self.url = url
        super().__init__(message)

    def diagnostics(self) -> dict[str, Any]:
        return {"url": self.url} if self.url else {}


class SyncInProgressError(NotebookSyncError):
    """A sync is already running in this process."""

    def __init__(self):
        super().__init__("A sync is already in progress")
