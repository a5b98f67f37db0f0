"""Browser context configuration that hides the usual automation tells."""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import BrowserContext, Error as PlaywrightError

from .config import Settings

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_LAUNCH_ARGS = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-blink-features=AutomationControlled",
    "--disable-dev-shm-usage",
    # Disable WebAuthn/passkey to prevent system prompts during login
    "--disable-features=WebAuthentication,WebAuthenticationConditionalUI",
)


@dataclass(frozen=True)
class StealthProfile:
    """Fixed fingerprint applied when the browsing context is created."""

    user_agent: str = DEFAULT_USER_AGENT
    viewport: dict[str, int] = field(
        default_factory=lambda: {"width": 1920, "height": 1080}
    )
    locale: str = "en-US"
    timezone_id: str = "America/New_York"
    languages: tuple[str, ...] = ("en-US", "en")
    launch_args: tuple[str, ...] = DEFAULT_LAUNCH_ARGS

    @property
    def extra_http_headers(self) -> dict[str, str]:
        accept_language = ",".join(
            lang if i == 0 else f"{lang};q=0.9"
            for i, lang in enumerate(self.languages)
        )
        return {
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
            "Accept-Language": accept_language,
            "Accept-Encoding": "gzip, deflate, br",
            "DNT": "1",
            "Connection": "keep-alive",
            "Upgrade-Insecure-Requests": "1",
        }

    def context_options(self) -> dict[str, Any]:
        """Keyword arguments for ``browser.new_context``."""
        return {
            "user_agent": self.user_agent,
            "viewport": dict(self.viewport),
            "locale": self.locale,
            "timezone_id": self.timezone_id,
            "permissions": ["geolocation"],
            "extra_http_headers": self.extra_http_headers,
        }

    def init_script(self) -> str:
        """Script run in every frame before any page script."""
        languages = json.dumps(list(self.languages))
        return f"""
            Object.defineProperty(navigator, 'webdriver', {{
                get: () => false,
            }});

            window.chrome = window.chrome || {{}};
            window.chrome.runtime = window.chrome.runtime || {{}};

            Object.defineProperty(navigator, 'plugins', {{
                get: () => [1, 2, 3, 4, 5],
            }});

            Object.defineProperty(navigator, 'languages', {{
                get: () => {languages},
            }});

            // Disable WebAuthn to prevent passkey prompts
            if (navigator.credentials) {{
                navigator.credentials.get = async () => {{ throw new Error('WebAuthn disabled'); }};
                navigator.credentials.create = async () => {{ throw new Error('WebAuthn disabled'); }};
            }}
            if (window.PublicKeyCredential) {{
                window.PublicKeyCredential.isUserVerifyingPlatformAuthenticatorAvailable = async () => false;
                window.PublicKeyCredential.isConditionalMediationAvailable = async () => false;
            }}
        """

    async def apply(self, context: BrowserContext) -> bool:
        """
        Register the init script on the context.

        Returns False when the override could not be installed; extraction
        can still go ahead, only with a higher chance of being flagged.
        """
        try:
            await context.add_init_script(self.init_script())
        except PlaywrightError as e:
            logger.warning(f"Could not install navigator overrides: {e}")
            return False
        return True


def profile_from_settings(settings: Settings) -> StealthProfile:
    """Build the profile, taking locale and timezone from settings."""
    primary = settings.locale
    languages = (primary, primary.split("-")[0]) if "-" in primary else (primary,)
    return StealthProfile(
        locale=primary,
        timezone_id=settings.timezone_id,
        languages=languages,
    )
