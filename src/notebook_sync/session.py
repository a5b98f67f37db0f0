"""Amazon sign-in flow and scoped browser sessions."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional, Sequence

from playwright.async_api import (
    Browser,
    BrowserContext,
    Error as PlaywrightError,
    Locator,
    Page,
    TimeoutError as PlaywrightTimeoutError,
    async_playwright,
)

from .config import Settings, settings as default_settings
from .errors import AuthenticationError, LoginTimeoutError, SelectorNotFoundError
from .models import Credential
from .stealth import StealthProfile, profile_from_settings

logger = logging.getLogger(__name__)


# Pages that need a human (2FA, CAPTCHA, device checks)
VERIFICATION_MARKERS = ("ap/mfa", "ap/cvf", "ap/dcq", "challenge", "verification")

SNAPSHOT_INPUTS_SCRIPT = """
    els => els.map(el => ({
        type: el.type,
        id: el.id,
        name: el.name,
        placeholder: el.placeholder
    }))
"""


class SelectorChain:
    """Ordered candidate selectors for one control; the first match wins."""

    def __init__(self, name: str, selectors: Sequence[str]):
        self.name = name
        self.selectors = list(selectors)

    def __repr__(self) -> str:
        return f"SelectorChain({self.name!r}, {self.selectors!r})"

    async def wait_first(
        self,
        page: Page,
        timeout_ms: int,
        snippet_chars: int = default_settings.diagnostic_snippet_chars,
    ) -> tuple[str, Locator]:
        """
        Wait for each selector in turn, up to ``timeout_ms`` apiece.

        Raises:
            SelectorNotFoundError: nothing matched; carries the attempted
                selectors, a snapshot of the page's input elements and the
                start of the page markup.
        """
        for selector in self.selectors:
            locator = page.locator(selector).first
            try:
                await locator.wait_for(timeout=timeout_ms)
            except PlaywrightTimeoutError:
                logger.debug(f"{self.name}: selector not found: {selector}")
                continue
            logger.info(f"{self.name}: matched selector {selector}")
            return selector, locator

        available = await snapshot_inputs(page)
        logger.warning(f"{self.name}: no selector matched, inputs on page: {available}")
        snippet = await capture_markup(page, snippet_chars)
        raise SelectorNotFoundError(self.name, self.selectors, available, snippet)

    async def query_first(self, page: Page) -> Optional[tuple[str, Locator]]:
        """Return the first selector already present on the page, without waiting."""
        for selector in self.selectors:
            locator = page.locator(selector)
            if await locator.count() > 0:
                return selector, locator.first
        return None


IDENTIFIER_FIELD = SelectorChain(
    "identifier",
    [
        'input[type="email"]',
        "#ap_email",
        'input[name="email"]',
        'input[autocomplete="username"]',
        'input[autocomplete="email"]',
        "#email",
    ],
)
CONTINUE_CONTROL = SelectorChain(
    "continue",
    ["#continue", "input#continue", 'input[type="submit"]'],
)
SECRET_FIELD = SelectorChain(
    "secret",
    ['input[type="password"]', "#ap_password"],
)
SIGN_IN_CONTROL = SelectorChain(
    "sign-in",
    ["#signInSubmit", 'input[type="submit"]', 'button[type="submit"]'],
)


async def snapshot_inputs(page: Page) -> list[dict]:
    """Describe every <input> on the page, for diagnosing selector drift."""
    try:
        return await page.eval_on_selector_all("input", SNAPSHOT_INPUTS_SCRIPT)
    except PlaywrightError as e:
        logger.debug(f"Input snapshot failed: {e}")
        return []


async def capture_markup(page: Page, limit: int) -> Optional[str]:
    """Start of the current page's HTML, or None if it cannot be read."""
    if limit <= 0:
        return None
    try:
        html = await page.content()
    except PlaywrightError as e:
        logger.debug(f"Markup capture failed: {e}")
        return None
    return html[:limit]


def describe_stall(url: str) -> Optional[str]:
    """Best guess at why the browser never left the sign-in flow."""
    lowered = url.lower()
    if any(marker in lowered for marker in VERIFICATION_MARKERS):
        return "verification challenge required (CAPTCHA or MFA)"
    if "signin" in lowered:
        return "still on the sign-in page, credentials may be wrong"
    return None


async def _goto(page: Page, url: str, dwell_ms: int) -> None:
    try:
        await page.goto(url, wait_until="domcontentloaded")
    except PlaywrightError as e:
        raise AuthenticationError(f"Could not load {url}: {e}") from e
    await page.wait_for_timeout(dwell_ms)


async def _type_into(
    page: Page,
    chain: SelectorChain,
    value: str,
    timeout_ms: int,
    settings: Settings,
) -> Locator:
    _, field = await chain.wait_first(page, timeout_ms, settings.diagnostic_snippet_chars)
    # Type slowly like a person would
    await field.press_sequentially(value, delay=settings.typing_delay_ms)
    await page.wait_for_timeout(settings.post_type_dwell_ms)
    return field


async def _submit(page: Page, chain: SelectorChain, field: Locator) -> None:
    match = await chain.query_first(page)
    if match is None:
        logger.warning(f"No {chain.name} control found, pressing Enter instead")
        await field.press("Enter")
        return
    selector, control = match
    logger.info(f"Clicking {chain.name} control ({selector})")
    await control.click()


async def establish_session(
    page: Page,
    credential: Credential,
    settings: Settings = default_settings,
) -> None:
    """
    Drive the identity provider sign-in until the notebook page is reached.

    The page must belong to a context already configured by the stealth
    profile. Returns only once the post-login redirect has been observed.

    Raises:
        SelectorNotFoundError: a login field could not be located.
        LoginTimeoutError: the redirect did not happen in time.
        AuthenticationError: any other sign-in failure.
    """
    logger.info(f"Signing in as {credential.masked_identifier()}")

    # Landing page first so Amazon can set its cookies
    await _goto(page, settings.entry_url, settings.entry_dwell_ms)
    await _goto(page, settings.sign_in_url, settings.sign_in_dwell_ms)
    logger.info(f"Sign-in page loaded: {page.url}")

    try:
        field = await _type_into(
            page,
            IDENTIFIER_FIELD,
            credential.identifier,
            settings.selector_timeout_ms,
            settings,
        )
        await _submit(page, CONTINUE_CONTROL, field)
        await page.wait_for_timeout(settings.continue_dwell_ms)

        field = await _type_into(
            page,
            SECRET_FIELD,
            credential.secret.get_secret_value(),
            settings.password_timeout_ms,
            settings,
        )
        await _submit(page, SIGN_IN_CONTROL, field)
    except PlaywrightError as e:
        raise AuthenticationError(f"Sign-in form interaction failed: {e}") from e

    logger.info("Credentials submitted, waiting for redirect...")
    try:
        await page.wait_for_url(
            settings.post_login_url_pattern, timeout=settings.login_timeout_ms
        )
    except PlaywrightTimeoutError as e:
        url = page.url
        snippet = await capture_markup(page, settings.diagnostic_snippet_chars)
        raise LoginTimeoutError(
            url, settings.login_timeout_ms, describe_stall(url), snippet
        ) from e

    try:
        await page.wait_for_load_state("networkidle")
    except PlaywrightTimeoutError:
        logger.debug("Network never went idle after sign-in, continuing")

    logger.info(f"Signed in, now on {page.url}")


@dataclass
class Session:
    """An authenticated browsing context and its single active page."""

    page: Page
    context: BrowserContext
    browser: Browser


@asynccontextmanager
async def open_session(
    credential: Credential,
    settings: Settings = default_settings,
    profile: Optional[StealthProfile] = None,
) -> AsyncIterator[Session]:
    """
    Launch a browser, sign in and yield the session.

    The browser and Playwright driver are released on every exit path,
    including sign-in failures and errors raised by the caller's block.
    """
    profile = profile or profile_from_settings(settings)
    playwright = await async_playwright().start()
    browser: Optional[Browser] = None
    try:
        browser = await playwright.chromium.launch(
            headless=settings.browser_headless,
            args=list(profile.launch_args),
        )
        logger.info("Browser launched, creating context...")

        context = await browser.new_context(**profile.context_options())
        await profile.apply(context)
        page = await context.new_page()

        await establish_session(page, credential, settings)
        yield Session(page=page, context=context, browser=browser)
    finally:
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Browser close failed: {e}")
        await playwright.stop()
        logger.info("Browser closed")
