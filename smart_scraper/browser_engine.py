"""
Full browser engine: a headless Chromium driven through Playwright.

One ``BrowserEngine`` owns at most one browser process. It is launched lazily
on first use, shared by every page opened through the engine, and released by
``close()``. Forgetting to close it leaks the Chromium process.
"""
import asyncio
from typing import Any, Dict, Optional

from playwright.async_api import Browser, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from smart_scraper.config import ScraperConfig
from smart_scraper.errors import BrowserEngineUnavailableError
from smart_scraper.logging_config import get_logger

logger = get_logger(__name__)

BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--no-first-run",
    "--no-zygote",
    "--disable-gpu",
]
VIEWPORT = {"width": 1280, "height": 720}
BLOCKED_RESOURCE_TYPES = frozenset({"image", "stylesheet", "font", "media"})

# Runs inside the page; limits mirror the ContentRecord produced for raw HTML.
EXTRACTION_SCRIPT = r"""
() => {
  const clean = (s) => (s || '').trim();
  const title = document.title;
  const metaDescription = document.querySelector('meta[name="description"]')?.content || '';
  const canonical = document.querySelector('link[rel="canonical"]')?.href || '';

  const headings = Array.from(document.querySelectorAll('h1, h2, h3, h4, h5, h6'))
    .map(h => ({ level: h.tagName.toLowerCase(), text: clean(h.textContent) }))
    .filter(h => h.text.length > 0)
    .slice(0, 20);

  const paragraphs = Array.from(document.querySelectorAll('p'))
    .map(p => clean(p.textContent))
    .filter(text => text.length > 20)
    .slice(0, 10);

  const links = Array.from(document.querySelectorAll('a[href]'))
    .map(a => ({ text: clean(a.textContent), href: a.href }))
    .filter(link => link.text.length > 0)
    .slice(0, 15);

  const structuredData = Array.from(document.querySelectorAll('script[type="application/ld+json"]'))
    .map(script => {
      try {
        return JSON.parse(script.textContent);
      } catch (e) {
        return null;
      }
    })
    .filter(data => data !== null);

  const bodyText = (document.body ? document.body.textContent : '')
    .replace(/\s+/g, ' ')
    .trim()
    .substring(0, 3000);

  return {
    title,
    metaDescription,
    canonical,
    headings,
    paragraphs,
    links,
    structuredData,
    bodyText,
    url: window.location.href,
  };
}
"""


async def _block_non_essential(route: Route) -> None:
    if route.request.resource_type in BLOCKED_RESOURCE_TYPES:
        await route.abort()
    else:
        await route.continue_()


class BrowserEngine:
    def __init__(self, headless: bool = True):
        self.headless = headless
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._browser is not None

    async def _get_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and not self._browser.is_connected():
                logger.warning("Shared browser disconnected, relaunching", extra={"event_type": "browser_disconnected"})
                await self._shutdown()
            if self._browser is None:
                try:
                    self._playwright = await async_playwright().start()
                    self._browser = await self._playwright.chromium.launch(headless=self.headless, args=BROWSER_ARGS)
                except Exception as e:
                    await self._shutdown()
                    raise BrowserEngineUnavailableError(f"Full browser engine unavailable: {e}") from e
                logger.info("Launched shared Chromium browser", extra={"event_type": "browser_launch"})
            return self._browser

    async def extract(self, url: str, config: ScraperConfig) -> Dict[str, Any]:
        """Renders ``url`` and returns the in-page extraction payload."""
        browser = await self._get_browser()
        page = await browser.new_page(user_agent=config.user_agent, viewport=VIEWPORT)
        try:
            await page.route("**/*", _block_non_essential)
            await page.goto(url, wait_until="networkidle", timeout=config.timeout)
            return await page.evaluate(EXTRACTION_SCRIPT)
        finally:
            try:
                await page.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing page for {url}: {e}", extra={"url": url, "event_type": "page_close_error"})

    async def _shutdown(self) -> None:
        browser, playwright = self._browser, self._playwright
        self._browser = None
        self._playwright = None
        if browser is not None:
            try:
                await browser.close()
            except PlaywrightError as e:
                logger.warning(f"Error closing browser: {e}", extra={"event_type": "browser_close_error"})
        if playwright is not None:
            await playwright.stop()

    async def close(self) -> None:
        async with self._lock:
            await self._shutdown()
