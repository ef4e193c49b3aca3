"""
SmartScraper: retrieves readable content from a URL through an escalating
cascade of retrieval methods.

    PDF gate -> direct fetch -> Lightpanda -> Playwright Chromium

Each stage is tried only when the cheaper ones before it could not produce
usable content. Every call returns one ``RetrievalResult``; only invalid
options raise (``pydantic.ValidationError``).
"""
import asyncio
import datetime
import json
import logging
import time
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

import httpx
from playwright.async_api import Error as PlaywrightError

from smart_scraper.ai_answer import answer_question
from smart_scraper.browser_engine import BrowserEngine
from smart_scraper.classifier import classify
from smart_scraper.config import ScraperConfig
from smart_scraper.content_extractor import extract_content
from smart_scraper.errors import BrowserNotFoundError, ScraperError
from smart_scraper.http_headers import DEFAULT_HEADERS
from smart_scraper.light_engine import fetch_with_lightpanda, find_lightpanda_binary
from smart_scraper.logging_config import get_logger
from smart_scraper.pdf_gate import (
    PdfResult,
    fetch_pdf,
    has_explicit_pdf_extension,
    has_pdf_path_hint,
    is_pdf_response,
    pdf_result_from_bytes,
)
from smart_scraper.process_runner import ProcessRunner
from smart_scraper.screenshot import ScreenshotController
from smart_scraper.stats import DIRECT_FETCH, FULL_ENGINE, LIGHT_ENGINE, PDF, StatsTracker

logger = get_logger(__name__)

HEALTH_CHECK_URL = "https://example.com"


class RetrievalMethod(str, Enum):
    DIRECT_FETCH = "direct-fetch"
    LIGHT_ENGINE = "light-engine"
    FULL_ENGINE = "full-engine"
    PDF = "pdf"
    FAILED = "failed"
    ERROR = "error"


def _compact(record: NamedTuple) -> Dict[str, Any]:
    return {key: value for key, value in record._asdict().items() if value is not None}


class RetrievalResult(NamedTuple):
    success: bool
    method: str
    content: Optional[str] = None
    html: Optional[str] = None
    size: Optional[int] = None
    error: Optional[str] = None
    content_type: Optional[str] = None
    needs_rendering: Optional[bool] = None
    indicators: Optional[List[str]] = None
    pages: Optional[int] = None
    performance: Optional[Dict[str, Any]] = None
    stats: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


class ScreenshotResult(NamedTuple):
    success: bool
    method: str
    url: str
    screenshot: Optional[str] = None
    error: Optional[str] = None
    performance: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


class AnswerResult(NamedTuple):
    success: bool
    url: str
    question: str
    answer: Optional[str] = None
    method: Optional[str] = None
    processing: Optional[str] = None
    error: Optional[str] = None
    performance: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact(self)


class _StageOutcome(NamedTuple):
    """What a non-terminal stage hands to the next one."""
    result: Optional[RetrievalResult] = None
    error: Optional[str] = None
    needs_rendering: Optional[bool] = None
    indicators: Optional[List[str]] = None


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


class SmartScraper:
    """
    Cascade controller. One instance owns one lazily launched Chromium browser;
    release it with ``cleanup()`` or use the instance as an async context manager.

    Collaborators (process runner, browser engine, screenshot controller) can be
    injected, which is how the tests substitute fakes.
    """

    def __init__(
        self,
        config: Optional[ScraperConfig] = None,
        runner: Optional[ProcessRunner] = None,
        browser_engine: Optional[BrowserEngine] = None,
        screenshots: Optional[ScreenshotController] = None,
        **options: Any,
    ):
        config = (config or ScraperConfig()).merged(**options)
        if config.lightpanda_path is None:
            discovered = find_lightpanda_binary()
            if discovered:
                config = config.merged(lightpanda_path=discovered)
        self.config = config
        self.runner = runner or ProcessRunner()
        self.browser_engine = browser_engine or BrowserEngine()
        self.screenshots = screenshots or ScreenshotController(self.runner)
        self.stats = StatsTracker()

    async def __aenter__(self) -> "SmartScraper":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.cleanup()

    def _log(self, config: ScraperConfig, message: str, **extra: Any) -> None:
        logger.log(logging.INFO if config.verbose else logging.DEBUG, message, extra=extra)

    # --- Retrieval cascade ---

    async def scrape(self, url: str, **options: Any) -> RetrievalResult:
        config = self.config.merged(**options)
        started = time.perf_counter()
        self._log(config, f"Scraping {url}", url=url, event_type="scrape_start")

        try:
            async with httpx.AsyncClient(follow_redirects=True) as client:
                result = await self._run_cascade(url, config, client)
        except Exception as e:
            logger.error(f"Unexpected error scraping {url}: {e}", exc_info=True, extra={"url": url, "event_type": "scrape_error"})
            result = RetrievalResult(success=False, method=RetrievalMethod.ERROR.value, error=str(e))

        total_time_ms = _elapsed_ms(started)
        self._log(
            config,
            f"Finished {url} via {result.method} in {total_time_ms}ms (success={result.success})",
            url=url, method=result.method, success=result.success, total_time_ms=total_time_ms, event_type="scrape_complete",
        )
        return result._replace(
            performance={"total_time_ms": total_time_ms, "method": result.method},
            stats=self.stats.snapshot(),
        )

    async def _run_cascade(self, url: str, config: ScraperConfig, client: httpx.AsyncClient) -> RetrievalResult:
        if has_explicit_pdf_extension(url):
            self._log(config, f"PDF URL detected: {url}", url=url, event_type="pdf_url_detected")
            return await self._try_pdf(url, config, client)

        hint_error = None
        if has_pdf_path_hint(url):
            self._log(config, f"PDF path hint in {url}, trying PDF first", url=url, event_type="pdf_hint_detected")
            hinted = await self._try_pdf(url, config, client)
            if hinted.success:
                return hinted
            hint_error = hinted.error
            self._log(config, f"PDF attempt failed for {url}, continuing: {hint_error}", url=url, event_type="pdf_hint_failed")

        direct = await self._try_direct_fetch(url, config, client)
        if direct.result is not None:
            return direct.result

        light = await self._try_light_engine(url, config)
        if light.result is not None:
            return light.result

        full = await self._try_full_engine(url, config)
        if full.result is not None:
            return full.result

        return RetrievalResult(
            success=False,
            method=RetrievalMethod.FAILED.value,
            error=full.error or light.error or direct.error or hint_error or "All retrieval methods failed",
            needs_rendering=direct.needs_rendering,
            indicators=direct.indicators,
        )

    def _pdf_retrieval_result(self, outcome: PdfResult) -> RetrievalResult:
        if outcome.success:
            self.stats.record_success(PDF)
        return RetrievalResult(
            success=outcome.success,
            method=RetrievalMethod.PDF.value,
            content=outcome.content,
            size=outcome.size,
            error=outcome.error,
            content_type=outcome.content_type,
            pages=outcome.pages,
        )

    async def _try_pdf(self, url: str, config: ScraperConfig, client: httpx.AsyncClient) -> RetrievalResult:
        self.stats.record_attempt(PDF)
        return self._pdf_retrieval_result(await fetch_pdf(url, config, client))

    async def _try_direct_fetch(self, url: str, config: ScraperConfig, client: httpx.AsyncClient) -> _StageOutcome:
        self.stats.record_attempt(DIRECT_FETCH)
        self._log(config, f"Direct fetch: {url}", url=url, event_type="direct_fetch_attempt")
        try:
            response = await asyncio.wait_for(
                client.get(
                    url,
                    headers={**DEFAULT_HEADERS, "User-Agent": config.user_agent},
                    timeout=config.timeout_seconds,
                ),
                timeout=config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            self._log(config, f"Direct fetch timed out for {url}", url=url, timeout_ms=config.timeout, event_type="direct_fetch_timeout")
            return _StageOutcome(error=f"Direct fetch timed out after {config.timeout}ms")
        except httpx.HTTPError as e:
            self._log(config, f"Direct fetch failed for {url}: {e}", url=url, event_type="direct_fetch_error")
            return _StageOutcome(error=f"Direct fetch failed: {e}")

        if not response.is_success:
            self._log(config, f"Direct fetch got HTTP {response.status_code} for {url}", url=url, status_code=response.status_code, event_type="direct_fetch_http_error")
            return _StageOutcome(error=f"HTTP {response.status_code}: {response.reason_phrase}")

        if is_pdf_response(response.headers.get("content-type"), response.content):
            self._log(config, f"PDF response sniffed for {url}", url=url, event_type="pdf_sniffed")
            self.stats.record_attempt(PDF)
            outcome = await pdf_result_from_bytes(response.content, url, config)
            return _StageOutcome(result=self._pdf_retrieval_result(outcome))

        html = response.text
        verdict = classify(html, url)
        if verdict.needs_rendering:
            self._log(
                config,
                f"Rendering needed for {url}: {', '.join(verdict.indicators) or 'none'}",
                url=url, indicators=verdict.indicators, visible_text_length=verdict.visible_text_length, event_type="rendering_needed",
            )
            return _StageOutcome(
                error="Content requires rendering",
                needs_rendering=True,
                indicators=verdict.indicators,
            )

        self.stats.record_success(DIRECT_FETCH)
        return _StageOutcome(result=RetrievalResult(
            success=True,
            method=RetrievalMethod.DIRECT_FETCH.value,
            content=extract_content(html).to_json(),
            html=html,
            size=len(html),
            content_type=response.headers.get("content-type"),
            needs_rendering=False,
            indicators=verdict.indicators,
        ))

    async def _try_light_engine(self, url: str, config: ScraperConfig) -> _StageOutcome:
        self.stats.record_attempt(LIGHT_ENGINE)
        self._log(config, f"Lightpanda fetch: {url}", url=url, event_type="light_engine_attempt")
        outcome = await fetch_with_lightpanda(url, config.lightpanda_path, config.timeout, self.runner)
        if not outcome.success:
            self._log(config, f"Lightpanda failed for {url}: {outcome.error}", url=url, exit_code=outcome.exit_code, event_type="light_engine_error")
            return _StageOutcome(error=outcome.error)

        self.stats.record_success(LIGHT_ENGINE)
        return _StageOutcome(result=RetrievalResult(
            success=True,
            method=RetrievalMethod.LIGHT_ENGINE.value,
            content=extract_content(outcome.html).to_json(),
            html=outcome.html,
            size=len(outcome.html),
        ))

    async def _try_full_engine(self, url: str, config: ScraperConfig) -> _StageOutcome:
        self.stats.record_attempt(FULL_ENGINE)
        self._log(config, f"Full browser render: {url}", url=url, event_type="full_engine_attempt")
        try:
            payload = await self.browser_engine.extract(url, config)
        except (ScraperError, PlaywrightError) as e:
            self._log(config, f"Full browser render failed for {url}: {e}", url=url, event_type="full_engine_error")
            return _StageOutcome(error=str(e))

        self.stats.record_success(FULL_ENGINE)
        content = json.dumps(payload, indent=2, ensure_ascii=False)
        return _StageOutcome(result=RetrievalResult(
            success=True,
            method=RetrievalMethod.FULL_ENGINE.value,
            content=content,
            size=len(content),
        ))

    # --- Screenshots ---

    async def screenshot(self, url: str, **options: Any) -> ScreenshotResult:
        config = self.config.merged(**options)
        started = time.perf_counter()
        try:
            image = await self.screenshots.capture(url, config)
            error = None if image else "Screenshot failed"
        except BrowserNotFoundError as e:
            image, error = None, str(e)
        return ScreenshotResult(
            success=image is not None,
            method="chrome-screenshot",
            url=url,
            screenshot=image,
            error=error,
            performance={"total_time_ms": _elapsed_ms(started), "method": "chrome-screenshot"},
        )

    async def quickshot(self, url: str, **options: Any) -> ScreenshotResult:
        config = self.config.merged(**options)
        started = time.perf_counter()
        try:
            image = await self.screenshots.capture_optimized(url, config)
            error = None if image else "Quick screenshot failed after retry"
        except BrowserNotFoundError as e:
            image, error = None, str(e)
        return ScreenshotResult(
            success=image is not None,
            method="quickshot",
            url=url,
            screenshot=image,
            error=error,
            performance={"total_time_ms": _elapsed_ms(started), "method": "quickshot"},
        )

    # --- Question answering ---

    async def ask_ai(self, url: str, question: str, **options: Any) -> AnswerResult:
        config = self.config.merged(**options)
        started = time.perf_counter()
        scraped = await self.scrape(url, **options)
        if not scraped.success:
            return AnswerResult(
                success=False,
                url=url,
                question=question,
                method=scraped.method,
                error=scraped.error or "Failed to scrape content",
            )

        async with httpx.AsyncClient() as client:
            answer, processing = await answer_question(url, question, scraped.content, config, client)
        total_time_ms = _elapsed_ms(started)
        return AnswerResult(
            success=True,
            url=url,
            question=question,
            answer=answer,
            method=scraped.method,
            processing=processing,
            performance={"total_time_ms": total_time_ms, "method": scraped.method},
        )

    # --- Maintenance ---

    def get_stats(self) -> Dict[str, Dict]:
        return self.stats.snapshot()

    async def health_check(self) -> Dict[str, Any]:
        """Tries each retrieval method once against a known simple site."""
        config = self.config
        methods: Dict[str, bool] = {}

        async with httpx.AsyncClient(follow_redirects=True) as client:
            try:
                response = await client.get(HEALTH_CHECK_URL, headers={**DEFAULT_HEADERS, "User-Agent": config.user_agent}, timeout=config.timeout_seconds)
                methods["direct_fetch"] = response.is_success
            except httpx.HTTPError as e:
                logger.warning(f"Health check direct fetch failed: {e}", extra={"event_type": "health_direct_fetch_error"})
                methods["direct_fetch"] = False

        light = await fetch_with_lightpanda(HEALTH_CHECK_URL, config.lightpanda_path, config.timeout, self.runner)
        methods["light_engine"] = light.success

        try:
            await self.browser_engine.extract(HEALTH_CHECK_URL, config)
            methods["full_engine"] = True
        except (ScraperError, PlaywrightError) as e:
            logger.warning(f"Health check full engine failed: {e}", extra={"event_type": "health_full_engine_error"})
            methods["full_engine"] = False
        finally:
            await self.browser_engine.close()

        status = "healthy" if any(methods.values()) else "unhealthy"
        logger.info(f"Health check: {status}", extra={"methods": methods, "event_type": "health_check"})
        return {
            "status": status,
            "methods": methods,
            "timestamp": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
        }

    async def cleanup(self) -> None:
        await self.browser_engine.close()


async def smart_scrape(url: str, **options: Any) -> RetrievalResult:
    async with SmartScraper(**options) as scraper:
        return await scraper.scrape(url)


async def smart_screenshot(url: str, **options: Any) -> ScreenshotResult:
    async with SmartScraper(**options) as scraper:
        return await scraper.screenshot(url)


async def quick_shot(url: str, **options: Any) -> ScreenshotResult:
    async with SmartScraper(**options) as scraper:
        return await scraper.quickshot(url)


async def ask_website_ai(url: str, question: str, **options: Any) -> AnswerResult:
    async with SmartScraper(**options) as scraper:
        return await scraper.ask_ai(url, question)
