"""
Page screenshots taken with headless Chrome's ``--screenshot`` flag.

Each capture writes to a uniquely named PNG in the system temp directory, reads
it back as a base64 data URI and always deletes the file afterwards.
"""
import asyncio
import base64
import os
import sys
import tempfile
import time
import uuid
from typing import Callable, List, Optional, Sequence, Tuple

from smart_scraper.config import ScraperConfig
from smart_scraper.errors import BrowserNotFoundError
from smart_scraper.logging_config import get_logger
from smart_scraper.process_runner import ProcessRunner, TerminationCause

logger = get_logger(__name__)

MAC_CHROME_PATHS = [
    "/Applications/Google Chrome.app/Contents/MacOS/Google Chrome",
    "/Applications/Chromium.app/Contents/MacOS/Chromium",
]
LINUX_CHROME_PATHS = [
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/google-chrome",
]

DEFAULT_SCREENSHOT_TIMEOUT_MS = 15000
STANDARD_VIRTUAL_TIME_BUDGET_MS = 10000
# (virtual time budget, process timeout) per optimized attempt
OPTIMIZED_ATTEMPTS: List[Tuple[int, int]] = [(5000, 8000), (8000, 12000)]
SETTLE_DELAY_SECONDS = 0.5
WINDOW_SIZE = "1280,800"

BASE_CHROME_ARGS = [
    "--headless=new",
    "--disable-gpu",
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-blink-features=AutomationControlled",
]
SPEED_CHROME_ARGS = [
    "--disable-features=TranslateUI",
    "--disable-extensions",
    "--disable-default-apps",
    "--disable-sync",
    "--metrics-recording-only",
    "--mute-audio",
    "--no-first-run",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]


def chrome_candidates(system: str = sys.platform) -> List[str]:
    return MAC_CHROME_PATHS if system == "darwin" else LINUX_CHROME_PATHS


def find_chrome_path(candidates: Optional[Sequence[str]] = None) -> str:
    for path in candidates if candidates is not None else chrome_candidates():
        if os.access(path, os.X_OK):
            return path
    raise BrowserNotFoundError("Chrome/Chromium not found")


def temp_screenshot_path() -> str:
    return os.path.join(tempfile.gettempdir(), f"screenshot_{time.time_ns()}_{uuid.uuid4().hex[:8]}.png")


def standard_args(user_agent: str, output_path: str, url: str) -> List[str]:
    return [
        *BASE_CHROME_ARGS,
        f"--user-agent={user_agent}",
        f"--screenshot={output_path}",
        f"--window-size={WINDOW_SIZE}",
        "--hide-scrollbars",
        f"--virtual-time-budget={STANDARD_VIRTUAL_TIME_BUDGET_MS}",
        url,
    ]


def optimized_args(user_agent: str, output_path: str, url: str, virtual_time_budget: int) -> List[str]:
    return [
        *BASE_CHROME_ARGS,
        *SPEED_CHROME_ARGS,
        f"--user-agent={user_agent}",
        f"--screenshot={output_path}",
        f"--window-size={WINDOW_SIZE}",
        "--hide-scrollbars",
        "--run-all-compositor-stages-before-draw",
        f"--virtual-time-budget={virtual_time_budget}",
        url,
    ]


class ScreenshotController:
    def __init__(self, runner: ProcessRunner, chrome_locator: Callable[[], str] = find_chrome_path):
        self.runner = runner
        self.chrome_locator = chrome_locator

    async def capture(self, url: str, config: ScraperConfig) -> Optional[str]:
        """Single attempt. Raises BrowserNotFoundError when Chrome is missing."""
        chrome = self.chrome_locator()
        output_path = temp_screenshot_path()
        return await self._capture_once(
            chrome,
            standard_args(config.user_agent, output_path, url),
            output_path,
            timeout_ms=config.timeout if config.timeout_was_set else DEFAULT_SCREENSHOT_TIMEOUT_MS,
        )

    async def capture_optimized(self, url: str, config: ScraperConfig) -> Optional[str]:
        """Short first attempt, one longer retry, then None."""
        chrome = self.chrome_locator()
        for attempt, (budget, timeout_ms) in enumerate(OPTIMIZED_ATTEMPTS, start=1):
            output_path = temp_screenshot_path()
            image = await self._capture_once(
                chrome,
                optimized_args(config.user_agent, output_path, url, budget),
                output_path,
                timeout_ms=timeout_ms,
            )
            if image:
                return image
            logger.info(f"Quick screenshot attempt {attempt} produced no image for {url}", extra={"url": url, "attempt": attempt, "event_type": "quickshot_attempt_failed"})
        return None

    async def _capture_once(self, chrome: str, args: List[str], output_path: str, timeout_ms: int) -> Optional[str]:
        try:
            execution = await self.runner.run(chrome, args, timeout_ms=timeout_ms)
            if execution.termination_cause == TerminationCause.SPAWN_ERROR:
                return None
            await asyncio.sleep(SETTLE_DELAY_SECONDS)
            with open(output_path, "rb") as f:
                data = f.read()
            if not data:
                return None
            return "data:image/png;base64," + base64.b64encode(data).decode("ascii")
        except OSError as e:
            logger.info(f"Screenshot not readable at {output_path}: {e}", extra={"path": output_path, "event_type": "screenshot_read_error"})
            return None
        finally:
            try:
                os.remove(output_path)
            except OSError:
                pass
