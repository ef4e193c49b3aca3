"""
Lightpanda: a fast headless browser used between a plain HTTP fetch and a
full Chromium session.

The binary is provisioned out of band; this module
only locates it and runs ``lightpanda fetch --dump <url>``.
"""
import os
import platform
import stat
from pathlib import Path
from typing import List, NamedTuple, Optional

from smart_scraper.logging_config import get_logger
from smart_scraper.process_runner import ProcessRunner

logger = get_logger(__name__)

LIGHTPANDA_ENV_VAR = "LIGHTPANDA_PATH"
PROCESS_TIMEOUT_BUFFER_MS = 1000
PACKAGE_BIN_PATH = Path(__file__).resolve().parent / "bin" / "lightpanda"


class LightEngineResult(NamedTuple):
    success: bool
    html: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None


def _is_wsl() -> bool:
    release = platform.uname().release.lower()
    return "microsoft" in release or "wsl" in release


def candidate_paths() -> List[Path]:
    cwd = Path.cwd()
    paths = []
    env_path = os.environ.get(LIGHTPANDA_ENV_VAR)
    if env_path:
        paths.append(Path(env_path))
    paths.extend([
        PACKAGE_BIN_PATH,
        Path("./lightpanda"),
        Path("../lightpanda"),
        Path("./lightpanda/lightpanda"),
        Path("/usr/local/bin/lightpanda"),
        cwd / "bin" / "lightpanda",
    ])
    return paths


def is_executable_file(path: Path) -> bool:
    try:
        mode = path.stat().st_mode
    except OSError:
        return False
    return stat.S_ISREG(mode) and bool(mode & 0o111)


def find_lightpanda_binary() -> Optional[str]:
    """Returns the first executable Lightpanda binary found, or None."""
    if os.name == "nt" and not _is_wsl():
        return None  # Lightpanda has no native Windows build
    for path in candidate_paths():
        resolved = path.resolve()
        if is_executable_file(resolved):
            logger.debug(f"Found Lightpanda binary at {resolved}", extra={"path": str(resolved), "event_type": "lightpanda_found"})
            return str(resolved)
    return None


def check_binary(binary_path: Optional[str]) -> Optional[str]:
    """Returns an error message when ``binary_path`` cannot be used, else None."""
    if not binary_path:
        return "Lightpanda binary not found. Please install Lightpanda or provide path."
    try:
        mode = os.stat(binary_path).st_mode
    except OSError:
        return "Lightpanda binary not accessible"
    if not stat.S_ISREG(mode):
        return "Lightpanda binary is not a file"
    return None


async def fetch_with_lightpanda(url: str, binary_path: Optional[str], timeout_ms: int, runner: ProcessRunner) -> LightEngineResult:
    error = check_binary(binary_path)
    if error:
        return LightEngineResult(success=False, error=error)

    execution = await runner.run(binary_path, ["fetch", "--dump", url], timeout_ms=timeout_ms + PROCESS_TIMEOUT_BUFFER_MS)
    if execution.exit_code == 0 and execution.stdout:
        return LightEngineResult(success=True, html=execution.stdout, exit_code=execution.exit_code)

    if execution.timed_out:
        error = f"Lightpanda timed out ({execution.termination_cause.value})"
    else:
        error = execution.stderr.strip() or f"Lightpanda exited with code {execution.exit_code}"
    return LightEngineResult(success=False, exit_code=execution.exit_code, error=error)
