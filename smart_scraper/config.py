"""
Scraper configuration: a validated pydantic model with defaults that can be
overridden from ``config/settings.yaml`` and per call.
"""
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, NonNegativeInt, PositiveInt

from smart_scraper.http_headers import DEFAULT_USER_AGENT
from smart_scraper.logging_config import get_logger

logger = get_logger(__name__)

CONFIG_PATH_SETTINGS = "config/settings.yaml"
SETTINGS_SECTION = "scraper"

DEFAULT_TIMEOUT_MS = 10000
DEFAULT_RETRIES = 2
DEFAULT_MAX_PDF_BYTES = 20 * 1024 * 1024


def load_yaml_config(path: str, default: Optional[Dict] = None) -> Dict:
    """Loads a YAML configuration file."""
    if default is None:
        default = {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f) or default
    except FileNotFoundError:
        logger.warning(f"Config file not found: {path}. Using defaults.", extra={"path": path, "event_type": "config_not_found"})
        return default
    except yaml.YAMLError as e:
        logger.error(f"Error parsing YAML file {path}: {e}. Using defaults.", extra={"path": path, "event_type": "config_parse_error"})
        return default


class ScraperConfig(BaseModel):
    """Options for one scraper instance; ``merged`` overlays call-site options."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    timeout: PositiveInt = DEFAULT_TIMEOUT_MS  # milliseconds
    user_agent: str = DEFAULT_USER_AGENT
    lightpanda_path: Optional[str] = None
    retries: NonNegativeInt = DEFAULT_RETRIES  # reserved for per-call retries
    verbose: bool = False
    max_pdf_bytes: PositiveInt = DEFAULT_MAX_PDF_BYTES

    # Question answering collaborators
    openrouter_api_key: Optional[str] = None
    openai_api_key: Optional[str] = None
    openai_base_url: str = "https://api.openai.com"
    model: Optional[str] = None
    temperature: float = 0.3
    max_tokens: PositiveInt = 500
    referer: Optional[str] = None
    api_key: Optional[str] = None
    api_url: str = "https://bnca-api.fly.dev"

    @property
    def timeout_was_set(self) -> bool:
        """False while ``timeout`` still holds the model default."""
        return "timeout" in self.model_fields_set

    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000.0

    def merged(self, **options: Any) -> "ScraperConfig":
        """Returns a new, re-validated config with non-None ``options`` applied."""
        overrides = {key: value for key, value in options.items() if value is not None}
        if not overrides:
            return self
        return ScraperConfig.model_validate({**self.model_dump(exclude_unset=True), **overrides})

    @classmethod
    def from_settings(cls, path: str = CONFIG_PATH_SETTINGS, **options: Any) -> "ScraperConfig":
        settings = load_yaml_config(path)
        section = settings.get(SETTINGS_SECTION, settings) if isinstance(settings, dict) else {}
        values = {key: value for key, value in section.items() if key in cls.model_fields}
        return cls.model_validate(values).merged(**options)
