"""
Turns raw markup into a normalized ``ContentRecord``.

Extraction never raises: any unexpected failure is reported as an
``ExtractionError`` diagnostic record carrying the raw markup length.
"""
import datetime
import json
import re
from typing import Any, Dict, List, NamedTuple, Optional, Union

from bs4 import BeautifulSoup

from smart_scraper.logging_config import get_logger

logger = get_logger(__name__)

MAX_BODY_TEXT_LENGTH = 2000
MAX_META_TAGS = 15
WINDOW_STATE_UNPARSEABLE = "Found but unparseable"

WINDOW_STATE_PATTERN = re.compile(
    r"window\.__(?:INITIAL_STATE|INITIAL_DATA|NEXT_DATA|NUXT|APOLLO_STATE)__\s*=\s*"
)
LD_JSON_TYPE = re.compile(r"^\s*application/ld\+json\s*$", re.IGNORECASE)
DESCRIPTION_NAME = re.compile(r"^description$", re.IGNORECASE)
WHITESPACE = re.compile(r"\s+")

_json_decoder = json.JSONDecoder()


class ContentRecord(NamedTuple):
    title: str
    meta_description: str
    structured_data: Optional[List[Any]]
    window_state: Union[Dict[str, Any], List[Any], str, None]
    meta_tags: Optional[Dict[str, str]]
    body_text: str
    extracted_at: str

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


class ExtractionError(NamedTuple):
    error: str
    message: str
    raw_length: int

    def to_dict(self) -> Dict[str, Any]:
        return self._asdict()

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


ExtractionResult = Union[ContentRecord, ExtractionError]


def collapse_whitespace(text: str) -> str:
    return WHITESPACE.sub(" ", text).strip()


def _body_text(soup: BeautifulSoup) -> str:
    """Visible body text: scripts and styles dropped, tags stripped. Mutates ``soup``."""
    body = soup.body
    if body is None:
        return ""
    for tag in body(["script", "style"]):
        tag.decompose()
    return collapse_whitespace(body.get_text(" "))


def visible_body_text(html: str) -> str:
    return _body_text(BeautifulSoup(html, "html.parser"))


def _structured_data(soup: BeautifulSoup) -> Optional[List[Any]]:
    blocks = []
    for script in soup.find_all("script", attrs={"type": LD_JSON_TYPE}):
        try:
            blocks.append(json.loads(script.get_text()))
        except ValueError:
            continue  # malformed JSON-LD is ignored
    return blocks or None


def _window_state(html: str, soup: BeautifulSoup) -> Union[Dict[str, Any], List[Any], str, None]:
    match = WINDOW_STATE_PATTERN.search(html)
    if match:
        try:
            state, _ = _json_decoder.raw_decode(html, match.end())
            return state
        except ValueError:
            return WINDOW_STATE_UNPARSEABLE

    next_data = soup.find("script", id="__NEXT_DATA__")
    if next_data is not None:
        try:
            return json.loads(next_data.get_text())
        except ValueError:
            return WINDOW_STATE_UNPARSEABLE
    return None


def _meta_tags(soup: BeautifulSoup) -> Optional[Dict[str, str]]:
    pairs = []
    for meta in soup.find_all("meta"):
        key = meta.get("property") or meta.get("name")
        content = meta.get("content")
        if key and content is not None:
            pairs.append((key, content))
            if len(pairs) == MAX_META_TAGS:
                break
    return dict(pairs) or None


def extract_content(html: str) -> ExtractionResult:
    try:
        soup = BeautifulSoup(html, "html.parser")

        title_tag = soup.find("title")
        title = title_tag.get_text().strip() if title_tag else ""

        description_tag = soup.find("meta", attrs={"name": DESCRIPTION_NAME})
        meta_description = description_tag.get("content", "") if description_tag else ""

        structured_data = _structured_data(soup)
        window_state = _window_state(html, soup)
        meta_tags = _meta_tags(soup)
        body_text = _body_text(soup)[:MAX_BODY_TEXT_LENGTH]

        return ContentRecord(
            title=title,
            meta_description=meta_description,
            structured_data=structured_data,
            window_state=window_state,
            meta_tags=meta_tags,
            body_text=body_text,
            extracted_at=datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
        )
    except Exception as e:
        raw_length = len(html) if isinstance(html, str) else 0
        logger.warning(f"Content extraction failed: {e}", extra={"raw_length": raw_length, "event_type": "extract_failure"})
        return ExtractionError(error="Content extraction failed", message=str(e), raw_length=raw_length)
