"""
PDF detection and hand-off.

PDFs are recognized by URL pattern, by ``Content-Type`` header, or by the
``%PDF`` magic bytes at the start of a response body. Recognized documents are
downloaded and parsed with PyMuPDF into a JSON content record.
"""
import asyncio
import json
from typing import Any, Dict, NamedTuple, Optional

import httpx
import pymupdf

from smart_scraper.config import ScraperConfig
from smart_scraper.errors import PdfError, PdfTooLargeError
from smart_scraper.http_headers import PDF_HEADERS
from smart_scraper.logging_config import get_logger

logger = get_logger(__name__)

PDF_MAGIC = b"%PDF"
PDF_CONTENT_TYPE = "application/pdf"
ACCEPTABLE_CONTENT_TYPES = ("pdf", "octet-stream", "binary", "download")
# FileDataError and friends subclass RuntimeError; the rebased bindings raise FzErrorBase subclasses.
PYMUPDF_ERRORS = (RuntimeError, ValueError, pymupdf.mupdf.FzErrorBase)


class PdfResult(NamedTuple):
    success: bool
    content: Optional[str] = None
    size: Optional[int] = None
    pages: Optional[int] = None
    error: Optional[str] = None
    content_type: Optional[str] = None


def has_explicit_pdf_extension(url: str) -> bool:
    """A URL naming a .pdf file; a failed PDF attempt on it ends the call."""
    lowered = url.lower()
    return lowered.endswith(".pdf") or ".pdf?" in lowered


def has_pdf_path_hint(url: str) -> bool:
    """A ``/pdf/`` path segment: worth a PDF attempt, but may still serve HTML."""
    return "/pdf/" in url.lower()


def is_pdf_url(url: str) -> bool:
    return has_explicit_pdf_extension(url) or has_pdf_path_hint(url)


def is_pdf_content_type(content_type: Optional[str]) -> bool:
    return PDF_CONTENT_TYPE in (content_type or "").lower()


def has_pdf_signature(body: bytes) -> bool:
    return body[:5].startswith(PDF_MAGIC)


def is_pdf_response(content_type: Optional[str], body: bytes) -> bool:
    return is_pdf_content_type(content_type) or has_pdf_signature(body)


def parse_pdf_bytes(data: bytes, url: str) -> Dict[str, Any]:
    """Parses PDF bytes into a content dict. Raises PdfError on unreadable input."""
    try:
        doc = pymupdf.open(stream=data, filetype="pdf")
    except PYMUPDF_ERRORS as e:
        raise PdfError(f"Error opening PDF: {e}") from e

    try:
        info = doc.metadata or {}
        text = "".join(page.get_text("text") for page in doc)
    except PYMUPDF_ERRORS as e:
        raise PdfError(f"Error reading PDF: {e}") from e
    else:
        return {
            "title": info.get("title") or "Untitled PDF",
            "author": info.get("author") or "",
            "subject": info.get("subject") or "",
            "keywords": info.get("keywords") or "",
            "creator": info.get("creator") or "",
            "producer": info.get("producer") or "",
            "creation_date": info.get("creationDate") or "",
            "modification_date": info.get("modDate") or "",
            "pages": doc.page_count,
            "text": text,
            "metadata": {key: value for key, value in info.items() if value} or None,
            "url": url,
        }
    finally:
        doc.close()


async def pdf_result_from_bytes(data: bytes, url: str, config: ScraperConfig) -> PdfResult:
    """Parses an already downloaded PDF body. Never raises."""
    try:
        if len(data) > config.max_pdf_bytes:
            raise PdfTooLargeError(len(data), config.max_pdf_bytes)
        parsed = await asyncio.to_thread(parse_pdf_bytes, data, url)
    except PdfError as e:
        logger.warning(f"PDF parsing error for {url}: {e}", extra={"url": url, "event_type": "pdf_parse_error"})
        return PdfResult(success=False, error=f"PDF parsing error: {e}")

    content = json.dumps(parsed, indent=2, ensure_ascii=False)
    logger.info(f"Parsed PDF {url} ({parsed['pages']} pages)", extra={"url": url, "pages": parsed["pages"], "bytes": len(data), "event_type": "pdf_parse_success"})
    return PdfResult(
        success=True,
        content=content,
        size=len(content),
        pages=parsed["pages"],
        content_type=PDF_CONTENT_TYPE,
    )


async def fetch_pdf(url: str, config: ScraperConfig, client: httpx.AsyncClient) -> PdfResult:
    """Downloads ``url`` and parses it as a PDF. Never raises."""
    try:
        response = await asyncio.wait_for(
            client.get(
                url,
                headers={**PDF_HEADERS, "User-Agent": config.user_agent},
                timeout=config.timeout_seconds,
            ),
            timeout=config.timeout_seconds,
        )
    except asyncio.TimeoutError:
        logger.warning(f"PDF download timed out for {url}", extra={"url": url, "timeout_ms": config.timeout, "event_type": "pdf_download_timeout"})
        return PdfResult(success=False, error=f"PDF download timed out after {config.timeout}ms")
    except httpx.HTTPError as e:
        logger.warning(f"PDF download error for {url}: {e}", extra={"url": url, "event_type": "pdf_download_error"})
        return PdfResult(success=False, error=f"PDF download error: {e}")

    if not response.is_success:
        logger.info(f"PDF download failed for {url}: HTTP {response.status_code}", extra={"url": url, "status_code": response.status_code, "event_type": "pdf_http_error"})
        return PdfResult(success=False, error=f"HTTP {response.status_code}: {response.reason_phrase}")

    content_type = response.headers.get("content-type", "")
    if not any(kind in content_type.lower() for kind in ACCEPTABLE_CONTENT_TYPES) and ".pdf" not in url.lower():
        return PdfResult(success=False, error=f"Not a PDF document: {content_type}")

    return await pdf_result_from_bytes(response.content, url, config)
