import asyncio
import json

import httpx
import pymupdf
import pytest
from respx import MockRouter

from smart_scraper.config import ScraperConfig
from smart_scraper.errors import PdfError
from smart_scraper.pdf_gate import (
    fetch_pdf,
    has_explicit_pdf_extension,
    has_pdf_path_hint,
    has_pdf_signature,
    is_pdf_content_type,
    is_pdf_response,
    is_pdf_url,
    parse_pdf_bytes,
    pdf_result_from_bytes,
)


@pytest.fixture
def pdf_bytes():
    doc = pymupdf.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Hello from a test PDF")
    doc.new_page()
    doc.set_metadata({"title": "Test Document", "author": "Tester"})
    data = doc.tobytes()
    doc.close()
    return data


@pytest.mark.parametrize("url,expected", [
    ("https://x.test/paper.pdf", True),
    ("https://x.test/PAPER.PDF", True),
    ("https://x.test/paper.pdf?download=1", True),
    ("https://arxiv.test/pdf/2401.00001", True),
    ("https://x.test/paper.html", False),
    ("https://x.test/pdfs-explained", False),
])
def test_is_pdf_url(url, expected):
    assert is_pdf_url(url) is expected


@pytest.mark.parametrize("url,explicit,hint", [
    ("https://x.test/paper.pdf", True, False),
    ("https://x.test/paper.pdf?download=1", True, False),
    ("https://arxiv.test/pdf/2401.00001", False, True),
    ("https://docs.test/pdf/guide.pdf", True, True),
    ("https://x.test/paper.html", False, False),
])
def test_explicit_extension_and_path_hint_are_distinct(url, explicit, hint):
    assert has_explicit_pdf_extension(url) is explicit
    assert has_pdf_path_hint(url) is hint


def test_content_sniffing():
    assert is_pdf_content_type("application/pdf; charset=binary")
    assert not is_pdf_content_type(None)
    assert has_pdf_signature(b"%PDF-1.7\n...")
    assert not has_pdf_signature(b"<html>")
    assert is_pdf_response("text/html", b"%PDF-1.4")
    assert is_pdf_response("application/pdf", b"")
    assert not is_pdf_response("text/html", b"<!doctype html>")


def test_parse_pdf_bytes(pdf_bytes):
    parsed = parse_pdf_bytes(pdf_bytes, "https://x.test/doc.pdf")

    assert parsed["title"] == "Test Document"
    assert parsed["author"] == "Tester"
    assert parsed["pages"] == 2
    assert "Hello from a test PDF" in parsed["text"]
    assert parsed["url"] == "https://x.test/doc.pdf"


def test_parse_pdf_bytes_rejects_garbage():
    with pytest.raises(PdfError):
        parse_pdf_bytes(b"this is not a pdf", "https://x.test/doc.pdf")


@pytest.mark.asyncio
async def test_fetch_pdf_success(respx_mock: MockRouter, pdf_bytes):
    url = "https://x.test/doc.pdf"
    respx_mock.get(url).respond(200, content=pdf_bytes, headers={"Content-Type": "application/pdf"})

    async with httpx.AsyncClient() as client:
        result = await fetch_pdf(url, ScraperConfig(), client)

    assert result.success
    assert result.pages == 2
    assert result.content_type == "application/pdf"
    assert result.size == len(result.content)
    assert json.loads(result.content)["title"] == "Test Document"


@pytest.mark.asyncio
async def test_fetch_pdf_http_error(respx_mock: MockRouter):
    url = "https://x.test/missing.pdf"
    respx_mock.get(url).respond(404)

    async with httpx.AsyncClient() as client:
        result = await fetch_pdf(url, ScraperConfig(), client)

    assert not result.success
    assert result.error == "HTTP 404: Not Found"


@pytest.mark.asyncio
async def test_fetch_pdf_rejects_html_on_non_pdf_url(respx_mock: MockRouter):
    url = "https://x.test/pdf/12345"
    respx_mock.get(url).respond(200, text="<html></html>", headers={"Content-Type": "text/html"})

    async with httpx.AsyncClient() as client:
        result = await fetch_pdf(url, ScraperConfig(), client)

    assert not result.success
    assert result.error.startswith("Not a PDF document")


@pytest.mark.asyncio
async def test_fetch_pdf_network_error(respx_mock: MockRouter):
    url = "https://x.test/doc.pdf"
    respx_mock.get(url).mock(side_effect=httpx.ConnectError("connection refused"))

    async with httpx.AsyncClient() as client:
        result = await fetch_pdf(url, ScraperConfig(), client)

    assert not result.success
    assert result.error.startswith("PDF download error")


@pytest.mark.asyncio
async def test_oversized_pdf_is_rejected(pdf_bytes):
    config = ScraperConfig(max_pdf_bytes=16)
    result = await pdf_result_from_bytes(pdf_bytes, "https://x.test/doc.pdf", config)

    assert not result.success
    assert "PDF too large" in result.error


@pytest.mark.asyncio
async def test_corrupt_pdf_is_a_parse_error():
    result = await pdf_result_from_bytes(b"definitely not a pdf document", "https://x.test/doc.pdf", ScraperConfig())

    assert not result.success
    assert result.error.startswith("PDF parsing error")


def test_read_errors_after_open_become_pdf_errors(mocker):
    page = mocker.MagicMock()
    page.get_text.side_effect = RuntimeError("broken content stream")
    doc = mocker.MagicMock()
    doc.metadata = {}
    doc.__iter__.return_value = iter([page])
    mocker.patch("smart_scraper.pdf_gate.pymupdf.open", return_value=doc)

    with pytest.raises(PdfError, match="Error reading PDF: broken content stream"):
        parse_pdf_bytes(b"%PDF-1.4", "https://x.test/doc.pdf")
    doc.close.assert_called_once()


@pytest.mark.asyncio
async def test_metadata_read_error_is_a_pdf_failure(mocker):
    doc = mocker.MagicMock()
    type(doc).metadata = mocker.PropertyMock(side_effect=ValueError("corrupt xref"))
    mocker.patch("smart_scraper.pdf_gate.pymupdf.open", return_value=doc)

    result = await pdf_result_from_bytes(b"%PDF-1.4", "https://x.test/doc.pdf", ScraperConfig())

    assert not result.success
    assert result.error == "PDF parsing error: Error reading PDF: corrupt xref"
    doc.close.assert_called_once()


@pytest.mark.asyncio
async def test_fetch_pdf_enforces_total_deadline(mocker):
    async def slow_get(self, url, **kwargs):
        await asyncio.sleep(5)

    mocker.patch.object(httpx.AsyncClient, "get", slow_get)

    async with httpx.AsyncClient() as client:
        result = await fetch_pdf("https://slow.test/doc.pdf", ScraperConfig(timeout=100), client)

    assert not result.success
    assert result.error == "PDF download timed out after 100ms"
