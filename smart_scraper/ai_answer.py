"""
Answers a question about scraped page content.

Providers are tried in order: OpenRouter, OpenAI (or any compatible base URL),
the hosted backend ``/aireply`` endpoint, and finally a local keyword
heuristic that always produces an answer.
"""
import json
import os
import re
from typing import Any, Dict, Optional, Tuple, Union

import httpx
from dotenv import load_dotenv

from smart_scraper.config import ScraperConfig
from smart_scraper.logging_config import get_logger

load_dotenv()

logger = get_logger(__name__)

OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
DEFAULT_OPENROUTER_MODEL = "meta-llama/llama-4-scout:free"
DEFAULT_OPENAI_MODEL = "gpt-3.5-turbo"
DEFAULT_REFERER = "https://github.com/smart-scraper/smart-scraper"
PROVIDER_TIMEOUT_SECONDS = 60.0

SYSTEM_PROMPT = (
    "You are a helpful assistant that answers questions based on website content. "
    "Provide accurate, concise answers based only on the provided content."
)
EMAIL_PATTERN = re.compile(r"[\w.-]+@[\w.-]+\.\w+")


def parse_content(content: Union[str, Dict[str, Any], None]) -> Dict[str, Any]:
    if isinstance(content, dict):
        return content
    if not content:
        return {}
    try:
        parsed = json.loads(content)
    except ValueError:
        return {"body_text": content}
    return parsed if isinstance(parsed, dict) else {"body_text": content}


def _page_text(parsed: Dict[str, Any]) -> str:
    return parsed.get("body_text") or parsed.get("bodyText") or parsed.get("text") or ""


def build_content_text(parsed: Dict[str, Any]) -> str:
    lines = [
        f"Title: {parsed.get('title') or 'Unknown'}",
        f"Content: {_page_text(parsed) or 'No content available'}",
        f"Meta Description: {parsed.get('meta_description') or parsed.get('metaDescription') or 'None'}",
    ]
    headings = parsed.get("headings") or []
    if headings:
        lines.append("")
        lines.append("Headings:")
        lines.extend(f"- {h.get('text', '') if isinstance(h, dict) else h}" for h in headings)
    return "\n".join(lines).strip()


def answer_locally(question: str, content: Union[str, Dict[str, Any], None]) -> str:
    parsed = parse_content(content)
    title = parsed.get("title") or "Unknown"
    text = _page_text(parsed)
    lowered = question.lower()

    if "title" in lowered:
        return f'The page title is "{title}".'
    if "about" in lowered or "what" in lowered:
        return f'This page titled "{title}" contains: {text[:200]}...'
    if "contact" in lowered or "email" in lowered:
        match = EMAIL_PATTERN.search(text)
        return f"Found contact: {match.group(0)}" if match else "No contact information found."
    return f'Based on "{title}": {text[:150]}...'


async def _chat_completion(
    client: httpx.AsyncClient,
    url: str,
    headers: Dict[str, str],
    model: str,
    question: str,
    content_text: str,
    config: ScraperConfig,
) -> str:
    response = await client.post(
        url,
        headers={"Content-Type": "application/json", **headers},
        json={
            "model": model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": f"Based on the following website content, please answer this question: {question}\n\nWebsite content:\n{content_text}",
                },
            ],
            "temperature": config.temperature,
            "max_tokens": config.max_tokens,
        },
        timeout=PROVIDER_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    choices = response.json().get("choices") or [{}]
    return (choices[0].get("message") or {}).get("content") or "No response from AI"


async def answer_question(
    url: str,
    question: str,
    content: Union[str, Dict[str, Any], None],
    config: ScraperConfig,
    client: httpx.AsyncClient,
) -> Tuple[str, str]:
    """Returns ``(answer, processing)`` where processing names the provider used."""
    parsed = parse_content(content)
    content_text = build_content_text(parsed)

    openrouter_key: Optional[str] = config.openrouter_api_key or os.getenv("OPENROUTER_API_KEY")
    if openrouter_key:
        try:
            answer = await _chat_completion(
                client,
                OPENROUTER_URL,
                {
                    "Authorization": f"Bearer {openrouter_key}",
                    "HTTP-Referer": config.referer or DEFAULT_REFERER,
                    "X-Title": "Smart Scraper",
                },
                config.model or DEFAULT_OPENROUTER_MODEL,
                question,
                content_text,
                config,
            )
            return answer, "openrouter"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"OpenRouter API call failed, falling back: {e}", extra={"url": url, "event_type": "ai_openrouter_failed"})

    openai_key: Optional[str] = config.openai_api_key or os.getenv("OPENAI_API_KEY")
    if openai_key:
        try:
            answer = await _chat_completion(
                client,
                f"{config.openai_base_url.rstrip('/')}/v1/chat/completions",
                {"Authorization": f"Bearer {openai_key}"},
                config.model or DEFAULT_OPENAI_MODEL,
                question,
                content_text,
                config,
            )
            return answer, "openai"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"OpenAI API call failed, falling back: {e}", extra={"url": url, "event_type": "ai_openai_failed"})

    if config.api_key:
        try:
            response = await client.post(
                f"{config.api_url.rstrip('/')}/aireply",
                headers={"x-api-key": config.api_key, "Content-Type": "application/json"},
                json={"url": url, "question": question},
                timeout=PROVIDER_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            return response.json().get("answer", ""), "backend"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"Backend API call failed, using local processing: {e}", extra={"url": url, "event_type": "ai_backend_failed"})

    return answer_locally(question, parsed), "local"
