"""
Decides whether a fetched page needs JavaScript rendering.

The decision is an ordered set of named rules:
1. an allowlist of simple hosts short-circuits to "no rendering";
2. SPA, anti-bot protection and interactive-platform rules are evaluated;
3. the visible text volume of the body is measured;
4. rendering is required for protection pages, known interactive platforms,
   or SPA markers on a page with little visible text.
"""
import re
from enum import Enum
from typing import List, NamedTuple, Pattern
from urllib.parse import urlparse

from smart_scraper.content_extractor import visible_body_text

MIN_VISIBLE_TEXT_LENGTH = 200

SIMPLE_SITES = (
    "example.com",
    "httpbin.org",
    "wikipedia.org",
    "github.io",
    "netlify.app",
    "vercel.app",
)


class RuleCategory(str, Enum):
    SPA = "spa"
    PROTECTION = "protection"
    PLATFORM = "platform"


class IndicatorRule(NamedTuple):
    name: str
    category: RuleCategory
    pattern: Pattern
    applies_to_url: bool = False

    def matches(self, html: str, url: str) -> bool:
        return bool(self.pattern.search(url if self.applies_to_url else html))


def _rule(name: str, category: RuleCategory, regex: str, applies_to_url: bool = False) -> IndicatorRule:
    return IndicatorRule(name, category, re.compile(regex, re.IGNORECASE), applies_to_url)


RULES: List[IndicatorRule] = [
    # Single-page-app shells
    _rule("React root div detected", RuleCategory.SPA, r"<div[^>]*id=['\"]?root['\"]?[^>]*>\s*</div>"),
    _rule("Empty app container detected", RuleCategory.SPA, r"<div[^>]*id=['\"]?app['\"]?[^>]*>\s*</div>"),
    _rule("React root attribute detected", RuleCategory.SPA, r"<div[^>]*data-reactroot"),
    _rule("Next.js data detected", RuleCategory.SPA, r"window\.__NEXT_DATA__"),
    _rule("Nuxt state detected", RuleCategory.SPA, r"window\.__NUXT__"),
    _rule("Next.js static bundle detected", RuleCategory.SPA, r"_next/static"),
    _rule("Webpack runtime detected", RuleCategory.SPA, r"__webpack_require__"),
    # Anti-bot challenges and "enable JavaScript" prompts
    _rule("Cloudflare challenge detected", RuleCategory.PROTECTION, r"cloudflare.*challenge"),
    _rule("Cloudflare protection detected", RuleCategory.PROTECTION, r"cloudflare.*protection"),
    _rule("Cloudflare ray id detected", RuleCategory.PROTECTION, r"ray id.*cloudflare"),
    _rule("Cloudflare security check detected", RuleCategory.PROTECTION, r"security check.*cloudflare"),
    _rule("Cloudflare attention page detected", RuleCategory.PROTECTION, r"attention required.*cloudflare"),
    _rule("JavaScript required message detected", RuleCategory.PROTECTION, r"please enable javascript"),
    _rule("JavaScript enable prompt detected", RuleCategory.PROTECTION, r"you need to enable javascript"),
    _rule("JavaScript requirement notice detected", RuleCategory.PROTECTION, r"this site requires javascript"),
    _rule("JScript requirement detected", RuleCategory.PROTECTION, r"jscript.*required"),
    # Interactive platforms that only work rendered
    _rule("Instagram domain", RuleCategory.PLATFORM, r"instagram\.com", applies_to_url=True),
    _rule("Twitter domain", RuleCategory.PLATFORM, r"twitter\.com", applies_to_url=True),
    _rule("Facebook domain", RuleCategory.PLATFORM, r"facebook\.com", applies_to_url=True),
    _rule("LinkedIn domain", RuleCategory.PLATFORM, r"linkedin\.com", applies_to_url=True),
    _rule("Google Maps domain", RuleCategory.PLATFORM, r"maps\.google", applies_to_url=True),
    _rule("Gmail domain", RuleCategory.PLATFORM, r"gmail\.com", applies_to_url=True),
    _rule("YouTube domain", RuleCategory.PLATFORM, r"youtube\.com", applies_to_url=True),
]


class ClassificationVerdict(NamedTuple):
    needs_rendering: bool
    indicators: List[str]
    visible_text_length: int = 0


def is_simple_site(url: str) -> bool:
    host = (urlparse(url).hostname or "").lower()
    return any(site in host for site in SIMPLE_SITES)


def matching_rules(html: str, url: str) -> List[IndicatorRule]:
    return [rule for rule in RULES if rule.matches(html, url)]


def classify(html: str, url: str) -> ClassificationVerdict:
    if is_simple_site(url):
        return ClassificationVerdict(needs_rendering=False, indicators=[])

    fired = matching_rules(html, url)
    categories = {rule.category for rule in fired}
    text_length = len(visible_body_text(html))

    has_minimal_content = text_length < MIN_VISIBLE_TEXT_LENGTH
    needs_rendering = (
        RuleCategory.PROTECTION in categories
        or RuleCategory.PLATFORM in categories
        or (has_minimal_content and RuleCategory.SPA in categories)
    )
    return ClassificationVerdict(
        needs_rendering=needs_rendering,
        indicators=[rule.name for rule in fired],
        visible_text_length=text_length,
    )


def needs_rendering(html: str, url: str) -> bool:
    return classify(html, url).needs_rendering
