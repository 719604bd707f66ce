"""
Web Search Tools

Three scraping back-ends (ScraperAPI, ScrapingDog, headless Playwright) that
all return lists of SearchResult, plus mock results used when a back-end is
not configured.
"""

import os
import re
import time
import logging
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional
from urllib.parse import quote_plus, urlparse

import httpx
from bs4 import BeautifulSoup

from debate.config import get_search_config

logger = logging.getLogger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

SCRAPERAPI_PLACEHOLDER = "your_scraperapi_key_here"
SCRAPINGDOG_PLACEHOLDER = "your_scraperdogs_api_key_here"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class SearchResult:
    title: str
    url: str
    snippet: str
    source: str
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _slug(query: str) -> str:
    return re.sub(r'\s+', '-', query.lower())


def mock_search_results(query: str, count: int = 5) -> List[SearchResult]:
    slug = _slug(query)
    templates = [
        (
            f"Understanding {query}: A Comprehensive Guide",
            f"https://example.com/guide-{slug}",
            f"This comprehensive guide covers everything you need to know about {query}, "
            f"including key concepts, best practices, and real-world applications.",
            "Example.com",
        ),
        (
            f"{query}: Latest Research and Findings",
            f"https://research.example.com/{slug}-research",
            f"Recent research on {query} reveals important insights and developments in the field. "
            f"This article summarizes the latest findings and their implications.",
            "Research.example.com",
        ),
        (
            f"How to Apply {query} in Practice",
            f"https://practical.example.com/applying-{slug}",
            f"Learn practical applications of {query} with step-by-step instructions, "
            f"case studies, and expert recommendations for implementation.",
            "Practical.example.com",
        ),
        (
            f"{query}: Best Practices and Tips",
            f"https://tips.example.com/{slug}-tips",
            f"Discover expert tips and best practices for {query}. "
            f"This resource provides actionable advice and proven strategies.",
            "Tips.example.com",
        ),
        (
            f"{query}: Common Challenges and Solutions",
            f"https://solutions.example.com/{slug}-solutions",
            f"Explore common challenges related to {query} and learn effective solutions "
            f"from industry experts and practitioners.",
            "Solutions.example.com",
        ),
    ]
    return [SearchResult(title, url, snippet, source) for title, url, snippet, source in templates[:count]]


def hostname(url: str) -> str:
    return urlparse(url).hostname or ''


def _clean(text: Optional[str]) -> str:
    return re.sub(r'&[^;\s]+;', '', (text or '')).strip()


def _configured(key: Optional[str], placeholder: str) -> bool:
    return bool(key) and key != placeholder


class ScraperAPISearch:
    """Scrape search engine pages through ScraperAPI."""

    API_URL = "http://api.scraperapi.com"
    MAX_PER_ENGINE = 5

    ENGINES = [
        {
            'name': 'Google',
            'url': 'https://www.google.com/search?q={q}',
            'results': 'div.g',
            'title': 'h3',
            'link': 'a[href]',
            'snippet': '.VwiC3b, .s3v9rd, .hgKElc',
        },
        {
            'name': 'DuckDuckGo',
            'url': 'https://duckduckgo.com/html/?q={q}',
            'results': '.result',
            'title': '.result__title a',
            'link': '.result__title a',
            'snippet': '.result__snippet',
        },
        {
            'name': 'Bing',
            'url': 'https://www.bing.com/search?q={q}',
            'results': '.b_algo',
            'title': 'h2 a',
            'link': 'h2 a',
            'snippet': '.b_caption p',
        },
    ]

    def __init__(self, api_key: str = None, timeout: float = None):
        self.api_key = api_key or os.getenv('SCRAPER_API_KEY')
        self.timeout = timeout or get_search_config().get('timeout_seconds', 15.0)

    @property
    def configured(self) -> bool:
        return _configured(self.api_key, SCRAPERAPI_PLACEHOLDER)

    def parse(self, html: str, engine: Dict[str, str], query: str) -> List[SearchResult]:
        soup = BeautifulSoup(html, "html.parser")
        results = []
        for block in soup.select(engine['results']):
            link_el = block.select_one(engine['link'])
            url = link_el.get('href', '') if link_el else ''
            if not url.startswith('http') or 'google.com' in url:
                continue

            title_el = block.select_one(engine['title'])
            snippet_el = block.select_one(engine['snippet'])
            index = len(results)
            results.append(SearchResult(
                title=(title_el.get_text(strip=True) if title_el else '') or f"Result {index + 1} for {query}",
                url=url,
                snippet=(snippet_el.get_text(" ", strip=True) if snippet_el else '')
                or f"Search result snippet for {query}",
                source=engine['name']
            ))
            if len(results) >= self.MAX_PER_ENGINE:
                break
        logger.info(f"ScraperAPI: parsed {len(results)} results from {engine['name']}")
        return results

    def search(self, query: str) -> List[SearchResult]:
        if not self.configured:
            logger.warning("ScraperAPI: API key not configured, using mock results")
            return mock_search_results(query, 3)

        headers = {
            'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8',
            'Accept-Language': 'en-US,en;q=0.5',
            'User-Agent': BROWSER_USER_AGENT,
        }
        with httpx.Client(timeout=self.timeout, headers=headers) as client:
            for engine in self.ENGINES:
                target = engine['url'].format(q=quote_plus(query))
                try:
                    response = client.get(self.API_URL, params={
                        'api_key': self.api_key,
                        'url': target,
                        'render': 'true',
                    })
                except httpx.HTTPError as e:
                    logger.error(f"ScraperAPI: error with {engine['name']}: {e}")
                    continue

                if response.is_error:
                    logger.error(f"ScraperAPI: {engine['name']} request failed: {response.status_code}")
                    continue

                results = self.parse(response.text, engine, query)
                if results:
                    return results
                logger.info(f"ScraperAPI: no results from {engine['name']}, trying next engine")

        logger.warning("ScraperAPI: all engines failed, returning mock results")
        return mock_search_results(query, 3)


class ScrapingDogSearch:
    """Scrape search engine pages through the ScrapingDog API."""

    API_URL = "https://api.scrapingdog.com/scrape"
    ENGINES = ['google', 'bing', 'duckduckgo', 'yahoo']
    MAX_RESULTS = 10

    SELECTORS = {
        'google': ('div.g', 'h3', 'a[href]', '.VwiC3b, span'),
        'bing': ('.b_algo', 'h2', 'h2 a', 'p'),
        'duckduckgo': ('.result', '.result__title, .result__a', '.result__a', '.result__snippet'),
        'yahoo': ('.algo', 'h3', 'a[href]', 'p'),
    }

    def __init__(self, api_key: str = None, timeout: float = None):
        self.api_key = api_key or os.getenv('SCRAPERDOGS_API_KEY')
        self.timeout = timeout or get_search_config().get('scrapingdog_timeout_seconds', 30.0)

    @property
    def configured(self) -> bool:
        return _configured(self.api_key, SCRAPINGDOG_PLACEHOLDER)

    def parse(self, html: str, engine: str) -> List[SearchResult]:
        soup = BeautifulSoup(html, "html.parser")
        container, title_sel, link_sel, snippet_sel = self.SELECTORS.get(engine, self.SELECTORS['google'])
        results = []
        for i, block in enumerate(soup.select(container)):
            link_el = block.select_one(link_sel)
            url = (link_el.get('href', '') if link_el else '').strip()
            if not url.startswith('http') or 'google.com/search' in url or 'bing.com/search' in url:
                continue

            title_el = block.select_one(title_sel)
            snippet_el = block.select_one(snippet_sel)
            results.append(SearchResult(
                title=(_clean(title_el.get_text()) if title_el else '')[:100] or f"Search Result {i + 1}",
                url=url,
                snippet=(_clean(snippet_el.get_text(" ")) if snippet_el else '')[:200] or "No description available",
                source=hostname(url)
            ))
            if len(results) >= self.MAX_RESULTS:
                break
        return results

    def search(self, query: str) -> List[SearchResult]:
        if not self.configured:
            logger.warning("ScrapingDog: API key not configured, using mock results")
            return mock_search_results(query, 5)

        headers = {'Content-Type': 'application/json', 'API-KEY': self.api_key, 'User-Agent': BROWSER_USER_AGENT}
        with httpx.Client(timeout=self.timeout, headers=headers) as client:
            for engine in self.ENGINES:
                body = {
                    'url': f"https://www.{engine}.com/search?q={quote_plus(query)}",
                    'render_js': True,
                    'wait': 3000,
                }
                try:
                    response = client.post(self.API_URL, json=body)
                except httpx.HTTPError as e:
                    logger.error(f"ScrapingDog: error with {engine}: {e}")
                    continue

                if response.is_error:
                    logger.error(f"ScrapingDog: {engine} request failed: {response.status_code}")
                    continue

                results = self.parse(response.text, engine)
                if results:
                    return results

        logger.warning("ScrapingDog: all search engines failed, returning mock results")
        return mock_search_results(query, 5)


class PlaywrightSearch:
    """Search Google in a headless Chromium browser."""

    TITLE_SELECTOR = (
        "div[data-ved] h3, .g h3, .tF2Cxc h3, [data-header-feature] h3, "
        "div[id='search'] h3, #search h3, [role='main'] h3, h3"
    )
    SNIPPET_SELECTORS = [".VwiC3b", "[data-sncf]", ".s3v9rd", ".hgKElc"]
    EXCLUDED_PHRASES = ("sign up", "learn more")
    MAX_RESULTS = 5

    def __init__(self, timeout_ms: int = None):
        self.timeout_ms = timeout_ms or get_search_config().get('playwright_timeout_ms', 30000)

    def _find_snippet(self, container, title: str, url: str) -> str:
        for selector in self.SNIPPET_SELECTORS:
            for element in container.locator(selector).all():
                text = (element.text_content() or '').strip()
                lower = text.lower()
                if not (30 <= len(text) <= 300):
                    continue
                if text == title or url in text or any(p in lower for p in self.EXCLUDED_PHRASES):
                    continue
                return text[:200]
        return "No description available"

    def _extract(self, page) -> List[SearchResult]:
        results = []
        for title_el in page.locator(self.TITLE_SELECTOR).all()[:10]:
            title = (title_el.text_content() or '').strip()
            if not title:
                continue

            link_el = title_el.locator("xpath=ancestor::a").first
            url = link_el.get_attribute("href") if link_el.count() else None
            if not url or not url.startswith('http'):
                continue

            container = link_el.locator(
                "xpath=ancestor::div[contains(@class, 'g') or contains(@class, 'tF2Cxc')]"
            ).first
            snippet = self._find_snippet(container, title, url) if container.count() else "No description available"

            results.append(SearchResult(
                title=title,
                url=url,
                snippet=snippet,
                source=hostname(url).replace('www.', '', 1)
            ))
        return results[:self.MAX_RESULTS]

    def search(self, query: str) -> Dict[str, Any]:
        if not query or not isinstance(query, str):
            raise ValueError("Query parameter is required")

        from playwright.sync_api import sync_playwright

        start_time = time.time()
        with sync_playwright() as pw:
            browser = pw.chromium.launch(
                headless=True,
                args=["--no-sandbox", "--disable-setuid-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]
            )
            try:
                context = browser.new_context(
                    viewport={"width": 1920, "height": 1080},
                    user_agent=BROWSER_USER_AGENT,
                    extra_http_headers={"Accept-Language": "en-US,en;q=0.5"}
                )
                page = context.new_page()
                page.goto(
                    f"https://www.google.com/search?q={quote_plus(query)}&num=10",
                    wait_until="networkidle",
                    timeout=self.timeout_ms
                )
                page.wait_for_selector("h3", timeout=5000)
                results = self._extract(page)
                context.close()
            finally:
                browser.close()

        return {
            'success': True,
            'results': [r.to_dict() for r in results],
            'query': query,
            'totalResults': len(results),
            'processingTime': int((time.time() - start_time) * 1000),
            'timestamp': _now()
        }


def perform_web_search(query: str, provider: str = None) -> Dict[str, Any]:
    """Run the configured search back-end and report success or failure."""
    provider = (provider or get_search_config().get('provider', 'playwright')).lower()
    start_time = time.time()

    try:
        if provider == 'playwright':
            return PlaywrightSearch().search(query)
        if provider == 'scrapingdog':
            results = ScrapingDogSearch().search(query)
        elif provider == 'scraperapi':
            results = ScraperAPISearch().search(query)
        else:
            raise ValueError(f"Unknown search provider: {provider}")
    except Exception as e:
        logger.error(f"Web search failed ({provider}): {e}")
        return {'success': False, 'error': str(e), 'query': query, 'results': []}

    return {
        'success': True,
        'results': [r.to_dict() for r in results],
        'query': query,
        'totalResults': len(results),
        'processingTime': int((time.time() - start_time) * 1000),
        'timestamp': _now()
    }
