"""
Search Engine Agent - ranks and tidies raw web search results.
"""

import json
import time
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List

from debate.agents.base_agent import BaseAgent
from debate.tools.search import perform_web_search, hostname

logger = logging.getLogger(__name__)


def fallback_format(results: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    formatted = []
    for i, result in enumerate(results[:5]):
        url = result.get('url') or '#'
        formatted.append({
            'title': result.get('title') or f"Search Result {i + 1}",
            'url': url,
            'snippet': result.get('snippet') or "No description available",
            'source': result.get('source') or hostname(url) or 'Unknown',
            'relevanceScore': round(0.8 - 0.1 * i, 2),
        })
    return formatted


class SearchEngineAgent(BaseAgent):

    AGENT_NAME = "search"
    PROMPT_FILE = "search_format.txt"

    def _get_system_prompt(self) -> str:
        return "You format web search results for use in a debate."

    def format_results(self, results: List[Dict[str, Any]], query: str) -> List[Dict[str, Any]]:
        if not results:
            return []

        prompt = self._render({'query': query, 'results': json.dumps(results[:10], indent=2)})
        try:
            response = self._complete_json(prompt)
        except Exception as e:
            logger.error(f"Search formatting failed, using raw results: {e}")
            return fallback_format(results)

        parsed = response.get('parsed')
        formatted = parsed.get('formattedResults') if isinstance(parsed, dict) else None
        if not isinstance(formatted, list) or not formatted:
            return fallback_format(results)

        cleaned = []
        for item in formatted[:5]:
            if not isinstance(item, dict):
                continue
            try:
                score = max(0.0, min(1.0, float(item.get('relevanceScore', 0.5))))
            except (TypeError, ValueError):
                score = 0.5
            url = item.get('url') or '#'
            cleaned.append({
                'title': item.get('title', ''),
                'url': url,
                'snippet': (item.get('snippet') or '')[:150],
                'source': item.get('source') or hostname(url),
                'relevanceScore': score,
            })
        return cleaned or fallback_format(results)

    def search_and_format(self, query: str, provider: str = None) -> Dict[str, Any]:
        start_time = time.time()
        search = perform_web_search(query, provider)
        if not search.get('success'):
            return {'success': False, 'query': query, 'error': search.get('error', 'Search failed'), 'results': []}

        formatted = self.format_results(search.get('results', []), query)
        return {
            'success': True,
            'query': query,
            'results': formatted,
            'totalResults': len(formatted),
            'processingTime': int((time.time() - start_time) * 1000),
            'timestamp': datetime.now(timezone.utc).isoformat()
        }
