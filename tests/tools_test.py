"""
Tests for chart, pros/cons, visualizer, search and context-store tools
"""

import json
import pytest
from unittest.mock import patch, MagicMock

import httpx

from debate.llm_client import LLMError
from debate.tools.charts import generate_chart_data, validate_chart_data, extract_json_object
from debate.tools.proscons import generate_pros_cons, validate_items
from debate.tools.visualizer import generate_visualization, parse_visualization
from debate.tools.search import (
    ScraperAPISearch,
    ScrapingDogSearch,
    PlaywrightSearch,
    mock_search_results,
    perform_web_search,
)
from debate.tools.memory import ContextStore


def _reply(content):
    return {'content': content, 'model': 'test-model', 'usage': {}, 'elapsed': 0.0, 'provider': 'groq'}


class TestCharts:

    def test_requires_query(self, mock_llm_client):
        assert generate_chart_data(mock_llm_client, '  ') == {'success': False, 'error': 'Query is required'}

    def test_bar_chart_from_reply(self, mock_llm_client):
        mock_llm_client.complete.side_effect = None
        mock_llm_client.complete.return_value = _reply(
            'Here: {"data": [{"name": " Q1 ", "value": 10}, {"name": "bad", "value": "x"}], "title": "Sales"}'
        )

        result = generate_chart_data(mock_llm_client, 'quarterly sales', 'BAR')

        assert result['success'] is True
        assert result['chartType'] == 'bar'
        assert result['title'] == 'Sales'
        assert result['data'] == [{'name': 'Q1', 'value': 10}]

    def test_fallback_mermaid(self, mock_llm_client):
        result = generate_chart_data(mock_llm_client, 'onboarding', 'flowchart')
        assert result['success'] is True
        assert result['mermaidCode'].startswith('graph TD')
        assert '[onboarding]' in result['mermaidCode']

    def test_fallback_on_llm_error(self, mock_llm_client):
        mock_llm_client.complete.side_effect = LLMError('down')
        result = generate_chart_data(mock_llm_client, 'topics', 'd3-network')
        assert result['success'] is True
        assert result['networkData']['nodes'][0]['name'] == 'topics'

    def test_validate_chart_data(self):
        data = [
            {'name': 'a', 'value': 1.5},
            {'name': 'nan', 'value': float('nan')},
            {'name': 'flag', 'value': True},
            {'name': 3, 'value': 3},
            'junk',
        ]
        assert validate_chart_data(data) == [{'name': 'a', 'value': 1.5}]
        assert validate_chart_data(None) == []

    def test_extract_json_object_rejects_lists(self):
        assert extract_json_object('[1, 2]') is None
        assert extract_json_object('x {"a": 1} y') == {'a': 1}


class TestProsCons:

    def test_requires_subject(self, mock_llm_client):
        result = generate_pros_cons(mock_llm_client)
        assert result == {'success': False, 'error': 'Query or question is required'}

    def test_parsed_reply(self, mock_llm_client):
        mock_llm_client.complete.side_effect = None
        mock_llm_client.complete.return_value = _reply(json.dumps({
            'pros': [{'point': 'Cheaper', 'weight': 4.6, 'category': 'Cost'}, {'point': ''}],
            'cons': [{'point': 'Lock-in', 'weight': 9}],
            'summary': 'Mixed',
        }))

        result = generate_pros_cons(mock_llm_client, question='Move to the cloud?')

        assert result['pros'] == [{'point': 'Cheaper', 'weight': 5, 'category': 'Cost'}]
        assert result['cons'] == [{'point': 'Lock-in'}]
        assert result['summary'] == 'Mixed'
        assert result['recommendation'] == 'Consider all factors carefully before making a decision.'
        assert (result['totalPros'], result['totalCons']) == (1, 1)

    def test_fallback_analysis(self, mock_llm_client):
        result = generate_pros_cons(mock_llm_client, query='remote work')
        assert result['success'] is True
        assert result['totalPros'] == 3
        assert 'remote work' in result['cons'][0]['point']

    def test_empty_analysis_fails(self, mock_llm_client):
        mock_llm_client.complete.side_effect = None
        mock_llm_client.complete.return_value = _reply('{"pros": [], "cons": []}')
        result = generate_pros_cons(mock_llm_client, query='x')
        assert result == {'success': False, 'error': 'No valid analysis data generated'}

    def test_validate_items_drops_non_dicts(self):
        assert validate_items([{'point': ' a ', 'category': ' '}, 3]) == [{'point': 'a'}]


class TestVisualizer:

    def test_requires_query(self, mock_llm_client):
        with pytest.raises(ValueError):
            generate_visualization(mock_llm_client, '')

    def test_fenced_reply(self, mock_llm_client):
        mock_llm_client.complete.side_effect = None
        mock_llm_client.complete.return_value = _reply(
            '```json\n{"visualizationType": "mermaid", "mermaidCode": "graph TD\\n A-->B", "data": []}\n```'
        )
        result = generate_visualization(mock_llm_client, 'pipeline', 'diagram')

        assert result['visualizationType'] == 'mermaid'
        assert result['mermaidCode'] == 'graph TD\n A-->B'
        assert 'data' not in result

    def test_fallback_by_type(self, mock_llm_client):
        assert generate_visualization(mock_llm_client, 'q', 'network')['visualizationType'] == 'd3-network'
        assert generate_visualization(mock_llm_client, 'q', 'flow')['visualizationType'] == 'mermaid'
        assert generate_visualization(mock_llm_client, 'q', 'unknown')['visualizationType'] == 'chart'

    def test_parse_visualization_plain_object(self):
        assert parse_visualization('see {"title": "T"}') == {'title': 'T'}


GOOGLE_HTML = """
<html><body>
  <div class="g">
    <a href="https://www.google.com/url?q=internal"><h3>Internal</h3></a>
  </div>
  <div class="g">
    <a href="https://docs.example.org/guide"><h3>Guide</h3></a>
    <div class="VwiC3b">A practical guide to the topic.</div>
  </div>
  <div class="g">
    <a href="/relative"><h3>Relative</h3></a>
  </div>
</body></html>
"""

DUCK_HTML = """
<div class="result">
  <h2 class="result__title"><a class="result__a" href="https://news.example.net/story">Story &amp; more</a></h2>
  <a class="result__snippet">Breaking news about the topic</a>
</div>
"""


class TestSearch:

    def test_scraperapi_parse(self):
        search = ScraperAPISearch(api_key='key')
        results = search.parse(GOOGLE_HTML, search.ENGINES[0], 'topic')

        assert len(results) == 1
        assert results[0].title == 'Guide'
        assert results[0].snippet == 'A practical guide to the topic.'
        assert results[0].source == 'Google'

    def test_scrapingdog_parse(self):
        results = ScrapingDogSearch(api_key='key').parse(DUCK_HTML, 'duckduckgo')

        assert len(results) == 1
        assert results[0].url == 'https://news.example.net/story'
        assert results[0].source == 'news.example.net'
        assert results[0].snippet == 'Breaking news about the topic'

    def test_unconfigured_uses_mock_results(self, monkeypatch):
        monkeypatch.delenv('SCRAPER_API_KEY', raising=False)
        results = ScraperAPISearch(api_key='your_scraperapi_key_here').search('solar power')
        assert len(results) == 3
        assert results[0].url == 'https://example.com/guide-solar-power'

    def test_scraperapi_falls_through_engines(self):
        google = httpx.Response(500, request=httpx.Request('GET', ScraperAPISearch.API_URL))
        duck = httpx.Response(
            200,
            text='<div class="result"><h2 class="result__title"><a href="https://a.example/x">A</a></h2>'
                 '<div class="result__snippet">snippet</div></div>',
            request=httpx.Request('GET', ScraperAPISearch.API_URL)
        )
        with patch('debate.tools.search.httpx.Client') as client_cls:
            client = MagicMock()
            client.get.side_effect = [google, duck]
            client_cls.return_value.__enter__.return_value = client

            results = ScraperAPISearch(api_key='real-key').search('topic')

        assert [r.source for r in results] == ['DuckDuckGo']
        assert client.get.call_args.kwargs['params']['api_key'] == 'real-key'

    def test_perform_web_search_unknown_provider(self):
        result = perform_web_search('q', provider='altavista')
        assert result['success'] is False
        assert 'altavista' in result['error']

    def test_perform_web_search_scrapingdog(self, monkeypatch):
        monkeypatch.delenv('SCRAPERDOGS_API_KEY', raising=False)
        result = perform_web_search('q', provider='scrapingdog')
        assert result['success'] is True
        assert result['totalResults'] == 5

    def test_mock_results_count(self):
        assert len(mock_search_results('x', 2)) == 2


CONTAINER_XPATH = "xpath=ancestor::div[contains(@class, 'g') or contains(@class, 'tF2Cxc')]"


class Node:
    """Minimal stand-in for a Playwright element handle."""

    def __init__(self, text='', href=None, children=None):
        self.text = text
        self.href = href
        self.children = children or {}

    def text_content(self):
        return self.text

    def get_attribute(self, name):
        return self.href

    def locator(self, selector):
        return Nodes(self.children.get(selector, []))


class Nodes:
    """Minimal stand-in for a Playwright locator."""

    def __init__(self, items):
        self.items = items

    def all(self):
        return list(self.items)

    def count(self):
        return len(self.items)

    @property
    def first(self):
        return Nodes(self.items[:1])

    def get_attribute(self, name):
        return self.items[0].get_attribute(name)

    def locator(self, selector):
        return Nodes([child for item in self.items for child in item.locator(selector).items])


def _result(title, href, snippets=None):
    children = {}
    if snippets is not None:
        children[CONTAINER_XPATH] = [Node(children={".VwiC3b": [Node(s) for s in snippets]})]
    link = Node(href=href, children=children)
    return Node(title, children={"xpath=ancestor::a": [link]})


@pytest.fixture
def browser_page():
    page = MagicMock()
    with patch('playwright.sync_api.sync_playwright') as sync_playwright:
        pw = sync_playwright.return_value.__enter__.return_value
        browser = pw.chromium.launch.return_value
        browser.new_context.return_value.new_page.return_value = page
        yield page, browser


class TestPlaywrightSearch:

    def test_extracts_results(self, browser_page):
        page, browser = browser_page
        results = Node(children={PlaywrightSearch.TITLE_SELECTOR: [
            _result('Solar Guide', 'https://www.example.com/solar', [
                'too short',
                'Sign up today to get the full solar guide for free',
                'A thorough guide to installing solar panels on residential roofs.',
            ]),
            _result('Relative', '/url?q=elsewhere', []),
            _result('   ', 'https://blank.example.com', []),
            _result('Long Snippet', 'https://docs.example.org/a', ['x' * 301]),
            _result('No Container', 'https://b.example.net'),
        ]})
        page.locator.side_effect = results.locator

        response = PlaywrightSearch(timeout_ms=1000).search('solar panels')

        assert response['success'] is True
        assert [r['title'] for r in response['results']] == ['Solar Guide', 'Long Snippet', 'No Container']
        first, second, third = response['results']
        assert first['snippet'] == 'A thorough guide to installing solar panels on residential roofs.'
        assert first['source'] == 'example.com'
        assert second['snippet'] == 'No description available'
        assert third['snippet'] == 'No description available'
        assert 'q=solar+panels' in page.goto.call_args.args[0]
        assert page.goto.call_args.kwargs['timeout'] == 1000
        browser.close.assert_called_once()

    def test_browser_closed_on_navigation_error(self, browser_page):
        page, browser = browser_page
        page.goto.side_effect = RuntimeError('timeout')

        with pytest.raises(RuntimeError):
            PlaywrightSearch(timeout_ms=1000).search('solar')
        browser.close.assert_called_once()

    def test_requires_query(self):
        with pytest.raises(ValueError):
            PlaywrightSearch().search('')


class TestContextStore:

    def test_history_and_clear(self, tmp_path):
        store = ContextStore(str(tmp_path / 'nested' / 'context.db'))
        store.save_context('s1', {'id': 'c1', 'iterationCount': 0})
        store.save_context('s1', {'id': 'c2', 'iterationCount': 1})
        store.save_context('s2', {'id': 'c3', 'iterationCount': 0})

        assert store.get_latest('s1')['id'] == 'c2'
        assert [c['id'] for c in store.get_history('s1')] == ['c2', 'c1']

        store.clear('s1')
        assert store.get_latest('s1') is None
        assert store.get_latest('s2')['id'] == 'c3'

    def test_old_contexts_pruned_per_session(self, tmp_path):
        store = ContextStore(str(tmp_path / 'context.db'), keep_per_session=3)
        for i in range(6):
            store.save_context('s1', {'id': f"c{i}", 'iterationCount': i})
        store.save_context('s2', {'id': 'other', 'iterationCount': 0})

        assert store.count('s1') == 3
        assert [c['id'] for c in store.get_history('s1')] == ['c5', 'c4', 'c3']
        assert store.count('s2') == 1

    def test_default_keeps_current_plus_history(self, tmp_path):
        store = ContextStore(str(tmp_path / 'context.db'))
        for i in range(15):
            store.save_context('s1', {'id': f"c{i}", 'iterationCount': i})
        assert store.count('s1') == 11
