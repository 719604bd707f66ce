"""
Tool API - charts, pros/cons, visualizer, voice commands and web search
"""

import time
import logging
from datetime import datetime, timezone

from flask import Blueprint, request, jsonify, current_app

from app.auth import require_auth
from app.routes import error_response, json_body
from debate.agents.search_agent import SearchEngineAgent
from debate.agents.voice_agent import VoiceCommandAgent
from debate.tools.charts import generate_chart_data
from debate.tools.proscons import generate_pros_cons
from debate.tools.search import PlaywrightSearch, ScraperAPISearch, ScrapingDogSearch
from debate.tools.visualizer import SUPPORTED_OUTPUTS, VISUALIZATION_TYPES, generate_visualization

logger = logging.getLogger(__name__)

tools_bp = Blueprint('tools', __name__)

CHART_TYPES = ['bar', 'line', 'pie', 'area', 'scatter']
QUERY_REQUIRED = "Query parameter is required and must be a string"


@tools_bp.route('/charts', methods=['GET'])
def charts_info():
    return jsonify({
        'name': 'Chart Generator',
        'supportedTypes': CHART_TYPES,
        'usage': 'POST {query, chartType, dataSource}',
    })


@tools_bp.route('/charts', methods=['POST'])
@require_auth
def charts():
    data = json_body()
    try:
        result = generate_chart_data(
            current_app.llm_client,
            data.get('query') or '',
            chart_type=data.get('chartType') or 'bar',
            data_source=data.get('dataSource')
        )
    except Exception as e:
        logger.exception(f"Chart generation failed: {e}")
        return error_response('Failed to generate chart data', 'INTERNAL_ERROR', 500)

    if not result.get('success') and result.get('error') == 'Query is required':
        return error_response(result['error'], 'VALIDATION_ERROR', 400)
    return jsonify(result)


@tools_bp.route('/proscons', methods=['GET'])
def proscons_info():
    return jsonify({
        'name': 'Pros & Cons Analyzer',
        'usage': 'POST {query | question, context, includeWeights, includeCategories}',
    })


@tools_bp.route('/proscons', methods=['POST'])
@require_auth
def proscons():
    data = json_body()
    if not (data.get('query') or data.get('question') or '').strip():
        return error_response('Query or question is required', 'VALIDATION_ERROR', 400)

    try:
        result = generate_pros_cons(
            current_app.llm_client,
            query=data.get('query'),
            question=data.get('question'),
            context=data.get('context'),
            include_weights=data.get('includeWeights', True),
            include_categories=data.get('includeCategories', True)
        )
    except Exception as e:
        logger.exception(f"Pros/cons analysis failed: {e}")
        return error_response('Failed to generate pros and cons analysis', 'INTERNAL_ERROR', 500)

    if not result.get('success'):
        return error_response(result.get('error', 'Analysis failed'), 'INTERNAL_ERROR', 500)
    return jsonify(result)


@tools_bp.route('/global-visualizer', methods=['GET'])
def visualizer_info():
    return jsonify({
        'name': 'Global Visualizer',
        'supportedTypes': list(VISUALIZATION_TYPES),
        'outputs': list(SUPPORTED_OUTPUTS),
    })


@tools_bp.route('/global-visualizer', methods=['POST'])
@require_auth
def global_visualizer():
    data = json_body()
    try:
        result = generate_visualization(
            current_app.llm_client,
            data.get('query') or '',
            visualization_type=data.get('visualizationType') or 'auto',
            context=data.get('context'),
            data_type=data.get('dataType')
        )
    except ValueError as e:
        return error_response(str(e), 'VALIDATION_ERROR', 400)
    except Exception as e:
        logger.exception(f"Visualization failed: {e}")
        return error_response('Failed to generate visualization', 'INTERNAL_ERROR', 500)
    return jsonify(result)


@tools_bp.route('/voice/process-command', methods=['POST'])
def voice_command():
    """Map a spoken command to a navigation/query intent."""
    data = json_body()
    command = data.get('command')
    if not command or not isinstance(command, str) or not command.strip():
        return error_response('Command is required', 'VALIDATION_ERROR', 400)

    try:
        result = VoiceCommandAgent(current_app.llm_client).process(command, data.get('userContext'))
    except Exception as e:
        logger.error(f"Voice command failed: {e}")
        return error_response('Failed to process voice command', 'INTERNAL_ERROR', 500)
    return jsonify({'success': True, **result})


def _search_query():
    if request.method == 'GET':
        query = request.args.get('query') or request.args.get('q')
    else:
        query = json_body().get('query')
    if not query or not isinstance(query, str) or not query.strip():
        return None
    return query.strip()


def _search_payload(results, query: str, started: float):
    return {
        'success': True,
        'results': [r.to_dict() for r in results],
        'query': query,
        'totalResults': len(results),
        'processingTime': int((time.time() - started) * 1000),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }


@tools_bp.route('/search/scraperapi', methods=['GET', 'POST'])
def search_scraperapi():
    query = _search_query()
    if not query:
        return error_response(QUERY_REQUIRED, 'VALIDATION_ERROR', 400)

    started = time.time()
    try:
        results = ScraperAPISearch(api_key=current_app.config.get('SCRAPER_API_KEY')).search(query)
    except Exception as e:
        logger.error(f"ScraperAPI search failed: {e}")
        return error_response('Search failed', 'INTERNAL_ERROR', 500, details=str(e))
    return jsonify(_search_payload(results, query, started))


@tools_bp.route('/search/scraperdogs', methods=['GET', 'POST'])
def search_scrapingdog():
    query = _search_query()
    if not query:
        return error_response(QUERY_REQUIRED, 'VALIDATION_ERROR', 400)

    started = time.time()
    try:
        results = ScrapingDogSearch(api_key=current_app.config.get('SCRAPERDOGS_API_KEY')).search(query)
    except Exception as e:
        logger.error(f"ScrapingDog search failed: {e}")
        return error_response('Search failed', 'INTERNAL_ERROR', 500, details=str(e))
    return jsonify(_search_payload(results, query, started))


@tools_bp.route('/search/playwright', methods=['GET', 'POST'])
def search_playwright():
    query = _search_query()
    if not query:
        return error_response(QUERY_REQUIRED, 'VALIDATION_ERROR', 400)

    try:
        return jsonify(PlaywrightSearch().search(query))
    except Exception as e:
        logger.error(f"Playwright search failed: {e}")
        return error_response('Search failed', 'INTERNAL_ERROR', 500, details=str(e))


@tools_bp.route('/search/format', methods=['POST'])
def search_format():
    """Search, then let the LLM clean up and rank the results."""
    query = _search_query()
    if not query:
        return error_response(QUERY_REQUIRED, 'VALIDATION_ERROR', 400)

    result = SearchEngineAgent(current_app.llm_client).search_and_format(query, json_body().get('provider'))
    if not result.get('success'):
        return error_response(result.get('error', 'Search failed'), 'INTERNAL_ERROR', 500)
    return jsonify(result)
