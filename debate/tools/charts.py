"""
Chart Agent - turns a query into chart, diagram or network data.
"""

import re
import json
import random
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from debate.config import get_agent_config

logger = logging.getLogger(__name__)

CHART_TYPES = ('bar', 'line', 'pie', 'area', 'mermaid', 'flowchart', 'mindmap', 'd3-network', 'plotly')
MERMAID_TYPES = ('mermaid', 'flowchart', 'mindmap')


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """Parse the widest {...} span of a reply."""
    match = re.search(r'\{[\s\S]*\}', text or '')
    if not match:
        return None
    try:
        parsed = json.loads(match.group(0))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def build_chart_prompt(query: str, chart_type: str, data_source: Optional[str] = None) -> str:
    base_context = (
        f'Query: "{query}"\n'
        f'Chart Type: {chart_type}\n'
        f'Data Source Context: {data_source or "General analysis"}'
    )

    if chart_type in MERMAID_TYPES:
        diagram = 'mindmap' if chart_type == 'mindmap' else 'flowchart (graph TD)'
        return (
            f"{base_context}\n\n"
            f"Create a Mermaid {diagram} diagram that explains the query.\n"
            "Return JSON only in this format:\n"
            '{"mermaidCode": "valid Mermaid syntax", "title": "diagram title", "description": "short description"}'
        )

    if chart_type == 'd3-network':
        return (
            f"{base_context}\n\n"
            "Create a network of related concepts for the query with 5-15 nodes.\n"
            "Return JSON only in this format:\n"
            '{"networkData": {"nodes": [{"id": "node1", "name": "Concept", "group": 1}], '
            '"links": [{"source": "node1", "target": "node2", "value": 1}]}, '
            '"title": "network title", "description": "short description"}'
        )

    if chart_type == 'plotly':
        return (
            f"{base_context}\n\n"
            "Create a Plotly chart configuration that visualizes the query.\n"
            "Return JSON only in this format:\n"
            '{"plotlyConfig": {"data": [{"x": [], "y": [], "type": "bar"}], "layout": {"title": "..."}}, '
            '"title": "chart title", "description": "short description"}'
        )

    return (
        f"{base_context}\n\n"
        f"Generate realistic data points for a {chart_type} chart about the query, with 3-8 data points.\n"
        "Return JSON only in this format:\n"
        '{"data": [{"name": "Category", "value": 42}], "title": "chart title", "description": "short description"}'
    )


def fallback_chart_data(query: str, chart_type: str) -> Dict[str, Any]:
    if chart_type in ('mermaid', 'flowchart'):
        return {
            'mermaidCode': f"graph TD\n    A[{query}] --> B[Analysis]\n    B --> C[Results]\n    C --> D[Conclusion]",
            'title': f"{chart_type.capitalize()} Diagram",
            'description': f"Generated diagram for: {query}",
        }

    if chart_type == 'mindmap':
        return {
            'mermaidCode': (
                f"mindmap\n  root(({query}))\n    Branch1\n      Idea1\n      Idea2\n"
                "    Branch2\n      Concept1\n      Concept2"
            ),
            'title': "Mind Map",
            'description': f"Generated mind map for: {query}",
        }

    if chart_type == 'd3-network':
        return {
            'networkData': {
                'nodes': [
                    {'id': 'center', 'name': query, 'group': 1},
                    {'id': 'related1', 'name': 'Related Concept 1', 'group': 2},
                    {'id': 'related2', 'name': 'Related Concept 2', 'group': 2},
                    {'id': 'related3', 'name': 'Related Concept 3', 'group': 3},
                ],
                'links': [
                    {'source': 'center', 'target': 'related1', 'value': 1},
                    {'source': 'center', 'target': 'related2', 'value': 1},
                    {'source': 'center', 'target': 'related3', 'value': 1},
                ],
            },
            'title': "Network Diagram",
            'description': f"Generated network for: {query}",
        }

    if chart_type == 'plotly':
        names = [f"Item {i + 1}" for i in range(5)]
        return {
            'plotlyConfig': {
                'data': [{'x': names, 'y': [random.randint(10, 109) for _ in names], 'type': 'bar'}],
                'layout': {'title': f"Analysis: {query}"},
            },
            'title': "Plotly Chart",
            'description': f"Generated chart for: {query}",
        }

    return {
        'data': [{'name': f"Category {c}", 'value': random.randint(50, 149)} for c in 'ABCDE'],
        'title': f"{chart_type.capitalize()} Chart",
        'description': f"Generated chart data for: {query}",
    }


def validate_chart_data(data: Any) -> List[Dict[str, Any]]:
    """Keep items with a string name and a numeric, non-NaN value."""
    if not isinstance(data, list):
        return []
    valid = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = item.get('name')
        value = item.get('value')
        if not isinstance(name, str) or isinstance(value, bool) or not isinstance(value, (int, float)):
            continue
        if value != value:
            continue
        valid.append({**item, 'name': name.strip(), 'value': value})
    return valid


def process_visualization_response(parsed: Dict[str, Any], query: str, chart_type: str) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        'success': True,
        'query': query,
        'chartType': chart_type,
        'title': parsed.get('title') or f"{chart_type.capitalize()} Analysis",
        'description': parsed.get('description') or f"Analysis results for: {query}",
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }

    if chart_type in MERMAID_TYPES:
        result['mermaidCode'] = parsed.get('mermaidCode') or ''
        result['success'] = bool(result['mermaidCode'])
    elif chart_type == 'd3-network':
        network = parsed.get('networkData') or {}
        result['networkData'] = network
        result['success'] = isinstance(network, dict) and bool(network.get('nodes'))
    elif chart_type == 'plotly':
        result['plotlyConfig'] = parsed.get('plotlyConfig') or {}
        result['success'] = bool(result['plotlyConfig'])
    else:
        result['data'] = validate_chart_data(parsed.get('data'))
        result['success'] = bool(result['data'])

    return result


def generate_chart_data(
    llm_client,
    query: str,
    chart_type: str = 'bar',
    data_source: Optional[str] = None
) -> Dict[str, Any]:
    if not query or not query.strip():
        return {'success': False, 'error': "Query is required"}

    chart_type = (chart_type or 'bar').lower()
    config = get_agent_config('charts')
    prompt = build_chart_prompt(query, chart_type, data_source)

    parsed = None
    try:
        response = llm_client.complete(
            messages=[{'role': 'user', 'content': prompt}],
            temperature=config.get('temperature', 0.7),
            max_tokens=config.get('max_tokens', 1000),
            provider=config.get('provider')
        )
        parsed = extract_json_object(response['content'])
    except Exception as e:
        logger.error(f"Chart generation error: {e}")

    if parsed is None:
        logger.warning(f"Using fallback {chart_type} data for query: {query[:50]}")
        parsed = fallback_chart_data(query, chart_type)

    return process_visualization_response(parsed, query, chart_type)
