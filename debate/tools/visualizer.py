"""
Global Visualizer - picks a visualization style for any query.
"""

import re
import json
import time
import logging
from datetime import datetime, timezone
from typing import Dict, Any, Optional

from debate.config import get_agent_config
from debate.tools.charts import extract_json_object

logger = logging.getLogger(__name__)

VISUALIZATION_TYPES = ('auto', 'chart', 'diagram', 'network', 'flow', 'mindmap')
SUPPORTED_OUTPUTS = ('chart', 'mermaid', 'd3-network', 'plotly')


def build_visualizer_prompt(
    query: str,
    visualization_type: str = 'auto',
    context: Optional[str] = None,
    data_type: Optional[str] = None
) -> str:
    lines = [
        "You are a data visualization expert. Choose the best way to visualize the query below.",
        "",
        f"Query: {query}",
        f"Requested Visualization: {visualization_type}",
    ]
    if context:
        lines.append(f"Context: {context}")
    if data_type:
        lines.append(f"Data Type: {data_type}")
    lines += [
        "",
        "Respond with a ```json code block containing:",
        "{",
        '  "visualizationType": "chart | mermaid | d3-network | plotly",',
        '  "chartType": "bar | line | pie | area (for charts)",',
        '  "title": "...",',
        '  "description": "...",',
        '  "data": [{"name": "...", "value": 0}],',
        '  "mermaidCode": "Mermaid syntax (for mermaid)",',
        '  "networkData": {"nodes": [], "links": []},',
        '  "plotlyConfig": {"data": [], "layout": {}}',
        "}",
        "Only include the fields relevant to the chosen visualizationType.",
    ]
    return "\n".join(lines)


def parse_visualization(text: str) -> Optional[Dict[str, Any]]:
    block = re.search(r'```json\s*([\s\S]*?)\s*```', text or '')
    if block:
        try:
            parsed = json.loads(block.group(1))
            if isinstance(parsed, dict):
                return parsed
        except json.JSONDecodeError:
            logger.warning("Visualizer returned an invalid ```json block")
    return extract_json_object(text)


def fallback_visualization(query: str, visualization_type: str) -> Dict[str, Any]:
    if visualization_type in ('diagram', 'flow'):
        return {
            'visualizationType': 'mermaid',
            'chartType': 'flowchart',
            'title': f"Process Flow: {query}",
            'description': "Sample process flow generated from your query",
            'mermaidCode': (
                f"flowchart TD\n"
                f"    A[Start: {query}] --> B[Process Data]\n"
                f"    B --> C{{Decision Point}}\n"
                f"    C -->|Yes| D[Action A]\n"
                f"    C -->|No| E[Action B]\n"
                f"    D --> F[Review Results]\n"
                f"    E --> F\n"
                f"    F --> G[End]"
            ),
        }

    if visualization_type == 'network':
        return {
            'visualizationType': 'd3-network',
            'title': f"Network: {query}",
            'description': "Sample network generated from your query",
            'networkData': {
                'nodes': [
                    {'id': 'node1', 'name': query, 'group': 1},
                    {'id': 'node2', 'name': 'Related Topic A', 'group': 2},
                    {'id': 'node3', 'name': 'Related Topic B', 'group': 2},
                    {'id': 'node4', 'name': 'Subtopic A1', 'group': 3},
                    {'id': 'node5', 'name': 'Subtopic B1', 'group': 3},
                ],
                'links': [
                    {'source': 'node1', 'target': 'node2', 'value': 10},
                    {'source': 'node1', 'target': 'node3', 'value': 15},
                    {'source': 'node2', 'target': 'node4', 'value': 8},
                    {'source': 'node3', 'target': 'node5', 'value': 12},
                ],
            },
        }

    return {
        'visualizationType': 'chart',
        'chartType': 'bar',
        'title': f"Analysis: {query}",
        'description': "Sample visualization generated from your query",
        'data': [
            {'name': 'Category A', 'value': 30, 'color': '#8884d8'},
            {'name': 'Category B', 'value': 45, 'color': '#82ca9d'},
            {'name': 'Category C', 'value': 25, 'color': '#ffc658'},
            {'name': 'Category D', 'value': 60, 'color': '#ff7c7c'},
            {'name': 'Category E', 'value': 35, 'color': '#8dd1e1'},
        ],
    }


def process_visualization_data(data: Dict[str, Any], query: str, started: float) -> Dict[str, Any]:
    result: Dict[str, Any] = {
        'query': query,
        'visualizationType': data.get('visualizationType') or 'chart',
        'title': data.get('title') or "Generated Visualization",
        'description': data.get('description') or "AI-generated visualization based on your query",
    }
    for key in ('chartType', 'data', 'mermaidCode', 'plotlyConfig', 'networkData'):
        if data.get(key):
            result[key] = data[key]
    result['timestamp'] = datetime.now(timezone.utc).isoformat()
    result['processingTime'] = int((time.time() - started) * 1000)
    return result


def generate_visualization(
    llm_client,
    query: str,
    visualization_type: str = 'auto',
    context: Optional[str] = None,
    data_type: Optional[str] = None
) -> Dict[str, Any]:
    if not query or not query.strip():
        raise ValueError("Query is required")

    started = time.time()
    visualization_type = visualization_type if visualization_type in VISUALIZATION_TYPES else 'auto'
    config = get_agent_config('visualizer')

    parsed = None
    try:
        response = llm_client.complete(
            messages=[{'role': 'user', 'content': build_visualizer_prompt(query, visualization_type, context, data_type)}],
            temperature=config.get('temperature', 0.7),
            max_tokens=config.get('max_tokens', 2000),
            provider=config.get('provider')
        )
        parsed = parse_visualization(response['content'])
    except Exception as e:
        logger.error(f"Visualizer AI call failed: {e}")

    if parsed is None:
        parsed = fallback_visualization(query, visualization_type)

    return process_visualization_data(parsed, query, started)
