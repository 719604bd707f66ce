"""
Pros/Cons Agent
"""

import time
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from debate.config import get_agent_config
from debate.models import to_optional_float
from debate.tools.charts import extract_json_object

logger = logging.getLogger(__name__)

DEFAULT_SUMMARY = "Analysis completed successfully."
DEFAULT_RECOMMENDATION = "Consider all factors carefully before making a decision."


def build_pros_cons_prompt(
    subject: str,
    context: Optional[str] = None,
    include_weights: bool = True,
    include_categories: bool = True
) -> str:
    item_fields = ['"point": "clear, specific statement"']
    if include_weights:
        item_fields.append('"weight": 1-5 (importance)')
    if include_categories:
        item_fields.append('"category": "short category label"')
    item = "{" + ", ".join(item_fields) + "}"

    lines = [
        "You are an expert analyst. Provide a balanced pros and cons analysis.",
        "",
        f"Topic: {subject}",
    ]
    if context:
        lines.append(f"Additional Context: {context}")
    lines += [
        "",
        "Give 3-7 pros and 3-7 cons, a short summary and a recommendation.",
        "Return JSON only in this format:",
        f'{{"pros": [{item}], "cons": [{item}], "summary": "...", "recommendation": "..."}}',
    ]
    return "\n".join(lines)


def fallback_analysis(subject: str) -> Dict[str, Any]:
    return {
        'pros': [
            {'point': f"Potential benefits and advantages related to {subject}", 'weight': 4, 'category': "General"},
            {'point': f"Positive outcomes that could result from {subject}", 'weight': 3, 'category': "Impact"},
            {'point': f"Opportunities for improvement through {subject}", 'weight': 3, 'category': "Opportunity"},
        ],
        'cons': [
            {'point': f"Potential risks and challenges with {subject}", 'weight': 4, 'category': "Risk"},
            {'point': f"Possible negative consequences of {subject}", 'weight': 3, 'category': "Impact"},
            {'point': f"Resource requirements and costs for {subject}", 'weight': 3, 'category': "Cost"},
        ],
        'summary': (
            f"This analysis examines the key advantages and disadvantages of {subject}. "
            "Both positive and negative aspects should be carefully considered."
        ),
        'recommendation': f"Evaluate the specific context and requirements before proceeding with {subject}.",
    }


def validate_items(items: Any) -> List[Dict[str, Any]]:
    if not isinstance(items, list):
        return []
    valid = []
    for item in items:
        if not isinstance(item, dict):
            continue
        point = item.get('point')
        if not isinstance(point, str) or not point.strip():
            continue
        cleaned: Dict[str, Any] = {'point': point.strip()}

        weight = to_optional_float(item.get('weight'))
        if weight is not None and 1 <= weight <= 5:
            cleaned['weight'] = int(round(weight))

        category = item.get('category')
        if isinstance(category, str) and category.strip():
            cleaned['category'] = category.strip()

        valid.append(cleaned)
    return valid


def generate_pros_cons(
    llm_client,
    query: Optional[str] = None,
    question: Optional[str] = None,
    context: Optional[str] = None,
    include_weights: bool = True,
    include_categories: bool = True
) -> Dict[str, Any]:
    subject = (query or question or '').strip()
    if not subject:
        return {'success': False, 'error': "Query or question is required"}

    start_time = time.time()
    config = get_agent_config('proscons')
    prompt = build_pros_cons_prompt(subject, context, include_weights, include_categories)

    response = llm_client.complete(
        messages=[{'role': 'user', 'content': prompt}],
        temperature=config.get('temperature', 0.7),
        max_tokens=config.get('max_tokens', 2000),
        provider=config.get('provider')
    )
    parsed = extract_json_object(response['content'])
    if parsed is None:
        logger.warning(f"Failed to parse pros/cons JSON, using fallback for: {subject[:50]}")
        parsed = fallback_analysis(subject)

    pros = validate_items(parsed.get('pros'))
    cons = validate_items(parsed.get('cons'))
    if not pros and not cons:
        return {'success': False, 'error': "No valid analysis data generated"}

    return {
        'success': True,
        'pros': pros,
        'cons': cons,
        'summary': parsed.get('summary') or DEFAULT_SUMMARY,
        'recommendation': parsed.get('recommendation') or DEFAULT_RECOMMENDATION,
        'totalPros': len(pros),
        'totalCons': len(cons),
        'processingTime': int((time.time() - start_time) * 1000),
        'timestamp': datetime.now(timezone.utc).isoformat(),
    }
