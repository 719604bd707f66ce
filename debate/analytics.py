"""
Per-user usage analytics.
"""

import logging
from collections import Counter, OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Dict, Any, List

from debate.models import fraction_to_score

logger = logging.getLogger(__name__)


def _date_part(value: Any) -> str:
    return str(value or '')[:10]


class AnalyticsService:
    """Aggregates session, round and response statistics for a user."""

    def __init__(self, store):
        self.store = store

    def _user_rounds(self, session_ids: List[str]) -> List[Dict[str, Any]]:
        if not session_ids:
            return []
        return self.store.select('debate_rounds', in_filters={'session_id': session_ids})

    def _user_responses(self, round_ids: List[str]) -> List[Dict[str, Any]]:
        if not round_ids:
            return []
        return self.store.select('agent_responses', in_filters={'round_id': round_ids})

    def get_analytics(self, user_id: str) -> Dict[str, Any]:
        try:
            sessions = self.store.select('debate_sessions', {'user_id': user_id})
            rounds = self._user_rounds([s['id'] for s in sessions])
            responses = self._user_responses([r['id'] for r in rounds])
            agents = self.store.select('agents', {'user_id': user_id})
        except Exception as e:
            logger.error(f"Error in get_analytics: {e}")
            return {'success': False, 'error': 'An unexpected error occurred while fetching analytics data'}

        agent_names = {a['id']: a['name'] for a in agents}

        def agent_name(response: Dict[str, Any]) -> str:
            return agent_names.get(response.get('agent_id')) or 'Unknown'

        status_counts = Counter(s.get('status') for s in sessions)
        agent_counts = Counter(agent_name(r) for r in responses)

        cutoff = (datetime.now(timezone.utc) - timedelta(days=30)).isoformat()
        per_day: Dict[str, int] = OrderedDict()
        for session in sorted(sessions, key=lambda s: str(s.get('created_at') or '')):
            if str(session.get('created_at') or '') >= cutoff:
                day = _date_part(session['created_at'])
                per_day[day] = per_day.get(day, 0) + 1

        performance: Dict[str, List[float]] = OrderedDict()
        for response in responses:
            if response.get('confidence') is None:
                continue
            performance.setdefault(agent_name(response), []).append(fraction_to_score(response['confidence']))

        round_counts = Counter(r.get('round_number') for r in rounds)
        total_sessions = len(sessions)
        total_rounds = len(rounds)

        return {
            'success': True,
            'data': {
                'totalSessions': total_sessions,
                'totalRounds': total_rounds,
                'totalResponses': len(responses),
                'activeAgents': sum(1 for a in agents if a.get('is_active')),
                'averageRoundsPerSession': round(total_rounds / total_sessions, 2) if total_sessions and total_rounds else 0,
                'sessionsByStatus': [{'status': k, 'count': v} for k, v in status_counts.items()],
                'responsesByAgent': [{'agentName': k, 'count': v} for k, v in agent_counts.items()],
                'sessionsOverTime': [{'date': k, 'count': v} for k, v in per_day.items()],
                'agentPerformance': [
                    {
                        'agentName': name,
                        'avgConfidence': round(sum(values) / len(values), 2),
                        'responseCount': len(values),
                    }
                    for name, values in performance.items()
                ],
                'roundsDistribution': [
                    {'roundNumber': k, 'count': v} for k, v in sorted(round_counts.items(), key=lambda kv: kv[0] or 0)
                ],
            }
        }

    def recent_activity(self, user_id: str, limit: int = 10) -> Dict[str, Any]:
        sessions = self.store.select('debate_sessions', {'user_id': user_id}, order_by='created_at', desc=True, limit=5)
        reports = self.store.select('reports', {'user_id': user_id}, order_by='created_at', desc=True, limit=5)

        activities = [
            {
                'type': 'session',
                'id': s['id'],
                'title': f"Session: {s.get('title')}",
                'status': s.get('status'),
                'timestamp': s.get('created_at'),
            }
            for s in sessions
        ] + [
            {
                'type': 'report',
                'id': r['id'],
                'title': f"Report: {r.get('title')}",
                'status': r.get('status'),
                'timestamp': r.get('created_at'),
            }
            for r in reports
        ]
        activities.sort(key=lambda a: str(a['timestamp'] or ''), reverse=True)
        return {'success': True, 'data': activities[:limit]}
