"""
Debate data access: users, agents, sessions, rounds, responses, feedback and reports.

Every public method returns a result dict shaped like
``{'success': bool, 'data': ..., 'error': str, 'message': str}`` so the HTTP
layer can pass it straight through.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

from debate.config import get_flow_config
from debate.models import (
    FeedbackPriority,
    ReportStatus,
    ReportType,
    ResponseStatus,
    RoundStatus,
    SessionAgentRole,
    SessionStatus,
    score_to_fraction,
)
from debate.subscription import SubscriptionService

logger = logging.getLogger(__name__)

SESSION_DENIED = "Session not found or access denied"
AGENT_DENIED = "Agent not found or access denied"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def response_row(
    round_id: str,
    agent_id: str,
    response: str,
    confidence: Any = 0,
    reasoning: Any = None,
    processing_time: Any = None,
    failed: bool = False
) -> Dict[str, Any]:
    """One agent_responses row; confidence arrives as 0-100 and is stored as 0-1."""
    if isinstance(reasoning, (list, tuple)):
        reasoning = "\n".join(str(step) for step in reasoning)
    return {
        'round_id': round_id,
        'agent_id': agent_id,
        'response': response or '',
        'reasoning': reasoning or None,
        'confidence': score_to_fraction(confidence),
        'processing_time': int(processing_time) if processing_time else None,
        'status': (ResponseStatus.FAILED if failed else ResponseStatus.SUBMITTED).value,
    }


def ok(data: Any = None, message: Optional[str] = None) -> Dict[str, Any]:
    result: Dict[str, Any] = {'success': True, 'data': data}
    if message:
        result['message'] = message
    return result


def fail(error: str) -> Dict[str, Any]:
    return {'success': False, 'error': error}


class DebateRepository:
    """CRUD over the debate tables, scoped to the owning user."""

    def __init__(self, store):
        self.store = store
        self.subscriptions = SubscriptionService(store)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_or_create_user(self, supabase_id: str, email: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
        user = self.store.select_one('users', {'supabase_id': supabase_id})
        if user:
            return ok(user)

        user = self.store.insert('users', {
            'supabase_id': supabase_id,
            'email': email,
            'name': name,
            'subscription_status': 'inactive',
        })
        if not user:
            return fail("Failed to create user")
        logger.info(f"Created user record for {email or supabase_id}")
        return ok(user)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def _owned_agent(self, user_id: str, agent_id: str) -> Optional[Dict[str, Any]]:
        return self.store.select_one('agents', {'id': agent_id, 'user_id': user_id})

    def create_agent(self, user_id: str, name: str, prompt: str, description: Optional[str] = None) -> Dict[str, Any]:
        if not name or not name.strip() or not prompt or not prompt.strip():
            return fail("Name and prompt are required")

        limit = self.subscriptions.can_create_agent(user_id)
        if not limit['canCreate']:
            return {
                'success': False,
                'error': "Agent limit reached",
                'message': f"Free plan allows {limit['limit']} active agents. Upgrade to premium for unlimited agents.",
                'data': limit,
            }

        agent = self.store.insert('agents', {
            'name': name.strip(),
            'description': (description or '').strip() or None,
            'prompt': prompt.strip(),
            'user_id': user_id,
            'is_active': True,
        })
        if not agent:
            return fail("Failed to create agent")
        return ok(agent, "Agent created successfully")

    def list_agents(self, user_id: str) -> Dict[str, Any]:
        return ok(self.store.select('agents', {'user_id': user_id}, order_by='created_at', desc=True))

    def get_agent(self, user_id: str, agent_id: str) -> Dict[str, Any]:
        agent = self._owned_agent(user_id, agent_id)
        return ok(agent) if agent else fail("Agent not found")

    def update_agent(self, user_id: str, agent_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        if not self._owned_agent(user_id, agent_id):
            return fail(AGENT_DENIED)

        allowed = {k: v for k, v in updates.items() if k in ('name', 'description', 'prompt', 'is_active') and v is not None}
        rows = self.store.update('agents', {'id': agent_id, 'user_id': user_id}, allowed)
        if not rows:
            return fail("Failed to update agent")
        return ok(rows[0], "Agent updated successfully")

    def delete_agent(self, user_id: str, agent_id: str) -> Dict[str, Any]:
        if not self._owned_agent(user_id, agent_id):
            return fail(AGENT_DENIED)

        memberships = self.store.select('session_agents', {'agent_id': agent_id, 'is_active': True})
        session_ids = [m['session_id'] for m in memberships]
        if session_ids and self.store.count(
            'debate_sessions',
            {'status': SessionStatus.ACTIVE.value},
            in_filters={'id': session_ids}
        ):
            return fail("Cannot delete agent that is being used in active sessions")

        if not self.store.delete('agents', {'id': agent_id, 'user_id': user_id}):
            return fail("Failed to delete agent")
        return ok(None, "Agent deleted successfully")

    def toggle_agent(self, user_id: str, agent_id: str, is_active: bool) -> Dict[str, Any]:
        return self.update_agent(user_id, agent_id, {'is_active': bool(is_active)})

    def duplicate_agent(self, user_id: str, agent_id: str) -> Dict[str, Any]:
        original = self._owned_agent(user_id, agent_id)
        if not original:
            return fail("Agent not found")
        return self.create_agent(
            user_id,
            name=f"{original['name']} (Copy)",
            prompt=original.get('prompt', ''),
            description=original.get('description')
        )

    def active_agents(self, user_id: str) -> Dict[str, Any]:
        return ok(self.store.select('agents', {'user_id': user_id, 'is_active': True}, order_by='name'))

    def agents_with_stats(self, user_id: str) -> Dict[str, Any]:
        agents = self.store.select('agents', {'user_id': user_id}, order_by='created_at', desc=True)
        enriched = []
        for agent in agents:
            sessions = self.store.select('session_agents', {'agent_id': agent['id']})
            responses = self.store.select('agent_responses', {'agent_id': agent['id']}, order_by='created_at', desc=True)
            enriched.append({
                **agent,
                'sessionCount': len(sessions),
                'responseCount': len(responses),
                'lastUsed': responses[0]['created_at'] if responses else None,
            })
        return ok(enriched)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def owned_session(self, user_id: str, session_id: str) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        return self.store.select_one('debate_sessions', {'id': session_id, 'user_id': user_id})

    def create_session(
        self,
        user_id: str,
        initial_query: str,
        agent_ids: List[str],
        max_rounds: int = None,
        title: Optional[str] = None
    ) -> Dict[str, Any]:
        if not initial_query or not initial_query.strip():
            return fail("Initial query is required")
        if not agent_ids:
            return fail("At least one agent is required")

        agents = self.store.select(
            'agents',
            {'user_id': user_id, 'is_active': True},
            in_filters={'id': list(agent_ids)}
        )
        if len(agents) != len(set(agent_ids)):
            return fail("Some agents not found or not accessible")

        query = initial_query.strip()
        session = self.store.insert('debate_sessions', {
            'title': (title or '').strip() or f"Debate: {query[:50]}...",
            'initial_query': query,
            'user_id': user_id,
            'status': SessionStatus.ACTIVE.value,
            'max_rounds': max_rounds or get_flow_config().get('max_rounds', 5),
        })
        if not session:
            return fail("Failed to create debate session")

        rows = [
            {
                'session_id': session['id'],
                'agent_id': agent_id,
                'role': SessionAgentRole.PARTICIPANT.value,
                'is_active': True,
            }
            for agent_id in agent_ids
        ]
        if len(self.store.insert_many('session_agents', rows)) != len(rows):
            self.store.delete('debate_sessions', {'id': session['id']})
            return fail("Failed to add agents to session")

        logger.info(f"Created session {session['id']} with {len(rows)} agents")
        return ok(session, "Debate session created successfully")

    def create_flow_session(self, user_id: str, query: str) -> Optional[Dict[str, Any]]:
        """Session row for an ad-hoc flow run, without session agents."""
        return self.store.insert('debate_sessions', {
            'title': f"Query: {query[:50]}...",
            'initial_query': query,
            'user_id': user_id,
            'status': SessionStatus.ACTIVE.value,
            'max_rounds': get_flow_config().get('max_rounds', 5),
        })

    def list_sessions(self, user_id: str) -> Dict[str, Any]:
        sessions = self.store.select('debate_sessions', {'user_id': user_id}, order_by='created_at', desc=True)
        for session in sessions:
            session['agentCount'] = self.store.count('session_agents', {'session_id': session['id']})
            session['roundCount'] = self.store.count('debate_rounds', {'session_id': session['id']})
        return ok(sessions)

    def get_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        session = self.owned_session(user_id, session_id)
        if not session:
            return fail(SESSION_DENIED)

        session['agents'] = self._session_agent_rows(session_id)
        session['rounds'] = self.store.select('debate_rounds', {'session_id': session_id}, order_by='round_number')
        session['feedback'] = self.store.select('user_feedbacks', {'session_id': session_id}, order_by='created_at')
        return ok(session)

    def update_session_status(self, user_id: str, session_id: str, status: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        try:
            status = SessionStatus(str(status).upper()).value
        except ValueError:
            return fail(f"Invalid status: {status}")

        updates: Dict[str, Any] = {'status': status}
        if status == SessionStatus.COMPLETED.value:
            updates['completed_at'] = _now()
        rows = self.store.update('debate_sessions', {'id': session_id}, updates)
        if not rows:
            return fail("Failed to update session status")
        return ok(rows[0], f"Session marked {status.lower()}")

    def delete_session(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)

        round_ids = [r['id'] for r in self.store.select('debate_rounds', {'session_id': session_id})]
        for round_id in round_ids:
            self.store.delete('agent_responses', {'round_id': round_id})
            self.store.delete('validation_results', {'round_id': round_id})
        for table in ('debate_rounds', 'session_agents', 'user_feedbacks', 'reports'):
            self.store.delete(table, {'session_id': session_id})

        if not self.store.delete('debate_sessions', {'id': session_id, 'user_id': user_id}):
            return fail("Failed to delete session")
        return ok(None, "Session deleted successfully")

    # ------------------------------------------------------------------
    # Session agents
    # ------------------------------------------------------------------

    def _session_agent_rows(self, session_id: str) -> List[Dict[str, Any]]:
        rows = self.store.select('session_agents', {'session_id': session_id}, order_by='joined_at')
        agent_ids = [r['agent_id'] for r in rows]
        agents = {a['id']: a for a in self.store.select('agents', in_filters={'id': agent_ids})} if agent_ids else {}
        for row in rows:
            row['agent'] = agents.get(row['agent_id'])
        return rows

    def add_agents_to_session(self, user_id: str, session_id: str, agent_ids: List[str]) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        if not agent_ids:
            return fail("No agents provided")

        owned = self.store.select('agents', {'user_id': user_id}, in_filters={'id': list(agent_ids)})
        if len(owned) != len(set(agent_ids)):
            return fail("Some agents not found or not accessible")

        existing = {r['agent_id'] for r in self.store.select('session_agents', {'session_id': session_id})}
        new_ids = [a for a in agent_ids if a not in existing]
        if not new_ids:
            return ok([], "All agents are already in this session")

        added = self.store.insert_many('session_agents', [
            {
                'session_id': session_id,
                'agent_id': agent_id,
                'role': SessionAgentRole.PARTICIPANT.value,
                'is_active': True,
            }
            for agent_id in new_ids
        ])
        return ok(added, f"Added {len(added)} agent(s) to session")

    def remove_agent_from_session(self, user_id: str, session_id: str, agent_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        if not self.store.delete('session_agents', {'session_id': session_id, 'agent_id': agent_id}):
            return fail("Failed to remove agent from session")
        return ok(None, "Agent removed from session")

    def session_agents(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        return ok(self._session_agent_rows(session_id))

    def update_session_agent_role(self, user_id: str, session_id: str, agent_id: str, role: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        try:
            role = SessionAgentRole(str(role).upper()).value
        except ValueError:
            return fail(f"Invalid role: {role}")

        rows = self.store.update('session_agents', {'session_id': session_id, 'agent_id': agent_id}, {'role': role})
        if not rows:
            return fail("Agent not found in session")
        return ok(rows[0], "Agent role updated")

    def toggle_session_agent(self, user_id: str, session_id: str, agent_id: str, is_active: bool) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        rows = self.store.update(
            'session_agents',
            {'session_id': session_id, 'agent_id': agent_id},
            {'is_active': bool(is_active)}
        )
        if not rows:
            return fail("Agent not found in session")
        return ok(rows[0], f"Agent {'activated' if is_active else 'deactivated'} in session")

    def active_session_agents(self, session_id: str) -> List[Dict[str, Any]]:
        rows = self.store.select('session_agents', {'session_id': session_id, 'is_active': True})
        agent_ids = [r['agent_id'] for r in rows]
        if not agent_ids:
            return []
        return self.store.select('agents', {'is_active': True}, in_filters={'id': agent_ids})

    # ------------------------------------------------------------------
    # Rounds and responses
    # ------------------------------------------------------------------

    def start_round(self, user_id: str, session_id: str) -> Dict[str, Any]:
        session = self.owned_session(user_id, session_id)
        if not session:
            return fail(SESSION_DENIED)
        if session.get('status') != SessionStatus.ACTIVE.value:
            return fail("Session is not active")

        round_count = self.store.count('debate_rounds', {'session_id': session_id})
        max_rounds = session.get('max_rounds') or get_flow_config().get('max_rounds', 5)
        if round_count >= max_rounds:
            return fail("Maximum rounds reached")

        debate_round = self.store.insert('debate_rounds', {
            'session_id': session_id,
            'round_number': round_count + 1,
            'status': RoundStatus.IN_PROGRESS.value,
            'distributor_query': session.get('initial_query'),
        })
        if not debate_round:
            return fail("Failed to create debate round")
        return ok(debate_round, f"Round {round_count + 1} started")

    def get_round(self, user_id: str, round_id: str) -> Optional[Dict[str, Any]]:
        debate_round = self.store.select_one('debate_rounds', {'id': round_id})
        if not debate_round or not self.owned_session(user_id, debate_round.get('session_id')):
            return None
        return debate_round

    def round_responses(self, user_id: str, round_id: str) -> Dict[str, Any]:
        if not self.get_round(user_id, round_id):
            return fail("Round not found or access denied")

        responses = self.store.select('agent_responses', {'round_id': round_id}, order_by='created_at')
        agent_ids = list({r['agent_id'] for r in responses if r.get('agent_id')})
        agents = {a['id']: a for a in self.store.select('agents', in_filters={'id': agent_ids})} if agent_ids else {}
        for response in responses:
            agent = agents.get(response.get('agent_id'))
            response['agent_name'] = agent['name'] if agent else 'Unknown'
        return ok(responses)

    def update_response_status(self, user_id: str, response_id: str, status: str) -> Dict[str, Any]:
        response = self.store.select_one('agent_responses', {'id': response_id})
        if not response or not self.get_round(user_id, response.get('round_id')):
            return fail("Response not found or access denied")
        try:
            status = ResponseStatus(str(status).upper()).value
        except ValueError:
            return fail(f"Invalid status: {status}")

        rows = self.store.update('agent_responses', {'id': response_id}, {'status': status})
        if not rows:
            return fail("Failed to update response status")
        return ok(rows[0], "Response status updated")

    def save_flow_round(
        self,
        session_id: str,
        query: str,
        agent_responses: List[Dict[str, Any]],
        validation_results: List[Dict[str, Any]]
    ) -> Optional[Dict[str, Any]]:
        """Persist a flow round plus one agent_responses row per answer."""
        round_number = self.store.count('debate_rounds', {'session_id': session_id}) + 1
        debate_round = self.store.insert('debate_rounds', {
            'session_id': session_id,
            'round_number': round_number,
            'query': query,
            'status': RoundStatus.COMPLETED.value,
            'agent_responses': agent_responses,
            'validation_results': validation_results,
        })
        if not debate_round:
            logger.error(f"Failed to save flow round for session {session_id}")
            return None

        rows = [
            response_row(
                debate_round['id'],
                r.get('agentId'),
                r.get('response', ''),
                confidence=r.get('confidence', 0),
                reasoning=r.get('reasoning'),
                processing_time=r.get('processingTime'),
                failed=bool(r.get('error'))
            )
            for r in agent_responses
        ]
        self.store.insert_many('agent_responses', rows)
        return debate_round

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    def create_feedback(
        self,
        user_id: str,
        session_id: str,
        round_number: Optional[int] = None,
        is_accepted: bool = True,
        feedback_text: Optional[str] = None,
        agent_id: Optional[str] = None,
        suggestions: Optional[List[str]] = None,
        priority: str = FeedbackPriority.MEDIUM.value
    ) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        try:
            priority = FeedbackPriority(str(priority or 'MEDIUM').upper()).value
        except ValueError:
            priority = FeedbackPriority.MEDIUM.value
        if round_number is None:
            # round_number is NOT NULL; general feedback belongs to the latest round
            round_number = self.store.count('debate_rounds', {'session_id': session_id})

        feedback = self.store.insert('user_feedbacks', {
            'session_id': session_id,
            'round_number': round_number,
            'agent_id': agent_id,
            'is_accepted': bool(is_accepted),
            'feedback_text': (feedback_text or '').strip() or None,
            'suggestions': suggestions or [],
            'priority': priority,
        })
        if not feedback:
            return fail("Failed to save feedback")
        return ok(feedback, "Feedback submitted successfully")

    def session_feedback(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        return ok(self.store.select('user_feedbacks', {'session_id': session_id}, order_by='created_at', desc=True))

    def feedback_stats(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        feedback = self.store.select('user_feedbacks', {'session_id': session_id})
        accepted = sum(1 for f in feedback if f.get('is_accepted'))
        return ok({
            'total': len(feedback),
            'accepted': accepted,
            'rejected': len(feedback) - accepted,
            'revisionRequested': 0,
            'averageRating': 0,
        })

    def delete_feedback(self, user_id: str, feedback_id: str) -> Dict[str, Any]:
        feedback = self.store.select_one('user_feedbacks', {'id': feedback_id})
        if not feedback or not self.owned_session(user_id, feedback.get('session_id')):
            return fail("Feedback not found or access denied")
        self.store.delete('user_feedbacks', {'id': feedback_id})
        return ok(None, "Feedback deleted successfully")

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def save_report(
        self,
        user_id: str,
        session_id: str,
        title: str,
        content: str,
        report_type: str = ReportType.FINAL.value,
        summary: Optional[str] = None,
        recommendations: Any = None
    ) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)

        report = self.store.insert('reports', {
            'session_id': session_id,
            'user_id': user_id,
            'title': title,
            'content': content,
            'summary': summary,
            'report_type': report_type,
            'status': ReportStatus.COMPLETED.value,
            'completed_at': _now(),
            'recommendations': recommendations,
        })
        if not report:
            return fail("Failed to save report")
        return ok(report, "Report saved successfully")

    def session_reports(self, user_id: str, session_id: str) -> Dict[str, Any]:
        if not self.owned_session(user_id, session_id):
            return fail(SESSION_DENIED)
        return ok(self.store.select('reports', {'session_id': session_id}, order_by='created_at', desc=True))

    def delete_report(self, user_id: str, report_id: str) -> Dict[str, Any]:
        report = self.store.select_one('reports', {'id': report_id, 'user_id': user_id})
        if not report:
            return fail("Report not found or access denied")
        self.store.delete('reports', {'id': report_id})
        return ok(None, "Report deleted successfully")

    def save_flow_snapshot(
        self,
        user_id: str,
        session_id: str,
        nodes: List[Dict[str, Any]],
        edges: List[Dict[str, Any]],
        validations: List[Dict[str, Any]],
        iteration: int
    ) -> Dict[str, Any]:
        """Store the flow graph as a SNAPSHOT report before it is regenerated."""
        timestamp = _now()
        snapshot = {
            'sessionId': session_id,
            'iterationCount': iteration,
            'timestamp': timestamp,
            'flowState': {
                'nodes': [
                    {k: n.get(k) for k in ('id', 'type', 'position', 'data')} for n in nodes
                ],
                'edges': [
                    {k: e.get(k) for k in ('id', 'source', 'target', 'animated', 'type')} for e in edges
                ],
                'validationResults': validations,
                'nodeCount': len(nodes),
                'edgeCount': len(edges),
                'validationCount': len(validations),
            },
        }
        content = json.dumps(snapshot, indent=2)
        result = self.save_report(
            user_id,
            session_id,
            title=f"Flow State Snapshot - Pre-Regeneration {iteration}",
            content=content,
            report_type=ReportType.SNAPSHOT.value,
            summary=(
                f"Flow state preserved before regeneration. {len(nodes)} nodes, "
                f"{len(edges)} edges, {len(validations)} validation results."
            ),
            recommendations={
                'purpose': "Pre-regeneration flow state preservation",
                'iteration': iteration,
                'preservedElements': {
                    'nodes': len(nodes),
                    'edges': len(edges),
                    'validations': len(validations),
                },
            }
        )
        if not result['success']:
            return result
        return ok({'snapshotId': result['data']['id'], 'content': content})
