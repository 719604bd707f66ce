"""
Debate Orchestrator Module
"""

import json
import queue
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional, Iterator

from debate.agents import DebateAgent, ValidatorAgent, TaskDistributorAgent, ReportGeneratorAgent
from debate.agents.distributor_agent import fallback_distribution
from debate.agents.validator_agent import template_validations
from debate.config import get_flow_config
from debate.context_manager import ContextManager
from debate.models import (
    AgentProfile,
    AgentResponse,
    ReportType,
    ResponseStatus,
    RoundStatus,
    Sentiment,
    SessionStatus,
    ValidationResult,
    average,
    score_to_fraction,
)
from debate.repository import DebateRepository, response_row

logger = logging.getLogger(__name__)

PROCESS_ERROR_TEXT = (
    "Unable to generate response due to system error. Please check AI service configuration."
)


class FlowError(Exception):
    """Invalid flow request."""
    pass


class FlowNotFound(FlowError):
    """Session or round does not exist for this user."""
    pass


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def format_sse(event_type: str, data: Dict[str, Any]) -> str:
    event = {'type': event_type, 'data': data, 'timestamp': _now()}
    return f"data: {json.dumps(event, default=str)}\n\n"


def validation_rows(
    round_id: str,
    query: str,
    responses: List[Dict[str, Any]],
    validation: Dict[str, Any]
) -> List[Dict[str, Any]]:
    """One validation_results row per stored response, scored 0-1."""
    scored = {r['responseId']: r for r in validation.get('responses') or []}
    rows = []
    for response in responses:
        entry = scored.get(str(response['id']))
        if entry:
            notes = "; ".join(entry['strengths']) or None
            issues, suggestions, score = entry['weaknesses'], entry['suggestions'], entry['score']
        else:
            notes = None
            issues = validation['consensus']['disagreements']
            suggestions = validation['nextSteps']['recommendedActions']
            score = validation['overallScore']
        rows.append({
            'round_id': round_id,
            'response_id': response['id'],
            'validator_prompt': f"Evaluate response to: {query}",
            'validation_score': score_to_fraction(score),
            'validation_notes': notes,
            'issues': list(issues),
            'suggestions': list(suggestions),
        })
    return rows


class DebateOrchestrator:
    """
    Runs debate flows: fan-out to agents, validation, persistence,
    iteration between rounds and final reporting.
    """

    def __init__(self, store, llm_client, context_store=None):
        self.store = store
        self.llm_client = llm_client
        self.context_store = context_store
        self.config = get_flow_config()
        self.repository = DebateRepository(store)

        self.debate_agent = DebateAgent(llm_client)
        self.validator = ValidatorAgent(llm_client)
        self.distributor = TaskDistributorAgent(llm_client)
        self.report_agent = ReportGeneratorAgent(llm_client)

    def context_manager(self, session_id: str) -> ContextManager:
        return ContextManager(self.context_store, session_id)

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def _load_agents(self, user_id: str, selected_agents: Optional[List[str]] = None) -> List[AgentProfile]:
        if selected_agents:
            rows = self.store.select('agents', {'user_id': user_id}, in_filters={'id': list(selected_agents)})
        else:
            rows = self.store.select(
                'agents',
                {'user_id': user_id, 'is_active': True},
                order_by='created_at',
                limit=self.config.get('default_agent_limit', 3)
            )
        return [AgentProfile.from_record(row, i) for i, row in enumerate(rows)]

    def _respond(self, agent: AgentProfile, query: str, context: Optional[str] = None) -> AgentResponse:
        try:
            return self.debate_agent.generate_response(agent, query, context)
        except Exception as e:
            logger.error(f"Error generating response for {agent.name}: {e}")
            return AgentResponse(
                agent_id=agent.id,
                agent_name=agent.name,
                role=agent.role.value,
                response=PROCESS_ERROR_TEXT,
                confidence=0,
                sentiment=Sentiment.NEUTRAL.value,
                error=True
            )

    # ------------------------------------------------------------------
    # Flow processing
    # ------------------------------------------------------------------

    def process_flow(
        self,
        user_id: str,
        query: str,
        selected_agents: Optional[List[str]] = None,
        session_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """Run one full flow round and return responses plus validations."""
        if not query or not query.strip():
            raise FlowError("Query is required")
        query = query.strip()

        if session_id and not self.repository.owned_session(user_id, session_id):
            raise FlowNotFound("Session not found")

        agents = self._load_agents(user_id, selected_agents)
        if not agents:
            raise FlowError("No active agents available")

        logger.info(f"Processing flow for user {user_id} with {len(agents)} agents: {query[:50]}")
        self._log_event(session_id, 'flow_started', {'query': query, 'agents': [a.id for a in agents]})

        workers = max(1, min(len(agents), self.config.get('max_workers', 4)))
        with ThreadPoolExecutor(max_workers=workers) as executor:
            responses = list(executor.map(lambda a: self._respond(a, query), agents))

        try:
            validations = self.validator.validate(responses, query, fallback=False)
        except Exception as e:
            logger.error(f"Validation error, using template validation: {e}")
            validations = template_validations(responses, include_reasoning=True)

        response_dicts = [r.to_dict() for r in responses]
        validation_dicts = [v.to_dict() for v in validations]

        if not session_id:
            session = self.repository.create_flow_session(user_id, query)
            session_id = session['id'] if session else None

        if session_id:
            self.repository.save_flow_round(session_id, query, response_dicts, validation_dicts)

        self._log_event(session_id, 'flow_completed', {'responses': len(responses)})

        return {
            'success': True,
            'sessionId': session_id,
            'query': query,
            'agents': [a.to_dict() for a in agents],
            'agentResponses': response_dicts,
            'validationResults': validation_dicts,
            'processingTime': max((r.processing_time for r in responses), default=0),
        }

    def stream_flow(
        self,
        user_id: str,
        query: str,
        selected_agents: Optional[List[str]] = None,
        enabled_system_agents: Optional[List[str]] = None,
        session_id: Optional[str] = None
    ) -> Iterator[str]:
        """Start the streaming pipeline and return an iterator of SSE strings."""
        if not query or not query.strip():
            raise FlowError("Query is required")
        if session_id and not self.repository.owned_session(user_id, session_id):
            raise FlowNotFound("Session not found")

        from debate.graph import build_flow_graph, initial_state

        events: "queue.Queue[Optional[str]]" = queue.Queue()

        def event_callback(event_type: str, data: Dict[str, Any]):
            events.put(format_sse(event_type, data))

        graph = build_flow_graph(
            agent_loader=self._load_agents,
            debate_agent=self.debate_agent,
            validator=self.validator,
            repository=self.repository,
            llm_client=self.llm_client,
            event_callback=event_callback
        )
        state = initial_state(query.strip(), user_id, selected_agents, enabled_system_agents, session_id)

        def run():
            try:
                graph.invoke(state)
            except Exception as e:
                logger.exception(f"Streaming error: {e}")
                event_callback('error', {'error': "Internal server error"})
            finally:
                events.put(None)

        worker = threading.Thread(target=run, daemon=True)
        worker.start()

        def generate():
            while True:
                item = events.get()
                if item is None:
                    break
                yield item

        return generate()

    def iterate_flow(
        self,
        user_id: str,
        session_id: Optional[str],
        selected_validations: Optional[List[str]] = None,
        user_feedback: Optional[str] = None,
        action: Optional[str] = None
    ) -> Dict[str, Any]:
        """Record feedback, then either prepare the next round or close with a report."""
        if not session_id:
            raise FlowError("Session ID is required")

        session = self.repository.owned_session(user_id, session_id)
        if not session:
            raise FlowNotFound("Session not found")

        round_count = self.store.count('debate_rounds', {'session_id': session_id})
        max_rounds = session.get('max_rounds') or self.config.get('max_rounds', 5)

        self.repository.create_feedback(
            user_id,
            session_id,
            round_number=round_count,
            is_accepted=True,
            feedback_text=user_feedback,
            suggestions=list(selected_validations or [])
        )

        if action == 'generate_report' or round_count >= max_rounds:
            report = self.generate_report(user_id, session_id)
            self.repository.update_session_status(user_id, session_id, SessionStatus.COMPLETED.value)
            return {
                'success': True,
                'action': 'report_generated',
                'sessionId': session_id,
                'roundCount': round_count,
                'reportData': report,
            }

        if action == 'next_round':
            next_round = round_count + 1
            return {
                'success': True,
                'action': 'next_round_ready',
                'sessionId': session_id,
                'nextRoundNumber': next_round,
                'maxRounds': max_rounds,
                'canContinue': next_round < max_rounds,
                'message': f"Ready for round {next_round} of {max_rounds}",
            }

        raise FlowError("Invalid action or maximum rounds reached")

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def generate_report(self, user_id: str, session_id: str) -> Dict[str, Any]:
        session = self.repository.owned_session(user_id, session_id)
        if not session:
            raise FlowNotFound("Session data not found")

        rounds = self.store.select('debate_rounds', {'session_id': session_id}, order_by='round_number')
        feedback = self.store.select('user_feedbacks', {'session_id': session_id}, order_by='created_at')

        total_responses = sum(len(r.get('agent_responses') or []) for r in rounds)
        total_validations = sum(len(r.get('validation_results') or []) for r in rounds)
        valid_validations = sum(
            sum(1 for v in r.get('validation_results') or [] if v.get('isValid')) for r in rounds
        )
        round_means = [
            average([resp.get('confidence') or 0 for resp in r.get('agent_responses') or []])
            for r in rounds
        ]

        report_data = {
            'sessionId': session_id,
            'title': session.get('title'),
            'createdAt': session.get('created_at'),
            'completedAt': _now(),
            'summary': {
                'totalRounds': len(rounds),
                'totalAgentResponses': total_responses,
                'totalValidations': total_validations,
                'validValidations': valid_validations,
                'validationRate': round(valid_validations / total_validations * 100) if total_validations else 0,
                'averageConfidence': round(average(round_means)),
            },
            'rounds': [
                {
                    'roundNumber': index + 1,
                    'query': r.get('query') or r.get('distributor_query'),
                    'agentCount': len(r.get('agent_responses') or []),
                    'validationCount': len(r.get('validation_results') or []),
                    'processingTime': max(
                        (resp.get('processingTime') or 0 for resp in r.get('agent_responses') or []),
                        default=0
                    ),
                }
                for index, r in enumerate(rounds)
            ],
            'insights': self._insights(rounds, feedback),
            'generatedAt': _now(),
        }

        self.repository.save_report(
            user_id,
            session_id,
            title=f"Final Report: {session.get('title') or 'Debate Session'}",
            content=json.dumps(report_data, indent=2, default=str),
            report_type=ReportType.FINAL.value,
            summary=(
                f"{len(rounds)} rounds, {total_responses} responses, "
                f"{report_data['summary']['validationRate']}% validation rate"
            ),
            recommendations={'insights': report_data['insights']}
        )
        self._log_event(session_id, 'report_generated', {'rounds': len(rounds)})
        return report_data

    def _insights(self, rounds: List[Dict[str, Any]], feedback: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        responses = [AgentResponse.from_dict(r) for rnd in rounds for r in rnd.get('agent_responses') or []]
        validations = [ValidationResult.from_dict(v) for rnd in rounds for v in rnd.get('validation_results') or []]
        user_feedback = " ".join(f.get('feedback_text') or '' for f in feedback).strip()

        if responses and self.llm_client.has_credentials():
            try:
                insights = self.report_agent.generate_insights(responses, validations, user_feedback or None)
                types = ['performance', 'validation']
                return [
                    {
                        'type': types[i] if i < len(types) else 'analysis',
                        'title': f"AI Insight {i + 1}",
                        'description': text,
                        'impact': 'high',
                    }
                    for i, text in enumerate(insights)
                ]
            except Exception as e:
                logger.error(f"Error generating AI insights: {e}")

        return self._fallback_insights(responses, validations, feedback)

    @staticmethod
    def _fallback_insights(
        responses: List[AgentResponse],
        validations: List[ValidationResult],
        feedback: List[Dict[str, Any]]
    ) -> List[Dict[str, Any]]:
        insights = []

        by_agent: Dict[str, List[int]] = {}
        for response in responses:
            by_agent.setdefault(response.agent_name, []).append(response.confidence)
        if by_agent:
            name, scores = max(by_agent.items(), key=lambda kv: average(kv[1]))
            insights.append({
                'type': 'performance',
                'title': "Top Performing Agent",
                'description': f"{name} achieved the highest average confidence score of {round(average(scores))}%",
                'impact': 'high',
            })

        if validations:
            rate = sum(1 for v in validations if v.is_valid) / len(validations) * 100
            strength = 'strong' if rate > 70 else 'moderate' if rate > 50 else 'weak'
            insights.append({
                'type': 'validation',
                'title': "Validation Success Rate",
                'description': f"{round(rate)}% of validations passed, indicating {strength} consensus",
                'impact': 'high' if rate > 70 else 'medium',
            })

        if feedback:
            insights.append({
                'type': 'feedback',
                'title': "User Engagement",
                'description': (
                    f"User provided feedback across {len(feedback)} rounds, "
                    f"showing active participation in the validation process"
                ),
                'impact': 'medium',
            })
        return insights

    def write_session_report(self, user_id: str, session_id: str, report_type: str = 'final') -> Dict[str, Any]:
        """Markdown report for a session via the report agent, saved to the reports table."""
        result = self.repository.get_session(user_id, session_id)
        if not result['success']:
            return result
        session = result['data']

        rounds = []
        for rnd in session.get('rounds', []):
            responses = self.repository.round_responses(user_id, rnd['id']).get('data') or []
            if not responses:
                # flow rounds keep their answers inline
                responses = [
                    {'agent_name': r.get('agentName'), 'response': r.get('response')}
                    for r in rnd.get('agent_responses') or []
                ]
            rounds.append({'round_number': rnd.get('round_number'), 'responses': responses})

        generated = self.report_agent.generate_report({
            'title': session.get('title'),
            'initial_query': session.get('initial_query'),
            'rounds': rounds,
            'feedback': session.get('feedback', []),
        }, report_type)
        if not generated['success']:
            return {'success': False, 'error': generated.get('error', 'Failed to generate report')}

        try:
            kind = ReportType(report_type.upper()).value
        except ValueError:
            kind = ReportType.FINAL.value
        return self.repository.save_report(
            user_id,
            session_id,
            title=f"{kind.title()} Report: {session.get('title') or 'Debate Session'}",
            content=generated['report'],
            report_type=kind
        )

    # ------------------------------------------------------------------
    # Distributed rounds
    # ------------------------------------------------------------------

    def run_debate_round(self, session_id: str, round_id: str) -> None:
        """Distribute tasks and collect one response per session agent. Runs in a background thread."""
        session = self.store.select_one('debate_sessions', {'id': session_id})
        if not session:
            logger.error(f"Session {session_id} not found for round {round_id}")
            return

        query = session.get('initial_query', '')
        try:
            agents = self.repository.active_session_agents(session_id)
            if not agents:
                raise FlowError("No active agents in session")

            planned = self.distributor.distribute(query, agents)
            distribution = planned['distribution'] if planned.get('success') else fallback_distribution(query, agents)
            self.store.update('debate_rounds', {'id': round_id}, {
                'status': RoundStatus.PROCESSING.value,
                'distributor_query': query,
                'distributor_response': distribution,
            })

            tasks = {t['id']: t for t in distribution.get('tasks', [])}
            assignments = {a['agentId']: a.get('taskIds', []) for a in distribution.get('recommendedAgents', [])}

            for index, agent in enumerate(agents):
                profile = AgentProfile.from_record(agent, index)
                task_ids = assignments.get(str(agent['id']), [])
                task_text = "\n".join(tasks[t]['description'] for t in task_ids if t in tasks and tasks[t].get('description'))

                try:
                    response = self.debate_agent.generate_response(profile, task_text or query, context=query)
                    row = response_row(
                        round_id,
                        agent['id'],
                        response.response,
                        confidence=response.confidence,
                        reasoning=response.reasoning,
                        processing_time=response.processing_time
                    )
                except Exception as e:
                    logger.error(f"Agent {agent.get('name')} failed in round {round_id}: {e}")
                    row = response_row(round_id, agent['id'], f"Error: {e}", failed=True)
                self.store.insert('agent_responses', row)

            self.store.update('debate_rounds', {'id': round_id}, {'status': RoundStatus.AWAITING_FEEDBACK.value})
            logger.info(f"Round {round_id} awaiting feedback")
        except Exception as e:
            logger.exception(f"Debate round {round_id} failed: {e}")
            self.store.update('debate_rounds', {'id': round_id}, {'status': RoundStatus.FAILED.value})

    def process_validation(self, user_id: str, round_id: str, continue_debate: bool = True) -> Dict[str, Any]:
        """Evaluate a round's responses and decide whether the debate continues."""
        debate_round = self.repository.get_round(user_id, round_id)
        if not debate_round:
            raise FlowNotFound("Round not found or access denied")
        session = self.repository.owned_session(user_id, debate_round['session_id'])

        responses = self.repository.round_responses(user_id, round_id).get('data') or []
        if not responses:
            raise FlowError("No responses to validate")

        query = debate_round.get('distributor_query') or debate_round.get('query') or session.get('initial_query', '')
        evaluation = self.validator.evaluate(
            query=query,
            responses=[
                {'id': r['id'], 'agent_name': r.get('agent_name'), 'response': r.get('response')}
                for r in responses
            ]
        )
        if not evaluation.get('success'):
            raise FlowError(f"Validation failed: {evaluation.get('error')}")
        validation = evaluation['validation']

        self.store.insert_many('validation_results', validation_rows(round_id, query, responses, validation))
        for response in responses:
            self.store.update('agent_responses', {'id': response['id']}, {'status': ResponseStatus.VALIDATED.value})
        self.store.update('debate_rounds', {'id': round_id}, {
            'status': RoundStatus.COMPLETED.value,
            'completed_at': _now(),
        })

        max_rounds = session.get('max_rounds') or self.config.get('max_rounds', 5)
        next_round = None
        if (
            validation['nextSteps']['shouldContinue']
            and continue_debate
            and (debate_round.get('round_number') or 0) < max_rounds
        ):
            started = self.repository.start_round(user_id, session['id'])
            next_round = started.get('data') if started['success'] else None

        if next_round is None:
            self.repository.update_session_status(user_id, session['id'], SessionStatus.COMPLETED.value)

        return {
            'success': True,
            'validation': validation,
            'nextRound': next_round,
            'sessionCompleted': next_round is None,
        }

    # ------------------------------------------------------------------
    # Utilities
    # ------------------------------------------------------------------

    def _log_event(self, session_id: Optional[str], event_type: str, data: Dict[str, Any]):
        event = {
            'session_id': session_id,
            'agent_name': 'orchestrator',
            'event_type': event_type,
            'timestamp': _now(),
            'payload': data
        }
        logger.info(f"[orchestrator] {event_type}")
        try:
            self.store.log_event(event)
        except Exception as e:
            logger.error(f"Failed to log event: {e}")
