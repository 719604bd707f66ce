"""
Tests for the debate orchestrator and the streaming flow graph
"""

import json
import pytest
from unittest.mock import patch

from debate.graph import build_flow_graph, initial_state
from debate.llm_client import LLMError
from debate.orchestrator import (
    DebateOrchestrator,
    FlowError,
    FlowNotFound,
    PROCESS_ERROR_TEXT,
    format_sse,
)
from debate.repository import DebateRepository


@pytest.fixture
def orchestrator(store, mock_llm_client):
    return DebateOrchestrator(store, mock_llm_client)


def _parse_sse(chunks):
    return [json.loads(chunk[len('data: '):].strip()) for chunk in chunks]


class TestProcessFlow:

    def test_requires_query(self, orchestrator, user):
        with pytest.raises(FlowError, match='Query is required'):
            orchestrator.process_flow(user['id'], '   ')

    def test_requires_agents(self, orchestrator, user):
        with pytest.raises(FlowError, match='No active agents available'):
            orchestrator.process_flow(user['id'], 'q')

    def test_unknown_session(self, orchestrator, user, make_agent):
        make_agent()
        with pytest.raises(FlowNotFound):
            orchestrator.process_flow(user['id'], 'q', session_id='missing')

    def test_runs_agents_and_persists(self, orchestrator, store, user, make_agent):
        make_agent(name='Optimist')
        make_agent(name='Skeptic')

        result = orchestrator.process_flow(user['id'], ' Should we adopt it? ')

        assert result['query'] == 'Should we adopt it?'
        assert [r['agentName'] for r in result['agentResponses']] == ['Optimist', 'Skeptic']
        assert [a['role'] for a in result['agents']] == ['advocate', 'opponent']
        assert result['validationResults'][0]['id'] == 'validation-1'

        rounds = store.select('debate_rounds', {'session_id': result['sessionId']})
        assert len(rounds) == 1
        assert rounds[0]['validation_results'] == result['validationResults']
        events = store.select('events', {'event_type': 'flow_completed'})
        assert len(events) == 1
        assert events[0]['session_id'] == result['sessionId']
        assert events[0]['payload'] == {'responses': 2}

    def test_selected_agents_only(self, orchestrator, user, make_agent):
        make_agent(name='Optimist')
        chosen = make_agent(name='Skeptic', is_active=False)

        result = orchestrator.process_flow(user['id'], 'q', selected_agents=[chosen['id']])
        assert [a['name'] for a in result['agents']] == ['Skeptic']

    def test_failed_agent_and_template_validation(self, orchestrator, mock_llm_client, user, make_agent):
        make_agent()
        mock_llm_client.complete.side_effect = LLMError('provider down')

        result = orchestrator.process_flow(user['id'], 'q')

        response = result['agentResponses'][0]
        assert response['error'] is True
        assert response['response'] == PROCESS_ERROR_TEXT
        assert response['confidence'] == 0
        assert [v['id'] for v in result['validationResults']] == [
            'validation_1', 'validation_2', 'validation_3', 'validation_4'
        ]

    def test_reuses_existing_session(self, orchestrator, store, user, make_agent):
        make_agent()
        first = orchestrator.process_flow(user['id'], 'q')
        second = orchestrator.process_flow(user['id'], 'q again', session_id=first['sessionId'])

        assert second['sessionId'] == first['sessionId']
        rounds = store.select('debate_rounds', {'session_id': first['sessionId']}, order_by='round_number')
        assert [r['round_number'] for r in rounds] == [1, 2]


class TestIterateAndReport:

    def test_iterate_requires_session(self, orchestrator, user):
        with pytest.raises(FlowError):
            orchestrator.iterate_flow(user['id'], None)
        with pytest.raises(FlowNotFound):
            orchestrator.iterate_flow(user['id'], 'missing', action='next_round')

    def test_next_round_then_invalid_action(self, orchestrator, store, user, make_agent):
        make_agent()
        session_id = orchestrator.process_flow(user['id'], 'q')['sessionId']

        result = orchestrator.iterate_flow(user['id'], session_id, ['validation-1'], 'keep going', 'next_round')
        assert result['nextRoundNumber'] == 2
        assert result['canContinue'] is True

        feedback = store.select('user_feedbacks', {'session_id': session_id})[0]
        assert feedback['suggestions'] == ['validation-1']
        assert feedback['feedback_text'] == 'keep going'

        with pytest.raises(FlowError, match='Invalid action'):
            orchestrator.iterate_flow(user['id'], session_id, action='dance')

    def test_max_rounds_forces_report(self, orchestrator, store, user, make_agent):
        make_agent()
        session_id = orchestrator.process_flow(user['id'], 'q')['sessionId']
        store.update('debate_sessions', {'id': session_id}, {'max_rounds': 1})

        result = orchestrator.iterate_flow(user['id'], session_id, action='next_round')

        assert result['action'] == 'report_generated'
        assert store.select_one('debate_sessions', {'id': session_id})['status'] == 'COMPLETED'

    def test_report_summary_and_ai_insights(self, orchestrator, store, user, make_agent):
        make_agent(name='Optimist')
        make_agent(name='Skeptic')
        session_id = orchestrator.process_flow(user['id'], 'q')['sessionId']

        report = orchestrator.generate_report(user['id'], session_id)

        summary = report['summary']
        assert summary['totalRounds'] == 1
        assert summary['totalAgentResponses'] == 2
        assert summary['totalValidations'] == 2
        assert summary['validValidations'] == 2
        assert summary['validationRate'] == 100
        assert summary['averageConfidence'] == 82
        assert [i['type'] for i in report['insights']] == ['performance', 'validation']
        assert report['insights'][0]['description'] == 'Agents agree on cost'

        saved = store.select('reports', {'session_id': session_id})
        assert saved[0]['report_type'] == 'FINAL'

    def test_rule_based_insights_without_credentials(self, orchestrator, mock_llm_client, store, user, make_agent):
        make_agent(name='Optimist')
        session_id = orchestrator.process_flow(user['id'], 'q')['sessionId']
        orchestrator.iterate_flow(user['id'], session_id, user_feedback='ok', action='next_round')
        mock_llm_client.has_credentials.return_value = False

        insights = orchestrator.generate_report(user['id'], session_id)['insights']

        assert [i['title'] for i in insights] == ['Top Performing Agent', 'Validation Success Rate', 'User Engagement']
        assert insights[0]['description'] == 'Optimist achieved the highest average confidence score of 82%'

    def test_write_session_report(self, orchestrator, store, user, make_agent):
        make_agent()
        session_id = orchestrator.process_flow(user['id'], 'q')['sessionId']

        result = orchestrator.write_session_report(user['id'], session_id, 'summary')

        assert result['success'] is True
        assert result['data']['report_type'] == 'SUMMARY'
        assert result['data']['content'].startswith('# Debate Report')

    def test_write_report_unknown_session(self, orchestrator, user):
        result = orchestrator.write_session_report(user['id'], 'missing')
        assert result['success'] is False


class TestDistributedRounds:

    def _session(self, store, user, make_agent, max_rounds=3):
        repo = DebateRepository(store)
        first = make_agent(name='Optimist')
        second = make_agent(name='Skeptic')
        session = repo.create_session(user['id'], 'Adopt?', [first['id'], second['id']], max_rounds=max_rounds)
        round_id = repo.start_round(user['id'], session['data']['id'])['data']['id']
        return session['data'], round_id

    def test_run_round(self, orchestrator, store, user, make_agent):
        session, round_id = self._session(store, user, make_agent)

        orchestrator.run_debate_round(session['id'], round_id)

        debate_round = store.select_one('debate_rounds', {'id': round_id})
        assert debate_round['status'] == 'AWAITING_FEEDBACK'
        assert debate_round['distributor_query'] == 'Adopt?'
        assert debate_round['distributor_response']['overallStrategy'] == 'split'
        rows = store.select('agent_responses', {'round_id': round_id})
        session_agent_ids = {a['agent_id'] for a in store.select('session_agents', {'session_id': session['id']})}
        assert {r['agent_id'] for r in rows} == session_agent_ids
        assert all('agent_name' not in r for r in rows)
        assert all(r['confidence'] == 0.82 for r in rows)
        assert all(r['status'] == 'SUBMITTED' for r in rows)

    def test_agent_failure_recorded(self, orchestrator, mock_llm_client, store, user, make_agent):
        session, round_id = self._session(store, user, make_agent)
        mock_llm_client.complete.side_effect = LLMError('down')

        orchestrator.run_debate_round(session['id'], round_id)

        rows = store.select('agent_responses', {'round_id': round_id})
        assert all(r['status'] == 'FAILED' for r in rows)
        assert store.select_one('debate_rounds', {'id': round_id})['status'] == 'AWAITING_FEEDBACK'

    def test_round_without_agents_fails(self, orchestrator, store, user, make_agent):
        session, round_id = self._session(store, user, make_agent)
        store.update('session_agents', {'session_id': session['id']}, {'is_active': False})

        orchestrator.run_debate_round(session['id'], round_id)
        assert store.select_one('debate_rounds', {'id': round_id})['status'] == 'FAILED'

    def test_validation_completes_session(self, orchestrator, store, user, make_agent):
        session, round_id = self._session(store, user, make_agent)
        orchestrator.run_debate_round(session['id'], round_id)

        result = orchestrator.process_validation(user['id'], round_id)

        assert result['sessionCompleted'] is True
        assert result['validation']['overallScore'] == 78.0
        assert store.select_one('debate_sessions', {'id': session['id']})['status'] == 'COMPLETED'
        validations = store.select('validation_results', {'round_id': round_id})
        assert len(validations) == 2
        assert all(v['validation_score'] == 0.78 for v in validations)
        assert all(v['validator_prompt'] == 'Evaluate response to: Adopt?' for v in validations)
        rows = store.select('agent_responses', {'round_id': round_id})
        assert all(r['status'] == 'VALIDATED' for r in rows)

    def test_validation_starts_next_round(self, orchestrator, store, user, make_agent):
        session, round_id = self._session(store, user, make_agent)
        orchestrator.run_debate_round(session['id'], round_id)

        evaluation = {
            'success': True,
            'validation': {
                'overallScore': 60.0,
                'responses': [],
                'consensus': {'hasConsensus': False, 'consensusPoints': [], 'disagreements': ['cost']},
                'nextSteps': {'shouldContinue': True, 'recommendedActions': [], 'focusAreas': []},
            },
        }
        with patch.object(orchestrator.validator, 'evaluate', return_value=evaluation):
            result = orchestrator.process_validation(user['id'], round_id)

        assert result['sessionCompleted'] is False
        assert result['nextRound']['round_number'] == 2

    def test_validation_without_responses(self, orchestrator, store, user, make_agent):
        _, round_id = self._session(store, user, make_agent)
        with pytest.raises(FlowError, match='No responses'):
            orchestrator.process_validation(user['id'], round_id)

    def test_validation_unknown_round(self, orchestrator, user):
        with pytest.raises(FlowNotFound):
            orchestrator.process_validation(user['id'], 'missing')


class TestStreaming:

    def test_format_sse(self):
        chunk = format_sse('complete', {'ok': True})
        assert chunk.startswith('data: ')
        assert chunk.endswith('\n\n')
        event = json.loads(chunk[len('data: '):])
        assert event['type'] == 'complete'
        assert event['data'] == {'ok': True}
        assert event['timestamp']

    def test_stream_flow_events(self, orchestrator, user, make_agent):
        make_agent()

        events = _parse_sse(list(orchestrator.stream_flow(user['id'], 'Adopt?')))
        types = [e['type'] for e in events]

        assert types[:2] == ['node_added', 'node_added']
        assert types.index('agent_processing') < types.index('agent_response') < types.index('validation_start')
        assert types[-1] == 'complete'
        assert events[-1]['data']['validationResults'][0]['claim'] == 'Adoption reduces cost'

    def test_stream_without_agents_emits_error(self, orchestrator, user):
        events = _parse_sse(list(orchestrator.stream_flow(user['id'], 'Adopt?')))
        assert [e['type'] for e in events] == ['node_added', 'error']
        assert events[-1]['data']['error'] == 'No active agents available'

    def test_stream_validates_before_starting(self, orchestrator, user):
        with pytest.raises(FlowError):
            orchestrator.stream_flow(user['id'], '')
        with pytest.raises(FlowNotFound):
            orchestrator.stream_flow(user['id'], 'q', session_id='missing')


class TestFlowGraph:

    def _run(self, orchestrator, user, enabled, search_result):
        events = []
        graph = build_flow_graph(
            agent_loader=orchestrator._load_agents,
            debate_agent=orchestrator.debate_agent,
            validator=orchestrator.validator,
            repository=orchestrator.repository,
            llm_client=orchestrator.llm_client,
            event_callback=lambda kind, data: events.append((kind, data))
        )
        with patch('debate.graph.perform_web_search', return_value=search_result):
            final = graph.invoke(initial_state('Adopt?', user['id'], enabled_system_agents=enabled))
        return final, events

    def test_system_agents_run(self, orchestrator, user, make_agent):
        make_agent()
        search = {
            'success': True,
            'results': [{'title': 'Study', 'snippet': 'Costs fell 20%'}],
            'totalResults': 1,
            'processingTime': 5,
        }

        final, events = self._run(
            orchestrator, user, ['search-engine', 'chart-agent', 'proscons-agent', 'unknown'], search
        )

        added = [d['id'] for kind, d in events if kind == 'node_added']
        assert added[:5] == ['start', 'distributor', 'search-engine', 'chart-agent', 'proscons-agent']
        assert final['search_data'] == search
        assert final['chart_data']['success'] is True
        assert final['proscons_data']['totalPros'] == 3
        assert final['session_id']

        validator_prompt = orchestrator.llm_client.complete.call_args_list[-1].kwargs['messages'][-1]['content']
        assert 'Additional Context from Web Search:\nStudy: Costs fell 20%' in validator_prompt

    def test_search_failure_reported_on_node(self, orchestrator, user, make_agent):
        make_agent()

        final, events = self._run(
            orchestrator, user, ['search-engine'], {'success': False, 'error': 'blocked', 'results': []}
        )

        search_update = next(d for kind, d in events if kind == 'node_updated' and d['id'] == 'search-engine')
        assert search_update['data']['error'] == 'blocked'
        assert final['search_data'] is None

    def test_initial_state_filters_system_agents(self):
        state = initial_state('q', 'u', enabled_system_agents=['chart-agent', 'bogus'])
        assert state['enabled_system_agents'] == ['chart-agent']
