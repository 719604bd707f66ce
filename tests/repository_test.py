"""
Tests for DebateRepository, SubscriptionService and AnalyticsService
"""

from datetime import datetime, timedelta, timezone

from debate.analytics import AnalyticsService
from debate.repository import DebateRepository, SESSION_DENIED
from debate.subscription import (
    SubscriptionService,
    days_until_expiry,
    format_subscription_status,
)


def _session(repo, user, make_agent, **kwargs):
    agent = make_agent()
    result = repo.create_session(user['id'], 'Should we adopt it?', [agent['id']], **kwargs)
    assert result['success'], result
    return result['data'], agent


class TestUsers:

    def test_get_or_create_is_idempotent(self, store):
        repo = DebateRepository(store)
        first = repo.get_or_create_user('sb-1', 'a@example.com')['data']
        second = repo.get_or_create_user('sb-1')['data']

        assert first['id'] == second['id']
        assert first['subscription_status'] == 'inactive'


class TestAgents:

    def test_create_validates_fields(self, store, user):
        result = DebateRepository(store).create_agent(user['id'], ' ', 'prompt')
        assert result == {'success': False, 'error': 'Name and prompt are required'}

    def test_free_limit(self, store, user, make_agent):
        for i in range(4):
            make_agent(name=f"A{i}")
        make_agent(name='inactive', is_active=False)

        result = DebateRepository(store).create_agent(user['id'], 'Fifth', 'p')
        assert result['success'] is False
        assert result['error'] == 'Agent limit reached'
        assert result['data'] == {'canCreate': False, 'currentCount': 4, 'limit': 4, 'isPremium': False}

    def test_premium_is_unlimited(self, store, user, make_agent):
        for i in range(4):
            make_agent(name=f"A{i}")
        SubscriptionService(store).activate_premium(user['id'], payment_id='pay_1')

        result = DebateRepository(store).create_agent(user['id'], 'Fifth', 'p')
        assert result['success'] is True

    def test_update_ignores_unknown_fields(self, store, user, make_agent):
        agent = make_agent()
        result = DebateRepository(store).update_agent(
            user['id'], agent['id'], {'name': 'Renamed', 'user_id': 'someone-else', 'prompt': None}
        )
        assert result['data']['name'] == 'Renamed'
        assert result['data']['user_id'] == user['id']
        assert result['data']['prompt'] == agent['prompt']

    def test_other_users_agent_denied(self, store, user, make_agent):
        agent = make_agent(owner='another-user')
        repo = DebateRepository(store)
        assert repo.get_agent(user['id'], agent['id'])['success'] is False
        assert repo.delete_agent(user['id'], agent['id'])['error'] == 'Agent not found or access denied'

    def test_cannot_delete_agent_in_active_session(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)

        result = repo.delete_agent(user['id'], agent['id'])
        assert result['error'] == 'Cannot delete agent that is being used in active sessions'

        repo.update_session_status(user['id'], session['id'], 'completed')
        assert repo.delete_agent(user['id'], agent['id'])['success'] is True

    def test_agents_with_stats(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        repo.save_flow_round(session['id'], 'q', [{'agentId': agent['id'], 'agentName': 'Optimist'}], [])

        stats = repo.agents_with_stats(user['id'])['data'][0]
        assert stats['sessionCount'] == 1
        assert stats['responseCount'] == 1
        assert stats['lastUsed']


class TestSessions:

    def test_create_session(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)

        assert session['status'] == 'ACTIVE'
        assert session['max_rounds'] == 5
        assert session['title'] == 'Debate: Should we adopt it?...'

        detail = repo.get_session(user['id'], session['id'])['data']
        assert detail['agents'][0]['agent']['id'] == agent['id']
        assert detail['agents'][0]['role'] == 'PARTICIPANT'

    def test_create_requires_owned_active_agents(self, store, user, make_agent):
        repo = DebateRepository(store)
        foreign = make_agent(owner='another-user')

        assert repo.create_session(user['id'], 'q', [])['error'] == 'At least one agent is required'
        assert repo.create_session(user['id'], 'q', [foreign['id']])['error'] == \
            'Some agents not found or not accessible'

    def test_status_transitions(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent)

        assert repo.update_session_status(user['id'], session['id'], 'bogus')['success'] is False
        completed = repo.update_session_status(user['id'], session['id'], 'completed')['data']
        assert completed['status'] == 'COMPLETED'
        assert completed['completed_at']

    def test_rounds_respect_max(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent, max_rounds=2)

        assert repo.start_round(user['id'], session['id'])['data']['round_number'] == 1
        assert repo.start_round(user['id'], session['id'])['data']['round_number'] == 2
        assert repo.start_round(user['id'], session['id'])['error'] == 'Maximum rounds reached'

    def test_round_requires_active_session(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent)
        repo.update_session_status(user['id'], session['id'], 'paused')

        assert repo.start_round(user['id'], session['id'])['error'] == 'Session is not active'

    def test_delete_cascades(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        debate_round = repo.save_flow_round(session['id'], 'q', [{'agentId': agent['id'], 'response': 'x'}], [])
        repo.create_feedback(user['id'], session['id'], feedback_text='nice')

        assert repo.delete_session(user['id'], session['id'])['success'] is True
        assert store.count('agent_responses', {'round_id': debate_round['id']}) == 0
        assert store.count('session_agents', {'session_id': session['id']}) == 0
        assert store.count('user_feedbacks', {'session_id': session['id']}) == 0

    def test_foreign_session_denied(self, store, user):
        other = store.insert('debate_sessions', {'user_id': 'another-user', 'initial_query': 'q'})
        repo = DebateRepository(store)
        assert repo.get_session(user['id'], other['id']) == {'success': False, 'error': SESSION_DENIED}
        assert repo.owned_session(user['id'], '') is None


class TestSessionAgents:

    def test_add_skips_existing(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        second = make_agent(name='Skeptic')

        added = repo.add_agents_to_session(user['id'], session['id'], [agent['id'], second['id']])
        assert [r['agent_id'] for r in added['data']] == [second['id']]

        again = repo.add_agents_to_session(user['id'], session['id'], [agent['id']])
        assert again['message'] == 'All agents are already in this session'

    def test_role_and_toggle(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)

        assert repo.update_session_agent_role(user['id'], session['id'], agent['id'], 'validator')['data']['role'] \
            == 'VALIDATOR'
        assert repo.update_session_agent_role(user['id'], session['id'], agent['id'], 'judge')['success'] is False

        repo.toggle_session_agent(user['id'], session['id'], agent['id'], False)
        assert repo.active_session_agents(session['id']) == []

    def test_agents_listed_in_join_order(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, first = _session(repo, user, make_agent)
        second = make_agent(name='Skeptic')
        repo.add_agents_to_session(user['id'], session['id'], [second['id']])

        rows = repo.session_agents(user['id'], session['id'])['data']
        assert [r['agent_id'] for r in rows] == [first['id'], second['id']]
        assert all(r['joined_at'] and 'created_at' not in r for r in rows)

        store.update('session_agents', {'session_id': session['id'], 'agent_id': first['id']},
                     {'joined_at': '2999-01-01T00:00:00+00:00'})
        detail = repo.get_session(user['id'], session['id'])['data']
        assert [a['agent']['name'] for a in detail['agents']] == ['Skeptic', 'Optimist']


class TestResponsesAndFeedback:

    def test_flow_round_rows(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        debate_round = repo.save_flow_round(session['id'], 'q', [
            {'agentId': agent['id'], 'agentName': 'Optimist', 'response': 'yes', 'confidence': 80},
            {'agentId': 'gone', 'agentName': 'Ghost', 'response': 'err', 'error': True},
        ], [{'id': 'validation-1'}])

        assert debate_round['status'] == 'COMPLETED'
        responses = repo.round_responses(user['id'], debate_round['id'])['data']
        by_name = {r['agent_name']: r for r in responses}
        assert by_name['Optimist']['status'] == 'SUBMITTED'
        assert by_name['Unknown']['status'] == 'FAILED'

        updated = repo.update_response_status(user['id'], by_name['Optimist']['id'], 'accepted')
        assert updated['data']['status'] == 'ACCEPTED'

    def test_response_rows_match_table(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        debate_round = repo.save_flow_round(session['id'], 'q', [{
            'agentId': agent['id'],
            'agentName': 'Optimist',
            'response': 'yes',
            'confidence': 85,
            'reasoning': ['costs fall', 'teams ship faster'],
            'processingTime': 1200,
        }], [])

        row = store.select_one('agent_responses', {'round_id': debate_round['id']})
        assert 'agent_name' not in row
        assert row['confidence'] == 0.85
        assert row['reasoning'] == 'costs fall\nteams ship faster'
        assert row['processing_time'] == 1200

    def test_feedback_rows_match_table(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        repo.save_flow_round(session['id'], 'q', [{'agentId': agent['id'], 'response': 'x'}], [])
        repo.save_flow_round(session['id'], 'q', [{'agentId': agent['id'], 'response': 'y'}], [])

        feedback = repo.create_feedback(user['id'], session['id'], feedback_text='general note')['data']

        assert 'user_id' not in feedback
        assert feedback['round_number'] == 2

    def test_feedback_stats(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent)
        repo.create_feedback(user['id'], session['id'], is_accepted=True, priority='urgent')
        repo.create_feedback(user['id'], session['id'], is_accepted=False, feedback_text='  ')

        feedback = repo.session_feedback(user['id'], session['id'])['data']
        assert {f['priority'] for f in feedback} == {'MEDIUM'}
        assert all(f['feedback_text'] is None for f in feedback)

        stats = repo.feedback_stats(user['id'], session['id'])['data']
        assert (stats['total'], stats['accepted'], stats['rejected']) == (2, 1, 1)

    def test_snapshot_report(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent)

        result = repo.save_flow_snapshot(
            user['id'], session['id'],
            nodes=[{'id': 'n1', 'type': 'query', 'extra': 'dropped'}],
            edges=[{'id': 'e1', 'source': 'n1', 'target': 'n2'}],
            validations=[],
            iteration=2
        )
        assert result['success'] is True

        report = repo.session_reports(user['id'], session['id'])['data'][0]
        assert report['report_type'] == 'SNAPSHOT'
        assert report['title'] == 'Flow State Snapshot - Pre-Regeneration 2'
        assert report['recommendations']['preservedElements'] == {'nodes': 1, 'edges': 1, 'validations': 0}
        assert '"extra"' not in report['content']


class TestSubscriptions:

    def test_default_is_free(self, store, user):
        info = SubscriptionService(store).get_user_subscription(user['id'])
        assert info['plan'] == 'FREE'
        assert info['agentLimit'] == 4
        assert info['status'] is None
        assert info['expiresAt'] is None
        assert format_subscription_status(info) == 'Free'

    def test_expired_premium(self, store, user):
        past = (datetime.now(timezone.utc) - timedelta(days=1)).isoformat()
        store.insert('user_subscriptions', {
            'user_id': user['id'], 'plan': 'PREMIUM', 'status': 'ACTIVE', 'expires_at': past
        })
        info = SubscriptionService(store).get_user_subscription(user['id'])
        assert info['status'] == 'EXPIRED'
        assert info['expiresAt'] == past
        assert info['isPremium'] is False
        assert format_subscription_status(info) == 'Inactive'

    def test_activate_and_cancel(self, store, user):
        service = SubscriptionService(store)
        row = service.activate_premium(user['id'], payment_id='pay_1', subscription_id='sub_1')

        info = service.get_user_subscription(user['id'])
        assert info['isPremium'] is True
        assert info['agentLimit'] == -1
        assert days_until_expiry(info['expiresAt']) == 365
        assert store.select_one('users', {'id': user['id']})['subscription_status'] == 'active'
        assert service.find_by_razorpay_subscription(user['id'], 'sub_1')['id'] == row['id']

        assert service.cancel(row['id']) is True
        assert service.get_user_subscription(user['id'])['plan'] == 'FREE'
        assert store.select_one('users', {'id': user['id']})['subscription_status'] == 'cancelled'
        assert service.cancel('missing') is False

    def test_days_until_expiry_handles_bad_values(self):
        assert days_until_expiry(None) is None
        assert days_until_expiry('not a date') is None


class TestAnalytics:

    def test_aggregates(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, agent = _session(repo, user, make_agent)
        repo.save_flow_round(session['id'], 'q', [
            {'agentId': agent['id'], 'agentName': 'Optimist', 'confidence': 80},
        ], [])
        repo.save_flow_round(session['id'], 'q', [
            {'agentId': agent['id'], 'agentName': 'Optimist', 'confidence': 60},
        ], [])

        data = AnalyticsService(store).get_analytics(user['id'])['data']
        assert data['totalSessions'] == 1
        assert data['totalRounds'] == 2
        assert data['averageRoundsPerSession'] == 2.0
        assert data['responsesByAgent'] == [{'agentName': 'Optimist', 'count': 2}]
        assert data['agentPerformance'] == [{'agentName': 'Optimist', 'avgConfidence': 70.0, 'responseCount': 2}]
        assert data['roundsDistribution'] == [{'roundNumber': 1, 'count': 1}, {'roundNumber': 2, 'count': 1}]
        assert data['sessionsOverTime'][0]['count'] == 1

    def test_empty_user(self, store, user):
        data = AnalyticsService(store).get_analytics(user['id'])['data']
        assert data['totalSessions'] == 0
        assert data['averageRoundsPerSession'] == 0

    def test_recent_activity_merges(self, store, user, make_agent):
        repo = DebateRepository(store)
        session, _ = _session(repo, user, make_agent)
        repo.save_report(user['id'], session['id'], 'Final', '# Report')

        activity = AnalyticsService(store).recent_activity(user['id'])['data']
        assert {a['type'] for a in activity} == {'session', 'report'}
        assert any(a['title'] == 'Report: Final' for a in activity)
