"""
Tests for the Supabase table wrapper and the local JSON store
"""

import pytest
from unittest.mock import patch, MagicMock

from app.auth import SupabaseAuth
from debate.schema import SchemaError, check_columns, columns_for, has_column


class TestSchema:

    def test_unknown_table(self):
        with pytest.raises(SchemaError, match='Unknown table'):
            columns_for('sessions')

    def test_unknown_columns_listed(self):
        with pytest.raises(SchemaError, match='agent_name'):
            check_columns('agent_responses', ['round_id', 'agent_name'])

    def test_updated_at_only_where_triggers_exist(self):
        assert has_column('agents', 'updated_at')
        assert not has_column('debate_rounds', 'updated_at')
        assert not has_column('session_agents', 'created_at')


class TestLocalStore:

    def test_session_agents_stamp_joined_at(self, store):
        row = store.insert('session_agents', {'session_id': 's1', 'agent_id': 'a1', 'role': 'PARTICIPANT'})
        assert row['joined_at']
        assert 'created_at' not in row
        assert 'updated_at' not in row

    def test_update_stamps_updated_at_only_where_present(self, store, make_agent):
        agent = make_agent()
        debate_round = store.insert('debate_rounds', {'session_id': 's1', 'round_number': 1, 'status': 'IN_PROGRESS'})

        updated_agent, = store.update('agents', {'id': agent['id']}, {'name': 'Renamed'})
        updated_round, = store.update('debate_rounds', {'id': debate_round['id']}, {'status': 'COMPLETED'})

        assert updated_agent['updated_at'] >= agent['updated_at']
        assert 'updated_at' not in updated_round
        assert updated_round['started_at'] == debate_round['started_at']

    def test_unknown_column_rejected(self, store):
        with pytest.raises(SchemaError):
            store.insert('agent_responses', {'round_id': 'r1', 'agent_name': 'Optimist'})
        with pytest.raises(SchemaError):
            store.insert('user_feedbacks', {'session_id': 's1', 'user_id': 'u1', 'round_number': 1})
        with pytest.raises(SchemaError):
            store.update('debate_rounds', {'id': 'r1'}, {'updated_at': 'now'})
        assert store.select('agent_responses') == []

    def test_unknown_filter_or_order_rejected(self, store):
        with pytest.raises(SchemaError):
            store.select('session_agents', {'session_id': 's1'}, order_by='created_at')
        with pytest.raises(SchemaError):
            store.select('debate_rounds', {'query_text': 'x'})
        with pytest.raises(SchemaError):
            store.delete('reports', {'owner': 'u1'})

    def test_unknown_table_rejected(self, store):
        with pytest.raises(SchemaError):
            store.insert('rounds', {'id': 'r1'})


class TestSupabaseTables:

    @pytest.fixture
    def admin(self):
        with patch('supabase.create_client') as create_client:
            admin = MagicMock()
            create_client.side_effect = [MagicMock(), admin]
            yield admin

    def test_update_sends_only_given_columns(self, admin):
        table = admin.table.return_value
        table.update.return_value.eq.return_value.execute.return_value.data = [{'id': 'r1', 'status': 'COMPLETED'}]

        auth = SupabaseAuth('https://example.supabase.co', 'anon', 'service')
        rows = auth.update('debate_rounds', {'id': 'r1'}, {'status': 'COMPLETED'})

        admin.table.assert_called_with('debate_rounds')
        table.update.assert_called_once_with({'status': 'COMPLETED'})
        table.update.return_value.eq.assert_called_once_with('id', 'r1')
        assert rows == [{'id': 'r1', 'status': 'COMPLETED'}]

    def test_errors_logged_not_raised(self, admin):
        admin.table.side_effect = RuntimeError('PGRST204')

        auth = SupabaseAuth('https://example.supabase.co', 'anon', 'service')
        assert auth.update('debate_rounds', {'id': 'r1'}, {'status': 'COMPLETED'}) == []
        assert auth.insert('debate_rounds', {'session_id': 's1'}) is None
