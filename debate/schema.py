"""
Table layout of the debate database.

Column names mirror config/schema.sql. The local JSON store checks every
read and write against TABLE_COLUMNS so that code exercised in DEV_MODE and
in tests cannot drift away from what PostgREST would accept.
"""

from typing import Dict, FrozenSet, Iterable, Optional

TABLE_COLUMNS: Dict[str, FrozenSet[str]] = {
    'users': frozenset({
        'id', 'email', 'name', 'supabase_id',
        'subscription_plan', 'subscription_status', 'subscription_id',
        'created_at', 'updated_at',
    }),
    'agents': frozenset({
        'id', 'name', 'prompt', 'system_prompt', 'description', 'is_active', 'user_id',
        'created_at', 'updated_at',
    }),
    'debate_sessions': frozenset({
        'id', 'title', 'initial_query', 'status', 'current_round', 'max_rounds', 'user_id',
        'created_at', 'updated_at', 'completed_at',
    }),
    'session_agents': frozenset({
        'id', 'session_id', 'agent_id', 'role', 'is_active', 'joined_at',
    }),
    # query, agent_responses and validation_results hold flow-mode round snapshots
    'debate_rounds': frozenset({
        'id', 'round_number', 'session_id', 'distributor_query', 'distributor_response', 'status',
        'query', 'agent_responses', 'validation_results',
        'started_at', 'completed_at',
    }),
    'agent_responses': frozenset({
        'id', 'round_id', 'agent_id', 'response', 'reasoning', 'confidence', 'processing_time', 'status',
        'created_at',
    }),
    'validation_results': frozenset({
        'id', 'round_id', 'response_id', 'validator_prompt', 'validation_score', 'validation_notes',
        'issues', 'suggestions', 'created_at',
    }),
    'user_feedbacks': frozenset({
        'id', 'session_id', 'round_number', 'agent_id', 'is_accepted', 'feedback_text', 'suggestions',
        'priority', 'created_at',
    }),
    'reports': frozenset({
        'id', 'session_id', 'user_id', 'title', 'content', 'summary', 'recommendations', 'pdf_url',
        'report_type', 'status', 'created_at', 'completed_at',
    }),
    'user_subscriptions': frozenset({
        'id', 'user_id', 'plan', 'status', 'expires_at', 'razorpay_payment_id', 'razorpay_subscription_id',
        'created_at',
    }),
    'payments': frozenset({
        'id', 'user_id', 'order_id', 'amount', 'currency', 'status', 'razorpay_payment_id', 'created_at',
    }),
    'events': frozenset({
        'id', 'session_id', 'agent_name', 'event_type', 'timestamp', 'payload', 'created_at',
    }),
}

# columns the database fills on insert
INSERT_TIMESTAMPS = ('created_at', 'updated_at', 'joined_at', 'started_at')


class SchemaError(ValueError):
    """Unknown table or column."""
    pass


def columns_for(table: str) -> FrozenSet[str]:
    try:
        return TABLE_COLUMNS[table]
    except KeyError:
        raise SchemaError(f"Unknown table: {table}") from None


def check_columns(table: str, names: Optional[Iterable[str]]) -> None:
    """Raise SchemaError if any name is not a column of table."""
    unknown = sorted(set(names or ()) - columns_for(table))
    if unknown:
        raise SchemaError(f"Unknown column(s) for {table}: {', '.join(unknown)}")


def has_column(table: str, name: str) -> bool:
    return name in columns_for(table)
