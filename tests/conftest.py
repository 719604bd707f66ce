"""
Shared fixtures for the debate service tests
"""

import json
import pytest
from unittest.mock import Mock, patch

from app.auth import MockSupabaseAuth
from debate.config import load_config, reset_config
from debate.llm_client import extract_json


AGENT_REPLY = (
    "I strongly support this approach because it reduces cost. "
    "Studies show that teams adopting it ship faster. "
    "Therefore the benefits outweigh the risks. "
    "Confidence: 82"
)

VALIDATION_REPLY = """
[VALIDATION_START]
ID: validation-1
CLAIM: Adoption reduces cost
VALID: true
CONFIDENCE: 80
EVIDENCE: Cost studies
FALLACIES: none
FACTS: lower spend, faster delivery
[VALIDATION_END]
"""


def fake_completion(messages, **kwargs):
    """Canned LLM replies keyed on the prompt text."""
    content = "\n".join(m.get('content', '') for m in messages)

    if "logical validator" in content:
        text = VALIDATION_REPLY
    elif "expert validator evaluating" in content:
        text = json.dumps({
            'overallScore': 78,
            'responses': [],
            'consensus': {'hasConsensus': True, 'consensusPoints': ['cost'], 'disagreements': []},
            'nextSteps': {'shouldContinue': False, 'recommendedActions': [], 'focusAreas': []},
        })
    elif "task distribution agent" in content:
        text = json.dumps({'tasks': [], 'recommendedAgents': [], 'overallStrategy': 'split'})
    elif "report generation agent" in content:
        text = "# Debate Report\n\nAgents agreed on cost."
    elif "key insights" in content:
        text = "1. Agents agree on cost\n2. Evidence quality is high"
    elif "voice command interpreter" in content:
        text = json.dumps({
            'intent': 'navigation',
            'action': 'open agents',
            'targetPath': '/dashboard/agents',
            'parameters': {},
            'confidence': 0.9,
            'response': 'Opening agents',
        })
    else:
        text = AGENT_REPLY

    return {'content': text, 'model': 'test-model', 'usage': {'total_tokens': 10}, 'elapsed': 0.01, 'provider': 'groq'}


def fake_completion_json(messages, **kwargs):
    response = fake_completion(messages, **kwargs)
    response['parsed'] = extract_json(response['content'])
    return response


@pytest.fixture(autouse=True)
def default_config(tmp_path):
    """Use built-in defaults (no YAML overlay, no stream delay)."""
    load_config(config_dir=str(tmp_path / 'no-config'))
    yield
    reset_config()


@pytest.fixture
def mock_llm_client():
    """LLM client double returning canned replies."""
    mock = Mock()
    mock.default_provider = 'groq'
    mock.complete.side_effect = fake_completion
    mock.complete_json.side_effect = fake_completion_json
    mock.has_credentials.return_value = True
    mock.available_providers.return_value = ['groq']
    return mock


@pytest.fixture
def mock_supabase_auth():
    """Create mock Supabase auth."""
    mock = Mock()
    mock.verify_token.return_value = {
        'sub': 'test-user-id',
        'email': 'test@example.com',
        'role': 'authenticated'
    }
    mock.log_event.return_value = 'test-event-id'
    return mock


@pytest.fixture
def store(tmp_path):
    """JSON-file backed store with the same table API as Supabase."""
    return MockSupabaseAuth(db_file=str(tmp_path / 'mock_db.json'))


@pytest.fixture
def user(store):
    return store.insert('users', {'supabase_id': 'test-user-id', 'email': 'dev@example.com'})


@pytest.fixture
def make_agent(store, user):
    def _make(name='Optimist', prompt='Argue in favor.', is_active=True, owner=None):
        return store.insert('agents', {
            'name': name,
            'prompt': prompt,
            'user_id': owner or user['id'],
            'is_active': is_active,
        })
    return _make


@pytest.fixture
def app(tmp_path, monkeypatch, mock_llm_client):
    """Create Flask test application in DEV_MODE with a temp store."""
    monkeypatch.setenv('DEV_MODE', 'true')
    monkeypatch.setenv('MOCK_DB_FILE', str(tmp_path / 'app_db.json'))
    monkeypatch.setenv('CONTEXT_DB_PATH', str(tmp_path / 'context.db'))
    monkeypatch.setenv('RAZORPAY_KEY_ID', 'rzp_test_key')
    monkeypatch.setenv('RAZORPAY_KEY_SECRET', 'rzp_test_secret')

    with patch('debate.llm_client.LLMClient', return_value=mock_llm_client):
        from app import create_app
        app = create_app('testing')
        app.config['TESTING'] = True
        yield app


@pytest.fixture
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture
def auth_headers():
    """Create authorization headers."""
    return {'Authorization': 'Bearer test-token'}
