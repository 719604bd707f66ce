"""
Flask Routes - Health, Dev Auth and Shared Helpers
"""

import os
import logging
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, Any, Optional, Tuple

from flask import Blueprint, request, jsonify, g, current_app

from app.auth import require_auth, MockSupabaseAuth

logger = logging.getLogger(__name__)

main_bp = Blueprint('main', __name__)
api_bp = Blueprint('api', __name__)

VERSION = '1.0.0'


def error_response(message: str, code: str, status: int, /, **extra):
    body = {'error': message, 'code': code}
    body.update(extra)
    return jsonify(body), status


def result_response(result: Dict[str, Any], status: int = 200):
    """Translate a repository result dict into an HTTP response."""
    if result.get('success'):
        return jsonify(result), status

    error = result.get('error') or 'Request failed'
    if error == 'Agent limit reached':
        return error_response(error, 'LIMIT_REACHED', 403, message=result.get('message'), data=result.get('data'))
    if 'not found' in error.lower() or 'access denied' in error.lower():
        return error_response(error, 'NOT_FOUND', 404)
    return error_response(error, 'VALIDATION_ERROR', 400)


def current_user_id() -> Optional[str]:
    """Internal users.id for the authenticated Supabase user, created on first use."""
    if getattr(g, 'db_user_id', None):
        return g.db_user_id

    result = current_app.orchestrator.repository.get_or_create_user(g.user_id, g.user_email)
    if not result['success']:
        return None
    g.db_user_id = result['data']['id']
    return g.db_user_id


def user_or_error() -> Tuple[Optional[str], Any]:
    user_id = current_user_id()
    if not user_id:
        return None, error_response('User not authenticated', 'AUTH_INVALID_TOKEN', 401)
    return user_id, None


def json_body() -> Dict[str, Any]:
    return request.get_json(silent=True) or {}


@main_bp.route('/')
def index():
    """Service info."""
    return jsonify({
        'name': 'Multi-Agent Debate Service',
        'version': VERSION,
        'devMode': bool(current_app.config.get('DEV_MODE')),
        'providers': current_app.llm_client.available_providers(),
    })


@main_bp.route('/health')
def health():
    """Health check endpoint."""
    return jsonify({
        'status': 'healthy',
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'version': VERSION
    })


LOG_TAIL_CHARS = 50000


@api_bp.route('/logs', methods=['GET'])
def get_logs():
    """Tail of the newest debate_*.log as plain text."""
    log_dir = Path('storage/logs')
    candidates = sorted(log_dir.glob('debate_*.log'), key=os.path.getmtime) if log_dir.is_dir() else []
    if not candidates:
        return "No log files yet."

    try:
        text = candidates[-1].read_text(encoding='utf-8')
    except OSError as e:
        logger.error(f"Cannot read {candidates[-1]}: {e}")
        return f"Cannot read log file: {e}", 500

    if len(text) > LOG_TAIL_CHARS:
        text = "...[truncated]...\n" + text[-LOG_TAIL_CHARS:]
    return text


def _local_store() -> Optional[MockSupabaseAuth]:
    """The JSON-file store when running in DEV_MODE, else None."""
    store = current_app.supabase_auth
    if current_app.config.get('DEV_MODE') and isinstance(store, MockSupabaseAuth):
        return store
    return None


@api_bp.route('/reset', methods=['POST'])
@require_auth
def reset_db():
    """Wipe all local tables (DEV_MODE only); users survive."""
    if not current_app.config.get('DEV_MODE'):
        return error_response('Reset only allowed in DEV_MODE', 'FORBIDDEN', 403)

    store = _local_store()
    if store is None:
        return error_response('Reset not supported for this DB backend', 'VALIDATION_ERROR', 400)
    store.reset()
    logger.warning(f"Local tables wiped by {g.user_id}")
    return jsonify({'status': 'reset_complete'})


def _local_auth_unavailable():
    return error_response('Endpoint unavailable in production', 'NOT_FOUND', 404)


@api_bp.route('/auth/login', methods=['POST'])
def local_login():
    """Exchange email/password for a local-<id> token."""
    store = _local_store()
    if store is None:
        return _local_auth_unavailable()

    data = json_body()
    session = store.login(data.get('email'), data.get('password'))
    if not session:
        return error_response('Invalid credentials', 'AUTH_INVALID_TOKEN', 401)
    return jsonify(session)


@api_bp.route('/auth/signup', methods=['POST'])
def local_signup():
    """Register a local user and log them straight in."""
    store = _local_store()
    if store is None:
        return _local_auth_unavailable()

    data = json_body()
    if not data.get('email') or not data.get('password'):
        return error_response('Email and password are required', 'VALIDATION_ERROR', 400)

    session = store.signup(data['email'], data['password']) or {'error': 'Signup failed'}
    if 'error' in session:
        return error_response(session['error'], 'VALIDATION_ERROR', 400)
    return jsonify(session)


@api_bp.route('/auth/reset-password', methods=['POST'])
def local_reset_password():
    """Put a local user's password back to the dev default."""
    store = _local_store()
    if store is None:
        return _local_auth_unavailable()

    if not store.reset_password_for_email(json_body().get('email')):
        return error_response('User not found', 'NOT_FOUND', 404)
    return jsonify({'message': 'Password reset successful', 'data': {}})
