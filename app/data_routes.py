"""
Data API - agents, sessions, rounds, feedback, reports and analytics
"""

import logging
import threading

from flask import Blueprint, jsonify, current_app

from app.auth import require_auth
from app.routes import error_response, json_body, result_response, user_or_error
from debate.orchestrator import FlowError, FlowNotFound

logger = logging.getLogger(__name__)

data_bp = Blueprint('data', __name__)


def _repo():
    return current_app.orchestrator.repository


def _run_round_in_background(app, session_id: str, round_id: str):
    """Run agent distribution for a round off the request thread."""
    with app.app_context():
        try:
            app.orchestrator.run_debate_round(session_id, round_id)
        except Exception as e:
            logger.exception(f"Background round {round_id} failed: {e}")


def _spawn_round(session_id: str, round_id: str):
    app = current_app._get_current_object()
    thread = threading.Thread(
        target=_run_round_in_background,
        args=(app, session_id, round_id),
        daemon=True
    )
    thread.start()


# ============================================================================
# Agents
# ============================================================================

@data_bp.route('/agents', methods=['GET'])
@require_auth
def list_agents():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().list_agents(user_id))


@data_bp.route('/agents', methods=['POST'])
@require_auth
def create_agent():
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    result = _repo().create_agent(user_id, data.get('name'), data.get('prompt'), data.get('description'))
    return result_response(result, 201)


@data_bp.route('/agents/active', methods=['GET'])
@require_auth
def active_agents():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().active_agents(user_id))


@data_bp.route('/agents/stats', methods=['GET'])
@require_auth
def agent_stats():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().agents_with_stats(user_id))


@data_bp.route('/agents/<agent_id>', methods=['GET'])
@require_auth
def get_agent(agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().get_agent(user_id, agent_id))


@data_bp.route('/agents/<agent_id>', methods=['PUT'])
@require_auth
def update_agent(agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    updates = {
        'name': data.get('name'),
        'description': data.get('description'),
        'prompt': data.get('prompt'),
        'is_active': data.get('isActive'),
    }
    return result_response(_repo().update_agent(user_id, agent_id, updates))


@data_bp.route('/agents/<agent_id>', methods=['DELETE'])
@require_auth
def delete_agent(agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().delete_agent(user_id, agent_id))


@data_bp.route('/agents/<agent_id>/toggle', methods=['POST'])
@require_auth
def toggle_agent(agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    if 'isActive' not in data:
        return error_response('isActive is required', 'VALIDATION_ERROR', 400)
    return result_response(_repo().toggle_agent(user_id, agent_id, bool(data['isActive'])))


@data_bp.route('/agents/<agent_id>/duplicate', methods=['POST'])
@require_auth
def duplicate_agent(agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().duplicate_agent(user_id, agent_id), 201)


# ============================================================================
# Sessions
# ============================================================================

@data_bp.route('/sessions', methods=['GET'])
@require_auth
def list_sessions():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().list_sessions(user_id))


@data_bp.route('/sessions', methods=['POST'])
@require_auth
def create_session():
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    result = _repo().create_session(
        user_id,
        data.get('initialQuery') or '',
        data.get('agentIds') or [],
        max_rounds=data.get('maxRounds'),
        title=data.get('title')
    )
    return result_response(result, 201)


@data_bp.route('/sessions/<session_id>', methods=['GET'])
@require_auth
def get_session(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().get_session(user_id, session_id))


@data_bp.route('/sessions/<session_id>', methods=['DELETE'])
@require_auth
def delete_session(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    result = _repo().delete_session(user_id, session_id)
    if result['success']:
        current_app.orchestrator.context_manager(session_id).clear()
    return result_response(result)


@data_bp.route('/sessions/<session_id>/status', methods=['PATCH'])
@require_auth
def update_session_status(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    status = json_body().get('status')
    if not status:
        return error_response('Status is required', 'VALIDATION_ERROR', 400)
    return result_response(_repo().update_session_status(user_id, session_id, status))


# ============================================================================
# Session agents
# ============================================================================

@data_bp.route('/sessions/<session_id>/agents', methods=['GET'])
@require_auth
def session_agents(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().session_agents(user_id, session_id))


@data_bp.route('/sessions/<session_id>/agents', methods=['POST'])
@require_auth
def add_session_agents(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    agent_ids = json_body().get('agentIds') or []
    return result_response(_repo().add_agents_to_session(user_id, session_id, agent_ids))


@data_bp.route('/sessions/<session_id>/agents/<agent_id>', methods=['DELETE'])
@require_auth
def remove_session_agent(session_id: str, agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().remove_agent_from_session(user_id, session_id, agent_id))


@data_bp.route('/sessions/<session_id>/agents/<agent_id>/role', methods=['PATCH'])
@require_auth
def update_session_agent_role(session_id: str, agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    role = json_body().get('role')
    if not role:
        return error_response('Role is required', 'VALIDATION_ERROR', 400)
    return result_response(_repo().update_session_agent_role(user_id, session_id, agent_id, role))


@data_bp.route('/sessions/<session_id>/agents/<agent_id>/toggle', methods=['PATCH'])
@require_auth
def toggle_session_agent(session_id: str, agent_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    if 'isActive' not in data:
        return error_response('isActive is required', 'VALIDATION_ERROR', 400)
    return result_response(_repo().toggle_session_agent(user_id, session_id, agent_id, bool(data['isActive'])))


# ============================================================================
# Rounds and responses
# ============================================================================

@data_bp.route('/sessions/<session_id>/rounds', methods=['POST'])
@require_auth
def start_round(session_id: str):
    """Open a new round; agents answer in a background thread."""
    user_id, error = user_or_error()
    if error:
        return error

    result = _repo().start_round(user_id, session_id)
    if not result['success']:
        return result_response(result)

    _spawn_round(session_id, result['data']['id'])
    return jsonify(result), 201


@data_bp.route('/rounds/<round_id>/validate', methods=['POST'])
@require_auth
def validate_round(round_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    try:
        result = current_app.orchestrator.process_validation(
            user_id,
            round_id,
            continue_debate=bool(data.get('continueDebate', True))
        )
    except FlowNotFound as e:
        return error_response(str(e), 'NOT_FOUND', 404)
    except FlowError as e:
        return error_response(str(e), 'VALIDATION_ERROR', 400)
    except Exception as e:
        logger.exception(f"Validation failed for round {round_id}: {e}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)

    next_round = result.get('nextRound')
    if next_round:
        _spawn_round(next_round['session_id'], next_round['id'])
    return jsonify(result)


@data_bp.route('/rounds/<round_id>/responses', methods=['GET'])
@require_auth
def round_responses(round_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().round_responses(user_id, round_id))


@data_bp.route('/responses/<response_id>/status', methods=['PATCH'])
@require_auth
def update_response_status(response_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    status = json_body().get('status')
    if not status:
        return error_response('Status is required', 'VALIDATION_ERROR', 400)
    return result_response(_repo().update_response_status(user_id, response_id, status))


# ============================================================================
# Feedback
# ============================================================================

@data_bp.route('/sessions/<session_id>/feedback', methods=['GET'])
@require_auth
def session_feedback(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().session_feedback(user_id, session_id))


@data_bp.route('/sessions/<session_id>/feedback', methods=['POST'])
@require_auth
def create_feedback(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    result = _repo().create_feedback(
        user_id,
        session_id,
        round_number=data.get('roundNumber'),
        is_accepted=data.get('isAccepted', True),
        feedback_text=data.get('feedbackText'),
        agent_id=data.get('agentId'),
        suggestions=data.get('suggestions'),
        priority=data.get('priority') or 'MEDIUM'
    )
    return result_response(result, 201)


@data_bp.route('/sessions/<session_id>/feedback/stats', methods=['GET'])
@require_auth
def feedback_stats(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().feedback_stats(user_id, session_id))


@data_bp.route('/feedback/<feedback_id>', methods=['DELETE'])
@require_auth
def delete_feedback(feedback_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().delete_feedback(user_id, feedback_id))


# ============================================================================
# Reports
# ============================================================================

@data_bp.route('/sessions/<session_id>/reports', methods=['GET'])
@require_auth
def session_reports(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().session_reports(user_id, session_id))


@data_bp.route('/sessions/<session_id>/reports', methods=['POST'])
@require_auth
def create_report(session_id: str):
    """Write a markdown report for the session with the report agent."""
    user_id, error = user_or_error()
    if error:
        return error

    report_type = json_body().get('reportType') or 'final'
    try:
        result = current_app.orchestrator.write_session_report(user_id, session_id, report_type)
    except Exception as e:
        logger.exception(f"Report generation failed for session {session_id}: {e}")
        return error_response('Failed to generate report', 'INTERNAL_ERROR', 500)
    return result_response(result, 201)


@data_bp.route('/reports/<report_id>', methods=['DELETE'])
@require_auth
def delete_report(report_id: str):
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(_repo().delete_report(user_id, report_id))


# ============================================================================
# Analytics
# ============================================================================

@data_bp.route('/analytics', methods=['GET'])
@require_auth
def analytics():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(current_app.analytics.get_analytics(user_id))


@data_bp.route('/analytics/activity', methods=['GET'])
@require_auth
def recent_activity():
    user_id, error = user_or_error()
    if error:
        return error
    return result_response(current_app.analytics.recent_activity(user_id))
