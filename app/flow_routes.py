"""
Flow API - process, stream, iterate and context endpoints
"""

import logging

from flask import Blueprint, Response, jsonify, current_app

from app.auth import require_auth
from app.routes import error_response, json_body, result_response, user_or_error
from debate.orchestrator import FlowError, FlowNotFound

logger = logging.getLogger(__name__)

flow_bp = Blueprint('flow', __name__)


def _flow_error(e: FlowError):
    if isinstance(e, FlowNotFound):
        return error_response(str(e), 'NOT_FOUND', 404)
    return error_response(str(e), 'VALIDATION_ERROR', 400)


@flow_bp.route('/process', methods=['POST'])
@require_auth
def process_flow():
    """Run one flow round synchronously."""
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    try:
        result = current_app.orchestrator.process_flow(
            user_id=user_id,
            query=(data.get('query') or ''),
            selected_agents=data.get('selectedAgents'),
            session_id=data.get('sessionId')
        )
        return jsonify(result)
    except FlowError as e:
        return _flow_error(e)
    except Exception as e:
        logger.exception(f"Flow processing error: {e}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)


@flow_bp.route('/stream', methods=['POST'])
@require_auth
def stream_flow():
    """Run one flow round as a server-sent event stream."""
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    try:
        events = current_app.orchestrator.stream_flow(
            user_id=user_id,
            query=(data.get('query') or ''),
            selected_agents=data.get('selectedAgents'),
            enabled_system_agents=data.get('enabledSystemAgents'),
            session_id=data.get('sessionId')
        )
    except FlowError as e:
        return _flow_error(e)
    except Exception as e:
        logger.exception(f"Stream setup error: {e}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)

    return Response(
        events,
        mimetype='text/event-stream',
        headers={
            'Cache-Control': 'no-cache',
            'Connection': 'keep-alive',
            'X-Accel-Buffering': 'no',
        }
    )


@flow_bp.route('/iterate', methods=['POST'])
@require_auth
def iterate_flow():
    """Continue to the next round or close the session with a report."""
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    try:
        result = current_app.orchestrator.iterate_flow(
            user_id=user_id,
            session_id=data.get('sessionId'),
            selected_validations=data.get('selectedValidations'),
            user_feedback=data.get('userFeedback'),
            action=data.get('action')
        )
        return jsonify(result)
    except FlowError as e:
        return _flow_error(e)
    except Exception as e:
        logger.exception(f"Iteration error: {e}")
        return error_response('Internal server error', 'INTERNAL_ERROR', 500)


def _session_context(user_id: str, session_id: str):
    orchestrator = current_app.orchestrator
    if not orchestrator.repository.owned_session(user_id, session_id):
        return None
    return orchestrator.context_manager(session_id)


@flow_bp.route('/context/<session_id>', methods=['GET'])
@require_auth
def get_context(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    manager = _session_context(user_id, session_id)
    if manager is None:
        return error_response('Session not found or access denied', 'NOT_FOUND', 404)

    return jsonify({
        'success': True,
        'context': manager.current.to_dict() if manager.current else None,
        'history': [c.to_dict() for c in manager.history],
        'stats': manager.stats(),
    })


@flow_bp.route('/context/<session_id>', methods=['POST'])
@require_auth
def update_context(session_id: str):
    """
    Build the next iteration context.

    Accepts one of:
        validations + originalQuestion + selectedAgents: automatic regeneration
        interaction: the user's keep/remove form
        contextJson: a previously exported context
    """
    user_id, error = user_or_error()
    if error:
        return error

    manager = _session_context(user_id, session_id)
    if manager is None:
        return error_response('Session not found or access denied', 'NOT_FOUND', 404)

    data = json_body()
    try:
        if data.get('contextJson'):
            context = manager.import_context(data['contextJson'])
        elif isinstance(data.get('interaction'), dict):
            context = manager.process_user_interaction(data['interaction'])
        elif isinstance(data.get('validations'), list):
            context = manager.process_validation_data(
                data['validations'],
                data.get('originalQuestion', ''),
                data.get('selectedAgents') or []
            )
        else:
            return error_response('validations, interaction or contextJson is required', 'VALIDATION_ERROR', 400)
    except ValueError as e:
        return error_response(str(e), 'VALIDATION_ERROR', 400)

    return jsonify({'success': True, 'context': context.to_dict(), 'stats': manager.stats()})


@flow_bp.route('/context/<session_id>/restart', methods=['POST'])
@require_auth
def restart_context(session_id: str):
    """Enhanced prompt and restart settings for the latest (or given) context."""
    user_id, error = user_or_error()
    if error:
        return error

    manager = _session_context(user_id, session_id)
    if manager is None:
        return error_response('Session not found or access denied', 'NOT_FOUND', 404)

    data = json_body()
    context = manager.get_context_by_id(data['contextId']) if data.get('contextId') else manager.current
    if context is None:
        return error_response('No context found', 'NOT_FOUND', 404)

    return jsonify({
        'success': True,
        'restart': manager.prepare_flow_restart(
            context,
            include_removed_points=bool(data.get('includeRemovedPoints', False)),
            reset_iteration_count=bool(data.get('resetIterationCount', False))
        ),
    })


@flow_bp.route('/context/<session_id>/export', methods=['GET'])
@require_auth
def export_context(session_id: str):
    user_id, error = user_or_error()
    if error:
        return error

    manager = _session_context(user_id, session_id)
    if manager is None:
        return error_response('Session not found or access denied', 'NOT_FOUND', 404)

    try:
        exported = manager.export_context()
    except ValueError as e:
        return error_response(str(e), 'NOT_FOUND', 404)
    return Response(exported, mimetype='application/json')


@flow_bp.route('/snapshot', methods=['POST'])
@require_auth
def save_snapshot():
    """Preserve the current flow graph before regeneration."""
    user_id, error = user_or_error()
    if error:
        return error

    data = json_body()
    if not data.get('sessionId'):
        return error_response('Session ID is required', 'VALIDATION_ERROR', 400)

    try:
        iteration = int(data.get('iterationCount') or 0)
    except (TypeError, ValueError):
        return error_response('iterationCount must be a number', 'VALIDATION_ERROR', 400)

    for key in ('nodes', 'edges'):
        items = data.get(key) or []
        if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
            return error_response(f'{key} must be a list of objects', 'VALIDATION_ERROR', 400)

    result = current_app.orchestrator.repository.save_flow_snapshot(
        user_id,
        data['sessionId'],
        nodes=data.get('nodes') or [],
        edges=data.get('edges') or [],
        validations=data.get('validationResults') or [],
        iteration=iteration
    )
    return result_response(result, 201 if result.get('success') else 200)
