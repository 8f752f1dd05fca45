"""Shared route helpers: outcome responses, payload parsing and realtime events."""
from flask import jsonify

from pickle_match.app import socketio
from pickle_match.services.match_lifecycle import Outcome
from pickle_match.time_utils import utcnow_naive

_OUTCOME_STATUS = {
    Outcome.OK: 200,
    Outcome.INVALID: 400,
    Outcome.FORBIDDEN: 403,
    Outcome.NOT_FOUND: 404,
    Outcome.CONFLICT: 409,
}


def _json_payload(request):
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        return None
    return data


def _parse_positive_int(raw_value):
    try:
        value = int(raw_value)
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def _outcome_error(outcome):
    body = {'error': outcome.error or 'Request failed'}
    if outcome.code:
        body['code'] = outcome.code
    return jsonify(body), _OUTCOME_STATUS.get(outcome.kind, 400)


def _emit_request_update(region_id=None, request_id=None, reason=''):
    payload = {
        'region_id': region_id,
        'request_id': request_id,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    }
    if region_id:
        socketio.emit('match_request_update', payload, room=f'region_{region_id}')
    else:
        socketio.emit('match_request_update', payload)


def _emit_match_update(match, reason=''):
    payload = {
        'match_id': match.id,
        'status': match.status,
        'reason': reason,
        'updated_at': utcnow_naive().isoformat(),
    }
    for participant in match.participants:
        socketio.emit('match_update', payload, room=f'user_{participant.user_id}')
