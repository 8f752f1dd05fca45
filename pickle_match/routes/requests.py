from flask import Blueprint, request, jsonify
from pickle_match.app import db
from pickle_match.models import MatchRequest
from pickle_match.auth_utils import login_required
from pickle_match.routes.helpers import (
    _json_payload, _outcome_error, _emit_request_update, _emit_match_update,
)
from pickle_match.services.match_lifecycle import (
    submit_request, cancel_request, accept_request,
)

requests_bp = Blueprint('requests', __name__)


@requests_bp.route('', methods=['GET'])
@login_required
def list_waiting_requests():
    """Waiting requests, newest first. Always read fresh."""
    query = MatchRequest.query.filter_by(status='waiting')
    region_id = request.args.get('region_id', type=int)
    if region_id:
        query = query.filter_by(region_id=region_id)
    rows = query.order_by(MatchRequest.created_at.desc(), MatchRequest.id.desc()).all()

    me = request.current_profile.id
    requests_payload = []
    for row in rows:
        item = row.to_dict()
        item['is_mine'] = row.user_id == me
        requests_payload.append(item)
    return jsonify({
        'requests': requests_payload,
        'available_count': sum(1 for r in rows if r.user_id != me),
    })


@requests_bp.route('', methods=['POST'])
@login_required
def create_request():
    data = _json_payload(request)
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400

    outcome = submit_request(
        request.current_profile,
        data.get('match_type', '1v1'),
        preferred_date=data.get('preferred_date'),
        preferred_time=data.get('preferred_time'),
        message=data.get('message'),
    )
    if not outcome.is_ok:
        return _outcome_error(outcome)

    match_request = outcome.value
    _emit_request_update(region_id=match_request.region_id, request_id=match_request.id,
                         reason='request_created')
    return jsonify({'request': match_request.to_dict()}), 201


@requests_bp.route('/<int:request_id>', methods=['GET'])
@login_required
def get_request(request_id):
    match_request = db.session.get(MatchRequest, request_id)
    if not match_request:
        return jsonify({'error': 'Match request not found'}), 404
    return jsonify({'request': match_request.to_dict()})


@requests_bp.route('/<int:request_id>/accept', methods=['POST'])
@login_required
def accept(request_id):
    """Accept a waiting request; losing a race answers 409 ``already_taken``."""
    match_request = db.session.get(MatchRequest, request_id)
    region_id = match_request.region_id if match_request else None

    outcome = accept_request(match_request, request.current_profile.id)
    if not outcome.is_ok:
        if outcome.code == 'already_taken':
            _emit_request_update(region_id=region_id, request_id=request_id,
                                 reason='request_taken')
        return _outcome_error(outcome)

    match = outcome.value
    _emit_request_update(region_id=region_id, request_id=request_id, reason='request_matched')
    _emit_match_update(match, reason='match_created')
    return jsonify({'match': match.to_dict(), 'chat_match_id': match.id}), 201


@requests_bp.route('/<int:request_id>/cancel', methods=['POST'])
@login_required
def cancel(request_id):
    outcome = cancel_request(request_id, request.current_profile.id)
    if not outcome.is_ok:
        return _outcome_error(outcome)

    match_request = outcome.value
    _emit_request_update(region_id=match_request.region_id, request_id=request_id,
                         reason='request_cancelled')
    return jsonify({'request': match_request.to_dict()})
