from flask import Blueprint, request, jsonify
from pickle_match.app import db
from pickle_match.models import Match, MatchParticipant
from pickle_match.auth_utils import login_required
from pickle_match.routes.helpers import (
    _json_payload, _parse_positive_int, _outcome_error, _emit_match_update,
)
from pickle_match.services.chat_feed import list_messages, append_message, can_view_match
from pickle_match.services.match_lifecycle import (
    confirm_completion, cancel_match,
)
from pickle_match.services.reviews import submit_review, review_targets

matches_bp = Blueprint('matches', __name__)


def _load_visible_match(match_id):
    match = db.session.get(Match, match_id)
    if not match:
        return None, (jsonify({'error': 'Match not found'}), 404)
    if not can_view_match(match, request.current_profile):
        return None, (jsonify({'error': 'You are not a player in this match'}), 403)
    return match, None


@matches_bp.route('/mine', methods=['GET'])
@login_required
def my_matches():
    status_filter = str(request.args.get('status') or '').strip().lower()
    query = db.session.query(MatchParticipant, Match).join(
        Match, Match.id == MatchParticipant.match_id,
    ).filter(
        MatchParticipant.user_id == request.current_profile.id,
    )
    if status_filter:
        query = query.filter(Match.status == status_filter)
    rows = query.order_by(Match.created_at.desc(), Match.id.desc()).all()

    return jsonify({'matches': [
        {'match_id': match.id, 'team': participant.team, 'match': match.to_dict()}
        for participant, match in rows
    ]})


@matches_bp.route('/<int:match_id>', methods=['GET'])
@login_required
def get_match(match_id):
    match, error = _load_visible_match(match_id)
    if error:
        return error
    return jsonify({'match': match.to_dict()})


@matches_bp.route('/<int:match_id>/confirm', methods=['POST'])
@login_required
def confirm(match_id):
    """A player agrees the match was played; completes once everyone agrees."""
    outcome = confirm_completion(match_id, request.current_profile.id)
    if not outcome.is_ok:
        return _outcome_error(outcome)

    match = outcome.value
    _emit_match_update(match, reason='completion_confirmed')
    return jsonify({'match': match.to_dict(), 'completed': match.status == 'completed'})


@matches_bp.route('/<int:match_id>/cancel', methods=['POST'])
@login_required
def cancel(match_id):
    outcome = cancel_match(match_id, request.current_profile.id)
    if not outcome.is_ok:
        return _outcome_error(outcome)

    _emit_match_update(outcome.value, reason='match_cancelled')
    return jsonify({'match': outcome.value.to_dict()})


# ── Chat ──────────────────────────────────────────────────────────────

@matches_bp.route('/<int:match_id>/messages', methods=['GET'])
@login_required
def get_messages(match_id):
    _, error = _load_visible_match(match_id)
    if error:
        return error

    after_id = None
    if request.args.get('after_id') not in (None, ''):
        after_id = _parse_positive_int(request.args.get('after_id'))
        if after_id is None:
            return jsonify({'error': 'after_id must be a positive integer'}), 400

    messages = list_messages(match_id, after_id=after_id)
    return jsonify({'messages': [m.to_dict() for m in messages]})


@matches_bp.route('/<int:match_id>/messages', methods=['POST'])
@login_required
def send_message(match_id):
    data = _json_payload(request)
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400

    outcome = append_message(match_id, request.current_profile.id, data.get('content'))
    if not outcome.is_ok:
        return _outcome_error(outcome)
    return jsonify({'message': outcome.value.to_dict()}), 201


# ── Reviews ───────────────────────────────────────────────────────────

@matches_bp.route('/<int:match_id>/review-targets', methods=['GET'])
@login_required
def get_review_targets(match_id):
    outcome = review_targets(match_id, request.current_profile.id)
    if not outcome.is_ok:
        return _outcome_error(outcome)

    match = outcome.value['match']
    return jsonify({
        'match_id': match.id,
        'match_status': match.status,
        'can_review': match.status == 'completed',
        'targets': outcome.value['targets'],
    })


@matches_bp.route('/<int:match_id>/reviews', methods=['POST'])
@login_required
def create_review(match_id):
    data = _json_payload(request)
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400

    reviewed_id = _parse_positive_int(data.get('reviewed_id'))
    if reviewed_id is None:
        return jsonify({'error': 'reviewed_id is required'}), 400

    outcome = submit_review(
        request.current_profile.id, match_id, reviewed_id,
        scores=data.get('scores', data),
        comment=data.get('comment'),
    )
    if not outcome.is_ok:
        return _outcome_error(outcome)
    return jsonify({'review': outcome.value.to_dict()}), 201
