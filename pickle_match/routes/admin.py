"""Operator test tool: inspect recent data, create and complete matches."""
from flask import Blueprint, request, jsonify
from sqlalchemy import func
from pickle_match.app import db
from pickle_match.models import Match, MatchParticipant, Message, Profile
from pickle_match.auth_utils import admin_required
from pickle_match.routes.helpers import (
    _json_payload, _parse_positive_int, _outcome_error, _emit_match_update,
)
from pickle_match.services.match_lifecycle import create_match, complete_match

admin_bp = Blueprint('admin', __name__)

_OVERVIEW_LIMIT = 30
_TEST_MESSAGE = 'Admin test message.'


@admin_bp.route('/overview', methods=['GET'])
@admin_required
def overview():
    profiles = Profile.query.order_by(
        Profile.created_at.desc(), Profile.id.desc()
    ).limit(_OVERVIEW_LIMIT).all()
    matches = Match.query.order_by(
        Match.created_at.desc(), Match.id.desc()
    ).limit(_OVERVIEW_LIMIT).all()

    match_ids = [m.id for m in matches]
    message_counts = {}
    nicknames = {}
    if match_ids:
        message_counts = dict(
            db.session.query(Message.match_id, func.count(Message.id))
            .filter(Message.match_id.in_(match_ids))
            .group_by(Message.match_id)
            .all()
        )
        participant_user_ids = {
            row.user_id for row in MatchParticipant.query.filter(
                MatchParticipant.match_id.in_(match_ids)
            ).all()
        }
        nicknames = {
            p.id: p.nickname for p in Profile.query.filter(
                Profile.id.in_(participant_user_ids)
            ).all()
        } if participant_user_ids else {}

    return jsonify({
        'profiles': [p.to_dict() for p in profiles],
        'matches': [
            {
                'id': m.id,
                'status': m.status,
                'match_type': m.match_type,
                'created_at': m.created_at.isoformat() if m.created_at else None,
                'participants': [
                    {
                        'user_id': p.user_id,
                        'team': p.team,
                        'nickname': nicknames.get(p.user_id) or str(p.user_id),
                    }
                    for p in m.participants
                ],
                'message_count': int(message_counts.get(m.id, 0)),
            }
            for m in matches
        ],
    })


@admin_bp.route('/matches', methods=['POST'])
@admin_required
def create_test_match():
    data = _json_payload(request)
    if data is None:
        return jsonify({'error': 'Invalid JSON payload'}), 400

    creator_id = _parse_positive_int(data.get('creator_id'))
    opponent_id = _parse_positive_int(data.get('opponent_id'))
    match_type = str(data.get('match_type') or '1v1').strip()
    if not creator_id or not opponent_id:
        return jsonify({'error': 'Pick two test accounts'}), 400
    if creator_id == opponent_id:
        return jsonify({'error': 'Pick two different accounts'}), 400

    creator = db.session.get(Profile, creator_id)
    opponent = db.session.get(Profile, opponent_id)
    if not creator or not opponent:
        return jsonify({'error': 'Profile not found'}), 404
    if not creator.region_id:
        return jsonify({'error': 'Team A profile has no region'}), 400

    outcome = create_match(
        creator.region_id, match_type, creator.id, opponent.id,
        opening_author_id=request.current_profile.id,
        opening_message=_TEST_MESSAGE,
    )
    if not outcome.is_ok:
        return _outcome_error(outcome)

    _emit_match_update(outcome.value, reason='match_created')
    return jsonify({'match': outcome.value.to_dict()}), 201


@admin_bp.route('/matches/<int:match_id>/complete', methods=['POST'])
@admin_required
def complete(match_id):
    outcome = complete_match(match_id)
    if not outcome.is_ok:
        return _outcome_error(outcome)

    _emit_match_update(outcome.value, reason='match_completed')
    return jsonify({'match': outcome.value.to_dict()})
