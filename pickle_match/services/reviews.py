"""Post-match manner reviews."""
import logging

from sqlalchemy.exc import IntegrityError

from pickle_match.app import db
from pickle_match.models import SCORE_COLUMNS, Match, UserReview
from pickle_match.services.match_lifecycle import Outcome

logger = logging.getLogger(__name__)

MIN_SCORE = 1
MAX_SCORE = 5
MAX_COMMENT_LENGTH = 200


def _parse_score(raw_value):
    if isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, int):
        return raw_value
    if isinstance(raw_value, float):
        return int(raw_value) if raw_value.is_integer() else None
    try:
        return int(str(raw_value).strip())
    except (TypeError, ValueError):
        return None


def validate_review_input(scores, comment):
    """Return ``(parsed_scores, cleaned_comment, error)``."""
    if not isinstance(scores, dict):
        return None, None, 'Scores are required'

    parsed = {}
    for column in SCORE_COLUMNS:
        value = _parse_score(scores.get(column))
        if value is None or value < MIN_SCORE or value > MAX_SCORE:
            return None, None, f'{column} must be an integer between {MIN_SCORE} and {MAX_SCORE}'
        parsed[column] = value

    cleaned_comment = str(comment or '').strip()
    if len(cleaned_comment) > MAX_COMMENT_LENGTH:
        return None, None, f'Comment must be at most {MAX_COMMENT_LENGTH} characters'
    return parsed, cleaned_comment, None


def _has_reviewed(reviewer_id, reviewed_id, match_id):
    return UserReview.query.filter_by(
        reviewer_id=reviewer_id, reviewed_id=reviewed_id, match_id=match_id,
    ).first() is not None


def submit_review(reviewer_id, match_id, reviewed_id, scores, comment=None):
    parsed_scores, cleaned_comment, error = validate_review_input(scores, comment)
    if error:
        return Outcome.invalid(error)

    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')
    if match.status != 'completed':
        return Outcome.invalid('Reviews can only be written for completed matches')

    participant_ids = match.participant_ids()
    if reviewer_id not in participant_ids:
        return Outcome.forbidden('You are not a player in this match')
    if reviewed_id == reviewer_id:
        return Outcome.invalid('You cannot review yourself')
    if reviewed_id not in participant_ids:
        return Outcome.invalid('The reviewed player did not take part in this match')
    if _has_reviewed(reviewer_id, reviewed_id, match_id):
        return Outcome.conflict('You already reviewed this player for this match',
                                code='already_reviewed')

    review = UserReview(
        reviewer_id=reviewer_id,
        reviewed_id=reviewed_id,
        match_id=match_id,
        comment=cleaned_comment,
        **parsed_scores,
    )
    db.session.add(review)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.info('Duplicate review blocked for match %s by %s', match_id, reviewer_id)
        return Outcome.conflict('You already reviewed this player for this match',
                                code='already_reviewed')
    return Outcome.ok(review)


def review_targets(match_id, reviewer_id):
    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')
    if reviewer_id not in match.participant_ids():
        return Outcome.forbidden('You are not a player in this match')

    reviewed_ids = {
        row.reviewed_id for row in UserReview.query.filter_by(
            match_id=match_id, reviewer_id=reviewer_id,
        ).all()
    }
    targets = [
        {
            'user_id': p.user_id,
            'team': p.team,
            'nickname': p.profile.nickname if p.profile else None,
            'avatar_url': p.profile.avatar_url if p.profile else None,
            'already_reviewed': p.user_id in reviewed_ids,
        }
        for p in match.participants
        if p.user_id != reviewer_id
    ]
    return Outcome.ok({'match': match, 'targets': targets})
