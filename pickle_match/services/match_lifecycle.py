"""Match request and match state transitions.

Every status change is written as a conditional update on the current status
and the affected row count decides the outcome, so two sessions racing on the
same row cannot both win. Operations return an ``Outcome`` instead of raising.
"""
import logging
import re
from datetime import date

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from pickle_match.app import db
from pickle_match.models import (
    MATCH_TYPES, Match, MatchParticipant, MatchRequest, Message,
)
from pickle_match.services.region_seeder import default_region
from pickle_match.time_utils import utcnow_naive

logger = logging.getLogger(__name__)

MAX_REQUEST_MESSAGE_LENGTH = 100
OPENING_MESSAGE = 'Match confirmed! Use this chat to pick a time and court.'
_TIME_PATTERN = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


class Outcome:
    """Tagged result of a state-changing operation."""
    OK = 'ok'
    CONFLICT = 'conflict'
    NOT_FOUND = 'not_found'
    FORBIDDEN = 'forbidden'
    INVALID = 'invalid'

    __slots__ = ('kind', 'value', 'error', 'code')

    def __init__(self, kind, value=None, error=None, code=None):
        self.kind = kind
        self.value = value
        self.error = error
        self.code = code

    @classmethod
    def ok(cls, value=None):
        return cls(cls.OK, value=value)

    @classmethod
    def conflict(cls, error, code='conflict'):
        return cls(cls.CONFLICT, error=error, code=code)

    @classmethod
    def not_found(cls, error):
        return cls(cls.NOT_FOUND, error=error, code='not_found')

    @classmethod
    def forbidden(cls, error):
        return cls(cls.FORBIDDEN, error=error, code='forbidden')

    @classmethod
    def invalid(cls, error):
        return cls(cls.INVALID, error=error, code='invalid')

    @property
    def is_ok(self):
        return self.kind == self.OK

    def __repr__(self):
        return f'Outcome({self.kind!r}, code={self.code!r})'


def _parse_preferred_date(raw_value):
    if raw_value in (None, ''):
        return None, None
    try:
        return date.fromisoformat(str(raw_value).strip()), None
    except ValueError:
        return None, 'Preferred date must be YYYY-MM-DD'


def _parse_preferred_time(raw_value):
    if raw_value in (None, ''):
        return None, None
    cleaned = str(raw_value).strip()
    if not _TIME_PATTERN.match(cleaned):
        return None, 'Preferred time must be HH:MM'
    return cleaned, None


# ── Match requests ────────────────────────────────────────────────────

def submit_request(profile, match_type, preferred_date=None, preferred_time=None, message=None):
    match_type = str(match_type or '').strip()
    if match_type not in MATCH_TYPES:
        return Outcome.invalid('Match type must be 1v1 or 2v2')

    parsed_date, date_error = _parse_preferred_date(preferred_date)
    if date_error:
        return Outcome.invalid(date_error)
    parsed_time, time_error = _parse_preferred_time(preferred_time)
    if time_error:
        return Outcome.invalid(time_error)

    cleaned_message = str(message or '').strip()
    if len(cleaned_message) > MAX_REQUEST_MESSAGE_LENGTH:
        return Outcome.invalid(
            f'Message must be at most {MAX_REQUEST_MESSAGE_LENGTH} characters'
        )

    region_id = profile.region_id
    if region_id is None:
        region = default_region()
        region_id = region.id if region else None

    match_request = MatchRequest(
        user_id=profile.id,
        region_id=region_id,
        match_type=match_type,
        status='waiting',
        preferred_date=parsed_date,
        preferred_time=parsed_time,
        message=cleaned_message or None,
    )
    db.session.add(match_request)
    db.session.commit()
    return Outcome.ok(match_request)


def cancel_request(request_id, user_id):
    """Withdraw a waiting request; only its owner may do so."""
    result = db.session.execute(
        update(MatchRequest)
        .where(
            MatchRequest.id == request_id,
            MatchRequest.user_id == user_id,
            MatchRequest.status == 'waiting',
        )
        .values(status='cancelled')
    )
    if result.rowcount == 1:
        db.session.commit()
        return Outcome.ok(db.session.get(MatchRequest, request_id))

    db.session.rollback()
    match_request = db.session.get(MatchRequest, request_id)
    if not match_request:
        return Outcome.not_found('Match request not found')
    if match_request.user_id != user_id:
        return Outcome.forbidden('Only the requester can cancel this request')
    logger.info('Cancel refused for request %s in status %s', request_id, match_request.status)
    return Outcome.conflict(
        f'This request is already {match_request.status}', code='not_waiting',
    )


def _add_match_with_participants(region_id, match_type, team_a_user_id, team_b_user_id):
    match = Match(region_id=region_id, match_type=match_type, status='active')
    db.session.add(match)
    db.session.flush()

    for team, user_id in (('A', team_a_user_id), ('B', team_b_user_id)):
        db.session.add(MatchParticipant(match_id=match.id, user_id=user_id, team=team))
    db.session.flush()
    return match


def accept_request(match_request, accepting_user_id):
    """Turn a waiting request into a match with both players and an opening message.

    ``match_request`` is the row as the caller last read it; it may already be
    stale. The request is moved to ``matched`` only if it is still waiting in
    the database, otherwise the new match is rolled back and the caller gets
    an ``already_taken`` conflict.
    """
    if match_request is None:
        return Outcome.not_found('Match request not found')
    if match_request.user_id == accepting_user_id:
        return Outcome.invalid('You cannot accept your own request')
    if match_request.status != 'waiting':
        return Outcome.conflict('This request was already taken', code='already_taken')

    request_id = match_request.id
    try:
        match = _add_match_with_participants(
            match_request.region_id, match_request.match_type,
            match_request.user_id, accepting_user_id,
        )
        db.session.add(Message(
            match_id=match.id, user_id=accepting_user_id, content=OPENING_MESSAGE,
        ))
        result = db.session.execute(
            update(MatchRequest)
            .where(MatchRequest.id == request_id, MatchRequest.status == 'waiting')
            .values(status='matched')
        )
    except IntegrityError:
        db.session.rollback()
        logger.warning('Accepting request %s violated a constraint', request_id, exc_info=True)
        return Outcome.conflict('This request was already taken', code='already_taken')

    if result.rowcount != 1:
        db.session.rollback()
        if db.session.get(MatchRequest, request_id) is None:
            return Outcome.not_found('Match request not found')
        logger.info('Request %s was taken before user %s could accept it',
                    request_id, accepting_user_id)
        return Outcome.conflict('This request was already taken', code='already_taken')

    db.session.commit()
    return Outcome.ok(match)


# ── Matches ───────────────────────────────────────────────────────────

def create_match(region_id, match_type, team_a_user_id, team_b_user_id,
                 opening_author_id=None, opening_message=None):
    """Create an active match directly, without a request (operator tooling)."""
    if match_type not in MATCH_TYPES:
        return Outcome.invalid('Match type must be 1v1 or 2v2')
    if team_a_user_id == team_b_user_id:
        return Outcome.invalid('Pick two different players')

    match = _add_match_with_participants(region_id, match_type, team_a_user_id, team_b_user_id)
    if opening_author_id and opening_message:
        db.session.add(Message(
            match_id=match.id, user_id=opening_author_id, content=opening_message,
        ))
    db.session.commit()
    return Outcome.ok(match)


def _transition_match(match_id, from_status, to_status, **values):
    result = db.session.execute(
        update(Match)
        .where(Match.id == match_id, Match.status == from_status)
        .values(status=to_status, **values)
    )
    if result.rowcount == 1:
        db.session.commit()
        return True
    db.session.rollback()
    return False


def complete_match(match_id):
    """Mark an active match completed; repeating the call is a no-op."""
    if _transition_match(match_id, 'active', 'completed', completed_at=utcnow_naive()):
        return Outcome.ok(db.session.get(Match, match_id))

    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')
    if match.status == 'completed':
        return Outcome.ok(match)
    return Outcome.conflict(f'Match is {match.status}', code='not_active')


def cancel_match(match_id, user_id):
    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')
    if user_id not in match.participant_ids():
        return Outcome.forbidden('You are not a player in this match')

    if _transition_match(match_id, 'active', 'cancelled'):
        return Outcome.ok(db.session.get(Match, match_id))

    db.session.refresh(match)
    return Outcome.conflict(f'Match is {match.status}', code='not_active')


def confirm_completion(match_id, user_id):
    """Record that a participant agrees the match was played.

    The match completes once every participant has confirmed.
    """
    match = db.session.get(Match, match_id)
    if not match:
        return Outcome.not_found('Match not found')

    participant = next((p for p in match.participants if p.user_id == user_id), None)
    if not participant:
        return Outcome.forbidden('You are not a player in this match')
    if match.status == 'completed':
        return Outcome.ok(match)
    if match.status != 'active':
        return Outcome.conflict(f'Match is {match.status}', code='not_active')

    participant.completion_confirmed = True
    db.session.commit()

    if all(p.completion_confirmed for p in match.participants):
        return complete_match(match_id)
    return Outcome.ok(match)
