"""
Trust snapshot engine: a read-only reliability, activity and manner summary.

A snapshot is computed on every read from rows that are already stored; it is
never persisted. The computation is split in two layers:

- ``compute_trust_snapshot`` / ``compute_badges`` are pure functions over
  plain row dicts, so they can be exercised without a database.
- ``fetch_trust_snapshot`` loads the rows for one profile and degrades to
  ``None`` when any of the queries fail. A snapshot is either complete or
  absent; callers render "no data" for ``None``.

Manner averages ignore empty/zero scores instead of counting them as zero,
and a category without any usable score reports 0 (rendered as an em dash).
Reliability counters have no source columns yet and are always 0.
"""
import logging

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from pickle_match.app import db
from pickle_match.models import Match, MatchParticipant, Profile, UserReview
from pickle_match.time_utils import utcnow_naive, subtract_months, isoformat_or_none

logger = logging.getLogger(__name__)

MANNER_CATEGORIES = ('teamwork', 'language', 'rule', 'punctuality')
BADGE_IDS = ('no_noshow', 'active_30', 'active_recent', 'manner_king')

DEFAULT_RECENT_MONTHS = 3
ACTIVE_30_MIN_GAMES = 30
ACTIVE_RECENT_MIN_GAMES = 5
MANNER_KING_MIN_SAMPLES = 5
MANNER_KING_MIN_SCORE = 4.7
RECENT_REVIEW_LIMIT = 3
UNAVAILABLE_SCORE = '—'


def average(values):
    values = list(values)
    if not values:
        return 0
    return sum(values) / len(values)


def _manner_average(reviews, category):
    return average(
        review.get(f'{category}_score')
        for review in reviews
        if review.get(f'{category}_score')
    )


def reliability_stub():
    """No-show, same-day cancel and late counters are not tracked yet."""
    return {
        'no_show_count_6m': 0,
        'same_day_cancel_count_6m': 0,
        'late_count_6m': 0,
    }


def compute_trust_snapshot(skill_level, participations, reviews, now=None,
                           recent_months=DEFAULT_RECENT_MONTHS):
    """Build a snapshot from participation and review rows.

    ``participations`` items carry ``team``, ``match_status`` and
    ``match_created_at``; ``reviews`` items carry the four ``*_score`` columns
    plus ``id``, ``comment`` and ``created_at``.
    """
    now = now or utcnow_naive()
    recent_cutoff = subtract_months(now, recent_months)

    completed = [p for p in participations if p.get('match_status') == 'completed']
    recent_completed = [
        p for p in completed
        if p.get('match_created_at') and p['match_created_at'] > recent_cutoff
    ]
    active_teams = {
        p.get('team') for p in participations
        if p.get('match_status') == 'active' and p.get('team')
    }
    completed_dates = [p['match_created_at'] for p in completed if p.get('match_created_at')]

    manner = {
        category: _manner_average(reviews, category)
        for category in MANNER_CATEGORIES
    }
    manner['sample_count'] = len(reviews)

    commented = [r for r in reviews if str(r.get('comment') or '').strip()]
    commented.sort(key=lambda r: (r.get('created_at') is not None, r.get('created_at'), r.get('id') or 0),
                   reverse=True)

    return {
        'skill_level': skill_level,
        'reliability': reliability_stub(),
        'activity': {
            'total_games': len(completed),
            'recent_months_games': len(recent_completed),
            'active_team_count': len(active_teams),
            'last_match_date': max(completed_dates) if completed_dates else None,
        },
        'manner': manner,
        'recent_reviews': [
            {'id': r.get('id'), 'comment': r.get('comment'), 'created_at': r.get('created_at')}
            for r in commented[:RECENT_REVIEW_LIMIT]
        ],
    }


def overall_manner(manner):
    """Mean of the category averages that have data."""
    return average(
        manner[category] for category in MANNER_CATEGORIES if manner.get(category)
    )


def compute_badges(snapshot):
    """Derive earned badge ids, in display order, from a snapshot."""
    activity = snapshot['activity']
    reliability = snapshot['reliability']
    manner = snapshot['manner']

    badges = []
    if activity['total_games'] > 0 and reliability['no_show_count_6m'] == 0:
        badges.append('no_noshow')
    if activity['total_games'] >= ACTIVE_30_MIN_GAMES:
        badges.append('active_30')
    if activity['recent_months_games'] >= ACTIVE_RECENT_MIN_GAMES:
        badges.append('active_recent')
    # Rounded so float noise in the averages cannot flip the threshold.
    overall = round(overall_manner(manner), 6)
    if manner['sample_count'] >= MANNER_KING_MIN_SAMPLES and overall >= MANNER_KING_MIN_SCORE:
        badges.append('manner_king')
    return badges


def format_score(score):
    return f'{score:.1f}' if score and score > 0 else UNAVAILABLE_SCORE


def snapshot_to_dict(snapshot):
    manner = snapshot['manner']
    overall = overall_manner(manner)
    activity = dict(snapshot['activity'])
    activity['last_match_date'] = isoformat_or_none(activity['last_match_date'])
    return {
        'skill_level': snapshot['skill_level'],
        'reliability': dict(snapshot['reliability']),
        'activity': activity,
        'manner': dict(manner),
        'overall_manner': overall,
        'display': {
            'overall_manner': format_score(overall),
            **{category: format_score(manner[category]) for category in MANNER_CATEGORIES},
        },
        'recent_reviews': [
            {
                'id': review['id'],
                'comment': review['comment'],
                'created_at': isoformat_or_none(review['created_at']),
            }
            for review in snapshot['recent_reviews']
        ],
        'badges': compute_badges(snapshot),
    }


def _load_participations(profile_id):
    rows = db.session.query(
        MatchParticipant.team, Match.status, Match.created_at,
    ).join(
        Match, Match.id == MatchParticipant.match_id,
    ).filter(
        MatchParticipant.user_id == profile_id,
    ).all()
    return [
        {'team': team, 'match_status': status, 'match_created_at': created_at}
        for team, status, created_at in rows
    ]


def _load_reviews(profile_id):
    reviews = UserReview.query.filter_by(reviewed_id=profile_id).order_by(
        UserReview.created_at.desc(), UserReview.id.desc()
    ).all()
    return [review.to_dict() | {'created_at': review.created_at} for review in reviews]


def fetch_trust_snapshot(profile_id, now=None):
    """Load rows for one profile and compute its snapshot, or ``None`` on failure."""
    try:
        profile = db.session.get(Profile, profile_id)
        if not profile:
            return None
        participations = _load_participations(profile_id)
        reviews = _load_reviews(profile_id)
    except SQLAlchemyError:
        db.session.rollback()
        logger.warning('Trust snapshot unavailable for profile %s', profile_id, exc_info=True)
        return None

    recent_months = current_app.config.get('TRUST_RECENT_MONTHS', DEFAULT_RECENT_MONTHS)
    return compute_trust_snapshot(
        profile.skill_level, participations, reviews,
        now=now, recent_months=recent_months,
    )
