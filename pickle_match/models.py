from pickle_match.app import db
from pickle_match.time_utils import utcnow_naive, isoformat_or_none

SKILL_LEVELS = ('fun', 'beginner', 'intermediate', 'advanced')
MATCH_TYPES = ('1v1', '2v2')
REQUEST_STATUSES = ('waiting', 'matched', 'cancelled')
MATCH_STATUSES = ('active', 'completed', 'cancelled')
SCORE_COLUMNS = ('teamwork_score', 'language_score', 'rule_score', 'punctuality_score')


class Region(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(80), unique=True, nullable=False)
    name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {'id': self.id, 'slug': self.slug, 'name': self.name}


class Profile(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    kakao_id = db.Column(db.String(64), unique=True, nullable=False)
    nickname = db.Column(db.String(80), nullable=False)
    avatar_url = db.Column(db.String(500), default='')
    skill_level = db.Column(db.String(20), default='beginner', nullable=False)
    region_id = db.Column(db.Integer, db.ForeignKey('region.id'), nullable=True)
    is_admin = db.Column(db.Boolean, default=False, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    region = db.relationship('Region', backref='profiles')

    def to_public_dict(self):
        return {
            'id': self.id, 'nickname': self.nickname,
            'avatar_url': self.avatar_url, 'skill_level': self.skill_level,
            'region_id': self.region_id,
            'created_at': isoformat_or_none(self.created_at),
        }

    def to_dict(self):
        data = self.to_public_dict()
        data['kakao_id'] = self.kakao_id
        data['is_admin'] = bool(self.is_admin)
        return data


# ── Match requests ────────────────────────────────────────────────────

class MatchRequest(db.Model):
    """An open offer to play, waiting for another player to accept it."""
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    region_id = db.Column(db.Integer, db.ForeignKey('region.id'), nullable=True)
    match_type = db.Column(db.String(8), nullable=False, default='1v1')
    status = db.Column(db.String(20), nullable=False, default='waiting')  # waiting, matched, cancelled
    preferred_date = db.Column(db.Date, nullable=True)
    preferred_time = db.Column(db.String(5), nullable=True)  # HH:MM
    message = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    owner = db.relationship('Profile', backref='match_requests')

    def to_dict(self):
        return {
            'id': self.id, 'user_id': self.user_id,
            'region_id': self.region_id, 'match_type': self.match_type,
            'status': self.status,
            'preferred_date': isoformat_or_none(self.preferred_date),
            'preferred_time': self.preferred_time,
            'message': self.message,
            'created_at': isoformat_or_none(self.created_at),
            'profile': self.owner.to_public_dict() if self.owner else None,
        }


# ── Matches ───────────────────────────────────────────────────────────

class Match(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    region_id = db.Column(db.Integer, db.ForeignKey('region.id'), nullable=True)
    match_type = db.Column(db.String(8), nullable=False, default='1v1')
    status = db.Column(db.String(20), nullable=False, default='active')  # active, completed, cancelled
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())
    completed_at = db.Column(db.DateTime, nullable=True)

    participants = db.relationship('MatchParticipant', backref='match', lazy='joined',
                                   cascade='all, delete-orphan',
                                   order_by='MatchParticipant.team')

    def participant_ids(self):
        return {p.user_id for p in self.participants}

    def to_dict(self):
        return {
            'id': self.id, 'region_id': self.region_id,
            'match_type': self.match_type, 'status': self.status,
            'created_at': isoformat_or_none(self.created_at),
            'completed_at': isoformat_or_none(self.completed_at),
            'participants': [p.to_dict() for p in self.participants],
        }


class MatchParticipant(db.Model):
    __table_args__ = (
        db.UniqueConstraint('match_id', 'user_id', name='uq_match_participant_match_user'),
    )

    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    team = db.Column(db.String(1), nullable=False)  # A or B
    completion_confirmed = db.Column(db.Boolean, default=False, nullable=False)
    joined_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    profile = db.relationship('Profile', backref='participations')

    def to_dict(self):
        return {
            'match_id': self.match_id, 'user_id': self.user_id,
            'team': self.team,
            'completion_confirmed': bool(self.completion_confirmed),
            'profile': self.profile.to_public_dict() if self.profile else None,
        }


# ── Messaging ─────────────────────────────────────────────────────────

class Message(db.Model):
    id = db.Column(db.Integer, primary_key=True)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    sender = db.relationship('Profile', backref='sent_messages')

    def to_dict(self):
        return {
            'id': self.id, 'match_id': self.match_id,
            'user_id': self.user_id, 'content': self.content,
            'created_at': isoformat_or_none(self.created_at),
            'profile': self.sender.to_public_dict() if self.sender else None,
        }


# ── Reviews ───────────────────────────────────────────────────────────

class UserReview(db.Model):
    """Post-match manner review from one participant about another."""
    __table_args__ = (
        db.UniqueConstraint('reviewer_id', 'reviewed_id', 'match_id',
                            name='uq_user_review_reviewer_reviewed_match'),
    )

    id = db.Column(db.Integer, primary_key=True)
    reviewer_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    reviewed_id = db.Column(db.Integer, db.ForeignKey('profile.id'), nullable=False)
    match_id = db.Column(db.Integer, db.ForeignKey('match.id'), nullable=False)
    teamwork_score = db.Column(db.Integer, nullable=False)
    language_score = db.Column(db.Integer, nullable=False)
    rule_score = db.Column(db.Integer, nullable=False)
    punctuality_score = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.String(200), default='')
    created_at = db.Column(db.DateTime, default=lambda: utcnow_naive())

    def to_dict(self):
        return {
            'id': self.id, 'reviewer_id': self.reviewer_id,
            'reviewed_id': self.reviewed_id, 'match_id': self.match_id,
            'teamwork_score': self.teamwork_score,
            'language_score': self.language_score,
            'rule_score': self.rule_score,
            'punctuality_score': self.punctuality_score,
            'comment': self.comment,
            'created_at': isoformat_or_none(self.created_at),
        }
