"""Session tokens for Kakao-authenticated profiles.

A session is a signed JWT naming the profile id (``sub``) and this service
(``iss``). Writes sent with an Origin header must also carry a CSRF token,
the HMAC of the bearer token under ``SECRET_KEY``.
"""
import hashlib
import hmac
from datetime import datetime, timedelta, timezone
from functools import wraps

import jwt
from flask import request, jsonify, current_app
from pickle_match.app import db
from pickle_match.models import Profile

TOKEN_ISSUER = 'pickle-match'
TOKEN_ALGORITHM = 'HS256'


def _secret():
    return str(current_app.config.get('SECRET_KEY') or '')


def generate_token(profile_id):
    """Issue a session token for a profile."""
    issued_at = datetime.now(timezone.utc)
    lifetime = timedelta(hours=current_app.config.get('JWT_EXPIRATION_HOURS', 24))
    payload = {
        'sub': str(profile_id),
        'iss': TOKEN_ISSUER,
        'iat': issued_at,
        'exp': issued_at + lifetime,
    }
    return jwt.encode(payload, _secret(), algorithm=TOKEN_ALGORITHM)


def bearer_value(raw_header):
    """Strip an optional ``Bearer`` prefix from an Authorization value."""
    value = str(raw_header or '').strip()
    scheme, _, rest = value.partition(' ')
    if scheme.lower() == 'bearer' and rest:
        return rest.strip()
    return value


def resolve_profile(raw_token):
    """Return ``(profile, error)`` for a bearer token or header value."""
    token = bearer_value(raw_token)
    if not token:
        return None, 'Authentication required'
    try:
        claims = jwt.decode(
            token, _secret(), algorithms=[TOKEN_ALGORITHM], issuer=TOKEN_ISSUER,
            options={'require': ['sub', 'exp', 'iss']},
        )
    except jwt.ExpiredSignatureError:
        return None, 'Token expired'
    except jwt.InvalidTokenError:
        return None, 'Invalid token'

    try:
        profile_id = int(claims['sub'])
    except (TypeError, ValueError):
        return None, 'Invalid token'

    profile = db.session.get(Profile, profile_id)
    if not profile:
        return None, 'Profile not found'
    return profile, None


def get_profile_from_token(raw_token):
    profile, _ = resolve_profile(raw_token)
    return profile


def csrf_token_for_bearer(raw_token):
    token = bearer_value(raw_token)
    secret = _secret()
    if not token or not secret:
        return ''
    return hmac.new(secret.encode('utf-8'), token.encode('utf-8'), hashlib.sha256).hexdigest()


def csrf_token_matches(raw_token, candidate):
    expected = csrf_token_for_bearer(raw_token)
    provided = str(candidate or '').strip()
    return bool(expected and provided) and hmac.compare_digest(expected, provided)


def _profile_guard(view, admin_only):
    @wraps(view)
    def guarded(*args, **kwargs):
        profile, error = resolve_profile(request.headers.get('Authorization', ''))
        if error:
            return jsonify({'error': error}), 401
        if admin_only and not profile.is_admin:
            return jsonify({'error': 'Admin access required'}), 403
        request.current_profile = profile
        return view(*args, **kwargs)
    return guarded


def login_required(view):
    """Require a signed-in profile, exposed as ``request.current_profile``."""
    return _profile_guard(view, admin_only=False)


def admin_required(view):
    return _profile_guard(view, admin_only=True)
