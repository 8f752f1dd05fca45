import logging

import requests
from flask import Blueprint, request, jsonify, current_app
from sqlalchemy.exc import IntegrityError
from pickle_match.app import db
from pickle_match.models import SKILL_LEVELS, Profile
from pickle_match.auth_utils import generate_token, login_required, csrf_token_for_bearer
from pickle_match.services.region_seeder import default_region

auth_bp = Blueprint('auth', __name__)
logger = logging.getLogger(__name__)

_KAKAO_USER_INFO_URL = 'https://kapi.kakao.com/v2/user/me'
_DEFAULT_NICKNAME = 'Pickleballer'
_MAX_NICKNAME_LENGTH = 30


def _configured_admin_kakao_ids():
    raw_value = current_app.config.get('ADMIN_KAKAO_IDS', '')
    return {
        item.strip()
        for item in str(raw_value).split(',')
        if item and item.strip()
    }


def _maybe_grant_admin_from_config(profile):
    if not profile or profile.is_admin:
        return False
    if profile.kakao_id not in _configured_admin_kakao_ids():
        return False
    profile.is_admin = True
    return True


def _fetch_kakao_account(access_token):
    """Resolve the Kakao account behind an access token.

    The call is bounded by ``KAKAO_REQUEST_TIMEOUT_SECONDS``; on timeout the
    caller gets an error and no session is issued.
    """
    if not str(current_app.config.get('KAKAO_REST_API_KEY') or '').strip():
        return None, ('Kakao login is not configured', 503)

    timeout = current_app.config.get('KAKAO_REQUEST_TIMEOUT_SECONDS', 5.0)
    try:
        response = requests.get(
            _KAKAO_USER_INFO_URL,
            headers={'Authorization': f'Bearer {access_token}'},
            timeout=timeout,
        )
    except requests.Timeout:
        logger.warning('Kakao account lookup timed out after %ss', timeout)
        return None, ('Kakao login timed out. Please try again.', 504)
    except requests.RequestException:
        logger.warning('Kakao account lookup failed', exc_info=True)
        return None, ('Unable to verify Kakao login', 502)

    if response.status_code != 200:
        return None, ('Invalid Kakao token', 401)

    try:
        account = response.json()
    except ValueError:
        return None, ('Invalid Kakao verification response', 502)

    if not isinstance(account, dict) or not account.get('id'):
        return None, ('Kakao account is missing an id', 401)
    return account, None


def _kakao_profile_fields(account):
    properties = account.get('properties') or {}
    kakao_profile = (account.get('kakao_account') or {}).get('profile') or {}
    nickname = str(
        kakao_profile.get('nickname') or properties.get('nickname') or _DEFAULT_NICKNAME
    ).strip()[:_MAX_NICKNAME_LENGTH]
    avatar_url = str(
        kakao_profile.get('profile_image_url') or properties.get('profile_image') or ''
    ).strip()[:500]
    return nickname or _DEFAULT_NICKNAME, avatar_url


def _find_or_create_profile(account):
    """Return ``(profile, created)`` for a verified Kakao account."""
    kakao_id = str(account.get('id')).strip()
    profile = Profile.query.filter_by(kakao_id=kakao_id).first()
    created = False
    if not profile:
        nickname, avatar_url = _kakao_profile_fields(account)
        region = default_region()
        profile = Profile(
            kakao_id=kakao_id,
            nickname=nickname,
            avatar_url=avatar_url,
            skill_level='beginner',
            region_id=region.id if region else None,
        )
        db.session.add(profile)
        created = True

    _maybe_grant_admin_from_config(profile)
    try:
        db.session.commit()
    except IntegrityError:
        # Two first logins for the same account raced; the other one won.
        db.session.rollback()
        profile = Profile.query.filter_by(kakao_id=kakao_id).first()
        created = False
    return profile, created


@auth_bp.route('/kakao/config', methods=['GET'])
def kakao_config():
    api_key = str(current_app.config.get('KAKAO_REST_API_KEY') or '').strip()
    return jsonify({'enabled': bool(api_key)})


@auth_bp.route('/kakao', methods=['POST'])
def kakao_login():
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400
    access_token = str(data.get('access_token') or '').strip()
    if not access_token:
        return jsonify({'error': 'Kakao access token is required'}), 400

    account, account_error = _fetch_kakao_account(access_token)
    if account_error:
        message, status = account_error
        return jsonify({'error': message}), status

    profile, created = _find_or_create_profile(account)
    token = generate_token(profile.id)
    return jsonify({'token': token, 'user': profile.to_dict(), 'created': created})


@auth_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    # Tokens are stateless; the client discards its copy.
    return jsonify({'message': 'Signed out'})


@auth_bp.route('/csrf', methods=['GET'])
@login_required
def get_csrf_token():
    auth_header = request.headers.get('Authorization', '')
    token = csrf_token_for_bearer(auth_header)
    if not token:
        return jsonify({'error': 'Unable to generate CSRF token'}), 400
    return jsonify({'csrf_token': token})


@auth_bp.route('/me', methods=['GET'])
@login_required
def get_me():
    return jsonify({'user': request.current_profile.to_dict()})


@auth_bp.route('/profile', methods=['PUT'])
@login_required
def update_profile():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({'error': 'Invalid JSON payload'}), 400

    profile = request.current_profile

    if 'nickname' in data:
        nickname = str(data.get('nickname') or '').strip()
        if not nickname:
            return jsonify({'error': 'Nickname is required'}), 400
        if len(nickname) > _MAX_NICKNAME_LENGTH:
            return jsonify({
                'error': f'Nickname must be at most {_MAX_NICKNAME_LENGTH} characters',
            }), 400
        profile.nickname = nickname

    if 'skill_level' in data:
        skill_level = str(data.get('skill_level') or '').strip().lower()
        if skill_level not in SKILL_LEVELS:
            return jsonify({'error': 'Skill level must be one of: ' + ', '.join(SKILL_LEVELS)}), 400
        profile.skill_level = skill_level

    db.session.commit()
    return jsonify({'user': profile.to_dict()})
