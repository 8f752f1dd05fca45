from flask import Blueprint, jsonify
from pickle_match.app import db
from pickle_match.models import Profile
from pickle_match.services.trust import fetch_trust_snapshot, snapshot_to_dict

profiles_bp = Blueprint('profiles', __name__)


def _trust_payload(profile_id):
    snapshot = fetch_trust_snapshot(profile_id)
    return snapshot_to_dict(snapshot) if snapshot else None


@profiles_bp.route('/<int:profile_id>', methods=['GET'])
def get_profile(profile_id):
    """Public profile with its trust snapshot (``null`` when unavailable)."""
    profile = db.session.get(Profile, profile_id)
    if not profile:
        return jsonify({'error': 'Profile not found'}), 404
    return jsonify({
        'profile': profile.to_public_dict(),
        'trust': _trust_payload(profile_id),
    })


@profiles_bp.route('/<int:profile_id>/trust', methods=['GET'])
def get_trust(profile_id):
    if not db.session.get(Profile, profile_id):
        return jsonify({'error': 'Profile not found'}), 404
    return jsonify({'trust': _trust_payload(profile_id)})
