"""Socket.IO rooms for live match chat and list updates."""
import re

from flask import request
from flask_socketio import emit, join_room, leave_room
from pickle_match.app import db, socketio
from pickle_match.models import Match, Region
from pickle_match.auth_utils import get_profile_from_token
from pickle_match.services.chat_feed import can_view_match

_ROOM_PATTERN = re.compile(r'^(match|region|user)_(\d+)$')


def _authorize_socket_join(room, token):
    profile = get_profile_from_token(token)
    if not profile:
        return None, 'Authentication required'

    room_match = _ROOM_PATTERN.match(room)
    if not room_match:
        return None, 'Invalid room'

    room_type = room_match.group(1)
    room_id = int(room_match.group(2))

    if room_type == 'user' and room_id != profile.id:
        return None, 'Forbidden room'

    if room_type == 'match':
        match = db.session.get(Match, room_id)
        if not match:
            return None, 'Match not found'
        if not can_view_match(match, profile):
            return None, 'Forbidden room'

    if room_type == 'region' and not db.session.get(Region, room_id):
        return None, 'Region not found'

    return profile, None


@socketio.on('join')
def on_join(data):
    payload = data if isinstance(data, dict) else {}
    room = str(payload.get('room') or '').strip()
    token = payload.get('token') or request.args.get('token') or ''
    _, error = _authorize_socket_join(room, token)
    if error:
        emit('status', {'error': error})
        return

    join_room(room)
    emit('status', {'message': f'Joined {room}'})


@socketio.on('leave')
def on_leave(data):
    payload = data if isinstance(data, dict) else {}
    room = str(payload.get('room') or '').strip()
    if room:
        leave_room(room)
        emit('status', {'message': f'Left {room}'})
