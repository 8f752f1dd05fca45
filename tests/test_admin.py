"""Tests for the operator test tool."""
import json

from pickle_match.models import Match, Message
from pickle_match.services.chat_feed import append_message
from pickle_match.services.match_lifecycle import create_match


def test_admin_routes_require_admin(client, make_profile, auth_for):
    alice = make_profile('alice')
    assert client.get('/api/admin/overview').status_code == 401
    assert client.get('/api/admin/overview', headers=auth_for(alice)).status_code == 403
    assert client.post('/api/admin/matches', headers=auth_for(alice),
                       json={'creator_id': 1, 'opponent_id': 2}).status_code == 403


def test_overview_lists_profiles_and_matches(client, make_profile, auth_for):
    admin = make_profile('operator', is_admin=True)
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = create_match(alice.region_id, '2v2', alice.id, bob.id).value
    append_message(match.id, alice.id, 'hi')
    append_message(match.id, bob.id, 'hello')

    res = client.get('/api/admin/overview', headers=auth_for(admin))
    assert res.status_code == 200
    data = json.loads(res.data)
    assert {p['nickname'] for p in data['profiles']} == {'operator', 'alice', 'bob'}
    assert len(data['matches']) == 1
    row = data['matches'][0]
    assert row['id'] == match.id
    assert row['match_type'] == '2v2'
    assert row['message_count'] == 2
    assert [(p['team'], p['nickname']) for p in row['participants']] == [('A', 'alice'), ('B', 'bob')]


def test_create_test_match(client, make_profile, auth_for):
    admin = make_profile('operator', is_admin=True)
    alice = make_profile('alice')
    bob = make_profile('bob')

    res = client.post('/api/admin/matches', headers=auth_for(admin), json={
        'creator_id': alice.id, 'opponent_id': bob.id, 'match_type': '1v1',
    })
    assert res.status_code == 201
    match = json.loads(res.data)['match']
    assert match['status'] == 'active'
    assert match['region_id'] == alice.region_id
    assert {p['user_id']: p['team'] for p in match['participants']} == {alice.id: 'A', bob.id: 'B'}

    messages = Message.query.filter_by(match_id=match['id']).all()
    assert [(m.user_id, m.content) for m in messages] == [(admin.id, 'Admin test message.')]


def test_create_test_match_validation(client, make_profile, auth_for):
    admin = make_profile('operator', is_admin=True)
    alice = make_profile('alice')
    headers = auth_for(admin)

    assert client.post('/api/admin/matches', headers=headers,
                       json={'creator_id': alice.id}).status_code == 400
    assert client.post('/api/admin/matches', headers=headers,
                       json={'creator_id': alice.id, 'opponent_id': alice.id}).status_code == 400
    assert client.post('/api/admin/matches', headers=headers,
                       json={'creator_id': alice.id, 'opponent_id': 999}).status_code == 404
    assert client.post('/api/admin/matches', headers=headers, json={
        'creator_id': alice.id, 'opponent_id': admin.id, 'match_type': '5v5',
    }).status_code == 400
    assert Match.query.count() == 0


def test_admin_completes_match_idempotently(client, make_profile, auth_for):
    admin = make_profile('operator', is_admin=True)
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = create_match(alice.region_id, '1v1', alice.id, bob.id).value

    for _ in range(2):
        res = client.post(f'/api/admin/matches/{match.id}/complete', headers=auth_for(admin))
        assert res.status_code == 200
        assert json.loads(res.data)['match']['status'] == 'completed'

    assert client.post('/api/admin/matches/999/complete',
                       headers=auth_for(admin)).status_code == 404
