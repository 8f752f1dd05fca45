"""Tests for post-match reviews and review targets."""
import json

from pickle_match.models import UserReview
from pickle_match.services.match_lifecycle import Outcome, complete_match, create_match
from pickle_match.services.reviews import submit_review, validate_review_input

GOOD_SCORES = {
    'teamwork_score': 5, 'language_score': 4,
    'rule_score': 5, 'punctuality_score': 3,
}


def _finished_match(alice, bob):
    match = create_match(alice.region_id, '1v1', alice.id, bob.id).value
    complete_match(match.id)
    return match


def test_validate_review_input_bounds():
    parsed, comment, error = validate_review_input(dict(GOOD_SCORES), '  great game  ')
    assert error is None
    assert parsed == GOOD_SCORES
    assert comment == 'great game'

    for bad in (0, 6, 4.5, True, 'five', None):
        scores = dict(GOOD_SCORES, rule_score=bad)
        assert validate_review_input(scores, '')[2] is not None

    assert validate_review_input(dict(GOOD_SCORES, rule_score='4'), '')[0]['rule_score'] == 4
    assert validate_review_input(GOOD_SCORES, 'x' * 201)[2] is not None
    assert validate_review_input(GOOD_SCORES, 'x' * 200)[2] is None
    assert validate_review_input(None, '')[2] == 'Scores are required'


def test_submit_review_once_per_reviewed_player(app, make_profile):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = _finished_match(alice, bob)

    first = submit_review(alice.id, match.id, bob.id, GOOD_SCORES, 'solid partner')
    assert first.is_ok
    assert first.value.comment == 'solid partner'

    again = submit_review(alice.id, match.id, bob.id, GOOD_SCORES, 'changed my mind')
    assert again.kind == Outcome.CONFLICT
    assert again.code == 'already_reviewed'
    assert UserReview.query.count() == 1

    # The other direction is a separate review.
    assert submit_review(bob.id, match.id, alice.id, GOOD_SCORES).is_ok
    assert UserReview.query.count() == 2


def test_review_requires_completed_match(app, make_profile):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = create_match(alice.region_id, '1v1', alice.id, bob.id).value

    outcome = submit_review(alice.id, match.id, bob.id, GOOD_SCORES)
    assert outcome.kind == Outcome.INVALID
    assert UserReview.query.count() == 0


def test_review_participant_rules(app, make_profile):
    alice = make_profile('alice')
    bob = make_profile('bob')
    eve = make_profile('eve')
    match = _finished_match(alice, bob)

    assert submit_review(eve.id, match.id, bob.id, GOOD_SCORES).kind == Outcome.FORBIDDEN
    assert submit_review(alice.id, match.id, alice.id, GOOD_SCORES).kind == Outcome.INVALID
    assert submit_review(alice.id, match.id, eve.id, GOOD_SCORES).kind == Outcome.INVALID
    assert submit_review(alice.id, 9999, bob.id, GOOD_SCORES).kind == Outcome.NOT_FOUND
    assert UserReview.query.count() == 0


def test_review_endpoint(client, make_profile, auth_for):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = _finished_match(alice, bob)

    res = client.post(f'/api/matches/{match.id}/reviews', headers=auth_for(alice), json={
        'reviewed_id': bob.id, 'scores': GOOD_SCORES, 'comment': 'Great rallies',
    })
    assert res.status_code == 201
    review = json.loads(res.data)['review']
    assert review['reviewer_id'] == alice.id
    assert review['reviewed_id'] == bob.id
    assert review['teamwork_score'] == 5

    dup = client.post(f'/api/matches/{match.id}/reviews', headers=auth_for(alice),
                      json=dict(GOOD_SCORES, reviewed_id=bob.id))
    assert dup.status_code == 409
    assert json.loads(dup.data)['code'] == 'already_reviewed'

    bad = client.post(f'/api/matches/{match.id}/reviews', headers=auth_for(bob),
                      json=dict(GOOD_SCORES, reviewed_id=alice.id, language_score=9))
    assert bad.status_code == 400

    missing = client.post(f'/api/matches/{match.id}/reviews', headers=auth_for(bob),
                          json={'scores': GOOD_SCORES})
    assert missing.status_code == 400


def test_review_targets_mark_already_reviewed(client, make_profile, auth_for):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = _finished_match(alice, bob)

    res = client.get(f'/api/matches/{match.id}/review-targets', headers=auth_for(alice))
    assert res.status_code == 200
    data = json.loads(res.data)
    assert data['can_review'] is True
    assert [t['user_id'] for t in data['targets']] == [bob.id]
    assert data['targets'][0]['nickname'] == 'bob'
    assert data['targets'][0]['already_reviewed'] is False

    submit_review(alice.id, match.id, bob.id, GOOD_SCORES)
    res = client.get(f'/api/matches/{match.id}/review-targets', headers=auth_for(alice))
    assert json.loads(res.data)['targets'][0]['already_reviewed'] is True


def test_review_targets_for_outsider(client, make_profile, auth_for):
    alice = make_profile('alice')
    bob = make_profile('bob')
    eve = make_profile('eve')
    match = _finished_match(alice, bob)

    res = client.get(f'/api/matches/{match.id}/review-targets', headers=auth_for(eve))
    assert res.status_code == 403


def test_reviews_feed_the_trust_snapshot(client, make_profile, auth_for):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = _finished_match(alice, bob)
    submit_review(bob.id, match.id, alice.id, GOOD_SCORES, 'Always on time')

    res = client.get(f'/api/profiles/{alice.id}/trust')
    assert res.status_code == 200
    trust = json.loads(res.data)['trust']
    assert trust['manner']['sample_count'] == 1
    assert trust['manner']['punctuality'] == 3
    assert trust['recent_reviews'][0]['comment'] == 'Always on time'
