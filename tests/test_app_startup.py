"""Tests for app startup helpers, seeding and the database error handler."""
import json
from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from pickle_match.app import _parse_allowed_origins, create_app
from pickle_match.config import _env_bool, config
from pickle_match.models import Region
from pickle_match.services.match_lifecycle import create_match
from pickle_match.services.region_seeder import default_region, seed_regions
from pickle_match.time_utils import subtract_months


def test_parse_allowed_origins():
    assert _parse_allowed_origins(None) == '*'
    assert _parse_allowed_origins('  * ') == '*'
    assert _parse_allowed_origins('https://a.example, https://b.example,') == [
        'https://a.example', 'https://b.example',
    ]
    assert _parse_allowed_origins(['https://a.example', '']) == ['https://a.example']


def test_production_requires_real_secret_key(monkeypatch):
    monkeypatch.setattr(config['production'], 'SECRET_KEY', 'dev-secret-key-change-in-prod')
    with pytest.raises(RuntimeError, match='SECRET_KEY'):
        create_app('production')


def test_production_requires_explicit_origins(monkeypatch):
    monkeypatch.setattr(config['production'], 'SECRET_KEY', 'a-real-secret')
    monkeypatch.setattr(config['production'], 'CORS_ALLOWED_ORIGINS', '*')
    with pytest.raises(RuntimeError, match='CORS_ALLOWED_ORIGINS'):
        create_app('production')


def test_subtract_months_clamps_to_month_end():
    assert subtract_months(datetime(2026, 5, 31, 8, 30), 3) == datetime(2026, 2, 28, 8, 30)
    assert subtract_months(datetime(2024, 5, 31), 3) == datetime(2024, 2, 29)
    assert subtract_months(datetime(2026, 1, 15), 3) == datetime(2025, 10, 15)
    assert subtract_months(datetime(2026, 6, 15, 12), 3) == datetime(2026, 3, 15, 12)


def test_seed_regions_is_idempotent(app):
    assert Region.query.filter_by(slug='jeonju').count() == 1
    assert seed_regions() == 0
    assert Region.query.count() == 1


def test_health(client):
    res = client.get('/api/health')
    assert res.status_code == 200
    assert json.loads(res.data) == {'status': 'ok'}


def test_database_errors_become_retryable_503(client, make_profile, auth_for, monkeypatch):
    alice = make_profile('alice')
    bob = make_profile('bob')
    match = create_match(alice.region_id, '1v1', alice.id, bob.id).value

    def broken(_match_id, after_id=None):
        raise OperationalError('SELECT', {}, Exception('database is locked'))

    monkeypatch.setattr('pickle_match.routes.matches.list_messages', broken)
    res = client.get(f'/api/matches/{match.id}/messages', headers=auth_for(alice))
    assert res.status_code == 503
    assert json.loads(res.data)['retryable'] is True


def test_env_bool(monkeypatch):
    monkeypatch.delenv('AUTO_SEED_REGIONS', raising=False)
    assert _env_bool('AUTO_SEED_REGIONS', True) is True
    monkeypatch.setenv('AUTO_SEED_REGIONS', ' Off ')
    assert _env_bool('AUTO_SEED_REGIONS', True) is False
    monkeypatch.setenv('AUTO_SEED_REGIONS', 'YES')
    assert _env_bool('AUTO_SEED_REGIONS') is True


def test_mixed_case_region_slug_resolves_to_seeded_region(app, client, make_profile, auth_for):
    app.config['DEFAULT_REGION_SLUG'] = '  Jeonju '
    assert seed_regions() == 0
    region = default_region()
    assert region is not None and region.slug == 'jeonju'

    alice = make_profile('alice')
    assert alice.region_id == region.id
    res = client.post('/api/requests', json={'match_type': '1v1'}, headers=auth_for(alice))
    assert json.loads(res.data)['request']['region_id'] == region.id
