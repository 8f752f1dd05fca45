import pytest
from pickle_match.app import create_app, db


@pytest.fixture
def app():
    app = create_app('testing')
    with app.app_context():
        db.create_all()
        from pickle_match.services.region_seeder import seed_regions
        seed_regions()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def make_profile(app):
    """Create a profile in the default region and return it."""
    from pickle_match.models import Profile
    from pickle_match.services.region_seeder import default_region

    def _make(nickname='player', kakao_id=None, is_admin=False, skill_level='beginner'):
        region = default_region()
        profile = Profile(
            kakao_id=kakao_id or f'kakao-{nickname}',
            nickname=nickname,
            skill_level=skill_level,
            region_id=region.id if region else None,
            is_admin=is_admin,
        )
        db.session.add(profile)
        db.session.commit()
        return profile

    return _make


@pytest.fixture
def auth_for(app):
    """Return bearer headers for a profile."""
    from pickle_match.auth_utils import generate_token

    def _headers(profile):
        return {'Authorization': f'Bearer {generate_token(profile.id)}'}

    return _headers
