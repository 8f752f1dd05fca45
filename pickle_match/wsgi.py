"""WSGI entrypoint used by Gunicorn."""
import os

from pickle_match.app import create_app
from pickle_match.config import _env_bool
from pickle_match.services.region_seeder import default_region_slug, seed_regions

config_name = os.environ.get('FLASK_ENV', 'production')
app = create_app(config_name)

if _env_bool('AUTO_SEED_REGIONS', True):
    with app.app_context():
        if seed_regions():
            app.logger.info('Seeded default region %s', default_region_slug())
