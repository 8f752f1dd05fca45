#!/usr/bin/env python3
"""Entry point for the pickleball match-making API."""
import os
from pickle_match.app import create_app, socketio

config_name = os.environ.get('FLASK_ENV', 'development')
app = create_app(config_name)

# Seed the default region on first run
with app.app_context():
    from pickle_match.services.region_seeder import seed_regions
    if seed_regions():
        print(f"🏓 Seeded region {app.config['DEFAULT_REGION_SLUG']}")

if __name__ == '__main__':
    port = int(os.environ.get('PORT', 5001))
    print(f"🏓 Pickle Match API starting on http://localhost:{port}")
    socketio.run(
        app, host='0.0.0.0', port=port,
        debug=(config_name == 'development'),
        allow_unsafe_werkzeug=True,
    )
