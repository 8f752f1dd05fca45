import logging

from flask import Flask, request, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_socketio import SocketIO
from flask_cors import CORS
from sqlalchemy import inspect, text
from sqlalchemy.exc import SQLAlchemyError
from pickle_match.config import config

db = SQLAlchemy()
socketio = SocketIO()

logger = logging.getLogger(__name__)


def _parse_allowed_origins(raw_origins):
    if not raw_origins:
        return '*'

    if isinstance(raw_origins, (list, tuple, set)):
        cleaned = [origin for origin in raw_origins if origin]
        return cleaned or '*'

    raw_text = str(raw_origins).strip()
    if not raw_text or raw_text == '*':
        return '*'

    origins = [origin.strip() for origin in raw_text.split(',') if origin.strip()]
    return origins or '*'


def _configure_logging(app):
    level_name = str(app.config.get('LOG_LEVEL') or 'INFO').strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level)
    logging.getLogger('pickle_match').setLevel(level)


def _run_lightweight_migrations():
    """Ensure read-path indexes exist on databases created before they were declared."""
    inspector = inspect(db.engine)
    table_names = inspector.get_table_names()

    with db.engine.begin() as connection:
        if 'message' in table_names:
            connection.execute(text(
                'CREATE INDEX IF NOT EXISTS ix_message_match_created '
                'ON message (match_id, created_at, id)'
            ))
        if 'match_request' in table_names:
            connection.execute(text(
                'CREATE INDEX IF NOT EXISTS ix_match_request_status_created '
                'ON match_request (status, created_at)'
            ))
        if 'match_participant' in table_names:
            connection.execute(text(
                'CREATE INDEX IF NOT EXISTS ix_match_participant_user '
                'ON match_participant (user_id)'
            ))
        if 'user_review' in table_names:
            connection.execute(text(
                'CREATE INDEX IF NOT EXISTS ix_user_review_reviewed_created '
                'ON user_review (reviewed_id, created_at)'
            ))


def create_app(config_name='development'):
    app = Flask(__name__)
    app.config.from_object(config[config_name])
    _configure_logging(app)

    allowed_origins = _parse_allowed_origins(app.config.get('CORS_ALLOWED_ORIGINS', '*'))
    if str(config_name).strip().lower() == 'production':
        secret_key = str(app.config.get('SECRET_KEY') or '').strip()
        if not secret_key or secret_key == 'dev-secret-key-change-in-prod':
            raise RuntimeError('SECRET_KEY must be set to a non-default value in production')
        if allowed_origins == '*':
            raise RuntimeError('CORS_ALLOWED_ORIGINS must be explicitly set in production')

    # Socket handlers must be registered before the server is created.
    from pickle_match.routes import chat  # noqa: F401

    db.init_app(app)
    socketio.init_app(
        app,
        cors_allowed_origins=allowed_origins,
        async_mode=app.config.get('SOCKETIO_ASYNC_MODE', 'threading'),
    )
    CORS(app, resources={r'/api/*': {'origins': allowed_origins}})

    @app.before_request
    def _enforce_origin_for_mutating_api_requests():
        if request.method in {'GET', 'HEAD', 'OPTIONS'}:
            return None
        if not request.path.startswith('/api/'):
            return None

        origin = str(request.headers.get('Origin') or '').strip()
        if not origin:
            return None

        configured_origins = _parse_allowed_origins(
            app.config.get('CORS_ALLOWED_ORIGINS', '*')
        )
        if configured_origins != '*' and origin not in configured_origins:
            return jsonify({'error': 'Invalid request origin'}), 403

        auth_header = str(request.headers.get('Authorization') or '').strip()
        if not auth_header:
            return None

        csrf_header = request.headers.get('X-CSRF-Token')
        from pickle_match.auth_utils import csrf_token_matches
        if not csrf_token_matches(auth_header, csrf_header):
            return jsonify({'error': 'Invalid CSRF token'}), 403
        return None

    @app.errorhandler(SQLAlchemyError)
    def _handle_database_error(exc):
        db.session.rollback()
        logger.error('Database operation failed on %s %s', request.method, request.path,
                     exc_info=exc)
        return jsonify({
            'error': 'The server could not complete the request. Please try again.',
            'retryable': True,
        }), 503

    from pickle_match.routes.auth import auth_bp
    from pickle_match.routes.profiles import profiles_bp
    from pickle_match.routes.requests import requests_bp
    from pickle_match.routes.matches import matches_bp
    from pickle_match.routes.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(profiles_bp, url_prefix='/api/profiles')
    app.register_blueprint(requests_bp, url_prefix='/api/requests')
    app.register_blueprint(matches_bp, url_prefix='/api/matches')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok'})

    with app.app_context():
        from pickle_match import models  # noqa: F401
        db.create_all()
        _run_lightweight_migrations()

    return app
