"""
Signage Server - schedule resolution and device synchronization
Main Flask application entry point
"""
import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from config import config
from models import db
from socketio_events import socketio
from utils.errors import ScheduleServiceError

# Setup API logger
api_logger = logging.getLogger('api')


def create_app(config_name=None, **overrides):
    """Application factory pattern"""

    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])
    app.config.update(overrides)
    config[config_name].init_app(app)

    # Initialize extensions
    db.init_app(app)

    # CORS configuration
    CORS(app, resources={
        r"/api/*": {
            "origins": app.config['CORS_ORIGINS'],
            "methods": ["GET", "POST", "PATCH", "DELETE"],
            "allow_headers": ["Content-Type", "If-None-Match", "Range"],
            "expose_headers": ["ETag", "Content-Range", "Accept-Ranges", "Content-Length"]
        }
    })

    # Rate limiting
    limiter = Limiter(
        key_func=get_remote_address,
        app=app,
        default_limits=[f"{app.config['API_RATE_LIMIT']} per minute"],
        storage_uri=app.config['RATELIMIT_STORAGE_URL'],
        enabled=app.config['RATELIMIT_ENABLED']
    )

    # SocketIO initialization
    cors_origins = app.config['CORS_ORIGINS']
    if cors_origins == ['*']:
        cors_origins = '*'
    socketio.init_app(app,
                      cors_allowed_origins=cors_origins,
                      async_mode='threading',
                      logger=app.config['DEBUG'],
                      engineio_logger=app.config['DEBUG'])

    # Setup logging
    setup_logging(app)
    setup_api_logger(app)

    # Register blueprints
    from routes.player_routes import player_bp, stream_media
    from routes.operator_routes import operator_bp
    from routes.content_routes import content_bp

    app.register_blueprint(player_bp, url_prefix='/api')
    app.register_blueprint(operator_bp, url_prefix='/api')
    app.register_blueprint(content_bp, url_prefix='/api')

    # Players issue many range requests while seeking
    limiter.exempt(stream_media)

    register_error_handlers(app)

    @app.route('/api/health', methods=['GET'])
    def health_check():
        """Simple health check endpoint"""
        return jsonify({
            'status': 'healthy',
            'timestamp': app.config['CLOCK']().isoformat()
        }), 200

    # Store limiter in app for use in blueprints
    app.limiter = limiter  # type: ignore

    # Background presence sweep
    from utils.scheduler import init_scheduler, shutdown_scheduler
    init_scheduler(app)

    # Register shutdown handler
    import atexit
    atexit.register(shutdown_scheduler)

    return app


def register_error_handlers(app):
    """Render every error as JSON"""

    @app.errorhandler(ScheduleServiceError)
    def handle_service_error(error):
        if error.status_code >= 500:
            db.session.rollback()
            app.logger.error(f'{type(error).__name__}: {error.message}')
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(error):
        # Keep headers such as Content-Range on 416
        response = error.get_response()
        response.set_data(jsonify({'error': error.description}).get_data())
        response.content_type = 'application/json'
        return response

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        original = getattr(error, 'original_exception', None)
        app.logger.error(f'Unhandled error: {original or error}')
        return jsonify({'error': 'Internal server error'}), 500


def setup_logging(app):
    """Configure application logging"""

    if not app.debug and not app.testing:
        # Application log handler
        file_handler = RotatingFileHandler(
            app.config['APP_LOG_FILE'],
            maxBytes=10240000,  # 10MB
            backupCount=10
        )
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.setLevel(logging.INFO)
        app.logger.info('Signage server startup')


def setup_api_logger(app):
    """Setup API-specific file logger"""
    if app.testing or api_logger.handlers:
        return
    handler = RotatingFileHandler(
        app.config['API_LOG_FILE'],
        maxBytes=10240000,
        backupCount=5
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s'
    ))
    api_logger.addHandler(handler)
    api_logger.setLevel(logging.INFO)


if __name__ == '__main__':
    app = create_app()

    # Create database tables if they don't exist
    with app.app_context():
        db.create_all()

    # Run the application with SocketIO
    socketio.run(
        app,
        host=app.config['FLASK_HOST'],
        port=app.config['FLASK_PORT'],
        debug=app.config['DEBUG'],
        allow_unsafe_werkzeug=True
    )
