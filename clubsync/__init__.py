"""
ClubSync wine club platform
Flask application factory
"""
import os
import re
import logging
from flask import Flask, redirect, request
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    validate_config(config_name)

    # Setup logging before anything else logs
    setup_logging(app.config.get('LOG_LEVEL'))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # The app is embedded in the platform admins
    cors_origins = [
        'http://localhost:5173',
        'http://127.0.0.1:5173',
        'https://admin.shopify.com',
        re.compile(r'https://.*\.myshopify\.com'),
        re.compile(r'https://.*\.commerce7\.com'),
    ]
    if config_name != 'production':
        cors_origins.append(re.compile(r'https://.*\.ngrok(-free)?\.app'))
    CORS(app, origins=cors_origins, supports_credentials=True, allow_headers=['Content-Type', 'Authorization'])

    # Register blueprints
    register_blueprints(app)

    # Register CLI commands
    from .commands import init_app as init_commands
    init_commands(app)

    # Register error handlers
    register_error_handlers(app)

    # Health check endpoint
    @app.route('/health')
    def health_check():
        return {'status': 'healthy', 'service': 'clubsync'}

    # Root route - landing page, or forward an embedded launch
    @app.route('/')
    def index():
        if request.args.get('tenantId') and request.args.get('account'):
            return redirect(f'/c7/auth?{request.query_string.decode()}')
        return {'service': 'ClubSync', 'status': 'running', 'version': '1.0.0'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all blueprints."""
    # Install, launch and logout
    from .api.auth import auth_bp

    # Embedded app pages and session
    from .api.app import app_bp

    # Club management
    from .api.tiers import tiers_bp
    from .api.members import members_bp

    # Webhooks
    from .webhooks import commerce7_webhooks_bp, shopify_webhooks_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(app_bp)

    app.register_blueprint(tiers_bp)
    app.register_blueprint(members_bp, url_prefix='/api/members')

    app.register_blueprint(commerce7_webhooks_bp, url_prefix='/webhooks')
    app.register_blueprint(shopify_webhooks_bp, url_prefix='/webhooks')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from .utils.errors import ErrorCode, error_response, exception_response
    from .utils.exceptions import ClubSyncError

    @app.errorhandler(ClubSyncError)
    def clubsync_error(error):
        return exception_response(error)

    @app.errorhandler(NotImplementedError)
    def not_implemented(error):
        return error_response(str(error) or 'Not supported on this platform', ErrorCode.PLATFORM_ERROR, 501)

    @app.errorhandler(400)
    def bad_request(error):
        return {'error': 'Bad request', 'message': str(error)}, 400

    @app.errorhandler(404)
    def not_found(error):
        return {'error': 'Not found', 'message': str(error)}, 404

    @app.errorhandler(500)
    def internal_error(error):
        return {'error': 'Internal server error', 'message': str(error)}, 500
