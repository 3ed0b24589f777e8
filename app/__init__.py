"""
BarberBook Booking Platform
Flask application factory
"""
import os
import logging
from flask import Flask
from flask_cors import CORS

from .extensions import db, migrate
from .config import get_config, validate_config
from .utils.cache import init_cache
from .utils.errors import business_error, error_response, internal_error as internal_error_response, ErrorCode
from .utils.exceptions import BarberBookError
from .utils.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(config_name: str = None, config_overrides: dict = None) -> Flask:
    """
    Application factory for creating Flask app instances.

    Args:
        config_name: Configuration environment (development, production, testing)
        config_overrides: Extra config values applied before extensions initialize

    Returns:
        Configured Flask application
    """
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    # Setup logging before anything else
    setup_logging()
    validate_config(config_name)

    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Initialize caching (Redis with graceful fallback)
    init_cache(app)

    # Configure CORS - allow booking front-end origins
    CORS(
        app,
        origins=app.config.get('CORS_ORIGINS', []),
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Tenant-Slug', 'X-Tenant-ID']
    )

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
        return {'status': 'healthy', 'service': 'barberbook'}

    return app


def register_blueprints(app: Flask) -> None:
    """Register all API blueprints."""
    from .api.appointments import appointments_bp
    from .api.loyalty import loyalty_bp
    from .api.notifications import notifications_bp

    # Webhooks
    from .webhooks.mercado_pago import mercado_pago_webhook_bp
    from .webhooks.stripe import stripe_webhook_bp

    # Core API routes
    app.register_blueprint(appointments_bp, url_prefix='/api/appointments')
    app.register_blueprint(loyalty_bp, url_prefix='/api/loyalty')
    app.register_blueprint(notifications_bp, url_prefix='/api/notifications')

    # Webhook routes
    app.register_blueprint(mercado_pago_webhook_bp, url_prefix='/webhook/mercado-pago')
    app.register_blueprint(stripe_webhook_bp, url_prefix='/webhook/stripe')


def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""

    @app.errorhandler(BarberBookError)
    def handle_business_error(error):
        return business_error(error)

    @app.errorhandler(400)
    def bad_request(error):
        return error_response('Bad request', ErrorCode.INVALID_REQUEST, 400, log_error=False)

    @app.errorhandler(404)
    def not_found(error):
        return error_response('Not found', ErrorCode.NOT_FOUND, 404, log_error=False)

    @app.errorhandler(500)
    def internal_error(error):
        return internal_error_response('Internal server error')
