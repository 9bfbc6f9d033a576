"""
Application Factory for vaultshare.
Creates and configures the Flask application with blueprints.
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_talisman import Talisman

from .blueprints import (
    auth_bp, devices_bp, download_bp, file_types_bp, files_bp, users_bp
)
from .cli import register_commands
from .config import config
from .core.blob_store import LocalBlobStore
from .core.context import VaultSettings
from .database.models import db
from .utils.logging_config import LoggingConfig
from .utils.logging_middleware import RequestLoggingMiddleware
from .utils.rate_limiting import limiter, rate_limit_exceeded_handler
from .utils.unified_error_handler import register_error_handlers

logger = logging.getLogger(__name__)


def create_app(config_name=None, config_overrides=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)

    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')
    config_class = config.get(config_name, config['default'])
    app.config.from_object(config_class)
    if config_overrides:
        app.config.update(config_overrides)

    logging_config = LoggingConfig(
        app_name='vaultshare',
        log_dir=app.config['LOG_DIR'],
        environment=app.config['FLASK_ENV'],
        log_to_file=app.config['LOG_TO_FILE'],
    )
    logging_config.setup_logging()

    if app.config.get('FLASK_ENV') == 'production':
        for issue in config_class.validate_config():
            logger.warning(f"Configuration issue: {issue}")

    RequestLoggingMiddleware(app)

    CORS(app,
         resources={r"/api/*": {"origins": app.config['CORS_ORIGINS']}},
         supports_credentials=False,
         methods=["GET", "HEAD", "POST", "PATCH", "DELETE", "OPTIONS"],
         allow_headers=["Content-Type", "Authorization", "X-Device-Token", "X-Request-ID"],
         expose_headers=["X-Request-ID", "X-File-IV", "X-Original-Name", "X-Original-Mime-Type",
                         "Content-Disposition"])

    Talisman(app,
             content_security_policy={'default-src': "'none'", 'frame-ancestors': "'none'"},
             force_https=False,
             strict_transport_security=app.config.get('FLASK_ENV') == 'production',
             frame_options='DENY',
             referrer_policy='no-referrer',
             permissions_policy={'camera': '()', 'microphone': '()', 'geolocation': '()'},
             session_cookie_secure=app.config.get('FLASK_ENV') == 'production')

    limiter.init_app(app)
    app.register_error_handler(429, rate_limit_exceeded_handler)

    db.init_app(app)

    app.extensions['blob_store'] = LocalBlobStore(app.config['BLOB_STORAGE_PATH'])
    app.extensions['vault_settings'] = VaultSettings.from_config(app.config)

    @app.after_request
    def add_cache_headers(response):
        # Share-link metadata and ciphertext must not be cached by intermediaries
        response.headers.setdefault('Cache-Control', 'no-store')
        return response

    register_error_handlers(app)

    api_prefix = app.config['API_PREFIX']
    for blueprint in (auth_bp, users_bp, devices_bp, files_bp, download_bp, file_types_bp):
        app.register_blueprint(blueprint, url_prefix=f"{api_prefix}{blueprint.url_prefix}")

    register_commands(app)

    with app.app_context():
        db.create_all()

    return app
