"""
Map Vault - community map upload service
Application Factory e Inicialização
"""
import os
import sys
import logging

import flask.cli
flask.cli.show_server_banner = lambda *args: None

from flask import Flask
import structlog

from constants import CONFIG_DIR, MAPVAULT_DB, BUILD_VERSION
from settings import load_settings, verify_settings
from db import db, init_db
from auth import login_manager
from exceptions import register_exception_handlers
from metrics import init_metrics
from routes.maps import maps_bp
from utils import ColoredFormatter, FilterRemoveDateFromWerkzeugLogs, get_or_create_secret_key


def configure_logging():
    formatter = ColoredFormatter(
        '[%(asctime)s.%(msecs)03d] %(levelname)s (%(module)s) %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    logging.basicConfig(
        level=logging.INFO,
        handlers=[handler]
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer() if os.environ.get('LOG_FORMAT') == 'json' else structlog.dev.ConsoleRenderer()
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Apply filter to hide date from http access logs
    logging.getLogger('werkzeug').addFilter(FilterRemoveDateFromWerkzeugLogs())


logger = structlog.get_logger('main')


def create_app(test_config=None):
    """Application factory"""
    app = Flask(__name__)
    app.config["SQLALCHEMY_DATABASE_URI"] = MAPVAULT_DB
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False

    if test_config:
        app.config.update(test_config)
    if "APP_SETTINGS" not in app.config:
        app.config["APP_SETTINGS"] = load_settings()
    if not app.config.get("SECRET_KEY"):
        app.config['SECRET_KEY'] = get_or_create_secret_key(CONFIG_DIR)

    map_settings = app.config["APP_SETTINGS"]["map"]
    success, errors = verify_settings("map", map_settings)
    if not success:
        for error in errors:
            logger.error("invalid_setting", path=error["path"], error=error["error"])
        raise ValueError("Invalid map settings: " + ", ".join(error["path"] for error in errors))
    app.config["MAX_CONTENT_LENGTH"] = map_settings["max_upload_size"] + 1024 * 1024

    # Initialize components
    db.init_app(app)
    login_manager.init_app(app)

    # Register exception handlers
    register_exception_handlers(app)

    # Register blueprints
    app.register_blueprint(maps_bp)

    # Initialize metrics
    init_metrics(app)

    init_db(app)
    return app


if __name__ == '__main__':
    configure_logging()
    app = create_app()
    logger.info(f'Build Version: {BUILD_VERSION}')
    logger.info('Starting server on port 8465...')
    # Threaded so each upload runs on its own worker thread
    app.run(debug=False, use_reloader=False, host="0.0.0.0", port=8465, threaded=True)
