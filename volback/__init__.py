import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask
from flask_sqlalchemy import SQLAlchemy


# Initialize extensions
db = SQLAlchemy()


def configure_logging(app):
    """Configure application logging"""

    # Create logs directory if it doesn't exist
    log_dir = app.config['LOG_DIR']
    os.makedirs(log_dir, exist_ok=True)

    # Set log level based on environment
    log_level = logging.DEBUG if app.config.get('DEBUG', False) else logging.INFO

    # Console handler
    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    )
    console_handler.setFormatter(console_formatter)

    # File handler
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'volback.log'),
        maxBytes=10485760,  # 10MB
        backupCount=10
    )
    file_handler.setLevel(log_level)
    file_formatter = logging.Formatter(
        '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
    )
    file_handler.setFormatter(file_formatter)

    # Configure root logger; package loggers (volback.*) propagate to it
    logging.basicConfig(level=log_level, handlers=[console_handler, file_handler], force=True)

    # Configure Flask app logger
    app.logger.setLevel(log_level)

    app.logger.debug(f"Logging configured (level: {logging.getLevelName(log_level)})")


def create_app(config_name=None, test_config=None):
    """Flask application factory"""

    app = Flask(__name__)

    # Load configuration
    if config_name is None:
        config_name = os.environ.get('VOLBACK_ENV', 'production')

    from volback.config import config
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)

    # Configure logging
    configure_logging(app)

    # Ensure the data directory exists for the history database
    database_uri = app.config['SQLALCHEMY_DATABASE_URI']
    if database_uri.startswith('sqlite:///') and ':memory:' not in database_uri:
        os.makedirs(os.path.dirname(database_uri.replace('sqlite:///', '')), exist_ok=True)

    # Initialize extensions
    db.init_app(app)

    # Initialize database schema
    from volback import models
    from volback.migrations import init_database_schema

    init_database_schema(app)

    # Register CLI commands (`flask --app volback volumes ...`)
    from volback.cli import register_commands
    register_commands(app)

    return app
