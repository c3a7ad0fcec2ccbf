# backend/posledger/__init__.py
import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def _configure_logging(app: Flask) -> None:
    level = getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger().setLevel(level)


def create_app(config_object=None, **services) -> Flask:
    """
    Build the terminal application.

    config_object: a class/object or a mapping applied over Config.
    services: optional clock / identity / connectivity / transport overrides
    handed to the ServiceContainer (tests inject a FixedClock and a fake
    transport this way).
    """
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if isinstance(config_object, dict):
        app.config.update(config_object)
    elif config_object is not None:
        app.config.from_object(config_object)

    _configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.session import session_bp
    from .routes.products import products_bp
    from .routes.cart import cart_bp
    from .routes.transactions import transactions_bp
    from .routes.shifts import shifts_bp
    from .routes.approvals import approvals_bp
    from .routes.sync import sync_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(session_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(cart_bp)
    app.register_blueprint(transactions_bp)
    app.register_blueprint(shifts_bp)
    app.register_blueprint(approvals_bp)
    app.register_blueprint(sync_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,PATCH,DELETE,OPTIONS"
        return response

    # Service wiring: one identity, clock, connectivity monitor and sync processor per terminal
    from .services.container import EXTENSION_KEY, ServiceContainer
    container = ServiceContainer(app, **services)
    app.extensions[EXTENSION_KEY] = container

    if app.config.get("SYNC_SCHEDULER_ENABLED") and not app.config.get("TESTING"):
        container.scheduler.start()

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
