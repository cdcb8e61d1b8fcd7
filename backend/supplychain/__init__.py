# backend/supplychain/__init__.py
from __future__ import annotations

import logging

from flask import Flask, request

from .config import Config
from .extensions import db, migrate


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Collaborators: price feed (read only) and escrow payout sink
    from .services.price_feed import build_price_feed
    from .services.escrow_service import credit_account
    app.extensions.setdefault("supplychain.price_feed", build_price_feed(app.config))
    app.extensions.setdefault("supplychain.payout", credit_account)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.roles import roles_bp
    from .routes.batches import batches_bp
    from .routes.escrow import escrow_bp
    from .routes.returns import returns_bp
    from .routes.events import events_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(roles_bp)
    app.register_blueprint(batches_bp)
    app.register_blueprint(escrow_bp)
    app.register_blueprint(returns_bp)
    app.register_blueprint(events_bp)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        allowed_origins = {
            "http://localhost:5173",
            "http://127.0.0.1:5173",
            "http://localhost:4173",
            "http://127.0.0.1:4173",
        }
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "X-Caller-Address, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    # Deployer receives ADMIN on first startup
    admin_address = app.config.get("SUPPLYCHAIN_ADMIN_ADDRESS")
    if admin_address:
        _bootstrap_admin(app, admin_address)

    return app


def _bootstrap_admin(app: Flask, admin_address: str) -> None:
    from sqlalchemy import inspect
    from .services.role_service import bootstrap_admin
    from .services.concurrency import commit_with_retry

    with app.app_context():
        # Tables may not exist yet (before `flask db upgrade` / `system init`)
        if not inspect(db.engine).has_table("participant_roles"):
            app.logger.warning("Skipping admin bootstrap: schema not created")
            return
        if bootstrap_admin(admin_address):
            commit_with_retry()
            app.logger.info("Granted ADMIN to %s", admin_address)
