# backend/shopsync/__init__.py
from flask import Flask, jsonify

from .config import Config
from .extensions import db, migrate
from .validation import ApiError


def create_app(config_overrides: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if config_overrides:
        app.config.update(config_overrides)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.shops import shops_bp
    from .routes.sales import sales_bp
    from .routes.payments import payments_bp
    from .routes.invoices import invoices_bp
    from .routes.supplies import supplies_bp
    from .routes.sync import sync_bp
    from .routes.admin import admin_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(shops_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(supplies_bp)
    app.register_blueprint(sync_bp)
    app.register_blueprint(admin_bp)

    @app.errorhandler(ApiError)
    def handle_api_error(exc: ApiError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(413)
    def handle_request_too_large(exc):
        return jsonify({"success": False, "message": "Request body too large"}), 413

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
