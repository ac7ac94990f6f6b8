# assetdesk/__init__.py
from __future__ import annotations

from flask import Flask, jsonify

from .settings import Config
from .extensions import db, migrate, login_manager, limiter


def create_app(config_object=None) -> Flask:
    app = Flask(__name__)
    app.config.from_object(config_object or Config)

    from .logging_setup import configure_logging

    configure_logging(app)

    # ======================
    # Initialize Extensions
    # ======================
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    limiter.init_app(app)

    # ======================
    # Import Models (CRITICAL)
    # ======================
    from . import models  # noqa: F401

    # ======================
    # Errors
    # ======================
    from .errors import register_error_handlers

    register_error_handlers(app)

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"message": "Authentication required."}), 401

    # ======================
    # Register Blueprints
    # ======================
    from .auth import auth
    from .assets import assets_bp
    from .licenses import licenses_bp
    from .users import users_bp
    from .places import places_bp
    from .documents import documents_bp
    from .stats import stats_bp

    app.register_blueprint(auth)
    app.register_blueprint(assets_bp)
    app.register_blueprint(licenses_bp)
    app.register_blueprint(users_bp)
    app.register_blueprint(places_bp)
    app.register_blueprint(documents_bp)
    app.register_blueprint(stats_bp)

    # ======================
    # Rate limit error handler
    # ======================
    @app.errorhandler(429)
    def ratelimit_handler(e):
        return jsonify({"message": "Too many requests. Please try again later."}), 429

    app.logger.info("AssetDesk started (db=%s)", app.config["SQLALCHEMY_DATABASE_URI"].split("@")[-1])
    return app
