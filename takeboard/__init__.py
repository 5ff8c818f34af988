import logging
import os

from flask import Flask, jsonify, request
from flask_caching import Cache
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy

from config import config

logger = logging.getLogger(__name__)

db = SQLAlchemy()
cache = Cache()
migrate = Migrate()


def create_app(config_name=None):
    app = Flask(__name__)

    # Determine configuration
    if config_name is None:
        config_name = os.environ.get("FLASK_CONFIG", "default")

    app.config.from_object(config[config_name]())

    # Initialize extensions
    db.init_app(app)
    cache.init_app(app)
    migrate.init_app(app, db)

    # Engine services are bound per application so tests get a fresh resolver
    from takeboard.services.scope_resolver import ScopeResolver
    from takeboard.utils.cache_utils import LeaderboardCache

    app.extensions["scope_resolver"] = ScopeResolver(
        chunk_size=app.config.get("LOOKUP_CHUNK_SIZE", 50),
        max_workers=app.config.get("LOOKUP_MAX_WORKERS", 1),
    )
    app.extensions["leaderboard_cache"] = LeaderboardCache(
        cache, ttl=app.config.get("LEADERBOARD_CACHE_TTL", 60)
    )

    # Import and register blueprints
    from takeboard.routes.api import bp as api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    # Register error handlers
    register_error_handlers(app)

    # Setup logging
    from takeboard.utils.logging_config import setup_logging

    setup_logging(app)

    # Create database tables
    with app.app_context():
        db.create_all()

    # Initialize and start background scheduler
    if not app.config.get("TESTING", False):
        from takeboard.services.scheduler_service import scheduler_service

        scheduler_service.init_app(app)

    return app


def register_error_handlers(app):
    """Register global error handlers"""
    from takeboard.errors import BackendUnavailable

    @app.errorhandler(BackendUnavailable)
    def handle_backend_unavailable(error):
        db.session.rollback()
        app.logger.error(f"Backend unavailable: {error} - Path: {request.path}")
        return jsonify({"success": False, "error": "Backend unavailable"}), 503

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({"success": False, "error": "Resource not found"}), 404

    @app.errorhandler(400)
    def bad_request_error(error):
        app.logger.warning(
            f"400 Bad Request: {str(error)} - Path: {request.path} - Method: {request.method}"
        )
        return jsonify({"success": False, "error": "Bad request"}), 400

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({"success": False, "error": "Method not allowed"}), 405

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return jsonify({"success": False, "error": "Internal server error"}), 500


from takeboard import models  # noqa: F401, E402 - imported for model registration
