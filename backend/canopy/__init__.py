# backend/canopy/__init__.py
from flask import Flask, jsonify, request

from .config import Config
from .extensions import db, migrate
from .logging_config import configure_logging
from .validation import DomainError


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)

    configure_logging(app)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.rooms import rooms_bp
    from .routes.inventory import inventory_bp
    from .routes.cultivation import cultivation_bp
    from .routes.conversions import conversions_bp
    from .routes.transfers import transfers_bp
    from .routes.audit import audit_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(rooms_bp)
    app.register_blueprint(inventory_bp)
    app.register_blueprint(cultivation_bp)
    app.register_blueprint(conversions_bp)
    app.register_blueprint(transfers_bp)
    app.register_blueprint(audit_bp)

    @app.errorhandler(DomainError)
    def handle_domain_error(error: DomainError):
        db.session.rollback()
        return jsonify({"error": str(error)}), error.status_code

    @app.errorhandler(500)
    def handle_internal_error(error):
        db.session.rollback()
        app.logger.error("Unhandled error on %s %s", request.method, request.path,
                         exc_info=getattr(error, "original_exception", None))
        return jsonify({"error": "Internal server error"}), 500

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin in app.config.get("CORS_ALLOWED_ORIGINS", ()):
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PATCH,DELETE,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
