"""Application factory for the Powerlifting Federation Management System."""

from __future__ import annotations

from flask import Flask, jsonify

from pfms.blueprints.admin import admin_bp
from pfms.blueprints.api import api_bp
from pfms.blueprints.auth import auth_bp
from pfms.config import Config
from pfms.errors import register_error_handlers
from pfms.extensions import (
    db,
    migrate,
    login_manager,
    csrf,
    limiter,
)
from pfms.models import User


def create_app(config_class=Config):
    """Create Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Flask extensions
    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)
    csrf.init_app(app)
    limiter.init_app(app)

    @login_manager.user_loader
    def load_user(user_id: str):
        return db.session.get(User, user_id)

    @login_manager.unauthorized_handler
    def handle_unauthorized():
        return jsonify({'error': 'Unauthorized', 'message': 'Authentication required'}), 401

    # Ensure models are registered for migrations
    import pfms.models  # noqa: F401

    # JSON APIs authenticate with the session cookie and are not form posts
    csrf.exempt(auth_bp)
    csrf.exempt(api_bp)
    csrf.exempt(admin_bp)

    # Register blueprints
    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(admin_bp, url_prefix='/admin')
    app.register_blueprint(api_bp, url_prefix='/api/v1')

    @app.teardown_appcontext
    def teardown_db(exception):
        db.session.remove()

    register_error_handlers(app)

    # Register CLI commands
    from pfms.commands import register_commands
    register_commands(app)

    return app


__all__ = ['create_app']
