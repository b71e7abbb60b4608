from datetime import datetime, timezone

import click
from flask import Flask
from flasgger import Swagger
from flask_cors import CORS

from .config import get_config, check_secrets
from .errors import register_error_handlers
from models import storage  # DBStorage singleton (scoped_session)
from services.credentials import CredentialValidator
from services.rotation import SessionService
from services.session_store import SQLSessionStore
from utils.security import TokenCodec, TokenSettings


# Minimal Swagger config: exposes /swagger.json and UI at /apidocs
SWAGGER_TEMPLATE = {
    "swagger": "2.0",
    "info": {
        "title": "Social Network API",
        "version": "1.0.0",
        "description": "Users and cookie-based sessions with rotating refresh tokens.",
    },
    "basePath": "/",  # blueprints are mounted under /api/v1
    "schemes": ["http", "https"],
    "securityDefinitions": {
        "Bearer": {
            "type": "apiKey",
            "name": "Authorization",
            "in": "header",
            "description": "Enter the token with the `Bearer ` prefix, e.g. \"Bearer abcde12345\"."
        }
    }
}

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec_1",
            "route": "/swagger.json",
            "rule_filter": lambda rule: True,   # include all endpoints
            "model_filter": lambda tag: True,   # include all models
        }
    ],
    "static_url_path": "/flasgger_static",
    "swagger_ui": True,
    "specs_route": "/apidocs/",
}


def init_sessions(app: Flask) -> SessionService:
    """Wire the session core from configuration: codec, store, validator."""
    codec = TokenCodec(TokenSettings.from_config(app.config))
    store = SQLSessionStore(storage, expiry_of=codec.peek_expiry)
    service = SessionService(
        store,
        codec,
        CredentialValidator(store),
        max_attempts=app.config["SESSION_UPDATE_ATTEMPTS"],
    )
    app.extensions["token_codec"] = codec
    app.extensions["session_store"] = store
    app.extensions["session_service"] = service
    return service


def create_app(config_name: str | None = None) -> Flask:
    """
    Application factory: creates and configures the Flask app.
    """
    app = Flask(__name__)

    # Load configuration (reads .env via get_config)
    app.config.from_object(get_config(config_name))
    check_secrets(app.config)

    # Cross-Origin Resource Sharing: enable for dev, configurable for prod
    CORS(app, resources={r"/*": {"origins": app.config.get("CORS_ORIGINS", "*")}})

    # Swagger UI and JSON
    Swagger(app, template=SWAGGER_TEMPLATE, config=SWAGGER_CONFIG)

    # Register global error handlers that return the uniform error envelope
    register_error_handlers(app)

    storage.reload(app.config["DATABASE_URL"])

    init_sessions(app)

    from .health import bp as health_bp
    from .auth import bp as auth_bp
    from .users import bp as users_bp

    app.register_blueprint(health_bp, url_prefix="/api/v1")
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(users_bp, url_prefix="/api/v1/users")

    # Ensure the DB session is removed at the end of each request/app context
    @app.teardown_appcontext
    def remove_session(exception=None):
        storage.close()

    @app.cli.command("purge-sessions")
    def purge_sessions():
        """Delete refresh tokens whose expiry has passed."""
        store = app.extensions["session_store"]
        removed = store.purge_expired(datetime.now(timezone.utc))
        click.echo(f"Purged {removed} expired refresh tokens")

    @app.route("/")
    def root():
        return {
            "message": "Welcome to the Social Network API",
            "docs": "/apidocs/",
            "health": "/api/v1/health",
        }, 200

    return app
