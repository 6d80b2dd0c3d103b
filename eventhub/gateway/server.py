"""
API gateway: wires services, blueprints and the Socket.IO server together.
This is the entrypoint for local development and deployment.
"""

import logging
from typing import Optional

import socketio
from flask import Flask, jsonify, request, send_from_directory
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from eventhub.auth_service.routes import auth_bp
from eventhub.auth_service.users import UserService
from eventhub.auth_service.utils import TokenService
from eventhub.config import Settings
from eventhub.database.db_connection import Database
from eventhub.errors import AppError, InternalError
from eventhub.events_service.routes import events_bp
from eventhub.events_service.service import EventService
from eventhub.events_service.storage import ImageStorage
from eventhub.extensions import EXTENSION_KEY, Services
from eventhub.realtime.socket_manager import NotificationHub


def configure_logging(level: str = "INFO") -> None:
    # Basic console logging during API requests
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(asctime)s - %(message)s",
    )


def register_error_handlers(app: Flask, development: bool) -> None:
    @app.errorhandler(AppError)
    def handle_app_error(error: AppError):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({"error": "Route not found", "path": request.path}), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        # Werkzeug names become stable tags: "Method Not Allowed" -> "MethodNotAllowed"
        return jsonify({"error": error.description, "code": error.name.replace(" ", "")}), error.code

    @app.errorhandler(Exception)
    def handle_unexpected(error: Exception):
        logging.exception(f"Unhandled error on {request.method} {request.path}")
        body = InternalError().to_dict()
        if development:
            body["detail"] = repr(error)
        return jsonify(body), 500


def create_app(
    settings: Optional[Settings] = None,
    db=None,
    hub: Optional[NotificationHub] = None,
) -> Flask:
    """
    Application factory for creating the Flask app.

    Args:
        settings: Configuration; read from the environment when omitted.
        db: Database handle; a pooled `Database` on settings.database_url when omitted.
        hub: Notification hub; a new Socket.IO hub when omitted.

    Returns:
        Flask: The configured Flask application.
    """
    settings = settings or Settings.from_env()
    configure_logging(settings.log_level)

    app = Flask(__name__)
    CORS(app, resources={
        r"/*": {
            "origins": settings.cors_origins,
            "methods": ["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            "allow_headers": ["Content-Type", "Authorization"],
            "supports_credentials": True,
        }
    })

    # --- SERVICES ---
    if db is None:
        db = Database(settings.database_url, settings.db_pool_min, settings.db_pool_max)
    tokens = TokenService(settings.jwt_secret, settings.token_expiration_minutes)
    if hub is None:
        hub = NotificationHub(cors_allowed_origins=settings.cors_origins, token_service=tokens)
    storage = ImageStorage(settings.upload_folder, settings.max_image_bytes)

    app.extensions[EXTENSION_KEY] = Services(
        settings=settings,
        db=db,
        tokens=tokens,
        users=UserService(db),
        events=EventService(db, storage=storage, hub=hub),
        hub=hub,
    )
    app.config["UPLOAD_FOLDER"] = storage.upload_folder

    # --- REGISTER BLUEPRINTS ---
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(events_bp, url_prefix="/api/events")
    register_error_handlers(app, settings.development)

    # Socket.IO traffic is answered before Flask sees it
    app.wsgi_app = socketio.WSGIApp(hub.sio, app.wsgi_app)

    @app.route("/uploads/<path:filename>")
    def uploaded_file(filename: str):
        return send_from_directory(app.config["UPLOAD_FOLDER"], filename)

    # --- BASIC HEALTH CHECKPOINTS ---
    @app.route("/")
    def ping():
        """
        Root URL for simple 'online' check.
        """
        return jsonify({"status": "gateway_ok"}), 200

    @app.route("/health")
    def health():
        """
        Health check endpoint.
        """
        return jsonify({"status": "ok"}), 200

    logging.info(f"Gateway ready ({settings.app_env} mode)")
    return app


def main() -> None:
    settings = Settings.from_env()
    app = create_app(settings)
    db = app.extensions[EXTENSION_KEY].db
    try:
        app.run(host="0.0.0.0", port=settings.port, debug=settings.development, threaded=True, use_reloader=False)
    finally:
        db.close()


if __name__ == "__main__":
    main()
