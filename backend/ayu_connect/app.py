import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException

from ayu_connect.clock import SystemClock
from ayu_connect.config import Config
from ayu_connect.context import EXTENSION_KEY, AppServices
from ayu_connect.database import Database
from ayu_connect.errors import DomainError
from ayu_connect.routes import register_blueprints
from ayu_connect.services import DigiLockerClient, FileStorage

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(level):
    logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("ayu_connect").setLevel(level)


def error_body(message, status, data=None):
    body = {"success": False, "message": message}
    if data is not None:
        body["data"] = data
    return jsonify(body), status


def create_app(config=None, clock=None, digilocker=None, **overrides):
    """Application factory.

    ``clock`` and ``digilocker`` are injectable so tests can freeze time and
    stub the identity provider.
    """
    app = Flask(__name__)
    app.config.from_object(config or Config)
    app.config.update(overrides)

    configure_logging(app.config["LOG_LEVEL"])

    CORS(app)
    jwt = JWTManager(app)

    @jwt.unauthorized_loader
    def missing_token(reason):
        return error_body("Not authorized to access this route", 401)

    @jwt.invalid_token_loader
    def invalid_token(reason):
        logger.warning("[AUTH] Invalid bearer token: %s", reason)
        return error_body("Invalid token", 401)

    @jwt.expired_token_loader
    def expired_token(jwt_header, jwt_payload):
        return error_body("Token has expired, please log in again", 401)

    database = Database(app.config["DATABASE_URL"])
    database.create_all()

    app.extensions[EXTENSION_KEY] = AppServices(
        database=database,
        clock=clock or SystemClock(),
        storage=FileStorage(app.config["UPLOAD_FOLDER"]),
        digilocker=digilocker or DigiLockerClient.from_config(app.config),
    )

    register_blueprints(app)
    register_error_handlers(app)

    @app.route("/health", methods=["GET"])
    def health():
        """Health check endpoint"""
        return jsonify({"status": "ok", "message": "Server is running"}), 200

    @app.route("/api/health", methods=["GET"])
    def health_check():
        return jsonify({"status": "healthy", "message": "Ayu Connect API is running"})

    return app


def register_error_handlers(app):
    @app.errorhandler(DomainError)
    def handle_domain_error(error):
        if error.status_code >= 500:
            logger.error("[ERROR] %s: %s", type(error).__name__, error.message)
        return error_body(error.message, error.status_code, error.data)

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        if error.code == 413:
            return error_body("File too large", 413)
        return error_body(error.description or error.name, error.code)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        logger.exception("[ERROR] Unhandled error")
        message = f"Server error: {error}" if app.debug else "Server error"
        return error_body(message, 500)


if __name__ == "__main__":
    create_app().run(host="0.0.0.0", port=8080, debug=False, use_reloader=False)
