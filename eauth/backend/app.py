"""
FLASK APP FACTORY - OTP BACKEND SERVER

Builds the Flask app: configuration, logging, CORS, Flask-Mailman, the
account service and the API blueprint. Nothing is created at import time;
call ``create_app()``.

Run the development server with:
    python -m eauth.backend.app
"""
import logging

from flask import Flask, jsonify
from flask_cors import CORS
from flask_mailman import Mail
from werkzeug.exceptions import HTTPException

from eauth.backend.config import Config, policy_from_config, totp_parameters_from_config
from eauth.backend.logging_config import configure_logging
from eauth.backend.routes import otp_bp
from eauth.core.accounts import AccountService
from eauth.core.errors import OtpError
from eauth.database.db_manager import SqliteAccountStore

logger = logging.getLogger(__name__)

mail = Mail()


def create_app(config_object=Config, **overrides) -> Flask:
    """
    Application factory.

    Arguments:
        config_object: class or object passed to ``app.config.from_object``
        overrides: individual config keys, applied last (handy in tests)

    Raises:
        ConfigurationError: invalid TOTP or attempt-limit settings (fatal)
    """
    app = Flask(__name__)
    app.config.from_object(config_object)
    app.config.update(overrides)

    configure_logging(app.config.get("LOG_LEVEL", "INFO"))

    # Allow a frontend on another origin to call the API
    CORS(app)
    mail.init_app(app)

    store = SqliteAccountStore(app.config["DATABASE_FILE"])
    app.extensions["eauth"] = AccountService(
        store,
        params=totp_parameters_from_config(app.config),
        policy=policy_from_config(app.config),
        issuer=app.config["OTP_ISSUER"],
    )

    app.register_blueprint(otp_bp)
    _register_error_handlers(app)

    logger.info("OTP backend ready (database=%s)", app.config["DATABASE_FILE"])
    return app


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(OtpError)
    def handle_otp_error(error: OtpError):
        return jsonify({"error": error.message, "code": error.code}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error: HTTPException):
        return jsonify({"error": error.description, "code": error.name.lower().replace(" ", "_")}), error.code


if __name__ == "__main__":
    create_app().run(debug=True, host="0.0.0.0", port=5000)
