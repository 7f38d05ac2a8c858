"""
OTP BACKEND API ROUTES - FLASK BLUEPRINT

JSON endpoints for the second-factor flow. Every endpoint identifies the
account by its e-mail address.

Examples:
curl -X POST http://localhost:5000/register -H "Content-Type: application/json" -d '{"email": "a@x.com"}'
curl -X POST http://localhost:5000/send-otp -H "Content-Type: application/json" -d '{"email": "a@x.com"}'
curl -X POST http://localhost:5000/verify -H "Content-Type: application/json" -d '{"email": "a@x.com", "token": "123456"}'
curl http://localhost:5000/user/a@x.com
"""

import logging

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import BadRequest

from eauth.backend import qr_renderer
from eauth.backend.mailer import EmailCodeSender
from eauth.core.accounts import AccountService

logger = logging.getLogger(__name__)

otp_bp = Blueprint("otp", __name__)


def _service() -> AccountService:
    return current_app.extensions["eauth"]


def _require(*fields) -> list:
    """Pull required string fields from the JSON body, 400 if any is missing."""
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise BadRequest("JSON object body required")
    values = []
    for name in fields:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            raise BadRequest(f"'{name}' is required")
        values.append(value.strip())
    return values


@otp_bp.route("/health", methods=["GET"])
def health():
    return jsonify({"status": "ok"})


@otp_bp.route("/register", methods=["POST"])
def register():
    """
    Create an account and hand out its secret.

    Input:  {"email": "a@x.com"}
    Output: 201 {"email", "secret", "otpauth_uri", "qrCodeUrl", "state"}
            409 if the e-mail is already registered
    """
    (email,) = _require("email")
    registration = _service().register(email)

    return jsonify({
        "email": registration.account.identifier,
        "secret": registration.secret_b32,
        "otpauth_uri": registration.provisioning_uri,
        "qrCodeUrl": qr_renderer.render_data_url(registration.provisioning_uri),
        "state": registration.account.state.value,
    }), 201


@otp_bp.route("/send-otp", methods=["POST"])
def send_otp():
    """
    E-mail the current code to the account owner.

    Output: 200 {"message", "expires_in"}, 404 unknown user, 502 delivery failed
    """
    (email,) = _require("email")
    sender = EmailCodeSender(default_sender=current_app.config.get("MAIL_DEFAULT_SENDER"))
    remaining = _service().send_code(email, sender)
    return jsonify({"message": "OTP sent successfully", "expires_in": remaining})


@otp_bp.route("/verify", methods=["POST"])
def verify():
    """
    Check a submitted code.

    Input:  {"email": "a@x.com", "token": "123456"}
    Output: 200 {"message", "state"}; 401 invalid, 409 replayed, 429 rate limited
    """
    email, token = _require("email", "token")
    service = _service()
    service.verify(email, token)
    return jsonify({
        "message": "Authentication successful",
        "state": service.get_status(email).value,
    })


@otp_bp.route("/user/<string:email>", methods=["GET"])
def user_status(email):
    account = _service().get_account(email)
    return jsonify({
        "email": account.identifier,
        "state": account.state.value,
        "verified": account.verified,
    })


@otp_bp.route("/otpauth_uri/<string:email>", methods=["GET"])
def otpauth_uri(email):
    service = _service()
    account = service.get_account(email)
    return jsonify({"otpauth_uri": service.provisioning_uri(account), "email": account.identifier})


@otp_bp.route("/qr_code/<string:email>", methods=["GET"])
def qr_code(email):
    service = _service()
    account = service.get_account(email)
    uri = service.provisioning_uri(account)
    return jsonify({"qr_code": qr_renderer.render_data_url(uri), "email": account.identifier})
