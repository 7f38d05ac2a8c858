"""
Flask configuration for the OTP backend.

Values come from the environment (a local .env file is loaded first), so the
same code runs in development, tests and production without edits.
"""
import os

from dotenv import load_dotenv

from eauth.core.errors import ConfigurationError
from eauth.core.otp_core import TotpParameters
from eauth.core.policy import VerificationPolicy

# .env must be read before the Config class body runs
load_dotenv()

_BOOL_TRUE = {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in _BOOL_TRUE


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    DATABASE_FILE = os.environ.get("DATABASE_FILE", "eauth.db")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # TOTP
    OTP_ISSUER = os.environ.get("OTP_ISSUER", "E-Auth")
    OTP_DIGITS = _env_int("OTP_DIGITS", 6)
    OTP_PERIOD = _env_int("OTP_PERIOD", 30)
    OTP_WINDOW = _env_int("OTP_WINDOW", 1)
    OTP_ALGORITHM = os.environ.get("OTP_ALGORITHM", "SHA1").upper()
    OTP_SECRET_BYTES = _env_int("OTP_SECRET_BYTES", 20)

    # Attempt limiting
    MAX_FAILED_ATTEMPTS = _env_int("MAX_FAILED_ATTEMPTS", 5)
    FAILED_ATTEMPT_INTERVAL = _env_int("FAILED_ATTEMPT_INTERVAL", 300)

    # Flask-Mailman
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "smtp")
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = _env_int("MAIL_PORT", 587)
    MAIL_USERNAME = os.environ.get("EMAIL_USER")
    MAIL_PASSWORD = os.environ.get("EMAIL_PASS")
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", False)
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER") or os.environ.get("EMAIL_USER")
    MAIL_TIMEOUT = _env_int("MAIL_TIMEOUT", 10)


class TestingConfig(Config):
    TESTING = True
    SECRET_KEY = "test-secret-key"
    MAIL_BACKEND = "locmem"
    MAIL_DEFAULT_SENDER = "no-reply@example.com"
    LOG_LEVEL = "DEBUG"


def totp_parameters_from_config(config) -> TotpParameters:
    """Build and validate the TOTP parameters from a Flask config mapping."""
    return TotpParameters(
        period=config["OTP_PERIOD"],
        digits=config["OTP_DIGITS"],
        algorithm=config["OTP_ALGORITHM"],
        window=config["OTP_WINDOW"],
        secret_bytes=config["OTP_SECRET_BYTES"],
    ).validate()


def policy_from_config(config) -> VerificationPolicy:
    return VerificationPolicy(
        max_failures=config["MAX_FAILED_ATTEMPTS"],
        interval=config["FAILED_ATTEMPT_INTERVAL"],
    ).validate()
