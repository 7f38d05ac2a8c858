"""
errors.py: Error kinds raised by the OTP core and its collaborators.

Every error carries an HTTP status and a short machine-readable ``code`` so
the Flask layer can render them with a single handler.
"""


class OtpError(Exception):
    """Base class for all expected failures of the OTP service."""

    status_code = 400
    code = "otp_error"

    def __init__(self, message: str = None):
        super().__init__(message or self.default_message())

    @classmethod
    def default_message(cls) -> str:
        return cls.__name__

    @property
    def message(self) -> str:
        return str(self)


class AlreadyExists(OtpError):
    status_code = 409
    code = "already_exists"

    @classmethod
    def default_message(cls) -> str:
        return "User already exists"


class NotFound(OtpError):
    status_code = 404
    code = "not_found"

    @classmethod
    def default_message(cls) -> str:
        return "User not found"


class InvalidCode(OtpError):
    status_code = 401
    code = "invalid_code"

    @classmethod
    def default_message(cls) -> str:
        return "Invalid OTP"


class ReplayedCode(OtpError):
    status_code = 409
    code = "replayed_code"

    @classmethod
    def default_message(cls) -> str:
        return "OTP has already been used"


class RateLimited(OtpError):
    status_code = 429
    code = "rate_limited"

    @classmethod
    def default_message(cls) -> str:
        return "Too many failed attempts, try again later"


class DeliveryFailed(OtpError):
    status_code = 502
    code = "delivery_failed"

    @classmethod
    def default_message(cls) -> str:
        return "Failed to send OTP"


class ConfigurationError(OtpError):
    """Invalid TOTP / policy parameters. Raised at startup, fatal."""

    status_code = 500
    code = "configuration_error"
