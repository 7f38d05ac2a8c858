"""
otp_core.py: Core library for TOTP / HOTP (RFC 4226 / RFC 6238).

Goals:
- Pure functions only, used directly by the account service, the REST API
  and the CLI. No file, database or network access here.
- HMAC derivation, dynamic truncation and base-32 handling are implemented
  on top of ``hmac`` / ``hashlib`` / ``base64``; no OTP library is needed at
  runtime.

Security notes:
- Secrets come from ``os.urandom`` (CSPRNG) and are never logged.
- Submitted codes are compared with ``hmac.compare_digest``.
"""

from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import quote, urlencode
import base64
import binascii
import hashlib
import hmac
import os
import struct
import time

from eauth.core.errors import ConfigurationError

# --- Config / constants ----------------------------------------------------
DEFAULT_DIGITS = 6          # standard: 6 digits
DEFAULT_TIME_STEP = 30      # TOTP step (seconds)
DEFAULT_WINDOW = 1          # +/- steps accepted during verification
DEFAULT_ALGORITHM = "SHA1"  # what Google Authenticator & co. expect
SECRET_BYTES = 20           # 160-bit secret (RFC 4226 recommendation)
MIN_SECRET_BYTES = 16
MIN_DIGITS, MAX_DIGITS = 6, 8
MAX_WINDOW = 10

ALGORITHMS = {
    "SHA1": hashlib.sha1,
    "SHA256": hashlib.sha256,
    "SHA512": hashlib.sha512,
}


@dataclass(frozen=True)
class TotpParameters:
    """Process-wide TOTP settings. Validate once at startup."""

    period: int = DEFAULT_TIME_STEP
    digits: int = DEFAULT_DIGITS
    algorithm: str = DEFAULT_ALGORITHM
    window: int = DEFAULT_WINDOW
    secret_bytes: int = SECRET_BYTES
    t0: int = 0

    def validate(self) -> "TotpParameters":
        """
        Check every parameter and raise ``ConfigurationError`` on the first
        bad one. Returns ``self`` so it can be chained at construction time.
        """
        if not isinstance(self.period, int) or self.period <= 0:
            raise ConfigurationError(f"period must be a positive integer, got {self.period!r}")
        if not isinstance(self.digits, int) or not MIN_DIGITS <= self.digits <= MAX_DIGITS:
            raise ConfigurationError(
                f"digits must be between {MIN_DIGITS} and {MAX_DIGITS}, got {self.digits!r}"
            )
        if self.algorithm not in ALGORITHMS:
            raise ConfigurationError(
                f"algorithm must be one of {sorted(ALGORITHMS)}, got {self.algorithm!r}"
            )
        if not isinstance(self.window, int) or not 0 <= self.window <= MAX_WINDOW:
            raise ConfigurationError(f"window must be between 0 and {MAX_WINDOW}, got {self.window!r}")
        if not isinstance(self.secret_bytes, int) or self.secret_bytes < MIN_SECRET_BYTES:
            raise ConfigurationError(
                f"secret_bytes must be at least {MIN_SECRET_BYTES}, got {self.secret_bytes!r}"
            )
        if not isinstance(self.t0, int) or self.t0 < 0:
            raise ConfigurationError(f"t0 must be a non-negative integer, got {self.t0!r}")
        return self


@dataclass(frozen=True)
class VerifyResult:
    matched: bool
    matched_step: Optional[int] = None


# --- Secret generation / encoding -----------------------------------------
def generate_secret(length: int = SECRET_BYTES) -> bytes:
    """
    Generate a fresh random shared secret.

    - ``length`` bytes from ``os.urandom`` (CSPRNG, never ``random``).
    - Nothing is persisted or logged here.

    Raises:
        ConfigurationError: if ``length`` is below MIN_SECRET_BYTES.
    """
    if length < MIN_SECRET_BYTES:
        raise ConfigurationError(f"Secret length must be at least {MIN_SECRET_BYTES} bytes")
    return os.urandom(length)


def encode_secret(raw: bytes) -> str:
    """
    Base-32 encode a raw secret (RFC 4648, uppercase, no '=' padding).

    Example: encode_secret(b"12345678901234567890") -> "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
    """
    return base64.b32encode(raw).decode("ascii").rstrip("=")


def decode_secret(secret_b32: str) -> bytes:
    """
    Decode a base-32 secret back to raw bytes.

    - Case-insensitive, whitespace and dashes are ignored (authenticator apps
      often show the secret in groups).
    - Missing '=' padding is restored before decoding.

    Raises:
        ValueError: if the text is not valid base-32.
    """
    cleaned = "".join(secret_b32.split()).replace("-", "").upper()
    cleaned += "=" * (-len(cleaned) % 8)
    try:
        return base64.b32decode(cleaned, casefold=True)
    except binascii.Error as e:
        raise ValueError("Invalid Base32 secret") from e


# --- RFC helpers -----------------------------------------------------------
def int_to_bytes(i: int) -> bytes:
    """
    Convert the counter to the 8-byte big-endian message RFC 4226 requires.

    Example: int_to_bytes(1) -> b'\\x00\\x00\\x00\\x00\\x00\\x00\\x00\\x01'
    """
    if i < 0:
        raise ValueError("counter must be non-negative")
    return struct.pack(">Q", i)


def dynamic_truncate(hmac_digest: bytes) -> int:
    """
    RFC 4226 dynamic truncation.

    - offset = low 4 bits of the last digest byte
    - read 4 bytes from offset, clear the top bit of the first one
    - return the resulting 31-bit unsigned integer
    """
    offset = hmac_digest[-1] & 0x0F
    return (
        ((hmac_digest[offset] & 0x7F) << 24)
        | ((hmac_digest[offset + 1] & 0xFF) << 16)
        | ((hmac_digest[offset + 2] & 0xFF) << 8)
        | (hmac_digest[offset + 3] & 0xFF)
    )


def derive_code(
    secret: bytes,
    step: int,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> str:
    """
    Derive the one-time code for a counter / time step (HOTP, RFC 4226).

    Steps:
    1. Message = 8-byte big-endian counter
    2. HMAC(key=secret, msg) with the configured hash
    3. Dynamic truncate -> 31-bit integer
    4. code = value % 10^digits
    5. Zero-pad to exactly ``digits`` characters

    Same secret + same step always gives the same code.
    """
    digest = hmac.new(secret, int_to_bytes(step), ALGORITHMS[algorithm]).digest()
    value = dynamic_truncate(digest) % (10 ** digits)
    return str(value).zfill(digits)


def time_step(timestamp: float, period: int = DEFAULT_TIME_STEP, t0: int = 0) -> int:
    """TOTP counter: floor((timestamp - T0) / period)."""
    return int((int(timestamp) - t0) // period)


def totp(
    secret: bytes,
    timestamp: float = None,
    period: int = DEFAULT_TIME_STEP,
    t0: int = 0,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Tuple[str, int]:
    """
    Current TOTP code for ``secret`` (RFC 6238).

    Returns:
        (code, remaining_seconds), where remaining is how long the code stays
        in its own time step.
    """
    if timestamp is None:
        timestamp = time.time()
    timestamp = int(timestamp)
    code = derive_code(secret, time_step(timestamp, period, t0), digits, algorithm)
    remaining = period - ((timestamp - t0) % period)
    return code, remaining


def _normalize_code(code, digits: int) -> Optional[str]:
    if not isinstance(code, str):
        return None
    code = code.strip().replace(" ", "")
    if len(code) != digits or not (code.isascii() and code.isdigit()):
        return None
    return code


def verify(
    secret: bytes,
    code: str,
    now: float = None,
    window: int = DEFAULT_WINDOW,
    period: int = DEFAULT_TIME_STEP,
    t0: int = 0,
    digits: int = DEFAULT_DIGITS,
    algorithm: str = DEFAULT_ALGORITHM,
) -> VerifyResult:
    """
    Check a submitted code against steps ``current - window .. current + window``.

    - Every candidate is compared with ``hmac.compare_digest``; the loop
      always runs over all candidates so timing does not reveal which step
      matched.
    - Codes of the wrong length (or non-digits) never match, but the same
      fixed-length comparisons are still performed against a probe value.
    - Negative steps (only possible near T0) are skipped.

    Returns:
        VerifyResult(matched, matched_step). matched_step is the newest
        step that matched, so callers can block reuse of that step.
    """
    if now is None:
        now = time.time()
    probe = _normalize_code(code, digits)
    candidate = probe if probe is not None else "\x00" * digits

    current = time_step(now, period, t0)
    matched_step = None
    for offset in range(-window, window + 1):
        step = current + offset
        if step < 0:
            continue
        expected = derive_code(secret, step, digits, algorithm)
        if hmac.compare_digest(expected, candidate) and probe is not None:
            matched_step = step
    return VerifyResult(matched_step is not None, matched_step)


# --- Provisioning -----------------------------------------------------------
def format_otpauth_uri(
    secret: bytes,
    account: str,
    issuer: str,
    algorithm: str = DEFAULT_ALGORITHM,
    digits: int = DEFAULT_DIGITS,
    period: int = DEFAULT_TIME_STEP,
) -> str:
    """
    Build the otpauth:// key URI authenticator apps import (usually via QR).

    Format:
        otpauth://totp/{issuer}:{account}?secret=...&issuer=...&algorithm=...&digits=...&period=...

    Issuer and account are percent-encoded; the secret is unpadded
    uppercase base-32.
    """
    label = f"{quote(issuer, safe='')}:{quote(account, safe='@')}"
    query = urlencode(
        {
            "secret": encode_secret(secret),
            "issuer": issuer,
            "algorithm": algorithm,
            "digits": digits,
            "period": period,
        },
        quote_via=quote,
    )
    return f"otpauth://totp/{label}?{query}"
