"""
eauth.core
==========

TOTP (RFC 6238) / HOTP (RFC 4226) logic and the account services built on it.

──────────────────────────────────────────────
Core algorithm
──────────────────────────────────────────────
- HOTP: code = Truncate(HMAC(key=secret, msg=counter)) mod 10^digits
- TOTP: HOTP with counter = floor((timestamp - T0) / period)
  → default period 30 s, 6 digits, HMAC-SHA1.
- Dynamic truncation: 4 bytes read at offset (last byte & 0x0F), top bit
  cleared.

──────────────────────────────────────────────
Quick example
──────────────────────────────────────────────
>>> from eauth.core import generate_secret, totp, verify
>>> secret = generate_secret()
>>> code, remaining = totp(secret)
>>> verify(secret, code).matched
True
"""
from eauth.core.otp_core import (
    TotpParameters,
    VerifyResult,
    decode_secret,
    derive_code,
    encode_secret,
    format_otpauth_uri,
    generate_secret,
    time_step,
    totp,
    verify,
)

__all__ = [
    "TotpParameters",
    "VerifyResult",
    "decode_secret",
    "derive_code",
    "encode_secret",
    "format_otpauth_uri",
    "generate_secret",
    "time_step",
    "totp",
    "verify",
]
