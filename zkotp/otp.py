"""
Time-Based One-Time Codes

HOTP/TOTP code derivation (RFC 4226 dynamic truncation over RFC 6238 time
steps), restricted to the parameters the circuit hard-codes: HMAC-SHA1,
30-second steps, 6 digits.
"""

import base64
import hashlib
import hmac
import secrets
import struct
import time
from typing import Optional

from .errors import ValidationError

PERIOD_SECONDS = 30
DIGITS = 6
CODE_MODULUS = 10 ** DIGITS
SECRET_SIZE = 20
BASE32_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"


def time_step(now: Optional[float] = None, period: int = PERIOD_SECONDS) -> int:
    """Return floor(unix_seconds / period)."""
    if now is None:
        now = time.time()
    return int(now // period)


def compute_code(secret_bytes: bytes, step: int) -> int:
    """
    Compute the 6-digit one-time code for a time step.

    Args:
        secret_bytes: Raw shared secret (HMAC key)
        step: Time step counter

    Returns:
        Integer code in [0, 1000000)
    """
    if step < 0:
        raise ValidationError("time_step", "must be non-negative")

    digest = hmac.new(secret_bytes, struct.pack(">Q", step), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return binary % CODE_MODULUS


def format_code(code: int) -> str:
    """Zero-pad a code to its display width."""
    return str(code).zfill(DIGITS)


def decode_secret(secret: str) -> bytes:
    """
    Decode an authenticator secret (base32, padding optional).

    Decoding is lenient the way authenticator apps are: '=' is ignored and
    leftover bits of a short final group are kept as one more byte when
    they are non-zero, so secrets such as "S3CR3T" still yield a key.

    Raises:
        ValidationError: If the secret contains non-base32 characters or
            decodes to no bytes
    """
    if not isinstance(secret, str) or not secret.strip():
        raise ValidationError("secret", "must be a non-empty base32 string")

    normalized = secret.strip().replace(" ", "").replace("=", "").upper()
    out = bytearray()
    acc = 0
    bits = 0
    for char in normalized:
        index = BASE32_ALPHABET.find(char)
        if index < 0:
            raise ValidationError("secret", "must be valid base32")
        acc = ((acc << 5) | index) & 0xFFFF
        bits += 5
        if bits >= 8:
            bits -= 8
            out.append((acc >> bits) & 0xFF)

    leftover = acc & ((1 << bits) - 1)
    if leftover:
        out.append((leftover << (8 - bits)) & 0xFF)
    if not out:
        raise ValidationError("secret", "must be valid base32")
    return bytes(out)


def generate_secret(size: int = SECRET_SIZE) -> str:
    """Generate a random base32 secret without padding."""
    return base64.b32encode(secrets.token_bytes(size)).decode("ascii").rstrip("=")


def current_code(secret: str, now: Optional[float] = None) -> str:
    """Code an authenticator app would display right now for this secret."""
    return format_code(compute_code(decode_secret(secret), time_step(now)))
