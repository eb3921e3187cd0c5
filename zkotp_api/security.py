"""
Security module for the ZK-OTP service.

Input validation at the HTTP boundary, log sanitization and client
identification for rate limiting.
"""

import re
from typing import Any, Dict, List, Optional

from zkotp.errors import ValidationError
from zkotp.hashing import MAX_UINT256

# ============================================================
# Input Validation
# ============================================================

UID_PATTERN = re.compile(r'^[a-zA-Z0-9_.@+-]{1,128}$')
OTP_PATTERN = re.compile(r'^\d{6}$')
ADDRESS_PATTERN = re.compile(r'^0x[a-fA-F0-9]{40}$')
HEX_DATA_PATTERN = re.compile(r'^0x([a-fA-F0-9]{2})*$')
BASE32_PATTERN = re.compile(r'^[A-Za-z2-7 ]+=*$')

MAX_SECRET_LENGTH = 256
MAX_DATA_BYTES = 64 * 1024


def validate_uid(value: str) -> str:
    """Validate an account id."""
    if not isinstance(value, str) or not UID_PATTERN.match(value):
        raise ValidationError("uid", "must be 1-128 characters of [a-zA-Z0-9_.@+-]")
    return value


def validate_secret(value: str) -> str:
    """
    Validate a registration secret.

    Only shape and length are checked; the secret is decoded as base32 when
    a code is derived from it.
    """
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("secret", "cannot be empty")
    if len(value) > MAX_SECRET_LENGTH:
        raise ValidationError("secret", f"must not exceed {MAX_SECRET_LENGTH} characters")
    if not BASE32_PATTERN.match(value.strip()):
        raise ValidationError("secret", "must use the base32 alphabet")
    return value.strip()


def validate_otp(value: str) -> str:
    """Validate a submitted 6-digit code."""
    if not isinstance(value, str) or not OTP_PATTERN.match(value):
        raise ValidationError("otp", "must be exactly 6 digits")
    return value


def validate_address(value: str, field_name: str = "to") -> str:
    if not isinstance(value, str) or not ADDRESS_PATTERN.match(value):
        raise ValidationError(field_name, "must be a 0x-prefixed 20-byte hex address")
    return value


def validate_value(value: Any, field_name: str = "value") -> int:
    """Validate a call value (non-negative uint256, decimal or 0x-hex)."""
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be an integer")
    try:
        if isinstance(value, str):
            int_value = int(value, 16) if value.lower().startswith("0x") else int(value, 10)
        else:
            int_value = int(value)
    except (TypeError, ValueError):
        raise ValidationError(field_name, "must be an integer")

    if int_value < 0 or int_value > MAX_UINT256:
        raise ValidationError(field_name, "must fit in uint256")
    return int_value


def validate_hex_data(value: str, field_name: str = "data") -> str:
    if not isinstance(value, str) or not HEX_DATA_PATTERN.match(value):
        raise ValidationError(field_name, "must be 0x-prefixed even-length hex")
    if (len(value) - 2) // 2 > MAX_DATA_BYTES:
        raise ValidationError(field_name, f"must not exceed {MAX_DATA_BYTES} bytes")
    return value


# ============================================================
# Rate Limiting Helpers
# ============================================================

def extract_client_id(headers: Dict[str, str], peer: Optional[str] = None) -> str:
    """
    Extract a client identifier from request headers for rate limiting.
    Falls back to the peer address, then to a default.
    """
    api_key = headers.get("x-api-key", "")
    if api_key:
        return f"api:{api_key[:8]}"

    forwarded = headers.get("x-forwarded-for", "")
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"

    if peer:
        return f"ip:{peer}"

    return "anonymous"


# ============================================================
# Audit Logging Helpers
# ============================================================

def sanitize_for_logging(data: Dict[str, Any], sensitive_fields: List[str] = None) -> Dict[str, Any]:
    """
    Sanitize data for logging by masking sensitive fields.

    Args:
        data: The data to sanitize
        sensitive_fields: List of field names to mask

    Returns:
        Sanitized copy of the data
    """
    if sensitive_fields is None:
        sensitive_fields = ["secret", "otp", "otp_code", "password", "master_password", "token"]

    result = {}
    for key, value in data.items():
        if key in sensitive_fields:
            result[key] = "[REDACTED]"
        elif isinstance(value, dict):
            result[key] = sanitize_for_logging(value, sensitive_fields)
        elif isinstance(value, list):
            result[key] = [
                sanitize_for_logging(item, sensitive_fields) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            result[key] = value

    return result
