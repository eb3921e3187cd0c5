"""
BN254 Scalar Field Helpers

All hashing and proving happens over the scalar field of the BN254 curve.
Values cross the proving and ledger boundaries as decimal strings (snarkjs
signals) or 0x-prefixed hex (ledger calldata); parse_field accepts both.
"""

from typing import Union

from .errors import ValidationError

FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

FieldLike = Union[int, str]


def to_field(value: int) -> int:
    """Reduce an integer into the scalar field."""
    return value % FIELD_MODULUS


def secret_to_field(secret_bytes: bytes) -> int:
    """Project raw secret bytes (big-endian) onto a field element."""
    return to_field(int.from_bytes(secret_bytes, "big"))


def parse_field(value: FieldLike, field_name: str = "value") -> int:
    """
    Parse a field element from an int, a decimal string or a 0x hex string.

    Raises:
        ValidationError: If the value is not a canonical field element
    """
    if isinstance(value, bool):
        raise ValidationError(field_name, "must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            if text.lower().startswith("0x"):
                parsed = int(text, 16)
            else:
                parsed = int(text, 10)
        except ValueError:
            raise ValidationError(field_name, "must be a decimal or 0x-hex integer")
    else:
        raise ValidationError(field_name, f"unsupported type {type(value).__name__}")

    if parsed < 0 or parsed >= FIELD_MODULUS:
        raise ValidationError(field_name, "must be in the scalar field")
    return parsed


def to_hex32(value: int) -> str:
    """Format a field element as 0x-prefixed 64-digit hex."""
    return "0x" + format(value, "064x")
