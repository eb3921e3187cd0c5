"""
ZK-OTP Hash Binding

Two hashes bind a proof to its meaning:

- field_hash: Poseidon over one field element. Used for the hashed secret
  and hashed OTP public signals. Must equal the circuit's Poseidon(1).
- action_hash: Keccak-256 over the tightly packed (target, value, payload)
  triple, reduced into the scalar field. Must equal what the ledger routine
  recomputes from the call it is about to make.

Packing layout (no padding, no length prefixes):
    target  : 20 bytes (address)
    value   : 32 bytes big-endian (uint256)
    payload : raw bytes, variable length
"""

import re
from typing import Union

from eth_utils import is_address, keccak, to_canonical_address

from .errors import ValidationError
from .field import FieldLike, parse_field, to_field
from .poseidon import poseidon

TARGET_SIZE = 20
VALUE_SIZE = 32
MAX_UINT256 = 2 ** 256 - 1

HEX_PAYLOAD_PATTERN = re.compile(r'^0x([0-9a-fA-F]{2})*$')

Target = Union[str, bytes]
Payload = Union[str, bytes]


def field_hash(x: FieldLike) -> str:
    """
    Poseidon hash of a single field element.

    Returns:
        The hash as a decimal string
    """
    return str(poseidon([parse_field(x, "x")]))


def encode_target(target: Target) -> bytes:
    """Encode a target address as exactly 20 bytes."""
    if isinstance(target, (bytes, bytearray)):
        if len(target) != TARGET_SIZE:
            raise ValidationError("target", f"must be {TARGET_SIZE} bytes")
        return bytes(target)
    if not isinstance(target, str) or not is_address(target):
        raise ValidationError("target", f"invalid address: {target!r}")
    return to_canonical_address(target)


def encode_value(value: Union[int, str]) -> bytes:
    """Encode a call value as a 32-byte big-endian unsigned integer."""
    if isinstance(value, bool):
        raise ValidationError("value", "must be an integer")
    if isinstance(value, str):
        try:
            value = int(value, 0) if value.lower().startswith("0x") else int(value, 10)
        except ValueError:
            raise ValidationError("value", "must be a decimal or 0x-hex integer")
    if not isinstance(value, int):
        raise ValidationError("value", "must be an integer")
    if value < 0 or value > MAX_UINT256:
        raise ValidationError("value", "must fit in uint256")
    return value.to_bytes(VALUE_SIZE, "big")


def encode_payload(payload: Payload) -> bytes:
    """Decode a call payload given as raw bytes or 0x-prefixed hex."""
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if not isinstance(payload, str) or not HEX_PAYLOAD_PATTERN.match(payload):
        raise ValidationError("payload", "must be bytes or 0x-prefixed even-length hex")
    return bytes.fromhex(payload[2:])


def pack_action(target: Target, value: Union[int, str], payload: Payload) -> bytes:
    """Tightly pack (target, value, payload) the way the ledger encodes it."""
    return encode_target(target) + encode_value(value) + encode_payload(payload)


def action_hash_int(target: Target, value: Union[int, str], payload: Payload) -> int:
    """Keccak-256 of the packed action, reduced into the scalar field."""
    digest = keccak(pack_action(target, value, payload))
    return to_field(int.from_bytes(digest, "big"))


def action_hash(target: Target, value: Union[int, str], payload: Payload) -> str:
    """
    Compute the action hash public signal.

    Returns:
        The field-reduced Keccak-256 digest as a decimal string
    """
    return str(action_hash_int(target, value, payload))


def verify_action_hash(declared: FieldLike, target: Target, value: Union[int, str], payload: Payload) -> bool:
    """Check that a declared action hash binds exactly this call."""
    return parse_field(declared, "action_hash") == action_hash_int(target, value, payload)
