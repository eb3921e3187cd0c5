"""
Groth16 proof shapes at the oracle and ledger boundaries.

Groth16Proof is what the proving oracle (snarkjs) produces: projective
coordinates as decimal strings, G2 coordinates in (real, imaginary) order.
SolidityCalldata is what the ledger verifier consumes: the projective
coordinate dropped, G2 pairs swapped to (imaginary, real), every value as
0x-prefixed 64-digit hex.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .errors import ValidationError
from .field import FieldLike, parse_field, to_hex32

PUBLIC_SIGNAL_NAMES = ("hashed_secret", "hashed_otp", "time_step", "action_hash", "tx_nonce")
N_PUBLIC = len(PUBLIC_SIGNAL_NAMES)


def _coord(value: FieldLike, name: str) -> int:
    # Curve coordinates live in the base field, not the scalar field.
    # Curve membership is checked by the verifier.
    if isinstance(value, int) and not isinstance(value, bool):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        try:
            parsed = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
        except ValueError:
            raise ValidationError(name, "must be a decimal or 0x-hex integer")
    else:
        raise ValidationError(name, "must be an integer")
    if parsed < 0 or parsed >= 2 ** 256:
        raise ValidationError(name, "out of range")
    return parsed


@dataclass
class Groth16Proof:
    """A snarkjs-format proof plus its public signals."""
    pi_a: List[str]
    pi_b: List[List[str]]
    pi_c: List[str]
    public_signals: List[str] = field(default_factory=list)

    @classmethod
    def from_snarkjs(cls, proof: Dict[str, Any], public_signals: Sequence[Any]) -> "Groth16Proof":
        try:
            pi_a = [str(v) for v in proof["pi_a"]]
            pi_b = [[str(v) for v in pair] for pair in proof["pi_b"]]
            pi_c = [str(v) for v in proof["pi_c"]]
        except (KeyError, TypeError) as e:
            raise ValidationError("proof", f"malformed snarkjs proof: {e}")
        if len(pi_a) < 2 or len(pi_c) < 2 or len(pi_b) < 2 or any(len(p) != 2 for p in pi_b[:2]):
            raise ValidationError("proof", "malformed snarkjs proof")
        return cls(pi_a, pi_b, pi_c, [str(s) for s in public_signals])

    def to_snarkjs(self) -> Dict[str, Any]:
        return {
            "pi_a": list(self.pi_a),
            "pi_b": [list(pair) for pair in self.pi_b],
            "pi_c": list(self.pi_c),
            "protocol": "groth16",
            "curve": "bn128",
        }


@dataclass
class SolidityCalldata:
    """Proof and public inputs exactly as the ledger verifier expects them."""
    a: List[str]
    b: List[List[str]]
    c: List[str]
    public_input: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"a": self.a, "b": self.b, "c": self.c, "publicInput": self.public_input}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolidityCalldata":
        try:
            public_input = data["publicInput"] if "publicInput" in data else data["public_input"]
            return cls(
                a=[to_hex32(_coord(v, "a")) for v in data["a"]],
                b=[[to_hex32(_coord(v, "b")) for v in pair] for pair in data["b"]],
                c=[to_hex32(_coord(v, "c")) for v in data["c"]],
                public_input=[to_hex32(parse_field(v, "public_input")) for v in public_input],
            )
        except (KeyError, TypeError) as e:
            raise ValidationError("proof", f"malformed calldata: {e}")

    def signals(self) -> List[int]:
        return [parse_field(v, "public_input") for v in self.public_input]


def proof_to_calldata(proof: Groth16Proof) -> SolidityCalldata:
    """
    Reshape a snarkjs proof into ledger calldata.

    Drops the projective coordinate and swaps each G2 coordinate pair.
    """
    a = [to_hex32(_coord(v, "pi_a")) for v in proof.pi_a[:2]]
    b = [
        [to_hex32(_coord(pair[1], "pi_b")), to_hex32(_coord(pair[0], "pi_b"))]
        for pair in proof.pi_b[:2]
    ]
    c = [to_hex32(_coord(v, "pi_c")) for v in proof.pi_c[:2]]
    public_input = [to_hex32(parse_field(s, "public_signals")) for s in proof.public_signals]
    return SolidityCalldata(a, b, c, public_input)


def calldata_to_proof(calldata: SolidityCalldata) -> Groth16Proof:
    """Inverse of proof_to_calldata: restore the snarkjs proof layout."""
    pi_a = [str(_coord(v, "a")) for v in calldata.a] + ["1"]
    pi_b = [[str(_coord(pair[1], "b")), str(_coord(pair[0], "b"))] for pair in calldata.b] + [["1", "0"]]
    pi_c = [str(_coord(v, "c")) for v in calldata.c] + ["1"]
    return Groth16Proof(pi_a, pi_b, pi_c, [str(s) for s in calldata.signals()])
