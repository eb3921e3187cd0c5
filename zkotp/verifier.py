"""
Verifying oracles.

A verifying oracle answers one question: does this Groth16 proof verify
against the fixed verification key for these public signals? Both the
proof assembler (self-check) and the ledger routine consult one.

- SnarkjsVerifyingOracle shells out to `snarkjs groth16 verify`.
- PairingVerifyingOracle runs the pairing equation in pure Python (py_ecc)
  against a snarkjs verification_key.json.
"""

import json
import logging
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Sequence, Union

from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    add,
    b as G1_COEFF,
    b2 as G2_COEFF,
    curve_order,
    is_on_curve,
    multiply,
    pairing,
)

from .errors import ValidationError
from .field import parse_field
from .proof import SolidityCalldata, calldata_to_proof

logger = logging.getLogger(__name__)

VerificationKey = Dict[str, Any]


def load_verification_key(path: Union[str, Path]) -> VerificationKey:
    with open(path) as f:
        return json.load(f)


class VerifyingOracle(ABC):
    """Checks a proof against public signals and a fixed verification key."""

    @abstractmethod
    def verify(self, a: Sequence, b: Sequence, c: Sequence, signals: Sequence) -> bool:
        """
        Verify a proof given in ledger calldata layout.

        Args:
            a: G1 point [x, y]
            b: G2 point [[x_im, x_re], [y_im, y_re]]
            c: G1 point [x, y]
            signals: Public signals in protocol order

        Returns:
            True if the proof verifies. Malformed input is False, not an error.
        """
        pass

    def verify_calldata(self, calldata: SolidityCalldata) -> bool:
        return self.verify(calldata.a, calldata.b, calldata.c, calldata.public_input)


def _calldata(a: Sequence, b: Sequence, c: Sequence, signals: Sequence) -> SolidityCalldata:
    return SolidityCalldata.from_dict({"a": list(a), "b": [list(p) for p in b], "c": list(c), "publicInput": list(signals)})


class SnarkjsVerifyingOracle(VerifyingOracle):
    """Verify with the snarkjs CLI."""

    def __init__(self, verification_key_path: str, snarkjs_bin: str = "snarkjs", timeout: float = 60.0):
        self.verification_key_path = verification_key_path
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    def verify(self, a: Sequence, b: Sequence, c: Sequence, signals: Sequence) -> bool:
        try:
            proof = calldata_to_proof(_calldata(a, b, c, signals))
        except ValidationError as e:
            logger.warning("Rejecting malformed proof: %s", e)
            return False

        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"
            proof_file.write_text(json.dumps(proof.to_snarkjs()))
            public_file.write_text(json.dumps(proof.public_signals))

            cmd = [
                self.snarkjs_bin, "groth16", "verify",
                str(self.verification_key_path),
                str(public_file),
                str(proof_file)
            ]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired:
                logger.error("snarkjs verify timed out after %ss", self.timeout)
                return False
            except OSError as e:
                logger.error("Could not run snarkjs: %s", e)
                return False

        ok = result.returncode == 0 and "OK" in result.stdout
        if not ok:
            logger.info("snarkjs rejected proof: %s", result.stdout.strip() or result.stderr.strip())
        return ok


def _g1(point: Sequence) -> tuple:
    return (FQ(int(point[0])), FQ(int(point[1])), FQ.one())


def _g2(point: Sequence) -> tuple:
    # snarkjs order: [[x_re, x_im], [y_re, y_im]]
    return (
        FQ2([int(point[0][0]), int(point[0][1])]),
        FQ2([int(point[1][0]), int(point[1][1])]),
        FQ2.one()
    )


class PairingVerifyingOracle(VerifyingOracle):
    """
    Pure Python Groth16 verifier over BN254.

    Checks e(A, B) == e(alpha, beta) * e(vk_x, gamma) * e(C, delta) where
    vk_x = IC[0] + sum(signal_i * IC[i+1]).
    """

    def __init__(self, verification_key: VerificationKey):
        try:
            self.alpha = _g1(verification_key["vk_alpha_1"])
            self.beta = _g2(verification_key["vk_beta_2"])
            self.gamma = _g2(verification_key["vk_gamma_2"])
            self.delta = _g2(verification_key["vk_delta_2"])
            self.ic = [_g1(p) for p in verification_key["IC"]]
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise ValueError(f"Invalid verification key: {e}") from e
        self.n_public = len(self.ic) - 1
        # e(alpha, beta) does not depend on the proof.
        self._alpha_beta = pairing(self.beta, self.alpha)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PairingVerifyingOracle":
        return cls(load_verification_key(path))

    def verify(self, a: Sequence, b: Sequence, c: Sequence, signals: Sequence) -> bool:
        try:
            proof = calldata_to_proof(_calldata(a, b, c, signals))
            inputs = [parse_field(s, "signals") for s in proof.public_signals]
        except ValidationError as e:
            logger.warning("Rejecting malformed proof: %s", e)
            return False

        if len(inputs) != self.n_public:
            return False
        if any(x >= curve_order for x in inputs):
            return False

        p_a = _g1(proof.pi_a)
        p_b = _g2(proof.pi_b)
        p_c = _g1(proof.pi_c)
        if not (is_on_curve(p_a, G1_COEFF) and is_on_curve(p_c, G1_COEFF) and is_on_curve(p_b, G2_COEFF)):
            return False

        vk_x = self.ic[0]
        for x, point in zip(inputs, self.ic[1:]):
            vk_x = add(vk_x, multiply(point, x))

        lhs = pairing(p_b, p_a)
        rhs = self._alpha_beta * pairing(self.gamma, vk_x) * pairing(self.delta, p_c)
        return lhs == rhs
