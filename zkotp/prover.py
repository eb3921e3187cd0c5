"""
ZK-OTP Proof Assembly

Builds the witness for the OTP circuit, hands it to a proving oracle, checks
the result locally and reshapes it into ledger calldata.

Circuit inputs:
    private: secret, otp_code
    public:  hashed_secret, hashed_otp, time_step, action_hash, tx_nonce

Public signal order is fixed: [hashed_secret, hashed_otp, time_step,
action_hash, tx_nonce].
"""

import json
import logging
import secrets
import subprocess
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

import requests

from .errors import ProofGenerationError, ValidationError
from .field import FieldLike, parse_field
from .hashing import field_hash
from .proof import PUBLIC_SIGNAL_NAMES, Groth16Proof, SolidityCalldata, proof_to_calldata
from .verifier import VerifyingOracle

logger = logging.getLogger(__name__)

NONCE_BITS = 64

CircuitInputs = Dict[str, str]


def new_nonce() -> int:
    """Random transaction nonce."""
    return secrets.randbits(NONCE_BITS)


class ProvingOracle(ABC):
    """Produces a Groth16 proof from a full circuit input map."""

    @abstractmethod
    def prove(self, inputs: CircuitInputs) -> Groth16Proof:
        """
        Raises:
            ProofGenerationError: If the inputs do not satisfy the circuit
                or the prover fails
        """
        pass


class SnarkjsProvingOracle(ProvingOracle):
    """
    Prove with `snarkjs groth16 fullprove` (witness generation + proving).

    Inputs are written to a private temporary directory that is removed
    after the run.
    """

    def __init__(self, wasm_path: str, zkey_path: str, snarkjs_bin: str = "snarkjs", timeout: float = 120.0):
        self.wasm_path = wasm_path
        self.zkey_path = zkey_path
        self.snarkjs_bin = snarkjs_bin
        self.timeout = timeout

    def prove(self, inputs: CircuitInputs) -> Groth16Proof:
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            input_file = temp_path / "input.json"
            proof_file = temp_path / "proof.json"
            public_file = temp_path / "public.json"
            input_file.write_text(json.dumps(inputs))

            cmd = [
                self.snarkjs_bin, "groth16", "fullprove",
                str(input_file),
                str(self.wasm_path),
                str(self.zkey_path),
                str(proof_file),
                str(public_file)
            ]
            try:
                result = subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired as e:
                raise ProofGenerationError(f"Proof generation timed out after {self.timeout}s") from e
            except OSError as e:
                raise ProofGenerationError(f"Could not run snarkjs: {e}") from e

            if result.returncode != 0:
                raise ProofGenerationError(f"Proof generation failed: {result.stderr.strip()}")

            proof = json.loads(proof_file.read_text())
            public_signals = json.loads(public_file.read_text())

        return Groth16Proof.from_snarkjs(proof, public_signals)


class HttpProvingOracle(ProvingOracle):
    """
    Remote prover reached over HTTP.

    POSTs {"input": {...}} and expects {"proof": {...}, "publicSignals": [...]}.
    """

    def __init__(self, url: str, timeout: float = 120.0, session: Optional[requests.Session] = None):
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def prove(self, inputs: CircuitInputs) -> Groth16Proof:
        try:
            resp = self.session.post(self.url, json={"input": inputs}, timeout=self.timeout)
        except requests.RequestException as e:
            raise ProofGenerationError(f"Remote prover unreachable: {e}") from e

        if resp.status_code != 200:
            raise ProofGenerationError(f"Remote prover returned HTTP {resp.status_code}")
        try:
            body = resp.json()
            return Groth16Proof.from_snarkjs(body["proof"], body["publicSignals"])
        except (ValueError, KeyError, TypeError) as e:
            raise ProofGenerationError(f"Malformed prover response: {e}") from e


class ProofAssembler:
    """
    Assemble, prove, self-verify and reshape.

    Fails closed: any inconsistency between what was asked for and what came
    back raises ProofGenerationError.
    """

    def __init__(self, proving_oracle: ProvingOracle, verifying_oracle: VerifyingOracle):
        if verifying_oracle is None:
            raise ValueError("A verifying oracle is required for the local proof check")
        self.proving_oracle = proving_oracle
        self.verifying_oracle = verifying_oracle

    def build_inputs(
        self,
        secret_field: FieldLike,
        otp_code: int,
        time_step: int,
        action_hash: FieldLike,
        nonce: FieldLike,
        submitted_otp: Optional[int] = None
    ) -> CircuitInputs:
        secret = parse_field(secret_field, "secret")
        code = parse_field(otp_code, "otp_code")
        claimed = code if submitted_otp is None else parse_field(submitted_otp, "otp")
        return {
            "secret": str(secret),
            "otp_code": str(code),
            "hashed_secret": field_hash(secret),
            "hashed_otp": field_hash(claimed),
            "time_step": str(parse_field(time_step, "time_step")),
            "action_hash": str(parse_field(action_hash, "action_hash")),
            "tx_nonce": str(parse_field(nonce, "tx_nonce")),
        }

    def assemble(
        self,
        secret_field: FieldLike,
        otp_code: int,
        time_step: int,
        action_hash: FieldLike,
        nonce: FieldLike,
        submitted_otp: Optional[int] = None
    ) -> SolidityCalldata:
        """
        Produce ledger calldata proving knowledge of the secret and code.

        Args:
            secret_field: Secret projected into the field
            otp_code: Code computed server-side for time_step
            time_step: Time step the code belongs to
            action_hash: Action hash of the call being authorized
            nonce: Transaction nonce
            submitted_otp: Code the user submitted (defaults to otp_code)

        Raises:
            ProofGenerationError: On witness inconsistency or failed self-check
        """
        inputs = self.build_inputs(secret_field, otp_code, time_step, action_hash, nonce, submitted_otp)
        if inputs["hashed_otp"] != field_hash(int(inputs["otp_code"])):
            raise ProofGenerationError("Submitted code does not match the witness")

        proof = self.proving_oracle.prove(inputs)

        expected = [inputs[name] for name in PUBLIC_SIGNAL_NAMES]
        try:
            returned = [str(parse_field(s, "public_signals")) for s in proof.public_signals]
        except ValidationError as e:
            raise ProofGenerationError(f"Malformed public signals: {e}") from e
        if returned != expected:
            raise ProofGenerationError("Prover returned unexpected public signals")

        calldata = proof_to_calldata(proof)
        if not self.verifying_oracle.verify_calldata(calldata):
            raise ProofGenerationError("Generated proof failed local verification")

        logger.debug("Assembled proof for time step %s nonce %s", inputs["time_step"], inputs["tx_nonce"])
        return calldata
