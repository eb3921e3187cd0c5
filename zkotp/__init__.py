"""
ZK-OTP Authorization Protocol

Version: 1.0.0

Zero-knowledge one-time-password authorization for ledger actions.

A user proves, without revealing their authenticator secret, that they hold
the code valid for the current 30-second time step, and binds that proof to
exactly one call (target, value, payload). A ledger-resident routine executes
the call at most once per proof.

Public signals, in order:
    [hashed_secret, hashed_otp, time_step, action_hash, tx_nonce]

Usage:
    from zkotp import (
        SecretVault,
        InMemoryAccountStore,
        StaticMasterKeyProvider,
        ProofAssembler,
        OTPAuthService,
        AuthorizationRoutine,
    )

    vault = SecretVault(InMemoryAccountStore(), StaticMasterKeyProvider(b"..."))
    service = OTPAuthService(vault, ProofAssembler(prover, verifier))

    service.register("alice", "JBSWY3DPEHPK3PXP")
    calldata = service.authorize("alice", "123456", to, value, data)

    # On the ledger side
    routine.execute(to, value, data, calldata, calldata.public_input)
"""

__version__ = "1.0.0"

# Errors
from .errors import (
    ZKOTPError,
    ValidationError,
    NotFound,
    AlreadyExists,
    DecryptionError,
    StoreUnavailable,
    ProofGenerationError,
    ProverTimeout,
    RejectReason,
    LedgerRejection,
    InvalidProof,
    InvalidHashedSecret,
    ActionHashMismatch,
    NonceReused,
    ActionExecutionFailed,
    NotOwner,
)

# Field and hashing
from .field import FIELD_MODULUS, to_field, secret_to_field, parse_field
from .poseidon import poseidon
from .hashing import field_hash, action_hash, pack_action, verify_action_hash

# One-time codes
from .otp import compute_code, time_step, decode_secret, generate_secret, format_code

# Secret storage
from .keys import (
    MasterKeyProvider,
    StaticMasterKeyProvider,
    EnvMasterKeyProvider,
    FileMasterKeyProvider,
    AwsSecretsManagerProvider,
    get_master_key_provider,
)
from .store import AccountRecord, AccountStore, InMemoryAccountStore, SqliteAccountStore
from .vault import SecretVault

# Proofs
from .proof import Groth16Proof, SolidityCalldata, proof_to_calldata, calldata_to_proof
from .prover import ProvingOracle, SnarkjsProvingOracle, HttpProvingOracle, ProofAssembler
from .verifier import VerifyingOracle, SnarkjsVerifyingOracle, PairingVerifyingOracle

# Ledger
from .ledger import (
    AuthorizationRoutine,
    BooleanGateRoutine,
    CallDispatcher,
    CallResult,
    InMemoryLedger,
    LedgerEvent,
)

# Request level
from .service import OTPAuthService, ProverPool


__all__ = [
    # Version
    "__version__",

    # Errors
    "ZKOTPError",
    "ValidationError",
    "NotFound",
    "AlreadyExists",
    "DecryptionError",
    "StoreUnavailable",
    "ProofGenerationError",
    "ProverTimeout",
    "RejectReason",
    "LedgerRejection",
    "InvalidProof",
    "InvalidHashedSecret",
    "ActionHashMismatch",
    "NonceReused",
    "ActionExecutionFailed",
    "NotOwner",

    # Field and hashing
    "FIELD_MODULUS",
    "to_field",
    "secret_to_field",
    "parse_field",
    "poseidon",
    "field_hash",
    "action_hash",
    "pack_action",
    "verify_action_hash",

    # One-time codes
    "compute_code",
    "time_step",
    "decode_secret",
    "generate_secret",
    "format_code",

    # Secret storage
    "MasterKeyProvider",
    "StaticMasterKeyProvider",
    "EnvMasterKeyProvider",
    "FileMasterKeyProvider",
    "AwsSecretsManagerProvider",
    "get_master_key_provider",
    "AccountRecord",
    "AccountStore",
    "InMemoryAccountStore",
    "SqliteAccountStore",
    "SecretVault",

    # Proofs
    "Groth16Proof",
    "SolidityCalldata",
    "proof_to_calldata",
    "calldata_to_proof",
    "ProvingOracle",
    "SnarkjsProvingOracle",
    "HttpProvingOracle",
    "ProofAssembler",
    "VerifyingOracle",
    "SnarkjsVerifyingOracle",
    "PairingVerifyingOracle",

    # Ledger
    "AuthorizationRoutine",
    "BooleanGateRoutine",
    "CallDispatcher",
    "CallResult",
    "InMemoryLedger",
    "LedgerEvent",

    # Request level
    "OTPAuthService",
    "ProverPool",
]
