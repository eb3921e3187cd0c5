"""
ZK-OTP Error Taxonomy

Every failure the protocol can produce is a subclass of ZKOTPError.

Off-ledger failures:
- ValidationError: malformed input (local, non-fatal)
- NotFound / AlreadyExists: account lookup and registration outcomes
- DecryptionError: corrupt ciphertext or wrong master key (fatal)
- StoreUnavailable: transient store failure (the only retried error)
- ProofGenerationError: witness/public-input mismatch or failed self-check
- ProverTimeout: proof generation exceeded its deadline

Ledger rejections carry a machine-checkable RejectReason and abort the
whole transaction.
"""

from enum import Enum
from typing import Optional


class ZKOTPError(Exception):
    """Base class for all ZK-OTP errors."""


class ValidationError(ZKOTPError):
    """Raised when input validation fails."""

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class NotFound(ZKOTPError):
    """Raised when an account id is not registered."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account not found: {account_id}")


class AlreadyExists(ZKOTPError):
    """Raised when registering an account id that already exists."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account already exists: {account_id}")


class DecryptionError(ZKOTPError):
    """Raised when a stored secret cannot be decrypted. Always fatal."""


class StoreUnavailable(ZKOTPError):
    """Raised by account stores on transient failures."""


class ProofGenerationError(ZKOTPError):
    """
    Raised when the proving oracle rejects the witness or the produced
    proof does not pass local verification.

    Callers report this uniformly as an invalid code.
    """


class ProverTimeout(ZKOTPError):
    """Raised when proof generation does not finish within its deadline."""


class RejectReason(str, Enum):
    """Reason a ledger transaction was rejected."""
    INVALID_PROOF = "INVALID_PROOF"
    INVALID_HASHED_SECRET = "INVALID_HASHED_SECRET"
    ACTION_HASH_MISMATCH = "ACTION_HASH_MISMATCH"
    NONCE_REUSED = "NONCE_REUSED"
    ACTION_EXECUTION_FAILED = "ACTION_EXECUTION_FAILED"
    NOT_OWNER = "NOT_OWNER"


class LedgerRejection(ZKOTPError):
    """Raised when the authorization routine rejects a transaction."""

    reason: RejectReason = RejectReason.INVALID_PROOF
    default_message = "Transaction rejected"

    def __init__(self, message: Optional[str] = None):
        super().__init__(f"{self.reason.value}: {message or self.default_message}")


class InvalidProof(LedgerRejection):
    reason = RejectReason.INVALID_PROOF
    default_message = "Invalid ZK proof"


class InvalidHashedSecret(LedgerRejection):
    reason = RejectReason.INVALID_HASHED_SECRET
    default_message = "Invalid hashed secret"


class ActionHashMismatch(LedgerRejection):
    reason = RejectReason.ACTION_HASH_MISMATCH
    default_message = "Action hash mismatch"


class NonceReused(LedgerRejection):
    reason = RejectReason.NONCE_REUSED
    default_message = "Nonce already used"


class ActionExecutionFailed(LedgerRejection):
    reason = RejectReason.ACTION_EXECUTION_FAILED
    default_message = "Call failed"


class NotOwner(LedgerRejection):
    reason = RejectReason.NOT_OWNER
    default_message = "Not owner"
