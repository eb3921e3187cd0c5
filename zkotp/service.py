"""
Request-level operations: register, check and authorize.

OTPAuthService wires the vault, the OTP engine, the hash binder and the
proof assembler together. ProverPool runs proof generation on a bounded
worker pool with a per-request deadline.
"""

import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Callable, Optional, TypeVar, Union

from .errors import ProofGenerationError, ProverTimeout, ValidationError
from .field import secret_to_field
from .hashing import Payload, Target, action_hash
from .otp import DIGITS, compute_code, decode_secret, time_step
from .proof import SolidityCalldata
from .prover import ProofAssembler, new_nonce
from .vault import SecretVault

logger = logging.getLogger(__name__)

T = TypeVar("T")

OTP_PATTERN = re.compile(r'^\d{%d}$' % DIGITS)


def parse_otp(otp: Union[str, int]) -> int:
    """Parse a submitted code given as 6 digits or an integer below 10^6."""
    if isinstance(otp, bool):
        raise ValidationError("otp", "must be a 6-digit code")
    if isinstance(otp, int):
        if 0 <= otp < 10 ** DIGITS:
            return otp
        raise ValidationError("otp", "must be a 6-digit code")
    if isinstance(otp, str) and OTP_PATTERN.match(otp.strip()):
        return int(otp.strip())
    raise ValidationError("otp", "must be a 6-digit code")


class ProverPool:
    """
    Bounded worker pool for proof generation.

    A request that exceeds its deadline raises ProverTimeout. The worker
    keeps running to completion but its result is discarded.
    """

    def __init__(self, max_workers: int = 2, timeout: float = 60.0):
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="zkotp-prover")

    def run(self, fn: Callable[..., T], *args, timeout: Optional[float] = None, **kwargs) -> T:
        future = self._executor.submit(fn, *args, **kwargs)
        try:
            return future.result(timeout=timeout if timeout is not None else self.timeout)
        except FutureTimeout as e:
            future.cancel()
            raise ProverTimeout(f"Proof generation exceeded {timeout or self.timeout}s") from e

    def shutdown(self, wait: bool = False):
        self._executor.shutdown(wait=wait)


class OTPAuthService:
    """
    The three request-level operations.

    Usage:
        service = OTPAuthService(vault, ProofAssembler(prover, verifier))
        service.register("alice", secret)
        calldata = service.authorize("alice", "123456", to, value, data)
    """

    def __init__(
        self,
        vault: SecretVault,
        assembler: ProofAssembler,
        pool: Optional[ProverPool] = None,
        clock: Callable[[], float] = time.time,
        nonce_factory: Callable[[], int] = new_nonce
    ):
        self.vault = vault
        self.assembler = assembler
        self.pool = pool
        self.clock = clock
        self.nonce_factory = nonce_factory

    def register(self, uid: str, secret: str) -> None:
        """
        Raises:
            ValidationError, AlreadyExists
        """
        self.vault.register(uid, secret)

    def check_registered(self, uid: str) -> bool:
        return self.vault.is_registered(uid)

    def authorize(
        self,
        uid: str,
        otp: Union[str, int],
        to: Target,
        value: Union[int, str],
        data: Payload
    ) -> SolidityCalldata:
        """
        Prove the submitted code for uid and bind the proof to (to, value, data).

        Raises:
            ValidationError: Malformed code or action
            NotFound: Unknown uid
            DecryptionError: Stored secret cannot be decrypted
            ProofGenerationError: Wrong code or failed proof
            ProverTimeout: Proof generation exceeded its deadline
        """
        submitted = parse_otp(otp)
        bound_action = action_hash(to, value, data)

        secret = self.vault.reveal(uid)
        try:
            raw = decode_secret(secret)
        except ValidationError as e:
            raise ProofGenerationError("Stored secret is not valid base32") from e

        step = time_step(self.clock())
        code = compute_code(raw, step)
        nonce = self.nonce_factory()

        args = (secret_to_field(raw), code, step, bound_action, nonce, submitted)
        if self.pool is None:
            return self.assembler.assemble(*args)
        return self.pool.run(self.assembler.assemble, *args)
