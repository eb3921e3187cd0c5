"""
ZK-OTP Authorization Routine

The ledger-resident state machine that turns a valid proof into exactly one
call. It is the only component with durable cross-request state.

execute() runs its checks in a fixed order and stops at the first failure:

1. The proof verifies against the public signals
2. The proof's hashed secret is not the revoked hashed_secret_config
3. The proof's action hash binds exactly the call about to be made
4. The nonce has never been used (marked used BEFORE the call)
5. The call succeeds

Any rejection leaves the routine's state untouched. A failed call reverts
the nonce mark, so the whole transaction has no effect.

State is mutated only under the host ledger's serialized transaction
ordering; the routine takes no locks of its own.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Set, Union

from .errors import (
    ActionExecutionFailed,
    ActionHashMismatch,
    InvalidHashedSecret,
    InvalidProof,
    NonceReused,
    NotOwner,
    ValidationError,
    ZKOTPError,
)
from .field import FieldLike, parse_field
from .hashing import Payload, Target, action_hash_int, encode_payload, encode_target, encode_value
from .proof import N_PUBLIC, SolidityCalldata
from .verifier import VerifyingOracle

logger = logging.getLogger(__name__)

SIGNAL_HASHED_SECRET = 0
SIGNAL_HASHED_OTP = 1
SIGNAL_TIME_STEP = 2
SIGNAL_ACTION_HASH = 3
SIGNAL_TX_NONCE = 4


@dataclass
class LedgerEvent:
    """Event emitted by a routine (administrative change or execution)."""
    name: str
    old: Any = None
    new: Any = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "old": self.old,
            "new": self.new,
            "timestamp": self.timestamp.isoformat().replace("+00:00", "Z")
        }


@dataclass
class CallResult:
    success: bool
    return_data: bytes = b""


class CallDispatcher(ABC):
    """Performs the value-carrying call on behalf of a routine."""

    @abstractmethod
    def call(self, sender: str, target: bytes, value: int, payload: bytes) -> CallResult:
        """
        Call target with value and payload.

        A reverted callee is reported as CallResult(success=False), not
        raised.
        """
        pass


def _normalize_address(address: Union[str, bytes]) -> str:
    return "0x" + encode_target(address).hex()


def _parse_signals(public_signals: Sequence[FieldLike]) -> List[int]:
    if len(public_signals) != N_PUBLIC:
        raise ValidationError("public_signals", f"expected {N_PUBLIC} signals, got {len(public_signals)}")
    return [parse_field(s, "public_signals") for s in public_signals]


class _Administered:
    """Owner/admin bookkeeping shared by both routine variants."""

    def __init__(self, owner: str, admin: str, address: Optional[str] = None):
        self.owner = _normalize_address(owner)
        self.admin = _normalize_address(admin)
        self.address = _normalize_address(address) if address else None
        self.events: List[LedgerEvent] = []

    def _emit(self, name: str, old: Any = None, new: Any = None) -> LedgerEvent:
        event = LedgerEvent(name, old, new)
        self.events.append(event)
        logger.info("%s: %s -> %s", name, old, new)
        return event

    def _only_owner(self, sender: Union[str, bytes]):
        if _normalize_address(sender) != self.owner:
            raise NotOwner()

    def set_owner(self, sender: Union[str, bytes], new_owner: Union[str, bytes]) -> LedgerEvent:
        self._only_owner(sender)
        old, self.owner = self.owner, _normalize_address(new_owner)
        return self._emit("OwnerChanged", old, self.owner)

    def set_admin(self, sender: Union[str, bytes], new_admin: Union[str, bytes]) -> LedgerEvent:
        self._only_owner(sender)
        old, self.admin = self.admin, _normalize_address(new_admin)
        return self._emit("AdminChanged", old, self.admin)


class AuthorizationRoutine(_Administered):
    """
    Proof-gated executor (the full variant).

    Usage:
        routine = AuthorizationRoutine(verifier, dispatcher, owner=..., admin=...)
        routine.execute(to, value, data, calldata, calldata.public_input)
    """

    def __init__(
        self,
        verifier: VerifyingOracle,
        dispatcher: CallDispatcher,
        owner: str,
        admin: str,
        address: Optional[str] = None,
        hashed_secret_config: Optional[FieldLike] = None
    ):
        super().__init__(owner, admin, address)
        self.verifier = verifier
        self.dispatcher = dispatcher
        self.hashed_secret_config: Optional[int] = (
            parse_field(hashed_secret_config, "hashed_secret_config")
            if hashed_secret_config is not None else None
        )
        self.used_nonces: Set[int] = set()

    def set_hashed_secret_config(self, sender: Union[str, bytes], value: Optional[FieldLike]) -> LedgerEvent:
        """Revoke a hashed secret (or clear the revocation with None)."""
        self._only_owner(sender)
        new = parse_field(value, "hashed_secret_config") if value is not None else None
        old, self.hashed_secret_config = self.hashed_secret_config, new
        return self._emit("HashedSecretConfigChanged", old, new)

    def is_nonce_used(self, nonce: FieldLike) -> bool:
        return parse_field(nonce, "tx_nonce") in self.used_nonces

    def execute(
        self,
        target: Target,
        value: Union[int, str],
        payload: Payload,
        proof: Union[SolidityCalldata, Dict[str, Any]],
        public_signals: Sequence[FieldLike],
        sender: Optional[Union[str, bytes]] = None
    ) -> CallResult:
        """
        Verify a proof and perform the call it authorizes.

        Args:
            target: Call target address
            value: Value carried by the call
            payload: Call data
            proof: Proof in calldata layout ({a, b, c} or SolidityCalldata)
            public_signals: [hashed_secret, hashed_otp, time_step, action_hash, tx_nonce]
            sender: Transaction origin, for the audit trail only

        Returns:
            The successful CallResult

        Raises:
            InvalidProof: Proof or public signals do not verify
            InvalidHashedSecret: The proving secret is revoked
            ValidationError: Target, value or payload cannot be encoded
            ActionHashMismatch, NonceReused, ActionExecutionFailed
        """
        # Check 1: proof verifies; an undecodable proof is an invalid one
        try:
            if isinstance(proof, dict):
                proof = SolidityCalldata.from_dict({**proof, "publicInput": list(public_signals)})
            signals = _parse_signals(public_signals)
        except ValidationError as e:
            raise InvalidProof(str(e)) from e
        if not self.verifier.verify(proof.a, proof.b, proof.c, signals):
            raise InvalidProof()

        # Check 2: secret not revoked
        if self.hashed_secret_config is not None and signals[SIGNAL_HASHED_SECRET] == self.hashed_secret_config:
            raise InvalidHashedSecret()

        # Check 3: proof bound to this exact call
        to = encode_target(target)
        amount = int.from_bytes(encode_value(value), "big")
        data = encode_payload(payload)
        if signals[SIGNAL_ACTION_HASH] != action_hash_int(to, amount, data):
            raise ActionHashMismatch()

        # Check 4: nonce single use, marked before the call
        nonce = signals[SIGNAL_TX_NONCE]
        if nonce in self.used_nonces:
            raise NonceReused()
        self.used_nonces.add(nonce)

        # Check 5: the call itself; any failure reverts the nonce mark
        try:
            result = self.dispatcher.call(self.address or self.owner, to, amount, data)
        except Exception as e:
            self.used_nonces.discard(nonce)
            raise ActionExecutionFailed(str(e)) from e
        if not result.success:
            self.used_nonces.discard(nonce)
            raise ActionExecutionFailed()

        self._emit("Executed", None, {
            "to": "0x" + to.hex(),
            "value": amount,
            "nonce": nonce,
            "sender": _normalize_address(sender) if sender else None
        })
        return result


class BooleanGateRoutine(_Administered):
    """
    Reduced variant: a valid proof flips a single boolean.

    No nonce or action-hash binding; the same proof can be replayed.
    """

    def __init__(self, verifier: VerifyingOracle, owner: str, admin: Optional[str] = None, address: Optional[str] = None):
        super().__init__(owner, admin or owner, address)
        self.verifier = verifier
        self.open = False

    def submit(self, proof: Union[SolidityCalldata, Dict[str, Any]], public_signals: Sequence[FieldLike]) -> bool:
        """
        Verify a proof and toggle the gate.

        Returns:
            The new gate state

        Raises:
            InvalidProof: If the proof does not verify
        """
        if isinstance(proof, dict):
            proof = SolidityCalldata.from_dict({**proof, "publicInput": list(public_signals)})
        signals = [parse_field(s, "public_signals") for s in public_signals]
        if not self.verifier.verify(proof.a, proof.b, proof.c, signals):
            raise InvalidProof()
        old, self.open = self.open, not self.open
        self._emit("GateToggled", old, self.open)
        return self.open


Handler = Callable[["InMemoryLedger", str, int, bytes], bytes]


class InMemoryLedger(CallDispatcher):
    """
    Minimal in-process ledger for local execution and tests.

    Tracks balances, routes calls to registered target handlers and moves
    value only when the callee succeeds. A handler signals a revert by
    raising a ZKOTPError; other exceptions propagate.

    WARNING: Not a blockchain. No persistence, gas or signatures.
    """

    def __init__(self):
        self.balances: Dict[str, int] = {}
        self.handlers: Dict[str, Handler] = {}
        self.calls: List[Dict[str, Any]] = []

    def fund(self, address: Union[str, bytes], amount: int):
        key = _normalize_address(address)
        self.balances[key] = self.balances.get(key, 0) + amount

    def balance_of(self, address: Union[str, bytes]) -> int:
        return self.balances.get(_normalize_address(address), 0)

    def register_handler(self, address: Union[str, bytes], handler: Handler):
        self.handlers[_normalize_address(address)] = handler

    def call(self, sender: str, target: bytes, value: int, payload: bytes) -> CallResult:
        sender_key = _normalize_address(sender)
        target_key = "0x" + target.hex()

        if self.balance_of(sender_key) < value:
            logger.info("Call from %s failed: insufficient balance", sender_key)
            return CallResult(False)

        handler = self.handlers.get(target_key)
        return_data = b""
        if handler is not None:
            try:
                return_data = handler(self, sender_key, value, payload) or b""
            except ZKOTPError as e:
                logger.info("Call to %s reverted: %s", target_key, e)
                return CallResult(False)

        self.balances[sender_key] -= value
        self.balances[target_key] = self.balances.get(target_key, 0) + value
        self.calls.append({"from": sender_key, "to": target_key, "value": value, "data": "0x" + payload.hex()})
        return CallResult(True, return_data)
