"""
Authorization Routine Test Suite

Critical invariant tested:
    ONE PROOF EXECUTES AT MOST ONE CALL, AND ONLY THE CALL IT WAS BOUND TO
"""

import unittest

from zkotp.errors import (
    ActionExecutionFailed,
    ActionHashMismatch,
    InvalidHashedSecret,
    InvalidProof,
    NonceReused,
    NotOwner,
    RejectReason,
)
from zkotp.hashing import action_hash, field_hash
from zkotp.ledger import AuthorizationRoutine, BooleanGateRoutine, InMemoryLedger
from zkotp.prover import ProofAssembler

from fakes import FakeProvingOracle, FakeVerifyingOracle

OWNER = "0x" + "11" * 20
ADMIN = "0x" + "22" * 20
USER = "0x" + "33" * 20
WALLET = "0x" + "44" * 20
TARGET = "0x" + "aa" * 20
OTHER = "0x" + "bb" * 20

SECRET_FIELD = 987654321
CODE = 123456
STEP = 57000000


class LedgerTestCase(unittest.TestCase):

    def setUp(self):
        self.verifier = FakeVerifyingOracle()
        self.ledger = InMemoryLedger()
        self.ledger.fund(WALLET, 1000)
        self.routine = AuthorizationRoutine(self.verifier, self.ledger, owner=OWNER, admin=ADMIN, address=WALLET)
        self.assembler = ProofAssembler(FakeProvingOracle(), self.verifier)

    def prove(self, to=TARGET, value=10, data="0x", nonce=1):
        return self.assembler.assemble(SECRET_FIELD, CODE, STEP, action_hash(to, value, data), nonce)


class TestExecute(LedgerTestCase):

    def test_valid_proof_executes_once(self):
        calldata = self.prove(value=10, data="0xabcd")
        result = self.routine.execute(TARGET, 10, "0xabcd", calldata, calldata.public_input, sender=USER)

        self.assertTrue(result.success)
        self.assertEqual(self.ledger.balance_of(TARGET), 10)
        self.assertEqual(self.ledger.balance_of(WALLET), 990)
        self.assertEqual(self.ledger.calls[0]["data"], "0xabcd")
        self.assertTrue(self.routine.is_nonce_used(1))
        self.assertEqual(self.routine.events[-1].name, "Executed")

    def test_replay_rejected(self):
        calldata = self.prove()
        self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        with self.assertRaises(NonceReused) as ctx:
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertEqual(ctx.exception.reason, RejectReason.NONCE_REUSED)
        self.assertIn("Nonce already used", str(ctx.exception))
        self.assertEqual(self.ledger.balance_of(TARGET), 10)

    def test_invalid_proof(self):
        calldata = self.prove()
        self.verifier.accept = False
        with self.assertRaises(InvalidProof) as ctx:
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertIn("Invalid ZK proof", str(ctx.exception))
        self.assertEqual(self.routine.used_nonces, set())

    def test_tampered_signals_fail_proof_check(self):
        calldata = self.prove()
        signals = list(calldata.public_input)
        signals[4] = "99"
        with self.assertRaises(InvalidProof):
            self.routine.execute(TARGET, 10, "0x", calldata, signals)

    def test_action_hash_mismatch(self):
        calldata = self.prove(value=10)
        with self.assertRaises(ActionHashMismatch):
            self.routine.execute(TARGET, 11, "0x", calldata, calldata.public_input)
        with self.assertRaises(ActionHashMismatch):
            self.routine.execute(OTHER, 10, "0x", calldata, calldata.public_input)
        with self.assertRaises(ActionHashMismatch):
            self.routine.execute(TARGET, 10, "0x00", calldata, calldata.public_input)
        self.assertEqual(self.routine.used_nonces, set())
        self.assertEqual(self.ledger.calls, [])

    def test_revoked_secret(self):
        self.routine.set_hashed_secret_config(OWNER, field_hash(SECRET_FIELD))
        calldata = self.prove()
        with self.assertRaises(InvalidHashedSecret):
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertEqual(self.routine.used_nonces, set())

    def test_unrelated_revocation_allows_execution(self):
        self.routine.set_hashed_secret_config(OWNER, 1234)
        calldata = self.prove()
        self.assertTrue(self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input).success)

    def test_check_order(self):
        # Revoked secret is reported before an action mismatch.
        self.routine.set_hashed_secret_config(OWNER, field_hash(SECRET_FIELD))
        calldata = self.prove(value=10)
        with self.assertRaises(InvalidHashedSecret):
            self.routine.execute(TARGET, 11, "0x", calldata, calldata.public_input)

        # An invalid proof is reported before anything else.
        self.verifier.accept = False
        with self.assertRaises(InvalidProof):
            self.routine.execute(TARGET, 11, "0x", calldata, calldata.public_input)

    def test_failed_call_reverts_nonce(self):
        calldata = self.prove(value=5000)
        with self.assertRaises(ActionExecutionFailed):
            self.routine.execute(TARGET, 5000, "0x", calldata, calldata.public_input)
        self.assertFalse(self.routine.is_nonce_used(1))

        self.ledger.fund(WALLET, 5000)
        self.assertTrue(self.routine.execute(TARGET, 5000, "0x", calldata, calldata.public_input).success)

    def test_reverting_target(self):
        def revert(ledger, sender, value, payload):
            raise ActionExecutionFailed("target reverted")

        self.ledger.register_handler(TARGET, revert)
        calldata = self.prove()
        with self.assertRaises(ActionExecutionFailed):
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertEqual(self.ledger.balance_of(WALLET), 1000)
        self.assertFalse(self.routine.is_nonce_used(1))

    def test_crashing_target_reported_as_call_failure(self):
        def crash(ledger, sender, value, payload):
            raise ValueError("callee crashed")

        self.ledger.register_handler(TARGET, crash)
        calldata = self.prove()
        with self.assertRaises(ActionExecutionFailed) as ctx:
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertEqual(ctx.exception.reason, RejectReason.ACTION_EXECUTION_FAILED)
        self.assertIsInstance(ctx.exception.__cause__, ValueError)
        self.assertFalse(self.routine.is_nonce_used(1))
        self.assertEqual(self.ledger.balance_of(WALLET), 1000)

    def test_used_nonce_rejected_for_any_call(self):
        first = self.prove(to=TARGET, value=10, data="0x", nonce=1)
        self.routine.execute(TARGET, 10, "0x", first, first.public_input)

        second = self.prove(to=OTHER, value=5, data="0xab", nonce=1)
        with self.assertRaises(NonceReused):
            self.routine.execute(OTHER, 5, "0xab", second, second.public_input)
        self.assertEqual(self.ledger.balance_of(OTHER), 0)
        self.assertEqual(len(self.ledger.calls), 1)

    def test_proof_checked_before_call_parameters(self):
        calldata = self.prove()
        with self.assertRaises(InvalidProof):
            self.routine.execute("0x1234", 10, "0x", calldata, calldata.public_input[:4])
        self.verifier.accept = False
        with self.assertRaises(InvalidProof):
            self.routine.execute("not-an-address", -1, "0xzz", calldata, calldata.public_input)

    def test_reentrant_replay_blocked(self):
        calldata = self.prove()
        inner_errors = []

        def reenter(ledger, sender, value, payload):
            try:
                self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
            except NonceReused as e:
                inner_errors.append(e)
            return b""

        self.ledger.register_handler(TARGET, reenter)
        self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)

        self.assertEqual(len(inner_errors), 1)
        self.assertEqual(len(self.ledger.calls), 1)
        self.assertEqual(self.ledger.balance_of(TARGET), 10)

    def test_dict_proof_accepted(self):
        calldata = self.prove()
        proof = {"a": calldata.a, "b": calldata.b, "c": calldata.c}
        self.assertTrue(self.routine.execute(TARGET, 10, "0x", proof, calldata.public_input).success)

    def test_distinct_nonces_both_execute(self):
        for nonce in (1, 2):
            calldata = self.prove(nonce=nonce)
            self.routine.execute(TARGET, 10, "0x", calldata, calldata.public_input)
        self.assertEqual(self.ledger.balance_of(TARGET), 20)


class TestAdministration(LedgerTestCase):

    def test_set_owner(self):
        with self.assertRaises(NotOwner) as ctx:
            self.routine.set_owner(ADMIN, USER)
        self.assertIn("Not owner", str(ctx.exception))

        event = self.routine.set_owner(OWNER, USER)
        self.assertEqual(self.routine.owner, USER)
        self.assertEqual((event.name, event.old, event.new), ("OwnerChanged", OWNER, USER))

        with self.assertRaises(NotOwner):
            self.routine.set_owner(OWNER, OWNER)

    def test_set_admin(self):
        with self.assertRaises(NotOwner):
            self.routine.set_admin(ADMIN, USER)
        event = self.routine.set_admin(OWNER, USER)
        self.assertEqual(self.routine.admin, USER)
        self.assertEqual((event.old, event.new), (ADMIN, USER))

    def test_set_hashed_secret_config(self):
        with self.assertRaises(NotOwner):
            self.routine.set_hashed_secret_config(ADMIN, 9999)
        self.assertIsNone(self.routine.hashed_secret_config)

        event = self.routine.set_hashed_secret_config(OWNER, 1234)
        self.assertEqual(event.name, "HashedSecretConfigChanged")
        self.assertEqual((event.old, event.new), (None, 1234))

        event = self.routine.set_hashed_secret_config(OWNER, None)
        self.assertEqual((event.old, event.new), (1234, None))

    def test_checksum_sender_matches_owner(self):
        routine = AuthorizationRoutine(
            self.verifier, self.ledger,
            owner="0x5aaeb6053f3e94c9b9a09f33669435e7ef1beaed", admin=ADMIN
        )
        routine.set_admin("0x5aAeb6053F3E94C9b9A09f33669435E7Ef1BeAed", USER)
        self.assertEqual(routine.admin, USER)


class TestBooleanGate(unittest.TestCase):

    def setUp(self):
        self.verifier = FakeVerifyingOracle()
        self.gate = BooleanGateRoutine(self.verifier, owner=OWNER)
        self.calldata = ProofAssembler(FakeProvingOracle(), self.verifier).assemble(SECRET_FIELD, CODE, STEP, 0, 0)

    def test_valid_proof_toggles(self):
        self.assertFalse(self.gate.open)
        self.assertTrue(self.gate.submit(self.calldata, self.calldata.public_input))
        self.assertFalse(self.gate.submit(self.calldata, self.calldata.public_input))
        self.assertEqual([e.name for e in self.gate.events], ["GateToggled", "GateToggled"])

    def test_invalid_proof_leaves_state(self):
        self.verifier.accept = False
        with self.assertRaises(InvalidProof):
            self.gate.submit(self.calldata, self.calldata.public_input)
        self.assertFalse(self.gate.open)
        self.assertEqual(self.gate.events, [])
