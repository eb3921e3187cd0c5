"""
CLI tests: commands print what the library computes and map failures to
exit codes.
"""

import io
import json
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from zkotp.cli import main
from zkotp.conformance import POSEIDON_VECTORS
from zkotp.keys import StaticMasterKeyProvider
from zkotp.otp import format_code
from zkotp.prover import ProofAssembler
from zkotp.service import OTPAuthService
from zkotp.store import InMemoryAccountStore
from zkotp.vault import SecretVault

from fakes import API_NOW, FakeProvingOracle, FakeVerifyingOracle

RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"
SECRET = "JBSWY3DPEHPK3PXP"
TARGET = "0x" + "aa" * 20


def run(argv):
    out, err = io.StringIO(), io.StringIO()
    with redirect_stdout(out), redirect_stderr(err):
        code = main(argv)
    return code, out.getvalue(), err.getvalue()


class TestPureCommands(unittest.TestCase):

    def test_otp(self):
        code, out, _ = run(["otp", "-s", RFC_SECRET, "-t", "59"])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), "287082")

    def test_field_hash(self):
        inputs, digest = POSEIDON_VECTORS[0]
        code, out, _ = run(["field-hash", str(inputs[0])])
        self.assertEqual(code, 0)
        self.assertEqual(out.strip(), str(digest))

    def test_action_hash_rejects_bad_target(self):
        code, _, err = run(["action-hash", "--to", "0x1234"])
        self.assertEqual(code, 1)
        self.assertIn("ValidationError", err)

    def test_conformance(self):
        code, out, _ = run(["conformance"])
        self.assertEqual(code, 0)
        self.assertIn("ZKOTP_CONFORMANCE: PASS", out)

    def test_no_command(self):
        code, _, _ = run([])
        self.assertEqual(code, 2)


class TestServiceCommands(unittest.TestCase):

    def setUp(self):
        vault = SecretVault(InMemoryAccountStore(), StaticMasterKeyProvider(b"cli"), iterations=1000)
        assembler = ProofAssembler(FakeProvingOracle(), FakeVerifyingOracle())
        self.service = OTPAuthService(vault, assembler, clock=lambda: API_NOW)
        patcher = mock.patch("zkotp_api.main.build_service", return_value=self.service)
        patcher.start()
        self.addCleanup(patcher.stop)

    def test_register_check_authorize(self):
        self.assertEqual(run(["check", "-u", "alice"])[0], 1)
        self.assertEqual(run(["register", "-u", "alice", "-s", SECRET])[0], 0)

        code, out, _ = run(["check", "-u", "alice"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"registered": True})

        otp = run(["otp", "-s", SECRET, "-t", str(API_NOW)])[1].strip()
        code, out, _ = run(["authorize", "-u", "alice", "-p", otp, "--to", TARGET, "--value", "5"])
        self.assertEqual(code, 0)
        self.assertEqual(len(json.loads(out)["publicInput"]), 5)

    def test_duplicate_register_fails(self):
        run(["register", "-u", "alice", "-s", SECRET])
        code, _, err = run(["register", "-u", "alice", "-s", SECRET])
        self.assertEqual(code, 1)
        self.assertIn("AlreadyExists", err)

    def test_authorize_failures_exit_nonzero(self):
        code, _, err = run(["authorize", "-u", "nobody", "-p", "123456", "--to", TARGET])
        self.assertEqual(code, 1)
        self.assertIn("✗ NotFound", err)

        run(["register", "-u", "alice", "-s", SECRET])
        otp = run(["otp", "-s", SECRET, "-t", str(API_NOW)])[1].strip()
        wrong = format_code((int(otp) + 1) % 1000000)
        code, _, err = run(["authorize", "-u", "alice", "-p", wrong, "--to", TARGET])
        self.assertEqual(code, 1)
        self.assertIn("✗ ProofGenerationError", err)


if __name__ == "__main__":
    unittest.main()
